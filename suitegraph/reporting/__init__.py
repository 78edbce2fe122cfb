"""Run reporting: JSON/YAML reports and Graphviz rendering."""

from suitegraph.reporting.graphviz import generate_dot, write_dot
from suitegraph.reporting.reporter import Reporter, RunStats

__all__ = [
    "Reporter",
    "RunStats",
    "generate_dot",
    "write_dot",
]
