"""suitegraph: a dependency-graph test execution engine.

Suites of tests and lifecycle hooks are compiled into a DAG of runnables
that honors ordering, exclusivity, skip/only focus and hook failure
cascades, then executed on a single asyncio event loop.
"""

from suitegraph.execution import (
    Exclusivity,
    Orchestrator,
    Result,
    Suite,
)
from suitegraph.lifecycle import RunConfig
from suitegraph.reporting import Reporter

__version__ = "0.1.0"

__all__ = [
    "Exclusivity",
    "Orchestrator",
    "Result",
    "Reporter",
    "RunConfig",
    "Suite",
]
