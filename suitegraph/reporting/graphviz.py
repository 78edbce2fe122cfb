"""Render a prepared execution graph in Graphviz DOT format.

Nodes are colored by state of declaration: skipped runnables grey,
globally exclusive ones red (the run's start/finish fences blue), the rest
white. Tests and hooks are grouped in one cluster per titled suite, and
locally exclusive suites get a solid border.
"""

from __future__ import annotations

from pathlib import Path

from suitegraph.execution.constants import Exclusivity, RunnableKind
from suitegraph.execution.orchestrator import Orchestrator
from suitegraph.execution.runnables import Runnable
from suitegraph.execution.suite import Suite


def _node_color(runnable: Runnable) -> str:
    if runnable.skip:
        return "azure4"
    if runnable.exclusivity is Exclusivity.GLOBAL:
        return "blue" if runnable.parent is None else "red"
    return "white"


def _node_label(runnable: Runnable) -> str:
    if runnable.kind is RunnableKind.BARRIER:
        label = runnable.full_title("/")
    else:
        label = runnable.title
    return label.replace("<", "\\<").replace(">", "\\>").replace('"', '\\"')


def _owning_suite(runnable: Runnable) -> Suite | None:
    suite = runnable.parent
    while suite is not None and suite.is_container:
        suite = suite.parent
    return suite


def generate_dot(orchestrator: Orchestrator) -> str:
    """Build the DOT source for every registered runnable and edge.

    Args:
        orchestrator: An orchestrator; it is prepared first if needed.

    Returns:
        The ``digraph`` text, ending with a newline.
    """
    runnables = orchestrator.prepare()
    lines = ["digraph G {"]

    clusters: dict[int, tuple[Suite, list[Runnable]]] = {}
    for runnable in runnables:
        lines.append(
            f'    node{runnable.id} [shape=record, label="{{{_node_label(runnable)}}}", '
            f"style=filled, fillcolor={_node_color(runnable)}];"
        )
        if runnable.kind is RunnableKind.BARRIER:
            continue
        suite = _owning_suite(runnable)
        if suite is None or not suite.title:
            continue
        clusters.setdefault(id(suite), (suite, []))[1].append(runnable)
    lines.append("")

    for index, (suite, members) in enumerate(clusters.values()):
        style = "solid" if suite.exclusivity is Exclusivity.LOCAL else "dotted"
        lines.append(f"    subgraph cluster_{index} {{")
        lines.append(f'        label="{suite.full_title("/")}";')
        lines.append(f"        graph[style={style}];")
        lines.extend(f"        node{r.id};" for r in members)
        lines.append("    }")
    lines.append("")

    for runnable in runnables:
        for successor in runnable.next_runnables:
            lines.append(f"    node{runnable.id} -> node{successor.id};")

    lines.append("}")
    return "\n".join(lines) + "\n"


def write_dot(orchestrator: Orchestrator, path: Path) -> None:
    """Write the DOT rendering of the orchestrator's graph to ``path``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(generate_dot(orchestrator))
