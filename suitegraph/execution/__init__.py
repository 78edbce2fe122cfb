"""Execution engine: runnables, suites, the graph builder and the orchestrator."""

from suitegraph.execution.constants import Exclusivity, Result, RunnableKind, RunState
from suitegraph.execution.errors import (
    GraphCycleError,
    HookFailureError,
    InvalidCompletionError,
    MultipleCompletionError,
    RunnableError,
    RunnableTimeoutError,
    SuitegraphError,
    SuitePreparedError,
)
from suitegraph.execution.orchestrator import EVENTS, Orchestrator
from suitegraph.execution.runnables import AllHook, Barrier, EachHook, Runnable, Test
from suitegraph.execution.suite import Suite, TestContainer

__all__ = [
    "EVENTS",
    "AllHook",
    "Barrier",
    "EachHook",
    "Exclusivity",
    "GraphCycleError",
    "HookFailureError",
    "InvalidCompletionError",
    "MultipleCompletionError",
    "Orchestrator",
    "Result",
    "RunState",
    "Runnable",
    "RunnableError",
    "RunnableKind",
    "RunnableTimeoutError",
    "Suite",
    "SuitePreparedError",
    "SuitegraphError",
    "Test",
    "TestContainer",
]
