"""Fixed vocabularies shared by runnables, suites and reporters."""

from __future__ import annotations

from enum import Enum


class Exclusivity(str, Enum):
    """How a runnable or suite may overlap with others.

    NONE runs alongside its siblings, LOCAL waits for pending siblings and
    blocks later ones, GLOBAL excludes every other runnable in the run.
    """

    NONE = "none"
    LOCAL = "local"
    GLOBAL = "global"


class RunState(str, Enum):
    """Runnable lifecycle. Transitions only move forward."""

    WAITING = "waiting"
    RUNNING = "running"
    COMPLETED = "completed"


class Result(str, Enum):
    """Terminal outcome of a runnable."""

    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"
    HOOK_FAILURE = "hook_failure"
    SKIPPED = "skipped"


class RunnableKind(str, Enum):
    TEST = "test"
    BEFORE_ALL = "before_all"
    AFTER_ALL = "after_all"
    BEFORE_EACH = "before_each"
    AFTER_EACH = "after_each"
    BARRIER = "barrier"


# Results of a dependency that short-circuit its dependents
CASCADING_RESULTS = frozenset({Result.FAILURE, Result.TIMEOUT})

HOOK_KINDS = frozenset({
    RunnableKind.BEFORE_ALL,
    RunnableKind.AFTER_ALL,
    RunnableKind.BEFORE_EACH,
    RunnableKind.AFTER_EACH,
})
