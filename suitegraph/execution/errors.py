"""Error types for scheduling and runnable outcomes."""

from __future__ import annotations


class SuitegraphError(Exception):
    """Base exception for all engine errors."""


class SuitePreparedError(SuitegraphError):
    """Raised when a suite is modified after its graph has been built."""


class GraphCycleError(SuitegraphError):
    """Raised when the execution graph contains a cycle."""


class RunnableError(SuitegraphError):
    """Base class for errors recorded on a runnable instead of raised."""


class RunnableTimeoutError(RunnableError):
    """Recorded when a runnable exceeds its wall-clock timeout."""

    def __init__(self, timeout: float) -> None:
        super().__init__(f"timeout of {timeout * 1000:g}ms exceeded")
        self.timeout = timeout


class HookFailureError(RunnableError):
    """Recorded when a hook this runnable depends on failed."""

    def __init__(self, hook_title: str) -> None:
        super().__init__(f"{hook_title} dependency failed")
        self.hook_title = hook_title


class InvalidCompletionError(RunnableError):
    """Wraps a completion value that is not an exception."""

    def __init__(self, value: object) -> None:
        super().__init__(f"done() invoked with non-Error: {value!r}")
        self.value = value


class MultipleCompletionError(RunnableError):
    """Recorded when a runnable signals completion more than once."""

    def __init__(self) -> None:
        super().__init__("done() called multiple times")
