"""Runnables: the schedulable units of the execution graph.

Every runnable owns a one-way state machine (waiting -> running ->
completed). Shared bookkeeping (prior counting, dependency short-circuit,
timeout, completion) lives in Runnable; the variants only differ in their
kind and in how their body is dispatched:

- Test:     a test body
- AllHook:  a beforeAll/afterAll hook
- EachHook: a beforeEach/afterEach hook, cloned into every test container
- Barrier:  a bodiless node used to join or fence parts of the graph
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import TYPE_CHECKING, Any, Callable, Iterable, Protocol

from suitegraph.execution.constants import (
    CASCADING_RESULTS,
    HOOK_KINDS,
    Exclusivity,
    Result,
    RunnableKind,
    RunState,
)
from suitegraph.execution.errors import (
    HookFailureError,
    InvalidCompletionError,
    MultipleCompletionError,
    RunnableError,
    RunnableTimeoutError,
)

if TYPE_CHECKING:
    from suitegraph.execution.suite import Suite

logger = logging.getLogger(__name__)

Body = Callable[..., Any]


class RunnableObserver(Protocol):
    """Receives lifecycle notifications from runnables."""

    def runnable_started(self, runnable: Runnable) -> None: ...

    def runnable_finished(self, runnable: Runnable) -> None: ...

    def runnable_error(self, runnable: Runnable, error: BaseException) -> None: ...


class Runnable:
    """A single node of the execution graph.

    Two edge sets are kept apart: ``prior_runnables`` only gate when this
    runnable may start, while ``dependencies`` decide whether its body runs
    at all (a failed or timed out dependency turns this runnable into a
    hook failure).
    """

    kind: RunnableKind = RunnableKind.TEST

    def __init__(self, title: str, body: Body | None = None) -> None:
        self.id: int | None = None
        self.title = title
        self.body = body
        self.exclusivity: Exclusivity | None = None
        self.skip = body is None
        self.only = False
        self.timeout: float | None = None
        self.parent: Suite | None = None
        self.observer: RunnableObserver | None = None

        self.state = RunState.WAITING
        self.result: Result | None = None
        self.error: BaseException | None = None
        self.extra_errors: list[BaseException] = []
        self.duration: float | None = None

        self.prior_runnables: list[Runnable] = []
        self.next_runnables: list[Runnable] = []
        self.dependencies: list[Runnable] = []

        self._start_time: float | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._pending: asyncio.Future[Any] | None = None

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} #{self.id} {self.title!r} "
            f"{self.state.value}>"
        )

    # ------------------------------------------------------------------
    # Graph edges
    # ------------------------------------------------------------------

    def add_priors(self, priors: Iterable[Runnable]) -> None:
        """Make this runnable wait for every runnable in ``priors``.

        Args:
            priors: Runnables that must complete before this one starts.
                Duplicates and self references are ignored.
        """
        for prior in priors:
            if prior is self or prior in self.prior_runnables:
                continue
            self.prior_runnables.append(prior)
            prior.next_runnables.append(self)

    def add_dependencies(self, dependencies: Iterable[Runnable]) -> None:
        """Require every runnable in ``dependencies`` to succeed.

        Args:
            dependencies: Runnables whose failure or timeout turns this
                runnable into a hook failure.
        """
        for dependency in dependencies:
            if dependency is self or dependency in self.dependencies:
                continue
            self.dependencies.append(dependency)

    # ------------------------------------------------------------------
    # Declaration helpers (chainable)
    # ------------------------------------------------------------------

    def globally_exclusive(self) -> Runnable:
        self.exclusivity = Exclusivity.GLOBAL
        return self

    def locally_exclusive(self) -> Runnable:
        self.exclusivity = Exclusivity.LOCAL
        return self

    def non_exclusive(self) -> Runnable:
        self.exclusivity = Exclusivity.NONE
        return self

    def set_skip(self, skip: bool = True) -> Runnable:
        self.skip = skip
        return self

    def set_only(self, only: bool = True) -> Runnable:
        self.only = only
        return self

    def set_timeout(self, seconds: float | None) -> Runnable:
        """Set the wall-clock timeout in seconds (None or 0 disables it)."""
        self.timeout = seconds
        return self

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    @property
    def is_hook(self) -> bool:
        return self.kind in HOOK_KINDS

    @property
    def is_test(self) -> bool:
        return self.kind is RunnableKind.TEST

    def full_title(self, separator: str = " ") -> str:
        """Title chain from the root suite down to this runnable."""
        prefix = self.parent.full_title(separator) if self.parent is not None else ""
        if not prefix:
            return self.title
        return f"{prefix}{separator}{self.title}"

    def clone(self) -> Runnable:
        """Copy this runnable's declaration under a fresh identity.

        Title, body, kind, skip, only, exclusivity, timeout and parent are
        copied. The clone is unregistered and has no edges.
        """
        twin = type(self)(self.title, self.body)
        twin.kind = self.kind
        twin.skip = self.skip
        twin.only = self.only
        twin.exclusivity = self.exclusivity
        twin.timeout = self.timeout
        twin.parent = self.parent
        return twin

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def run(self) -> None:
        """Start this runnable if every prior has completed.

        Safe to call any number of times: it is a no-op until the last
        prior completes and after the runnable has left the waiting state.
        Must be called from within a running event loop.
        """
        if self.state is not RunState.WAITING:
            return
        if any(p.state is not RunState.COMPLETED for p in self.prior_runnables):
            return

        self._loop = asyncio.get_running_loop()

        for dependency in self.dependencies:
            if dependency.result in CASCADING_RESULTS:
                self.complete(
                    HookFailureError(dependency.full_title("/")),
                    Result.HOOK_FAILURE,
                )
                return

        if self.skip:
            self.complete(result=Result.SKIPPED)
            return

        self.state = RunState.RUNNING
        self._start_time = time.monotonic()
        logger.debug("Running %s", self.full_title("/"))
        if self.observer is not None:
            self.observer.runnable_started(self)

        if self.timeout:
            self._timer = self._loop.call_later(self.timeout, self._on_timeout)
        self._loop.call_soon(self._execute)

    def complete(self, error: object = None, result: Result | None = None) -> None:
        """Move this runnable to its terminal state.

        The first call decides the result. Later calls never change it: after
        a timeout they are ignored, otherwise they are recorded in
        ``extra_errors`` and reported as a runnable error.

        Args:
            error: The failure, if any. Values that are not exceptions are
                wrapped in InvalidCompletionError.
            result: Explicit result override (timeout, skip, hook failure).
        """
        if self.state is RunState.COMPLETED:
            if self.result is Result.TIMEOUT:
                return
            extra = _as_exception(error) if error is not None else MultipleCompletionError()
            self.extra_errors.append(extra)
            logger.warning(
                "%s signalled completion again: %s", self.full_title("/"), extra
            )
            if self.observer is not None:
                self.observer.runnable_error(self, extra)
            return

        if error is not None:
            self.error = _as_exception(error)
            result = result or Result.FAILURE
        self.result = result or Result.SUCCESS
        self.state = RunState.COMPLETED
        self._cancel_timer()
        if self._start_time is not None:
            self.duration = time.monotonic() - self._start_time
        else:
            self.duration = 0.0

        if self.result is Result.TIMEOUT:
            logger.warning("%s timed out", self.full_title("/"))
        else:
            logger.debug("%s finished: %s", self.full_title("/"), self.result.value)

        if self.observer is not None:
            self.observer.runnable_finished(self)
        self._release_successors()

    def _execute(self) -> None:
        """Dispatch the body. Variants without a body override this."""
        if self.state is not RunState.RUNNING:
            return

        context = self.parent.context() if self.parent is not None else {}
        arity = _positional_arity(self.body)
        try:
            if arity == 0:
                outcome = self.body()
            elif arity == 1:
                outcome = self.body(context)
            else:
                outcome = self.body(context, self._done)
        except Exception as e:
            self.complete(e)
            return

        if inspect.isawaitable(outcome):
            self._pending = asyncio.ensure_future(outcome)
            self._pending.add_done_callback(self._settle)
            return

        if isinstance(outcome, BaseException):
            self.complete(outcome)
        elif arity < 2:
            self.complete()

    def _done(self, error: object = None) -> None:
        """Completion callback handed to callback-style bodies."""
        self.complete(error)

    def _settle(self, future: asyncio.Future[Any]) -> None:
        if future.cancelled():
            self.complete(RunnableError("awaitable was cancelled"))
            return
        self.complete(future.exception())

    def _on_timeout(self) -> None:
        self._timer = None
        self.complete(RunnableTimeoutError(self.timeout or 0.0), Result.TIMEOUT)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _release_successors(self) -> None:
        # Successors are woken on the next loop iteration so that long
        # chains of skipped runnables never grow the call stack.
        if not self.next_runnables:
            return
        loop = self._loop or asyncio.get_running_loop()
        for successor in self.next_runnables:
            loop.call_soon(successor.run)


class Test(Runnable):
    """A test case."""

    __test__ = False

    kind = RunnableKind.TEST


class AllHook(Runnable):
    """A hook that runs once before or after everything in its suite."""

    def __init__(
        self,
        title: str,
        body: Body | None = None,
        kind: RunnableKind = RunnableKind.BEFORE_ALL,
    ) -> None:
        super().__init__(title, body)
        self.kind = kind


class EachHook(Runnable):
    """A hook that runs around every test of its suite and child suites.

    The declared hook is a template: each test gets its own clone.
    """

    def __init__(
        self,
        title: str,
        body: Body | None = None,
        kind: RunnableKind = RunnableKind.BEFORE_EACH,
    ) -> None:
        super().__init__(title, body)
        self.kind = kind


class Barrier(Runnable):
    """Synthetic node that joins concurrent predecessors or fences a region."""

    kind = RunnableKind.BARRIER

    def __init__(
        self,
        title: str,
        body: Body | None = None,
        exclusivity: Exclusivity = Exclusivity.LOCAL,
    ) -> None:
        super().__init__(title, body)
        self.skip = False
        self.exclusivity = exclusivity

    def _execute(self) -> None:
        if self.state is RunState.RUNNING:
            self.complete()


def _as_exception(error: object) -> BaseException:
    if isinstance(error, BaseException):
        return error
    return InvalidCompletionError(error)


def _positional_arity(body: Body | None) -> int:
    """Count how many of (context, done) a body accepts, capped at two."""
    if body is None:
        return 0
    try:
        signature = inspect.signature(body)
    except (TypeError, ValueError):
        return 1

    count = 0
    for param in signature.parameters.values():
        if param.kind is inspect.Parameter.VAR_POSITIONAL:
            return max(count, 1)
        if param.kind in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
        ):
            count += 1
    return min(count, 2)
