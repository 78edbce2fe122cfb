"""Unit tests for the runnables module."""

from __future__ import annotations

import asyncio
import time

import pytest

from suitegraph.execution.constants import Exclusivity, Result, RunnableKind, RunState
from suitegraph.execution.errors import (
    HookFailureError,
    InvalidCompletionError,
    MultipleCompletionError,
    RunnableTimeoutError,
)
from suitegraph.execution.runnables import AllHook, Barrier, EachHook, Runnable, Test


class RecordingObserver:
    """Observer that records every notification."""

    def __init__(self) -> None:
        self.started: list[Runnable] = []
        self.finished: list[Runnable] = []
        self.errors: list[tuple[Runnable, BaseException]] = []

    def runnable_started(self, runnable: Runnable) -> None:
        self.started.append(runnable)

    def runnable_finished(self, runnable: Runnable) -> None:
        self.finished.append(runnable)

    def runnable_error(self, runnable: Runnable, error: BaseException) -> None:
        self.errors.append((runnable, error))


async def _wait_completed(runnables: list[Runnable], limit: float = 1.0) -> None:
    deadline = time.monotonic() + limit
    while any(r.state is not RunState.COMPLETED for r in runnables):
        if time.monotonic() > deadline:
            raise AssertionError(f"runnables did not complete: {runnables}")
        await asyncio.sleep(0.001)


def _run(*runnables: Runnable) -> None:
    """Start the runnables on a fresh loop and wait for all of them."""

    async def main() -> None:
        for runnable in runnables:
            runnable.run()
        await _wait_completed(list(runnables))

    asyncio.run(main())


# --- Body dispatch Tests ---


class TestBodyDispatch:
    """Tests for how bodies are called and complete."""

    def test_sync_body_succeeds(self):
        """A body that returns normally succeeds."""
        calls = []
        test = Test("t", lambda: calls.append(1))
        _run(test)
        assert calls == [1]
        assert test.result is Result.SUCCESS
        assert test.error is None
        assert test.duration is not None

    def test_raising_body_fails(self):
        """A synchronous raise becomes a failure with the error recorded."""

        def body():
            raise ValueError("boom")

        test = Test("t", body)
        _run(test)
        assert test.result is Result.FAILURE
        assert isinstance(test.error, ValueError)

    def test_returned_exception_fails(self):
        """Returning an exception instance counts as a failure."""
        test = Test("t", lambda: RuntimeError("returned"))
        _run(test)
        assert test.result is Result.FAILURE
        assert str(test.error) == "returned"

    def test_context_argument(self):
        """A one-parameter body receives its suite's context."""
        seen = []
        test = Test("t", lambda context: seen.append(context))
        _run(test)
        assert seen == [{}]

    def test_callback_body(self):
        """A two-parameter body completes through done()."""

        def body(context, done):
            asyncio.get_running_loop().call_later(0.005, done)

        test = Test("t", body)
        _run(test)
        assert test.result is Result.SUCCESS

    def test_callback_with_error(self):
        """done(error) fails the runnable."""
        test = Test("t", lambda context, done: done(KeyError("k")))
        _run(test)
        assert test.result is Result.FAILURE
        assert isinstance(test.error, KeyError)

    def test_callback_with_non_exception(self):
        """done() with a non-exception value is wrapped."""
        test = Test("t", lambda context, done: done("oops"))
        _run(test)
        assert test.result is Result.FAILURE
        assert isinstance(test.error, InvalidCompletionError)
        assert "oops" in str(test.error)

    def test_async_body(self):
        """A coroutine body completes when it settles."""

        async def body(context):
            await asyncio.sleep(0.001)

        test = Test("t", body)
        _run(test)
        assert test.result is Result.SUCCESS

    def test_async_body_failure(self):
        """A coroutine that raises fails the runnable."""

        async def body():
            await asyncio.sleep(0)
            raise RuntimeError("async boom")

        test = Test("t", body)
        _run(test)
        assert test.result is Result.FAILURE
        assert str(test.error) == "async boom"


# --- Completion Tests ---


class TestCompletion:
    """Tests for single terminal results and repeated completion."""

    def test_double_done_is_recorded_not_applied(self):
        """A second done() keeps the first result and records an extra error."""
        observer = RecordingObserver()

        def body(context, done):
            done()
            done(ValueError("late"))

        test = Test("t", body)
        test.observer = observer
        _run(test)

        assert test.result is Result.SUCCESS
        assert test.error is None
        assert len(test.extra_errors) == 1
        assert isinstance(test.extra_errors[0], ValueError)
        assert len(observer.finished) == 1
        assert observer.errors == [(test, test.extra_errors[0])]

    def test_double_done_without_error(self):
        """A bare second done() records MultipleCompletionError."""

        def body(context, done):
            done()
            done()

        test = Test("t", body)
        _run(test)
        assert isinstance(test.extra_errors[0], MultipleCompletionError)

    def test_async_body_calling_done(self):
        """An async body that also calls done() completes twice."""

        async def body(context, done):
            done()

        test = Test("t", body)

        async def main():
            test.run()
            await _wait_completed([test])
            # let the settled task report back
            await asyncio.sleep(0.01)

        asyncio.run(main())
        assert test.result is Result.SUCCESS
        assert len(test.extra_errors) == 1

    def test_timeout(self):
        """A body that never signals times out."""
        test = Test("t", lambda context, done: None).set_timeout(0.01)
        _run(test)
        assert test.result is Result.TIMEOUT
        assert isinstance(test.error, RunnableTimeoutError)
        assert str(test.error) == "timeout of 10ms exceeded"

    def test_late_done_after_timeout_is_ignored(self):
        """A completion signal after a timeout is a silent no-op."""
        observer = RecordingObserver()
        captured = []
        test = Test("t", lambda context, done: captured.append(done)).set_timeout(0.01)
        test.observer = observer

        async def main():
            test.run()
            await _wait_completed([test])
            captured[0](ValueError("too late"))

        asyncio.run(main())

        assert test.result is Result.TIMEOUT
        assert test.extra_errors == []
        assert observer.errors == []
        assert len(observer.finished) == 1

    def test_timer_cancelled_on_completion(self):
        """A fast body never times out and leaves no timer behind."""
        test = Test("t", lambda: None).set_timeout(0.05)
        _run(test)
        assert test.result is Result.SUCCESS
        assert test._timer is None


# --- Short-circuit Tests ---


class TestShortCircuits:
    """Tests for skip and dependency short-circuits."""

    def test_skip_never_invokes_body(self):
        """A skipped runnable completes SKIPPED without running its body."""
        calls = []
        observer = RecordingObserver()
        test = Test("t", lambda: calls.append(1)).set_skip()
        test.observer = observer
        _run(test)
        assert calls == []
        assert test.result is Result.SKIPPED
        assert observer.started == []
        assert observer.finished == [test]

    def test_pending_test_without_body_is_skipped(self):
        """A test declared without a body is skipped."""
        test = Test("t")
        _run(test)
        assert test.result is Result.SKIPPED

    def test_failed_dependency_is_hook_failure(self):
        """A failed dependency prevents the body and records a hook failure."""
        calls = []
        hook = AllHook("setup", lambda: None)
        hook.complete(RuntimeError("setup failed"))
        test = Test("t", lambda: calls.append(1))
        test.add_dependencies([hook])
        _run(test)
        assert calls == []
        assert test.result is Result.HOOK_FAILURE
        assert isinstance(test.error, HookFailureError)
        assert str(test.error) == "setup dependency failed"

    def test_skipped_dependency_does_not_cascade(self):
        """Only failures and timeouts of dependencies cascade."""
        hook = AllHook("setup", lambda: None)
        hook.complete(result=Result.SKIPPED)
        test = Test("t", lambda: None)
        test.add_dependencies([hook])
        _run(test)
        assert test.result is Result.SUCCESS

    def test_dependency_checked_before_skip(self):
        """A skipped runnable with a failed dependency is a hook failure."""
        hook = AllHook("setup", lambda: None)
        hook.complete(RuntimeError("x"))
        test = Test("t", lambda: None).set_skip()
        test.add_dependencies([hook])
        _run(test)
        assert test.result is Result.HOOK_FAILURE


# --- Graph edge Tests ---


class TestEdges:
    """Tests for priors, successors and run gating."""

    def test_add_priors_links_both_directions(self):
        """add_priors records successors and ignores duplicates."""
        a, b = Test("a", lambda: None), Test("b", lambda: None)
        b.add_priors([a, a, b])
        assert b.prior_runnables == [a]
        assert a.next_runnables == [b]

    def test_run_waits_for_all_priors(self):
        """A runnable does not start until every prior has completed."""
        a, b = Test("a", lambda: None), Test("b", lambda: None)
        c = Test("c", lambda: None)
        c.add_priors([a, b])

        async def main():
            c.run()
            assert c.state is RunState.WAITING
            a.run()
            await _wait_completed([a])
            assert c.state is RunState.WAITING
            b.run()
            await _wait_completed([b, c])

        asyncio.run(main())
        assert c.result is Result.SUCCESS

    def test_successors_run_after_completion(self):
        """Completing a runnable starts its ready successors."""
        order = []
        a = Test("a", lambda: order.append("a"))
        b = Test("b", lambda: order.append("b"))
        b.add_priors([a])

        async def main():
            a.run()
            await _wait_completed([b])

        asyncio.run(main())
        assert order == ["a", "b"]

    def test_long_chain_of_skips(self):
        """Thousands of chained skipped runnables do not exhaust the stack."""
        chain = [Test(f"t{i}") for i in range(3000)]
        for prior, runnable in zip(chain, chain[1:]):
            runnable.add_priors([prior])

        async def main():
            chain[0].run()
            await _wait_completed(chain, limit=5.0)

        asyncio.run(main())
        assert all(r.result is Result.SKIPPED for r in chain)


# --- Variant Tests ---


class TestVariants:
    """Tests for runnable variants and declaration helpers."""

    def test_kinds(self):
        """Each variant reports its kind."""
        assert Test("t").kind is RunnableKind.TEST
        assert AllHook("h", kind=RunnableKind.AFTER_ALL).kind is RunnableKind.AFTER_ALL
        assert EachHook("h").kind is RunnableKind.BEFORE_EACH
        assert Barrier("b").kind is RunnableKind.BARRIER
        assert EachHook("h").is_hook
        assert not Barrier("b").is_hook

    def test_barrier_completes_immediately(self):
        """A barrier is never skipped and succeeds without a body."""
        barrier = Barrier("join")
        assert barrier.skip is False
        _run(barrier)
        assert barrier.result is Result.SUCCESS

    def test_clone_copies_declaration(self):
        """A clone has the same declaration but no identity or edges."""
        declared = EachHook("each", lambda: None, kind=RunnableKind.AFTER_EACH)
        declared.id = 7
        declared.locally_exclusive().set_timeout(3.0).set_only()
        declared.add_priors([Test("prior")])

        twin = declared.clone()
        assert twin is not declared
        assert twin.id is None
        assert twin.title == "each"
        assert twin.body is declared.body
        assert twin.kind is RunnableKind.AFTER_EACH
        assert twin.exclusivity is Exclusivity.LOCAL
        assert twin.timeout == 3.0
        assert twin.only is True
        assert twin.prior_runnables == []

    def test_full_title_without_parent(self):
        """A runnable without a suite is titled by itself."""
        assert Test("alone").full_title() == "alone"

    @pytest.mark.parametrize(
        "setter,expected",
        [
            ("globally_exclusive", Exclusivity.GLOBAL),
            ("locally_exclusive", Exclusivity.LOCAL),
            ("non_exclusive", Exclusivity.NONE),
        ],
    )
    def test_exclusivity_setters_chain(self, setter, expected):
        """Exclusivity setters return the runnable."""
        test = Test("t")
        assert getattr(test, setter)() is test
        assert test.exclusivity is expected
