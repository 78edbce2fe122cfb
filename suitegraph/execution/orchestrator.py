"""Run-wide registry of runnables and the entry point for executing a suite tree.

The orchestrator assigns ids, answers the "open edges" query used for
globally exclusive placement, fences the whole plan between a start and a
finish barrier, and relays runnable lifecycle notifications to listeners.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter
from typing import Any, Callable

from suitegraph.execution import graph
from suitegraph.execution.constants import Exclusivity, RunState
from suitegraph.execution.errors import SuitegraphError
from suitegraph.execution.runnables import Barrier, Runnable
from suitegraph.execution.suite import Suite
from suitegraph.lifecycle.config import RunConfig

logger = logging.getLogger(__name__)

# Event names
START = "start"
RUNNABLE_START = "runnable start"
RUNNABLE_FINISH = "runnable finish"
RUNNABLE_ERROR = "runnable error"
FINISH = "finish"

EVENTS = (START, RUNNABLE_START, RUNNABLE_FINISH, RUNNABLE_ERROR, FINISH)

Listener = Callable[..., Any]


class Orchestrator:
    """Builds the execution graph for a root suite and runs it.

    Usage:
        orchestrator = Orchestrator()
        orchestrator.root.add_test("adds numbers", lambda: None)
        runnables = orchestrator.execute()
    """

    def __init__(self, root: Suite | None = None, config: RunConfig | None = None) -> None:
        self.root = root if root is not None else Suite()
        self.config = config if config is not None else RunConfig()
        self.all_runnables: list[Runnable] = []
        self.prepared = False

        self._next_id = 1
        self._listeners: dict[str, list[Listener]] = {event: [] for event in EVENTS}
        self._start: Barrier | None = None
        self._finish: Barrier | None = None
        self._finished: asyncio.Future[None] | None = None
        self._started_at: float | None = None

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def register(self, runnable: Runnable) -> Runnable:
        """Assign the next id and start observing the runnable."""
        if runnable.id is not None:
            raise SuitegraphError(f"{runnable!r} is already registered")
        runnable.id = self._next_id
        self._next_id += 1
        runnable.observer = self
        self.all_runnables.append(runnable)
        return runnable

    def open_edges(self) -> list[Runnable]:
        """Registered runnables that nothing waits on yet."""
        return [r for r in self.all_runnables if not r.next_runnables]

    @property
    def start_barrier(self) -> Barrier | None:
        return self._start

    @property
    def finish_barrier(self) -> Barrier | None:
        return self._finish

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on(self, event: str, listener: Listener) -> None:
        """Subscribe ``listener`` to ``event``.

        Raises:
            ValueError: If the event name is unknown.
        """
        self._check_event(event)
        self._listeners[event].append(listener)

    def off(self, event: str, listener: Listener) -> None:
        self._check_event(event)
        if listener in self._listeners[event]:
            self._listeners[event].remove(listener)

    def _check_event(self, event: str) -> None:
        if event not in self._listeners:
            raise ValueError(f"Unknown event {event!r}; expected one of {EVENTS}")

    def _emit(self, event: str, *args: Any) -> None:
        for listener in list(self._listeners[event]):
            try:
                listener(*args)
            except Exception as e:
                logger.exception("Listener for %r raised", event)
                if event != RUNNABLE_ERROR and args and isinstance(args[0], Runnable):
                    self._emit(RUNNABLE_ERROR, args[0], e)

    # Runnable observer protocol

    def runnable_started(self, runnable: Runnable) -> None:
        self._emit(RUNNABLE_START, runnable)

    def runnable_finished(self, runnable: Runnable) -> None:
        self._emit(RUNNABLE_FINISH, runnable)
        if runnable is self._finish:
            self._on_finish()

    def runnable_error(self, runnable: Runnable, error: BaseException) -> None:
        self._emit(RUNNABLE_ERROR, runnable, error)

    # ------------------------------------------------------------------
    # Planning and execution
    # ------------------------------------------------------------------

    def prepare(self) -> list[Runnable]:
        """Build and validate the execution graph. Idempotent.

        Returns:
            All registered runnables in registration order.

        Raises:
            GraphCycleError: If the built graph is not acyclic.
        """
        if self.prepared:
            return self.all_runnables

        self._apply_config()

        self._start = Barrier("start", exclusivity=Exclusivity.GLOBAL)
        self.register(self._start)
        self.root.prepare(self, [self._start])

        self._finish = Barrier("finish", exclusivity=Exclusivity.GLOBAL)
        self._finish.add_priors(self.open_edges())
        self.register(self._finish)

        graph.topological_order(self.all_runnables)
        self.prepared = True
        logger.debug("Prepared %d runnables", len(self.all_runnables))
        return self.all_runnables

    def _apply_config(self) -> None:
        if self.root.timeout is None:
            self.root.timeout = self.config.default_timeout
        if self.root.test_exclusivity is None:
            self.root.test_exclusivity = self.config.test_exclusivity

    async def run(self) -> list[Runnable]:
        """Execute the whole graph and wait until the finish barrier completes.

        Returns:
            All registered runnables, each in its terminal state.

        Raises:
            SuitegraphError: If this orchestrator has already run.
        """
        self.prepare()
        assert self._start is not None
        if self._start.state is not RunState.WAITING:
            raise SuitegraphError("An orchestrator can only run once")

        loop = asyncio.get_running_loop()
        self._finished = loop.create_future()
        self._started_at = time.monotonic()

        logger.info("Starting run of %d runnables", len(self.all_runnables))
        self._emit(START)
        self._start.run()
        await self._finished
        return self.all_runnables

    def execute(self) -> list[Runnable]:
        """Run the graph on a fresh event loop. For synchronous callers."""
        return asyncio.run(self.run())

    def _on_finish(self) -> None:
        elapsed = time.monotonic() - (self._started_at or time.monotonic())
        counts = Counter(
            r.result.value for r in self.all_runnables if r.is_test and r.result is not None
        )
        logger.info(
            "Run finished in %.3fs: %s",
            elapsed,
            ", ".join(f"{count} {name}" for name, count in sorted(counts.items())) or "no tests",
        )
        self._emit(FINISH)
        if self._finished is not None and not self._finished.done():
            self._finished.set_result(None)
