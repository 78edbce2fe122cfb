"""Suites and the graph builder that turns them into an execution DAG.

A Suite holds hooks, tests and child suites. ``prepare()`` walks the tree
once and wires every runnable into the graph:

1. a globally exclusive suite opens with a barrier on the run's open edges
2. beforeAll hooks are chained one after another
3. tests are placed by exclusivity, wrapped in a TestContainer when
   beforeEach/afterEach hooks apply to them
4. child suites are placed as if each were a single runnable
5. afterAll hooks are chained after everything else
6. a globally exclusive suite closes with a second barrier

Placement keeps a *frontier* (what the next node waits on) and a *pending*
set of non-exclusive nodes that may run side by side. Exclusive nodes first
join the pending set into a single barrier.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from suitegraph.execution.constants import Exclusivity, RunnableKind
from suitegraph.execution.errors import SuitePreparedError
from suitegraph.execution.runnables import (
    AllHook,
    Barrier,
    Body,
    EachHook,
    Runnable,
    Test,
)

if TYPE_CHECKING:
    from suitegraph.execution.orchestrator import Orchestrator

logger = logging.getLogger(__name__)


class Suite:
    """A named container of hooks, tests and child suites."""

    def __init__(self, title: str | None = None) -> None:
        self.title = title or ""
        self.parent: Suite | None = None
        self.suites: list[Suite] = []

        self.before_all: list[Runnable] = []
        self.before_each: list[Runnable] = []
        self.tests: list[Runnable] = []
        self.after_each: list[Runnable] = []
        self.after_all: list[Runnable] = []

        self.exclusivity = Exclusivity.NONE
        self.test_exclusivity: Exclusivity | None = None
        self.skip = False
        self.only = False
        self.timeout: float | None = None
        self.prepared = False

        # Populated by prepare()
        self.frontier: list[Runnable] = []
        self.global_dependencies: list[Runnable] = []
        self.barriers: list[Barrier] = []

        self._bindings: dict[str, Any] = {}
        self._context: dict[str, Any] | None = None
        self._resolved = False
        self._inherited_before_each: list[Runnable] = []
        self._inherited_after_each: list[Runnable] = []
        self._containers: list[TestContainer] = []
        self._pending: list[Runnable] = []
        self._orchestrator: Orchestrator | None = None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.full_title('/')!r}>"

    # ------------------------------------------------------------------
    # Construction API
    # ------------------------------------------------------------------

    def add_suite(self, suite: Suite | str) -> Suite:
        """Add a child suite, creating it from a title if needed."""
        self._check_mutable()
        if isinstance(suite, str):
            suite = Suite(suite)
        suite.parent = self
        self.suites.append(suite)
        return suite

    def add_test(self, test: Runnable | str, body: Body | None = None) -> Runnable:
        """Add a test, creating it from a title and body if needed."""
        self._check_mutable()
        if isinstance(test, str):
            test = Test(test, body)
        test.parent = self
        self.tests.append(test)
        return test

    def add_before_all(self, hook: Runnable | str, body: Body | None = None) -> Runnable:
        return self._add_hook(self.before_all, hook, body, AllHook, RunnableKind.BEFORE_ALL)

    def add_after_all(self, hook: Runnable | str, body: Body | None = None) -> Runnable:
        return self._add_hook(self.after_all, hook, body, AllHook, RunnableKind.AFTER_ALL)

    def add_before_each(self, hook: Runnable | str, body: Body | None = None) -> Runnable:
        return self._add_hook(self.before_each, hook, body, EachHook, RunnableKind.BEFORE_EACH)

    def add_after_each(self, hook: Runnable | str, body: Body | None = None) -> Runnable:
        return self._add_hook(self.after_each, hook, body, EachHook, RunnableKind.AFTER_EACH)

    def _add_hook(
        self,
        bucket: list[Runnable],
        hook: Runnable | str,
        body: Body | None,
        factory: type[Runnable],
        kind: RunnableKind,
    ) -> Runnable:
        self._check_mutable()
        if isinstance(hook, str):
            hook = factory(hook, body)
        hook.kind = kind
        hook.parent = self
        bucket.append(hook)
        return hook

    def globally_exclusive(self) -> Suite:
        """Nothing else in the run executes while this suite runs."""
        return self._declare(exclusivity=Exclusivity.GLOBAL)

    def locally_exclusive(self) -> Suite:
        """No sibling executes while this suite runs."""
        return self._declare(exclusivity=Exclusivity.LOCAL)

    def non_exclusive(self) -> Suite:
        return self._declare(exclusivity=Exclusivity.NONE)

    def globally_exclusive_tests(self) -> Suite:
        return self._declare(test_exclusivity=Exclusivity.GLOBAL)

    def locally_exclusive_tests(self) -> Suite:
        return self._declare(test_exclusivity=Exclusivity.LOCAL)

    def non_exclusive_tests(self) -> Suite:
        return self._declare(test_exclusivity=Exclusivity.NONE)

    def set_only(self, only: bool = True) -> Suite:
        return self._declare(only=only)

    def set_skip(self, skip: bool = True) -> Suite:
        return self._declare(skip=skip)

    def set_timeout(self, seconds: float | None) -> Suite:
        """Default timeout for runnables under this suite, in seconds."""
        return self._declare(timeout=seconds)

    def bind(self, **values: Any) -> Suite:
        """Add bindings to this suite's execution context."""
        self._check_mutable()
        self._bindings.update(values)
        if self._context is not None:
            self._context.update(values)
        return self

    def _declare(self, **attributes: Any) -> Suite:
        self._check_mutable()
        for name, value in attributes.items():
            setattr(self, name, value)
        return self

    def _check_mutable(self) -> None:
        if self.prepared or self._resolved:
            raise SuitePreparedError(
                f"Suite {self.full_title('/')!r} has already been prepared"
            )

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    @property
    def is_container(self) -> bool:
        return False

    def full_title(self, separator: str = " ") -> str:
        parts: list[str] = []
        suite: Suite | None = self
        while suite is not None:
            if suite.title and not suite.is_container:
                parts.append(suite.title)
            suite = suite.parent
        return separator.join(reversed(parts))

    def context(self) -> dict[str, Any]:
        """Execution context for runnables of this suite.

        Computed once: the parent's context shallow-copied, plus this
        suite's own bindings. Sibling suites therefore never see each
        other's mutations.
        """
        if self._context is None:
            inherited = self.parent.context() if self.parent is not None else {}
            self._context = {**inherited, **self._bindings}
        return self._context

    def contains_only(self) -> bool:
        """True if any test or suite below this one is marked only."""
        if any(test.only for test in self.tests):
            return True
        return any(child.only or child.contains_only() for child in self.suites)

    def all_runnables(self) -> list[Runnable]:
        """Every hook and test of the subtree in plan order.

        Barriers and each-hook templates are not included; once the suite
        is resolved each-hooks appear as their per-test clones.
        """
        runnables = list(self.before_all)
        if self._containers:
            for container in self._containers:
                runnables.extend(container.all_runnables())
        else:
            runnables.extend(self.tests)
        for child in self.suites:
            runnables.extend(child.all_runnables())
        runnables.extend(self.after_all)
        return runnables

    @property
    def containers(self) -> list[TestContainer]:
        return list(self._containers)

    # ------------------------------------------------------------------
    # Resolution: skip/only, defaults, each-hooks, containers
    # ------------------------------------------------------------------

    def resolve(self) -> None:
        """Finalize skip/only, defaults and test containers for the subtree.

        Runs before any edge is created so that the skip state is fixed
        before anything can execute. A run is focused when an only marker
        exists anywhere in the subtree; every suite not marked only is then
        skipped, including the ancestors of a focused test.
        """
        if self._resolved:
            return
        self._resolve(focused=self.only or self.contains_only())

    def _resolve(self, focused: bool) -> None:
        if focused and not self.only:
            self.skip = True

        for runnable in self._own_runnables():
            if runnable.exclusivity is None:
                runnable.exclusivity = self.test_exclusivity or Exclusivity.NONE
            if runnable.timeout is None:
                runnable.timeout = self.timeout

        # Each-hook templates are skipped per test by their containers.
        if self.skip:
            for runnable in self.before_all + self.tests + self.after_all:
                if not runnable.only:
                    runnable.skip = True

        before_each = self._inherited_before_each + self.before_each
        after_each = self.after_each + self._inherited_after_each

        for child in self.suites:
            child.only = child.only or self.only
            if not child.only:
                child.skip = child.skip or self.skip
            if child.test_exclusivity is None:
                child.test_exclusivity = self.test_exclusivity
            if child.timeout is None:
                child.timeout = self.timeout
            child._inherited_before_each = before_each
            child._inherited_after_each = after_each
            child._resolve(focused)

        if before_each or after_each:
            self._containers = [
                TestContainer(self, test, before_each, after_each)
                for test in self.tests
            ]

        self._resolved = True

    def _own_runnables(self) -> list[Runnable]:
        return (
            self.before_all
            + self.before_each
            + self.tests
            + self.after_each
            + self.after_all
        )

    # ------------------------------------------------------------------
    # Graph building
    # ------------------------------------------------------------------

    def prepare(
        self,
        orchestrator: Orchestrator,
        root_dependencies: list[Runnable] | None = None,
    ) -> None:
        """Build this suite's part of the execution graph.

        Idempotent: a second call is a no-op.

        Args:
            orchestrator: Registry that assigns ids and answers open-edge
                queries for globally exclusive placement.
            root_dependencies: Frontier inherited from the parent suite.
        """
        if self.prepared:
            return
        self.resolve()

        self._orchestrator = orchestrator
        self.frontier = list(root_dependencies or [])
        self._pending = []

        if self.exclusivity is Exclusivity.GLOBAL:
            self._add_barrier("global exclusive start", Exclusivity.GLOBAL)

        self._chain_hooks(self.before_all)
        self._close_pending()

        if self._containers:
            for container in self._containers:
                self._place_suite(container)
        else:
            for test in self.tests:
                self._place(test)
        self._close_pending()

        for child in self.suites:
            self._place_suite(child)
        self._close_pending()

        self._chain_hooks(self.after_all)
        self._close_pending()

        if self.exclusivity is Exclusivity.GLOBAL:
            self._add_barrier("global exclusive finish", Exclusivity.GLOBAL)

        self._cascade_hook_failures()
        self.prepared = True
        logger.debug(
            "Prepared suite %r, frontier %s",
            self.full_title("/"),
            [r.id for r in self.frontier],
        )

    def _place(self, runnable: Runnable, exclusivity: Exclusivity | None = None) -> None:
        """Wire a runnable to the frontier according to its exclusivity."""
        exclusivity = exclusivity or runnable.exclusivity or Exclusivity.NONE

        if exclusivity is Exclusivity.NONE:
            runnable.add_priors(self.frontier)
            self._register(runnable)
            self._pending.append(runnable)
            return

        if exclusivity is Exclusivity.GLOBAL:
            # Pending nodes are open edges, so the global node follows them.
            runnable.add_priors(self._orchestrator.open_edges())
            self._pending = []
            self.global_dependencies = [runnable]
        else:
            self._close_pending()
            runnable.add_priors(self.frontier)

        self._register(runnable)
        self.frontier = [runnable]

    def _place_suite(self, child: Suite) -> None:
        """Place a child suite as if it were a single runnable."""
        if child.exclusivity is Exclusivity.LOCAL:
            self._close_pending()

        child.prepare(self._orchestrator, self.frontier)

        if child.global_dependencies:
            # Everything placed after this child must wait on its last
            # globally exclusive node.
            self.global_dependencies = list(child.global_dependencies)
            if child.exclusivity is Exclusivity.NONE:
                self.frontier = list(child.global_dependencies)
                self._pending = [r for r in child.frontier if r not in self.frontier]
            else:
                self.frontier = list(child.frontier)
                self._pending = []
            return

        if child.exclusivity is Exclusivity.NONE:
            for runnable in child.frontier:
                if runnable not in self.frontier and runnable not in self._pending:
                    self._pending.append(runnable)
        else:
            self.frontier = list(child.frontier)

    def _chain_hooks(self, hooks: list[Runnable]) -> None:
        for hook in hooks:
            if hook.exclusivity is Exclusivity.GLOBAL:
                self._place(hook, Exclusivity.GLOBAL)
            else:
                self._place(hook, Exclusivity.LOCAL)

    def _close_pending(self) -> None:
        """Collapse the pending set into a single frontier node."""
        if not self._pending:
            return
        if len(self._pending) == 1:
            self.frontier = self._pending
            self._pending = []
            return

        join = Barrier("join", exclusivity=Exclusivity.LOCAL)
        join.parent = self
        join.add_priors(self._pending)
        self._register(join)
        self.barriers.append(join)
        self._pending = []
        self.frontier = [join]

    def _add_barrier(self, title: str, exclusivity: Exclusivity) -> Barrier:
        barrier = Barrier(title, exclusivity=exclusivity)
        barrier.parent = self
        self._place(barrier)
        self.barriers.append(barrier)
        return barrier

    def _register(self, runnable: Runnable) -> None:
        self._orchestrator.register(runnable)
        logger.debug(
            "Placed #%s %s after %s",
            runnable.id,
            runnable.full_title("/"),
            [r.id for r in runnable.prior_runnables],
        )

    def _cascade_hook_failures(self) -> None:
        """Make every runnable after a beforeAll/afterAll hook depend on it."""
        hooks = self.before_all + self.after_all
        if not hooks:
            return
        planned = self.all_runnables()
        for hook in hooks:
            position = planned.index(hook)
            for runnable in planned[position + 1:]:
                runnable.add_dependencies([hook])


class TestContainer(Suite):
    """Synthetic suite giving one test private copies of its each-hooks.

    Cloned beforeEach hooks become the container's beforeAll hooks and
    cloned afterEach hooks its afterAll hooks, so the hook -> test -> hook
    chain is built by the regular suite algorithm. The container takes the
    test's exclusivity, shares its parent's context and is invisible in
    titles.
    """

    __test__ = False

    def __init__(
        self,
        parent: Suite,
        test: Runnable,
        before_each: list[Runnable],
        after_each: list[Runnable],
    ) -> None:
        super().__init__(f"{test.title} container")
        self.parent = parent
        self.test = test
        self.exclusivity = test.exclusivity or Exclusivity.NONE
        self.test_exclusivity = parent.test_exclusivity
        self.skip = test.skip
        self.only = test.only
        self.timeout = test.timeout

        for hook in before_each:
            self.before_all.append(self._adopt(hook.clone()))
        test.parent = self
        self.tests.append(test)
        for hook in after_each:
            self.after_all.append(self._adopt(hook.clone()))

        self._resolved = True

    def _adopt(self, hook: Runnable) -> Runnable:
        hook.parent = self
        if self.skip:
            hook.skip = True
        return hook

    @property
    def is_container(self) -> bool:
        return True

    def context(self) -> dict[str, Any]:
        return self.parent.context()
