"""Test registry and the declaration DSL used by eval files.

Eval files call the module-level ``test``/``describe``/``before_each`` functions.
They register into whichever ``TestRegistry`` is currently collecting (see
``TestRegistry.collecting``), falling back to ``default_registry``.

Example:
    from agenteval import describe, expect, test

    with describe("Banner"):

        @test("Add a close button")
        def close_button(agent, ctx):
            agent.run("Add a close button inside the banner")
            expect(ctx).to_pass_judge("A close button hides the banner")
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .errors import ValidationError
from .schemas import Thresholds

if TYPE_CHECKING:  # pragma: no cover - import cycles avoided at runtime
    from .context import EvalContext

TestFn = Callable[[Any, "EvalContext"], None]
HookFn = Callable[["EvalContext"], None]


@dataclass(frozen=True, slots=True)
class TestDefinition:
    """A named unit of evaluation, immutable once registered."""

    __test__ = False

    title: str
    fn: TestFn
    tags: tuple[str, ...] = ()
    suite_path: tuple[str, ...] = ()
    iterations: int = 1
    thresholds: Thresholds | None = None

    @property
    def test_id(self) -> str:
        return self.title

    @property
    def full_name(self) -> str:
        return " > ".join((*self.suite_path, self.title))


@dataclass(frozen=True, slots=True)
class HookDefinition:
    fn: HookFn
    suite_path: tuple[str, ...] = ()

    def applies_to(self, test_def: TestDefinition) -> bool:
        """A hook applies to tests in its suite and every nested suite."""
        return test_def.suite_path[: len(self.suite_path)] == self.suite_path


class TestRegistry:
    """Append-only collection of test definitions and scoped hooks."""

    __test__ = False

    def __init__(self) -> None:
        self._tests: list[TestDefinition] = []
        self._before_each: list[HookDefinition] = []
        self._after_each: list[HookDefinition] = []
        self._suite: list[str] = []

    # ------------------------------------------------------------------
    # Declaration
    # ------------------------------------------------------------------
    def test(
        self,
        title: str,
        fn: TestFn | None = None,
        *,
        tags: Sequence[str] = (),
        iterations: int = 1,
        thresholds: Thresholds | None = None,
    ) -> Any:
        """Register a test; usable directly or as a decorator."""
        if not title.strip():
            raise ValidationError("Test title must not be empty")
        if iterations < 1:
            raise ValidationError(f'Test "{title}" needs at least one iteration')

        def register(func: TestFn) -> TestFn:
            self._tests.append(
                TestDefinition(
                    title=title,
                    fn=func,
                    tags=tuple(tags),
                    suite_path=tuple(self._suite),
                    iterations=iterations,
                    thresholds=thresholds,
                )
            )
            return func

        if fn is not None:
            return register(fn)
        return register

    def tagged(self, tags: Sequence[str], title: str, fn: TestFn | None = None, **options: Any) -> Any:
        return self.test(title, fn, tags=tags, **options)

    def skip(self, title: str, fn: TestFn | None = None, **options: Any) -> Any:
        """Accept a declaration without registering it."""
        if fn is not None:
            return fn
        return lambda func: func

    @contextmanager
    def describe(self, name: str) -> Iterator[None]:
        """Group the tests declared inside the block under a suite name."""
        self._suite.append(name)
        try:
            yield
        finally:
            self._suite.pop()

    def before_each(self, fn: HookFn) -> HookFn:
        self._before_each.append(HookDefinition(fn=fn, suite_path=tuple(self._suite)))
        return fn

    def after_each(self, fn: HookFn) -> HookFn:
        self._after_each.append(HookDefinition(fn=fn, suite_path=tuple(self._suite)))
        return fn

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------
    @property
    def tests(self) -> list[TestDefinition]:
        return list(self._tests)

    def before_hooks(self, test_def: TestDefinition) -> list[HookFn]:
        return [hook.fn for hook in self._before_each if hook.applies_to(test_def)]

    def after_hooks(self, test_def: TestDefinition) -> list[HookFn]:
        return [hook.fn for hook in self._after_each if hook.applies_to(test_def)]

    def filter(self, tags: Sequence[str] = (), pattern: str | None = None) -> list[TestDefinition]:
        """Tests carrying any of ``tags`` and whose full name contains ``pattern``."""
        selected = self._tests
        if tags:
            wanted = set(tags)
            selected = [t for t in selected if wanted.intersection(t.tags)]
        if pattern:
            needle = pattern.lower()
            selected = [t for t in selected if needle in t.full_name.lower()]
        return list(selected)

    def clear(self) -> None:
        """Drop every definition and hook before reloading a file set."""
        self._tests.clear()
        self._before_each.clear()
        self._after_each.clear()
        self._suite.clear()

    @contextmanager
    def collecting(self) -> Iterator[TestRegistry]:
        """Route the module-level DSL functions to this registry."""
        token = _collecting.set(self)
        try:
            yield self
        finally:
            _collecting.reset(token)

    def __len__(self) -> int:
        return len(self._tests)


default_registry = TestRegistry()

_collecting: ContextVar[TestRegistry | None] = ContextVar("agenteval_collecting", default=None)


def current_registry() -> TestRegistry:
    return _collecting.get() or default_registry


# ----------------------------------------------------------------------
# Module-level DSL
# ----------------------------------------------------------------------
def test(title: str, fn: TestFn | None = None, **options: Any) -> Any:
    return current_registry().test(title, fn, **options)


def tagged(tags: Sequence[str], title: str, fn: TestFn | None = None, **options: Any) -> Any:
    return current_registry().tagged(tags, title, fn, **options)


def skip(title: str, fn: TestFn | None = None, **options: Any) -> Any:
    return current_registry().skip(title, fn, **options)


def describe(name: str):
    return current_registry().describe(name)


def before_each(fn: HookFn) -> HookFn:
    return current_registry().before_each(fn)


def after_each(fn: HookFn) -> HookFn:
    return current_registry().after_each(fn)


test.__test__ = False  # type: ignore[attr-defined]
test.tagged = tagged  # type: ignore[attr-defined]
test.skip = skip  # type: ignore[attr-defined]
