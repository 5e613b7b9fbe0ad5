"""Explicit test registration.

Spec modules receive a ``TestRegistry`` and register their tests on it;
nothing is collected from process-wide state.
"""

import re
from collections.abc import Awaitable, Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ui_harness.errors import ConfigurationError

if TYPE_CHECKING:
    from ui_harness.context import TestContext

type TestBody = Callable[["TestContext"], Awaitable[None]]
type Hook = Callable[["TestContext"], Awaitable[None]]


@dataclass(frozen=True, kw_only=True)
class TestUnit:
    """A registered test. Immutable once the registry is sealed."""

    __test__ = False

    id: str
    title: str
    body: TestBody = field(repr=False, compare=False)
    tags: tuple[str, ...] = ()
    describe_path: tuple[str, ...] = ()
    only: bool = False
    skip: bool = False
    file: str | None = None

    @property
    def full_title(self) -> str:
        return " › ".join((*self.describe_path, self.title))


@dataclass(kw_only=True)
class _Entry:
    title: str
    body: TestBody
    tags: tuple[str, ...]
    describe_path: tuple[str, ...]
    only: bool
    skip: bool


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


class TestRegistry:
    """Collects tests and hooks for one spec module."""

    __test__ = False

    def __init__(self, *, file: str | None = None) -> None:
        self.file = file
        self._entries: list[_Entry] = []
        self._before_each: list[tuple[tuple[str, ...], Hook]] = []
        self._after_each: list[tuple[tuple[str, ...], Hook]] = []
        self._path: list[str] = []
        self._units: tuple[TestUnit, ...] | None = None

    def _check_open(self) -> None:
        if self._units is not None:
            raise ConfigurationError(
                f"Registry for {self.file or '<inline>'} is sealed; register tests "
                "while the module is loading"
            )

    @contextmanager
    def describe(self, title: str) -> Iterator[None]:
        """Group tests; hooks registered inside apply to the group only."""
        self._check_open()
        self._path.append(title)
        try:
            yield
        finally:
            self._path.pop()

    def test(
        self,
        title: str,
        *,
        tags: Sequence[str] = (),
        only: bool = False,
        skip: bool = False,
    ) -> Callable[[TestBody], TestBody]:
        """Register the decorated coroutine function as a test."""
        self._check_open()

        def _decorator(body: TestBody) -> TestBody:
            self._check_open()
            self._entries.append(
                _Entry(
                    title=title,
                    body=body,
                    tags=tuple(tags),
                    describe_path=tuple(self._path),
                    only=only,
                    skip=skip,
                )
            )
            return body

        return _decorator

    def before_each(self, hook: Hook) -> Hook:
        """Run hook before every test in the current describe group."""
        self._check_open()
        self._before_each.append((tuple(self._path), hook))
        return hook

    def after_each(self, hook: Hook) -> Hook:
        """Run hook after every test in the current describe group, even on failure."""
        self._check_open()
        self._after_each.append((tuple(self._path), hook))
        return hook

    def _hooks_for(
        self,
        hooks: list[tuple[tuple[str, ...], Hook]],
        path: tuple[str, ...],
        *,
        outermost_first: bool,
    ) -> list[Hook]:
        """Hooks whose group encloses path, ordered by nesting depth."""
        matching = [(scope, hook) for scope, hook in hooks if path[: len(scope)] == scope]
        matching.sort(key=lambda item: len(item[0]), reverse=not outermost_first)
        return [hook for _, hook in matching]

    def _compose(self, entry: _Entry) -> TestBody:
        before = self._hooks_for(self._before_each, entry.describe_path, outermost_first=True)
        after = self._hooks_for(self._after_each, entry.describe_path, outermost_first=False)
        if not before and not after:
            return entry.body

        async def _body(ctx: "TestContext") -> None:
            try:
                for hook in before:
                    await hook(ctx)
                await entry.body(ctx)
            finally:
                for hook in after:
                    await hook(ctx)

        return _body

    def freeze(self) -> tuple[TestUnit, ...]:
        """Seal the registry and return its test units.

        Raises:
            ConfigurationError: If two tests share an id

        """
        if self._units is not None:
            return self._units

        units: list[TestUnit] = []
        seen: set[str] = set()
        prefix = f"{self.file}::" if self.file else ""
        for entry in self._entries:
            test_id = prefix + "/".join(_slug(p) for p in (*entry.describe_path, entry.title))
            if test_id in seen:
                raise ConfigurationError(f"Duplicate test id '{test_id}'")
            seen.add(test_id)
            units.append(
                TestUnit(
                    id=test_id,
                    title=entry.title,
                    body=self._compose(entry),
                    tags=entry.tags,
                    describe_path=entry.describe_path,
                    only=entry.only,
                    skip=entry.skip,
                    file=self.file,
                )
            )
        self._units = tuple(units)
        return self._units
