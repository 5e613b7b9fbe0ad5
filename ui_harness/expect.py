"""Eventually-consistent assertions over locators and pages."""

import re
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, overload

from ui_harness.errors import AssertionFailure
from ui_harness.locators import (
    Locator,
    TextPattern,
    capture_page_state,
    describe_pattern,
    normalize_whitespace,
    text_matches,
)
from ui_harness.waiting import Ok, wait_for

if TYPE_CHECKING:
    from ui_harness.session import SessionHandle

type Check = Callable[[], Awaitable[tuple[bool, str]]]


class LocatorAssertions:
    """Assertions that poll a locator until they hold or time out."""

    def __init__(
        self, locator: Locator, *, timeout_ms: int | None = None, negate: bool = False
    ) -> None:
        self.locator = locator
        self.timeout_ms = timeout_ms
        self.negate = negate

    @property
    def not_(self) -> "LocatorAssertions":
        return LocatorAssertions(
            self.locator, timeout_ms=self.timeout_ms, negate=not self.negate
        )

    async def _assert(self, check: Check, expectation: str, timeout_ms: int | None) -> None:
        handle = self.locator.handle
        timeout = timeout_ms or self.timeout_ms or handle.settings.expect_timeout_ms
        observed = ""

        async def _probe() -> bool:
            nonlocal observed
            held, observed = await check()
            return held != self.negate

        result = await wait_for(_probe, timeout, handle.settings.poll_interval_ms)
        if isinstance(result, Ok):
            return

        prefix = "not " if self.negate else ""
        url, dom = await capture_page_state(handle)
        raise AssertionFailure(
            f"Expected {self.locator.description} {prefix}{expectation} "
            f"(observed: {observed}) within {timeout}ms",
            selector=self.locator.description,
            observed=observed,
            url=url,
            dom_excerpt=dom,
        )

    async def to_be_visible(self, *, timeout_ms: int | None = None) -> None:
        async def _check() -> tuple[bool, str]:
            refs = await self.locator.all()
            if not refs:
                return False, "no matching element"
            visible = refs[0].snapshot.visible
            return visible, "visible" if visible else "hidden"

        await self._assert(_check, "to be visible", timeout_ms)

    async def to_be_hidden(self, *, timeout_ms: int | None = None) -> None:
        await self.not_.to_be_visible(timeout_ms=timeout_ms)

    async def to_have_count(self, count: int, *, timeout_ms: int | None = None) -> None:
        async def _check() -> tuple[bool, str]:
            actual = await self.locator.count()
            return actual == count, f"{actual} elements"

        await self._assert(_check, f"to have count {count}", timeout_ms)

    async def _text_check(
        self, expected: TextPattern, *, exact: bool, expectation: str, timeout_ms: int | None
    ) -> None:
        async def _check() -> tuple[bool, str]:
            refs = await self.locator.all()
            if not refs:
                return False, "no matching element"
            text = normalize_whitespace(refs[0].snapshot.text)
            return text_matches(text, expected, exact=exact), repr(text)

        await self._assert(_check, f"{expectation} {describe_pattern(expected)}", timeout_ms)

    async def to_have_text(
        self, expected: TextPattern, *, timeout_ms: int | None = None
    ) -> None:
        await self._text_check(
            expected, exact=True, expectation="to have text", timeout_ms=timeout_ms
        )

    async def to_contain_text(
        self, expected: TextPattern, *, timeout_ms: int | None = None
    ) -> None:
        await self._text_check(
            expected, exact=False, expectation="to contain text", timeout_ms=timeout_ms
        )

    async def to_have_value(
        self, expected: TextPattern, *, timeout_ms: int | None = None
    ) -> None:
        async def _check() -> tuple[bool, str]:
            refs = await self.locator.all()
            if not refs:
                return False, "no matching element"
            value = refs[0].snapshot.value or ""
            return text_matches(value, expected, exact=True), repr(value)

        await self._assert(
            _check, f"to have value {describe_pattern(expected)}", timeout_ms
        )

    async def to_have_attribute(
        self, name: str, value: TextPattern | None = None, *, timeout_ms: int | None = None
    ) -> None:
        async def _check() -> tuple[bool, str]:
            refs = await self.locator.all()
            if not refs:
                return False, "no matching element"
            actual = refs[0].snapshot.attributes.get(name)
            if actual is None:
                return False, f"no {name} attribute"
            if value is None:
                return True, repr(actual)
            return text_matches(actual, value, exact=True), repr(actual)

        wanted = f"={describe_pattern(value)}" if value is not None else ""
        await self._assert(_check, f"to have attribute {name}{wanted}", timeout_ms)


class PageAssertions:
    """Assertions over page-level state."""

    def __init__(
        self,
        handle: "SessionHandle",
        *,
        timeout_ms: int | None = None,
        negate: bool = False,
    ) -> None:
        self.handle = handle
        self.timeout_ms = timeout_ms
        self.negate = negate

    @property
    def not_(self) -> "PageAssertions":
        return PageAssertions(self.handle, timeout_ms=self.timeout_ms, negate=not self.negate)

    async def to_have_url(
        self, expected: TextPattern, *, timeout_ms: int | None = None
    ) -> None:
        """Wait until the page URL matches (exactly, or by pattern search)."""
        timeout = timeout_ms or self.timeout_ms or self.handle.settings.expect_timeout_ms
        observed = ""

        async def _probe() -> bool:
            nonlocal observed
            observed = await self.handle.current_url()
            if isinstance(expected, re.Pattern):
                held = expected.search(observed) is not None
            else:
                held = observed == self.handle.resolve_url(expected)
            return held != self.negate

        result = await wait_for(_probe, timeout, self.handle.settings.poll_interval_ms)
        if isinstance(result, Ok):
            return

        prefix = "not " if self.negate else ""
        raise AssertionFailure(
            f"Expected page {prefix}to have URL {describe_pattern(expected)} "
            f"(observed: {observed}) within {timeout}ms",
            observed=observed,
            url=observed,
        )


@overload
def expect(
    target: Locator, *, timeout_ms: int | None = None
) -> LocatorAssertions: ...


@overload
def expect(
    target: "SessionHandle", *, timeout_ms: int | None = None
) -> PageAssertions: ...


def expect(
    target: "Locator | SessionHandle", *, timeout_ms: int | None = None
) -> LocatorAssertions | PageAssertions:
    """Start an assertion on a locator or a page."""
    if isinstance(target, Locator):
        return LocatorAssertions(target, timeout_ms=timeout_ms)
    return PageAssertions(target, timeout_ms=timeout_ms)
