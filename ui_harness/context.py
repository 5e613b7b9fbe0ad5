"""Per-execution context handed to test bodies."""

import logging
from collections.abc import Awaitable, Sequence
from dataclasses import dataclass, field

from ui_harness.accessibility import AuditBuilder, AuditScope, audit
from ui_harness.errors import TestFailure
from ui_harness.expect import LocatorAssertions, PageAssertions, expect
from ui_harness.locators import (
    ByAttribute,
    ByLabel,
    ByPlaceholder,
    ByRole,
    BySelector,
    ByText,
    Locator,
    Query,
    TextPattern,
)
from ui_harness.models.config import UxAuditMode
from ui_harness.models.project import ProjectConfig
from ui_harness.models.violation import ViolationReport
from ui_harness.network import RouteHandler, RouteRule, UrlPattern, route
from ui_harness.registry import TestUnit
from ui_harness.session import SessionHandle

log = logging.getLogger(__name__)


@dataclass(kw_only=True)
class TestContext:
    """Everything a test body may touch during one execution."""

    __test__ = False

    session: SessionHandle
    unit: TestUnit
    attempt: int = 0
    ux_audit_mode: UxAuditMode = "lenient"
    annotations: list[str] = field(default_factory=list)

    @property
    def project(self) -> ProjectConfig:
        return self.session.project

    async def goto(self, url: str) -> None:
        await self.session.goto(url)

    def locate(self, query: Query) -> Locator:
        return Locator(self.session, query)

    def locator(self, selector: str) -> Locator:
        return self.locate(BySelector(selector=selector))

    def get_by_role(
        self, role: str, *, name: TextPattern | None = None, exact: bool = False
    ) -> Locator:
        return self.locate(ByRole(role=role, name=name, exact=exact))

    def get_by_text(self, text: TextPattern, *, exact: bool = False) -> Locator:
        return self.locate(ByText(text=text, exact=exact))

    def get_by_label(self, text: TextPattern, *, exact: bool = False) -> Locator:
        return self.locate(ByLabel(text=text, exact=exact))

    def get_by_placeholder(self, text: TextPattern, *, exact: bool = False) -> Locator:
        return self.locate(ByPlaceholder(text=text, exact=exact))

    def get_by_attribute(self, name: str, value: TextPattern | None = None) -> Locator:
        return self.locate(ByAttribute(name=name, value=value))

    def expect(
        self, target: Locator | None = None, *, timeout_ms: int | None = None
    ) -> LocatorAssertions | PageAssertions:
        """Assert on a locator, or on the page when no locator is given."""
        if target is None:
            return expect(self.session, timeout_ms=timeout_ms)
        return expect(target, timeout_ms=timeout_ms)

    async def route(
        self, pattern: UrlPattern, handler: RouteHandler, *, times: int | None = None
    ) -> RouteRule:
        return await route(self.session, pattern, handler, times=times)

    async def audit(self, scope: AuditScope | None = None) -> Sequence[ViolationReport]:
        return await audit(self.session, scope)

    def axe(self) -> AuditBuilder:
        return AuditBuilder(self.session)

    def annotate(self, note: str) -> None:
        """Attach a note to this execution's outcome."""
        self.annotations.append(note)

    async def ux_check(self, check: Awaitable[object], warning: str) -> bool:
        """Run a UX expectation under the configured audit policy.

        In strict mode a failed check fails the test. In lenient mode it is
        logged and recorded as an annotation, and the test continues.

        Returns:
            Whether the check held

        """
        try:
            await check
        except TestFailure as e:
            if self.ux_audit_mode == "strict":
                raise
            log.warning("%s [%s]: %s", warning, self.project.name, e.message)
            self.annotate(f"warning: {warning}")
            return False
        return True
