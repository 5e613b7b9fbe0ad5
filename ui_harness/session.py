"""Browser session lifecycle: one isolated context and page per test execution."""

import asyncio
import itertools
import logging
from collections.abc import (
    AsyncGenerator,
    Awaitable,
    Callable,
    Iterator,
    Mapping,
    Sequence,
)
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urljoin

from ui_harness.engines.base import (
    BrowserEngine,
    EngineContext,
    EnginePage,
    PageEvent,
    PageListener,
)
from ui_harness.errors import InfrastructureFailure, SessionUnavailable, WaitTimeout
from ui_harness.models.browser import ConsoleMessage, DialogEvent
from ui_harness.models.outcome import TraceEvent
from ui_harness.models.project import ProjectConfig
from ui_harness.network import RouteTable, unroute_all

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class SessionSettings:
    """Timeouts and policies applied to every operation of a session."""

    base_url: str | None = None
    action_timeout_ms: int = 10_000
    navigation_timeout_ms: int = 30_000
    expect_timeout_ms: int = 5_000
    poll_interval_ms: int = 100
    record_trace: bool = False


@dataclass(frozen=True)
class Subscription:
    """Handle for an event listener registered on a session."""

    event: PageEvent
    listener: PageListener


@dataclass(kw_only=True, eq=False)
class SessionHandle:
    """Capability bound to one browser context and one page.

    Owned by a single test execution; never shared across concurrent
    executions.
    """

    session_id: int
    project: ProjectConfig
    settings: SessionSettings
    context: EngineContext = field(repr=False)
    page: EnginePage = field(repr=False)
    routes: RouteTable = field(default_factory=RouteTable, repr=False)
    subscriptions: list[Subscription] = field(default_factory=list, repr=False)
    console_messages: list[ConsoleMessage] = field(default_factory=list, repr=False)
    dialogs: list[DialogEvent] = field(default_factory=list, repr=False)
    trace: list[TraceEvent] = field(default_factory=list, repr=False)
    navigation_generation: int = 0
    released: bool = False
    _started: float = field(default_factory=lambda: asyncio.get_running_loop().time())

    def record(
        self, action: str, target: str | None = None, detail: str | None = None
    ) -> None:
        """Append an action to the session trace (when tracing is enabled)."""
        if not self.settings.record_trace:
            return
        elapsed = (asyncio.get_running_loop().time() - self._started) * 1000
        self.trace.append(
            TraceEvent(at_ms=round(elapsed, 1), action=action, target=target, detail=detail)
        )

    def resolve_url(self, url: str) -> str:
        """Resolve a relative URL against the configured base URL."""
        if self.settings.base_url and "://" not in url:
            return urljoin(self.settings.base_url, url)
        return url

    async def goto(self, url: str, *, timeout_ms: int | None = None) -> None:
        """Navigate the page; previously resolved element refs become stale."""
        target = self.resolve_url(url)
        timeout = timeout_ms or self.settings.navigation_timeout_ms
        self.record("goto", detail=target)
        try:
            await self.page.goto(target, timeout_ms=timeout)
        except TimeoutError as e:
            raise WaitTimeout(
                f"Navigation to {target} did not finish within {timeout}ms",
                url=target,
            ) from e
        finally:
            self.mark_navigated()

    def mark_navigated(self, url: str | None = None) -> None:
        """Invalidate element refs resolved before a navigation."""
        self.navigation_generation += 1

    async def current_url(self) -> str:
        """Return the current page URL."""
        return await self.page.current_url()

    async def set_viewport(self, width: int, height: int) -> None:
        """Resize the viewport."""
        self.record("set_viewport", detail=f"{width}x{height}")
        await self.page.set_viewport(width, height)

    async def set_offline(self, offline: bool) -> None:
        """Emulate network loss for the whole context."""
        self.record("set_offline", detail=str(offline))
        await self.context.set_offline(offline)

    async def cookies(self) -> Sequence[Mapping[str, Any]]:
        """Return cookies of this session's context."""
        return await self.context.cookies()

    async def press(self, key: str) -> None:
        """Press a keyboard key on the focused element."""
        self.record("press", detail=key)
        await self.page.press(key)

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        """Evaluate JavaScript in the page."""
        return await self.page.evaluate(expression, arg)

    async def screenshot(self) -> bytes:
        """Capture a screenshot of the viewport."""
        return await self.page.screenshot()

    def subscribe(self, event: PageEvent, listener: PageListener) -> Subscription:
        """Register a page listener owned by this session."""
        self.page.add_listener(event, listener)
        subscription = Subscription(event, listener)
        self.subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a listener registered with subscribe."""
        if subscription in self.subscriptions:
            self.subscriptions.remove(subscription)
            self.page.remove_listener(subscription.event, subscription.listener)

    def on_console(self, listener: Callable[[ConsoleMessage], None]) -> Subscription:
        """Subscribe to console messages."""
        return self.subscribe("console", listener)

    def on_dialog(self, listener: Callable[[DialogEvent], None]) -> Subscription:
        """Subscribe to dialogs opened by the page."""
        return self.subscribe("dialog", listener)

    def console_errors(self) -> Sequence[str]:
        """Return the text of every console error seen so far."""
        return [m.text for m in self.console_messages if m.type == "error"]

    async def wait_for_event(
        self, event: PageEvent, *, timeout_ms: int | None = None
    ) -> Any:
        """Wait for the next occurrence of a page event.

        Raises:
            WaitTimeout: If the event does not fire within the timeout

        """
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()

        def _listener(payload: Any) -> None:
            if not future.done():
                future.set_result(payload)

        subscription = self.subscribe(event, _listener)
        timeout = timeout_ms or self.settings.action_timeout_ms
        try:
            async with asyncio.timeout(timeout / 1000):
                return await future
        except TimeoutError:
            raise WaitTimeout(
                f"No '{event}' event within {timeout}ms"
            ) from None
        finally:
            self.unsubscribe(subscription)


@dataclass(kw_only=True)
class SessionManager:
    """Acquires and releases browser sessions on an engine."""

    engine: BrowserEngine
    _ids: Iterator[int] = field(default_factory=lambda: itertools.count(1))
    _live: dict[int, SessionHandle] = field(default_factory=dict)

    @property
    def live_count(self) -> int:
        """Number of sessions acquired and not yet released."""
        return len(self._live)

    async def acquire(
        self, project: ProjectConfig, settings: SessionSettings | None = None
    ) -> SessionHandle:
        """Open a fresh, isolated session for the project.

        Raises:
            SessionUnavailable: If the engine cannot provide a context or page

        """
        settings = settings or SessionSettings()
        try:
            context = await self.engine.new_context(project, base_url=settings.base_url)
        except InfrastructureFailure:
            raise
        except Exception as e:
            raise SessionUnavailable(
                f"Cannot create browser context for project '{project.name}': {e}"
            ) from e

        try:
            page = await context.new_page()
        except Exception as e:
            await _close_quietly(context.close(), "context")
            if isinstance(e, InfrastructureFailure):
                raise
            raise SessionUnavailable(
                f"Cannot open page for project '{project.name}': {e}"
            ) from e

        handle = SessionHandle(
            session_id=next(self._ids),
            project=project,
            settings=settings,
            context=context,
            page=page,
        )
        handle.subscribe("console", handle.console_messages.append)
        handle.subscribe("dialog", handle.dialogs.append)
        handle.subscribe("navigation", handle.mark_navigated)
        self._live[handle.session_id] = handle
        log.debug("Acquired session %d for project %s", handle.session_id, project.name)
        return handle

    async def release(self, handle: SessionHandle) -> None:
        """Tear down a session. Safe to call more than once."""
        if handle.released:
            return
        handle.released = True
        self._live.pop(handle.session_id, None)

        for subscription in list(handle.subscriptions):
            handle.unsubscribe(subscription)

        await _close_quietly(unroute_all(handle), "routes")
        await _close_quietly(handle.page.close(), "page")
        await _close_quietly(handle.context.close(), "context")
        log.debug("Released session %d", handle.session_id)

    @asynccontextmanager
    async def session(
        self, project: ProjectConfig, settings: SessionSettings | None = None
    ) -> AsyncGenerator[SessionHandle]:
        """Scoped acquisition: the session is released on every exit path."""
        handle = await self.acquire(project, settings)
        try:
            yield handle
        finally:
            await self.release(handle)


async def _close_quietly(closing: Awaitable[None], what: str) -> None:
    try:
        await closing
    except Exception as e:
        log.warning("Error while closing %s: %s", what, e)
