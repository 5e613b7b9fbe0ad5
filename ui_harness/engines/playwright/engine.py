"""Playwright implementation of the browser engine protocol."""

import asyncio
import logging
import re
from collections import defaultdict
from collections.abc import AsyncGenerator, Iterator, Mapping, Sequence
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass, field
from typing import Any

from playwright.async_api import (
    Browser,
    BrowserContext,
    BrowserType,
    ConsoleMessage as PlaywrightConsoleMessage,
    Dialog,
    Error as PlaywrightError,
    Frame,
    Page,
    Playwright,
    Request,
    Route,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from ui_harness.engines.base import (
    BrowserEngine,
    EngineContext,
    EnginePage,
    PageEvent,
    PageListener,
    RequestInterceptor,
)
from ui_harness.engines.playwright.config import PlaywrightConfig
from ui_harness.errors import (
    AuditEngineError,
    MalformedQuery,
    ProtocolDisconnected,
    SessionUnavailable,
    StaleElementRef,
)
from ui_harness.models.browser import (
    Abort,
    BoundingBox,
    ConsoleMessage,
    DialogEvent,
    ElementAction,
    ElementSnapshot,
    Fulfill,
    InterceptedRequest,
    Passthrough,
)
from ui_harness.models.project import BrowserEngineKind, ProjectConfig

log = logging.getLogger(__name__)

REF_ATTRIBUTE = "data-uih-ref"

_DISCONNECTED = re.compile(
    r"has been closed|Connection closed|Target crashed|Browser closed", re.IGNORECASE
)
_BAD_SELECTOR = re.compile(r"selector|Unexpected token|SyntaxError", re.IGNORECASE)
_NETWORK_ERROR = re.compile(r"net::ERR_\w+")

# Tags every element with a per-document ref so later commands can address
# exactly the element a snapshot described.
SNAPSHOT_SCRIPT = """
(refAttr) => {
    window.__uihDoc = window.__uihDoc || Math.random().toString(36).slice(2, 8);
    window.__uihNext = window.__uihNext || 0;
    const refOf = (el) => {
        if (!el.hasAttribute(refAttr)) {
            window.__uihNext += 1;
            el.setAttribute(refAttr, `${window.__uihDoc}-${window.__uihNext}`);
        }
        return el.getAttribute(refAttr);
    };
    const formControls = new Set(["INPUT", "SELECT", "TEXTAREA"]);
    return Array.from(document.querySelectorAll("*")).map((el) => {
        const rect = el.getBoundingClientRect();
        const style = getComputedStyle(el);
        const attributes = {};
        for (const attr of el.attributes) {
            if (attr.name !== refAttr) attributes[attr.name] = attr.value;
        }
        const ownText = Array.from(el.childNodes)
            .filter((n) => n.nodeType === Node.TEXT_NODE)
            .map((n) => n.textContent)
            .join(" ");
        const labels = el.labels ? Array.from(el.labels).map((l) => l.textContent) : [];
        return {
            element_id: refOf(el),
            tag: el.tagName.toLowerCase(),
            attributes,
            text: el.innerText ?? el.textContent ?? "",
            own_text: ownText,
            label: labels.length ? labels.join(" ") : null,
            value: formControls.has(el.tagName) ? String(el.value ?? "") : null,
            visible: rect.width > 0 && rect.height > 0 && style.visibility !== "hidden",
            parent_id: el.parentElement ? refOf(el.parentElement) : null,
        };
    });
}
"""

SELECT_SCRIPT = (
    f"els => els.map(el => el.getAttribute('{REF_ATTRIBUTE}')).filter(Boolean)"
)

STYLE_SCRIPT = """
(el, properties) => {
    const style = getComputedStyle(el);
    return Object.fromEntries(properties.map((p) => [p, style.getPropertyValue(p)]));
}
"""

AXE_LOADED_SCRIPT = "() => typeof window.axe !== 'undefined'"

AXE_RUN_SCRIPT = """
async ({context, options}) => {
    const result = await window.axe.run(context ?? document, options);
    return {
        violations: result.violations.map((v) => ({
            id: v.id,
            impact: v.impact,
            description: v.description,
            help: v.help,
            helpUrl: v.helpUrl,
            nodes: v.nodes.map((n) => ({target: n.target})),
        })),
    };
}
"""


@contextmanager
def _protocol_errors() -> Iterator[None]:
    """Translate lost-connection errors into ProtocolDisconnected."""
    try:
        yield
    except PlaywrightTimeoutError:
        raise
    except PlaywrightError as e:
        if _DISCONNECTED.search(e.message):
            raise ProtocolDisconnected(e.message) from e
        raise


class PlaywrightPage(EnginePage):
    """A Playwright page speaking the engine protocol."""

    def __init__(self, page: Page, config: PlaywrightConfig) -> None:
        self.page = page
        self.config = config
        self._listeners: dict[PageEvent, list[PageListener]] = defaultdict(list)
        self._interceptor: RequestInterceptor | None = None
        self._routed = False

        page.on("console", self._on_console)
        page.on("dialog", self._on_dialog)
        page.on("framenavigated", self._on_frame_navigated)

    def _emit(self, event: PageEvent, payload: Any) -> None:
        for listener in list(self._listeners[event]):
            listener(payload)

    def _on_console(self, message: PlaywrightConsoleMessage) -> None:
        self._emit("console", ConsoleMessage(type=message.type, text=message.text))

    async def _on_dialog(self, dialog: Dialog) -> None:
        self._emit("dialog", DialogEvent(type=dialog.type, message=dialog.message))
        try:
            await dialog.dismiss()
        except PlaywrightError as e:
            log.debug("Dialog already handled: %s", e)

    def _on_frame_navigated(self, frame: Frame) -> None:
        if frame == self.page.main_frame:
            self._emit("navigation", frame.url)

    def _element(self, element_id: str) -> Any:
        return self.page.locator(f'[{REF_ATTRIBUTE}="{element_id}"]')

    async def _existing(self, element_id: str) -> Any:
        element = self._element(element_id)
        with _protocol_errors():
            if await element.count() == 0:
                raise StaleElementRef(f"Element {element_id} is no longer attached")
        return element

    async def goto(self, url: str, *, timeout_ms: int) -> None:
        try:
            with _protocol_errors():
                await self.page.goto(url, timeout=timeout_ms)
        except PlaywrightTimeoutError as e:
            raise TimeoutError(str(e)) from e
        except PlaywrightError as e:
            if _NETWORK_ERROR.search(e.message):
                raise ConnectionError(e.message) from e
            raise

    async def current_url(self) -> str:
        return self.page.url

    async def snapshot(self) -> Sequence[ElementSnapshot]:
        with _protocol_errors():
            raw = await self.page.evaluate(SNAPSHOT_SCRIPT, REF_ATTRIBUTE)
        return [ElementSnapshot(**element) for element in raw]

    async def select(self, selector: str) -> Sequence[str]:
        try:
            with _protocol_errors():
                return await self.page.eval_on_selector_all(selector, SELECT_SCRIPT)
        except PlaywrightError as e:
            if _BAD_SELECTOR.search(e.message):
                raise MalformedQuery(f"Invalid selector '{selector}': {e.message}") from e
            raise

    async def perform(
        self, element_id: str, action: ElementAction, value: str | None = None
    ) -> None:
        element = await self._existing(element_id)
        timeout = self.config.action_timeout_ms
        with _protocol_errors():
            match action:
                case "click":
                    await element.click(timeout=timeout)
                case "fill":
                    await element.fill(value or "", timeout=timeout)
                case "clear":
                    await element.clear(timeout=timeout)
                case "hover":
                    await element.hover(timeout=timeout)
                case "focus":
                    await element.focus(timeout=timeout)
                case "press":
                    await element.press(value or "", timeout=timeout)

    async def computed_style(
        self, element_id: str, properties: Sequence[str]
    ) -> Mapping[str, str]:
        element = await self._existing(element_id)
        with _protocol_errors():
            return await element.evaluate(STYLE_SCRIPT, list(properties))

    async def bounding_box(self, element_id: str) -> BoundingBox | None:
        element = await self._existing(element_id)
        with _protocol_errors():
            box = await element.bounding_box()
        return BoundingBox(**box) if box else None

    async def press(self, key: str) -> None:
        with _protocol_errors():
            await self.page.keyboard.press(key)

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        with _protocol_errors():
            return await self.page.evaluate(expression, arg)

    async def set_viewport(self, width: int, height: int) -> None:
        with _protocol_errors():
            await self.page.set_viewport_size({"width": width, "height": height})

    async def screenshot(self) -> bytes:
        with _protocol_errors():
            return await self.page.screenshot(type="png")

    async def run_accessibility_engine(
        self, context: Mapping[str, Any] | None, options: Mapping[str, Any]
    ) -> Mapping[str, Any]:
        with _protocol_errors():
            if not await self.page.evaluate(AXE_LOADED_SCRIPT):
                log.debug("Injecting axe-core from %s", self.config.axe_script_url)
                try:
                    await self.page.add_script_tag(url=self.config.axe_script_url)
                except PlaywrightError as e:
                    raise AuditEngineError(f"Cannot load axe-core: {e.message}") from e
            try:
                return await self.page.evaluate(
                    AXE_RUN_SCRIPT, {"context": context, "options": dict(options)}
                )
            except PlaywrightError as e:
                if _DISCONNECTED.search(e.message):
                    raise
                raise AuditEngineError(f"axe-core run failed: {e.message}") from e

    async def set_request_interceptor(
        self, interceptor: RequestInterceptor | None
    ) -> None:
        self._interceptor = interceptor
        with _protocol_errors():
            if interceptor is not None and not self._routed:
                await self.page.route("**/*", self._handle_route)
                self._routed = True
            elif interceptor is None and self._routed:
                await self.page.unroute("**/*", self._handle_route)
                self._routed = False

    async def _handle_route(self, route: Route, request: Request) -> None:
        if self._interceptor is None:
            await route.continue_()
            return

        post_data = request.post_data_buffer
        try:
            decision = await self._interceptor(
                InterceptedRequest(
                    url=request.url,
                    method=request.method,
                    headers=request.headers,
                    post_data=post_data.decode(errors="replace") if post_data else None,
                    resource_type=request.resource_type,
                )
            )
        except Exception as e:
            # The request must still be resolved or the page waits on it forever.
            log.error("Route handler for %s failed: %s", request.url, e)
            self._emit(
                "console",
                ConsoleMessage(
                    type="error",
                    text=f"Route handler for {request.url} failed: {type(e).__name__}: {e}",
                ),
            )
            await route.abort("failed")
            return

        match decision:
            case Fulfill(status=status, body=body, headers=headers, content_type=ctype):
                await route.fulfill(
                    status=status, body=body, headers=dict(headers), content_type=ctype
                )
            case Passthrough():
                await route.continue_()
            case Abort(reason=reason):
                await route.abort(reason)

    def add_listener(self, event: PageEvent, listener: PageListener) -> None:
        self._listeners[event].append(listener)

    def remove_listener(self, event: PageEvent, listener: PageListener) -> None:
        if listener in self._listeners[event]:
            self._listeners[event].remove(listener)

    async def close(self) -> None:
        with _protocol_errors():
            await self.page.close()


@dataclass(frozen=True, kw_only=True)
class PlaywrightContext(EngineContext):
    """An isolated Playwright browser context."""

    context: BrowserContext = field(repr=False)
    config: PlaywrightConfig

    async def new_page(self) -> EnginePage:
        with _protocol_errors():
            page = await self.context.new_page()
        return PlaywrightPage(page, self.config)

    async def cookies(self) -> Sequence[Mapping[str, Any]]:
        with _protocol_errors():
            return await self.context.cookies()

    async def set_offline(self, offline: bool) -> None:
        with _protocol_errors():
            await self.context.set_offline(offline)

    async def close(self) -> None:
        with _protocol_errors():
            await self.context.close()


@dataclass(kw_only=True)
class PlaywrightEngine(BrowserEngine):
    """Browser engine backed by Playwright.

    Browsers launch lazily, once per engine kind, and are shared by all
    contexts; each session still gets its own context.
    """

    config: PlaywrightConfig
    playwright: Playwright = field(repr=False)
    _browsers: dict[BrowserEngineKind, Browser] = field(default_factory=dict, repr=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @classmethod
    @asynccontextmanager
    async def from_config(
        cls, config: PlaywrightConfig
    ) -> AsyncGenerator["PlaywrightEngine", None]:
        """Create engine with managed Playwright lifecycle.

        Raises:
            SessionUnavailable: If the Playwright driver cannot be started

        """
        try:
            playwright = await async_playwright().start()
        except Exception as e:
            raise SessionUnavailable(f"Cannot start Playwright driver: {e}") from e

        engine = cls(config=config, playwright=playwright)
        try:
            yield engine
        finally:
            await engine.close()
            await playwright.stop()

    def _browser_type(self, kind: BrowserEngineKind) -> BrowserType:
        match kind:
            case "chromium":
                return self.playwright.chromium
            case "firefox":
                return self.playwright.firefox
            case "webkit":
                return self.playwright.webkit

    async def _browser(self, kind: BrowserEngineKind) -> Browser:
        async with self._lock:
            browser = self._browsers.get(kind)
            if browser is not None and browser.is_connected():
                return browser

            log.info("Launching %s (headless=%s)", kind, self.config.headless)
            try:
                browser = await self._browser_type(kind).launch(
                    headless=self.config.headless, slow_mo=self.config.slow_mo_ms
                )
            except PlaywrightError as e:
                raise SessionUnavailable(f"Cannot launch {kind}: {e.message}") from e
            self._browsers[kind] = browser
            return browser

    async def new_context(
        self, project: ProjectConfig, *, base_url: str | None = None
    ) -> EngineContext:
        browser = await self._browser(project.browser_engine)
        options: dict[str, Any] = {
            "viewport": {
                "width": project.viewport.width,
                "height": project.viewport.height,
            },
            "device_scale_factor": project.device_scale_factor,
            "has_touch": project.has_touch,
        }
        if project.is_mobile:
            options["is_mobile"] = True
        if project.user_agent_profile:
            options["user_agent"] = project.user_agent_profile
        if base_url:
            options["base_url"] = base_url

        try:
            with _protocol_errors():
                context = await browser.new_context(**options)
        except PlaywrightError as e:
            raise SessionUnavailable(
                f"Cannot create context for project '{project.name}': {e.message}"
            ) from e
        return PlaywrightContext(context=context, config=self.config)

    async def close(self) -> None:
        """Close every launched browser."""
        for kind, browser in self._browsers.items():
            try:
                await browser.close()
            except PlaywrightError as e:
                log.warning("Error while closing %s: %s", kind, e.message)
        self._browsers.clear()
