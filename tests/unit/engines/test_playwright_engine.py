"""Tests for the Playwright engine's translation layer."""

from unittest.mock import AsyncMock, Mock, patch

import pytest
from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    Request,
    Route,
    TimeoutError as PlaywrightTimeoutError,
)

from ui_harness.engines.playwright.config import PlaywrightConfig
from ui_harness.engines.playwright.engine import (
    PlaywrightEngine,
    PlaywrightPage,
    _protocol_errors,
)
from ui_harness.errors import MalformedQuery, ProtocolDisconnected, SessionUnavailable
from ui_harness.models.browser import (
    Abort,
    ConsoleMessage,
    Fulfill,
    InterceptedRequest,
    Passthrough,
)
from ui_harness.models.project import ProjectConfig
from ui_harness.network import RouteRule, RouteTable


@pytest.fixture
def page() -> Mock:
    """A Playwright page double."""
    return Mock(spec=Page)


@pytest.fixture
def engine_page(page: Mock) -> PlaywrightPage:
    return PlaywrightPage(page, PlaywrightConfig())


@pytest.fixture
def route() -> Mock:
    route = Mock(spec=Route)
    route.fulfill = AsyncMock()
    route.continue_ = AsyncMock()
    route.abort = AsyncMock()
    return route


@pytest.fixture
def request_() -> Mock:
    request = Mock(spec=Request)
    request.url = "http://localhost:3000/api/items"
    request.method = "POST"
    request.headers = {"accept": "application/json"}
    request.post_data_buffer = b'{"page": 2}'
    request.resource_type = "fetch"
    return request


class TestProtocolErrors:
    """Tests for lost-connection translation."""

    def test_disconnect_becomes_protocol_disconnected(self) -> None:
        """Closed targets are infrastructure failures."""
        with pytest.raises(ProtocolDisconnected, match="has been closed"):
            with _protocol_errors():
                raise PlaywrightError("Target page, context or browser has been closed")

    def test_other_errors_propagate_unchanged(self) -> None:
        """Unrelated Playwright errors are left alone."""
        with pytest.raises(PlaywrightError, match="strict mode violation"):
            with _protocol_errors():
                raise PlaywrightError("strict mode violation")

    def test_timeouts_propagate_unchanged(self) -> None:
        """Timeouts are never mistaken for disconnects."""
        with pytest.raises(PlaywrightTimeoutError):
            with _protocol_errors():
                raise PlaywrightTimeoutError("Timeout 100ms exceeded; browser closed")


class TestGoto:
    """Tests for navigation error mapping."""

    async def test_network_error_becomes_connection_error(
        self, page: Mock, engine_page: PlaywrightPage
    ) -> None:
        """net::ERR_* failures are connection errors."""
        page.goto = AsyncMock(
            side_effect=PlaywrightError("net::ERR_CONNECTION_REFUSED at http://localhost:3000/")
        )

        with pytest.raises(ConnectionError, match="ERR_CONNECTION_REFUSED"):
            await engine_page.goto("http://localhost:3000/", timeout_ms=100)

    async def test_timeout_becomes_timeout_error(
        self, page: Mock, engine_page: PlaywrightPage
    ) -> None:
        """Navigation timeouts surface as the builtin TimeoutError."""
        page.goto = AsyncMock(side_effect=PlaywrightTimeoutError("Timeout 100ms exceeded."))

        with pytest.raises(TimeoutError, match="100ms"):
            await engine_page.goto("http://localhost:3000/", timeout_ms=100)

        page.goto.assert_awaited_once_with("http://localhost:3000/", timeout=100)


async def test_select_rejects_malformed_selector(page: Mock, engine_page: PlaywrightPage) -> None:
    """Selector syntax errors are malformed queries."""
    page.eval_on_selector_all = AsyncMock(
        side_effect=PlaywrightError('Unexpected token "]" while parsing selector "a]"')
    )

    with pytest.raises(MalformedQuery, match="Invalid selector 'a]'"):
        await engine_page.select("a]")


class TestHandleRoute:
    """Tests for routing decisions applied to Playwright routes."""

    async def test_fulfill(
        self, engine_page: PlaywrightPage, route: Mock, request_: Mock
    ) -> None:
        """Fulfilled requests get the synthesized response."""
        seen: list[InterceptedRequest] = []

        async def interceptor(request: InterceptedRequest) -> Fulfill:
            seen.append(request)
            return Fulfill(status=503, body="down", content_type="text/plain")

        engine_page._interceptor = interceptor

        await engine_page._handle_route(route, request_)

        route.fulfill.assert_awaited_once_with(
            status=503, body="down", headers={}, content_type="text/plain"
        )
        assert seen == [
            InterceptedRequest(
                url="http://localhost:3000/api/items",
                method="POST",
                headers={"accept": "application/json"},
                post_data='{"page": 2}',
                resource_type="fetch",
            )
        ]

    @pytest.mark.parametrize(
        ("decision", "method", "args"),
        [
            (Passthrough(), "continue_", ()),
            (Abort(reason="internetdisconnected"), "abort", ("internetdisconnected",)),
        ],
    )
    async def test_passthrough_and_abort(
        self,
        engine_page: PlaywrightPage,
        route: Mock,
        request_: Mock,
        decision: Passthrough | Abort,
        method: str,
        args: tuple[str, ...],
    ) -> None:
        """Passthrough continues the request; Abort fails it with the reason."""
        engine_page._interceptor = AsyncMock(return_value=decision)

        await engine_page._handle_route(route, request_)

        getattr(route, method).assert_awaited_once_with(*args)
        route.fulfill.assert_not_awaited()

    async def test_without_interceptor_continues(
        self, engine_page: PlaywrightPage, route: Mock, request_: Mock
    ) -> None:
        """Requests continue once routing is uninstalled."""
        await engine_page._handle_route(route, request_)

        route.continue_.assert_awaited_once_with()

    async def test_failing_handler_aborts_request(
        self, engine_page: PlaywrightPage, route: Mock, request_: Mock
    ) -> None:
        """A handler error aborts the request and is reported as a console error."""
        table = RouteTable()
        table.add(RouteRule(pattern="**/api/*", handler=lambda request: None))
        engine_page._interceptor = table.dispatch
        messages: list[ConsoleMessage] = []
        engine_page.add_listener("console", messages.append)

        await engine_page._handle_route(route, request_)

        route.abort.assert_awaited_once_with("failed")
        route.continue_.assert_not_awaited()
        [message] = messages
        assert message.type == "error"
        assert "TypeError" in message.text
        assert "expected Fulfill, Passthrough or Abort" in message.text


class TestPlaywrightEngine:
    """Tests for browser launch and context creation."""

    @pytest.fixture
    def browser(self) -> Mock:
        browser = Mock(spec=Browser)
        browser.is_connected = Mock(return_value=True)
        browser.new_context = AsyncMock(return_value=Mock(spec=BrowserContext))
        return browser

    @pytest.fixture
    def playwright(self, browser: Mock) -> Mock:
        playwright = Mock()
        for kind in ("chromium", "firefox", "webkit"):
            getattr(playwright, kind).launch = AsyncMock(return_value=browser)
        return playwright

    async def test_new_context_maps_project_options(
        self, playwright: Mock, browser: Mock
    ) -> None:
        """Device presets become Playwright context options."""
        engine = PlaywrightEngine(config=PlaywrightConfig(), playwright=playwright)
        project = ProjectConfig.model_validate({"name": "Mobile Chrome", "device": "Pixel 5"})

        await engine.new_context(project, base_url="http://localhost:3000")

        playwright.chromium.launch.assert_awaited_once_with(headless=True, slow_mo=0)
        options = browser.new_context.await_args.kwargs
        assert options["viewport"] == {"width": 393, "height": 851}
        assert options["device_scale_factor"] == 2.75
        assert options["has_touch"] is True
        assert options["is_mobile"] is True
        assert "Pixel 5" in options["user_agent"]
        assert options["base_url"] == "http://localhost:3000"

    async def test_desktop_context_omits_mobile_options(
        self, playwright: Mock, browser: Mock
    ) -> None:
        """Desktop projects without a user agent send only the basics."""
        engine = PlaywrightEngine(config=PlaywrightConfig(), playwright=playwright)

        await engine.new_context(ProjectConfig(name="Firefox", browser_engine="firefox"))

        playwright.firefox.launch.assert_awaited_once()
        options = browser.new_context.await_args.kwargs
        assert set(options) == {"viewport", "device_scale_factor", "has_touch"}

    async def test_browsers_launch_once_per_kind(self, playwright: Mock) -> None:
        """Contexts share the launched browser."""
        engine = PlaywrightEngine(config=PlaywrightConfig(), playwright=playwright)
        project = ProjectConfig(name="Desktop Chrome")

        await engine.new_context(project)
        await engine.new_context(project)

        playwright.chromium.launch.assert_awaited_once()

    async def test_launch_failure_is_session_unavailable(self, playwright: Mock) -> None:
        """A browser that cannot launch makes sessions unavailable."""
        playwright.webkit.launch = AsyncMock(
            side_effect=PlaywrightError("Executable doesn't exist at /ms-playwright/webkit")
        )
        engine = PlaywrightEngine(config=PlaywrightConfig(), playwright=playwright)

        with pytest.raises(SessionUnavailable, match="Cannot launch webkit"):
            await engine.new_context(ProjectConfig(name="Safari", browser_engine="webkit"))

    async def test_driver_start_failure_is_session_unavailable(self) -> None:
        """A driver that cannot start makes the engine unavailable."""
        manager = Mock()
        manager.start = AsyncMock(side_effect=OSError("playwright driver not found"))

        with patch("ui_harness.engines.playwright.engine.async_playwright", return_value=manager):
            with pytest.raises(SessionUnavailable, match="Cannot start Playwright driver"):
                async with PlaywrightEngine.from_config(PlaywrightConfig()):
                    pass

    async def test_from_config_stops_driver(self, playwright: Mock) -> None:
        """Leaving the engine closes browsers and stops the driver."""
        playwright.stop = AsyncMock()
        manager = Mock()
        manager.start = AsyncMock(return_value=playwright)

        with patch("ui_harness.engines.playwright.engine.async_playwright", return_value=manager):
            async with PlaywrightEngine.from_config(PlaywrightConfig()) as engine:
                assert engine.playwright is playwright

        playwright.stop.assert_awaited_once_with()
