"""Abstract remote-control protocol for browser engines.

The harness never talks to a browser directly. An engine plugin exposes
contexts (isolated cookie/storage jars) and pages, and each page answers a
small set of commands: navigate, snapshot the DOM, select by CSS, act on an
element, evaluate script, intercept requests and run the accessibility
engine.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any, Literal

from ui_harness.models.browser import (
    BoundingBox,
    ConsoleMessage,
    DialogEvent,
    ElementAction,
    ElementSnapshot,
    InterceptedRequest,
    RouteDecision,
)
from ui_harness.models.project import ProjectConfig

type PageEvent = Literal["console", "dialog", "navigation"]
type ConsoleListener = Callable[[ConsoleMessage], None]
type DialogListener = Callable[[DialogEvent], None]
type NavigationListener = Callable[[str], None]
type PageListener = ConsoleListener | DialogListener | NavigationListener
type RequestInterceptor = Callable[[InterceptedRequest], Awaitable[RouteDecision]]


class EnginePage(ABC):
    """A single page inside an engine context."""

    @abstractmethod
    async def goto(self, url: str, *, timeout_ms: int) -> None:
        """Navigate the page and wait for the load event.

        Raises:
            TimeoutError: If navigation does not finish within timeout_ms
            ConnectionError: If the network is unreachable or the request is aborted

        """

    @abstractmethod
    async def current_url(self) -> str:
        """Return the URL of the main frame."""

    @abstractmethod
    async def snapshot(self) -> Sequence[ElementSnapshot]:
        """Capture every element of the document in document order."""

    @abstractmethod
    async def select(self, selector: str) -> Sequence[str]:
        """Return the ids of elements matching a CSS selector.

        Only ids that appeared in the most recent snapshot are returned.

        Raises:
            MalformedQuery: If the selector cannot be parsed

        """

    @abstractmethod
    async def perform(
        self, element_id: str, action: ElementAction, value: str | None = None
    ) -> None:
        """Dispatch an input action to an element.

        Raises:
            StaleElementRef: If the element no longer exists

        """

    @abstractmethod
    async def computed_style(
        self, element_id: str, properties: Sequence[str]
    ) -> Mapping[str, str]:
        """Return computed CSS values for the given properties."""

    @abstractmethod
    async def bounding_box(self, element_id: str) -> BoundingBox | None:
        """Return element geometry, or None when it is not rendered."""

    @abstractmethod
    async def press(self, key: str) -> None:
        """Press a key on the page keyboard."""

    @abstractmethod
    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        """Evaluate a JavaScript expression in the page."""

    @abstractmethod
    async def set_viewport(self, width: int, height: int) -> None:
        """Resize the page viewport."""

    @abstractmethod
    async def screenshot(self) -> bytes:
        """Capture a PNG screenshot of the viewport."""

    @abstractmethod
    async def run_accessibility_engine(
        self, context: Mapping[str, Any] | None, options: Mapping[str, Any]
    ) -> Mapping[str, Any]:
        """Run the accessibility rule engine and return its raw result."""

    @abstractmethod
    async def set_request_interceptor(
        self, interceptor: RequestInterceptor | None
    ) -> None:
        """Route every request of the page through interceptor (None removes it)."""

    @abstractmethod
    def add_listener(self, event: PageEvent, listener: PageListener) -> None:
        """Subscribe to a page event."""

    @abstractmethod
    def remove_listener(self, event: PageEvent, listener: PageListener) -> None:
        """Unsubscribe from a page event."""

    @abstractmethod
    async def close(self) -> None:
        """Close the page."""


class EngineContext(ABC):
    """An isolated browser context (own cookies, storage and cache)."""

    @abstractmethod
    async def new_page(self) -> EnginePage:
        """Open a page in this context."""

    @abstractmethod
    async def cookies(self) -> Sequence[Mapping[str, Any]]:
        """Return the cookies stored in this context."""

    @abstractmethod
    async def set_offline(self, offline: bool) -> None:
        """Emulate losing (or regaining) network connectivity."""

    @abstractmethod
    async def close(self) -> None:
        """Close the context and every page in it."""


class BrowserEngine(ABC):
    """Entry point of an engine plugin."""

    @abstractmethod
    async def new_context(
        self, project: ProjectConfig, *, base_url: str | None = None
    ) -> EngineContext:
        """Create a fresh context configured for the project.

        Raises:
            SessionUnavailable: If the browser cannot be reached

        """
