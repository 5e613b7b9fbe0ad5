"""Network interception: ordered route rules with synthesized responses."""

import asyncio
import inspect
import json
import logging
import re
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ui_harness.models.browser import (
    Abort,
    Fulfill,
    InterceptedRequest,
    Passthrough,
    RouteDecision,
)

if TYPE_CHECKING:
    from ui_harness.session import SessionHandle

log = logging.getLogger(__name__)

type RouteHandler = Callable[
    [InterceptedRequest], RouteDecision | Awaitable[RouteDecision]
]
type UrlPattern = str | re.Pattern[str]


def glob_to_regex(glob: str) -> re.Pattern[str]:
    """Translate a URL glob into a regex.

    ``**`` matches any characters including ``/``, ``*`` matches within a
    path segment, ``?`` matches one character and ``{a,b}`` matches either
    alternative.
    """
    tokens: list[str] = ["^"]
    in_group = False
    i = 0
    while i < len(glob):
        char = glob[i]
        if char == "*":
            if glob.startswith("**", i):
                tokens.append(".*")
                i += 2
                continue
            tokens.append("[^/]*")
        elif char == "?":
            tokens.append(".")
        elif char == "{":
            in_group = True
            tokens.append("(?:")
        elif char == "}" and in_group:
            in_group = False
            tokens.append(")")
        elif char == "," and in_group:
            tokens.append("|")
        else:
            tokens.append(re.escape(char))
        i += 1
    tokens.append("$")
    return re.compile("".join(tokens))


@dataclass(kw_only=True, eq=False)
class RouteRule:
    """A URL pattern and the handler that answers matching requests.

    ``times`` limits how many requests the rule handles before it expires.
    """

    pattern: UrlPattern
    handler: RouteHandler
    times: int | None = None
    hits: int = 0
    _regex: re.Pattern[str] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if isinstance(self.pattern, re.Pattern):
            self._regex = self.pattern
        else:
            self._regex = glob_to_regex(self.pattern)

    def matches(self, url: str) -> bool:
        """Check whether the rule applies to a URL."""
        if isinstance(self.pattern, re.Pattern):
            return self._regex.search(url) is not None
        return self._regex.match(url) is not None

    @property
    def exhausted(self) -> bool:
        """Whether the rule has used up its allowed hits."""
        return self.times is not None and self.hits >= self.times


@dataclass(kw_only=True)
class RouteTable:
    """Ordered route rules for one session; first match wins."""

    rules: list[RouteRule] = field(default_factory=list)
    requests: list[InterceptedRequest] = field(default_factory=list)
    block_unmatched: bool = False
    installed: bool = False

    def add(self, rule: RouteRule) -> None:
        """Append a rule after every rule registered before it."""
        self.rules.append(rule)

    def remove(self, pattern: UrlPattern) -> int:
        """Remove all rules registered with pattern; return how many."""
        before = len(self.rules)
        self.rules = [rule for rule in self.rules if rule.pattern != pattern]
        return before - len(self.rules)

    def clear(self) -> None:
        """Remove every rule."""
        self.rules.clear()

    def match(self, url: str) -> RouteRule | None:
        """Return the first live rule matching url."""
        for rule in self.rules:
            if not rule.exhausted and rule.matches(url):
                return rule
        return None

    async def dispatch(self, request: InterceptedRequest) -> RouteDecision:
        """Decide how a request is answered.

        Reentrant: concurrent requests, including requests matching the same
        rule, are handled independently.
        """
        self.requests.append(request)
        rule = self.match(request.url)
        if rule is None:
            if self.block_unmatched:
                return Abort(reason="blockedbyclient")
            return Passthrough()

        rule.hits += 1
        if rule.exhausted:
            self.rules = [r for r in self.rules if r is not rule]

        decision = rule.handler(request)
        if inspect.isawaitable(decision):
            decision = await decision
        if not isinstance(decision, Fulfill | Passthrough | Abort):
            raise TypeError(
                f"Route handler for {rule.pattern!r} returned {decision!r}, "
                "expected Fulfill, Passthrough or Abort"
            )
        return decision


def json_response(
    body: Any, *, status: int = 200, headers: Mapping[str, str] | None = None
) -> Fulfill:
    """Build a JSON response."""
    return Fulfill(
        status=status,
        body=json.dumps(body),
        headers=dict(headers or {}),
        content_type="application/json",
    )


def delayed(seconds: float, response: RouteDecision) -> RouteHandler:
    """Handler that answers with response after a delay (slow network)."""

    async def _handler(request: InterceptedRequest) -> RouteDecision:
        await asyncio.sleep(seconds)
        return response

    return _handler


def respond(response: RouteDecision) -> RouteHandler:
    """Handler that always answers with the same response."""

    def _handler(request: InterceptedRequest) -> RouteDecision:
        return response

    return _handler


async def route(
    handle: "SessionHandle",
    pattern: UrlPattern,
    handler: RouteHandler,
    *,
    times: int | None = None,
) -> RouteRule:
    """Install a route rule on a session."""
    rule = RouteRule(pattern=pattern, handler=handler, times=times)
    await _install(handle)
    handle.routes.add(rule)
    handle.record("route", detail=str(pattern))
    log.debug("Session %d routed %s", handle.session_id, pattern)
    return rule


async def block_unmatched(handle: "SessionHandle", enabled: bool = True) -> None:
    """Abort requests that no rule matches instead of passing them through."""
    handle.routes.block_unmatched = enabled
    await _install(handle)


async def _install(handle: "SessionHandle") -> None:
    if handle.routes.installed:
        return
    await handle.page.set_request_interceptor(handle.routes.dispatch)
    handle.routes.installed = True


async def route_once(
    handle: "SessionHandle", pattern: UrlPattern, handler: RouteHandler
) -> RouteRule:
    """Install a rule that expires after handling one request."""
    return await route(handle, pattern, handler, times=1)


async def unroute(handle: "SessionHandle", pattern: UrlPattern) -> None:
    """Remove the rules registered with pattern."""
    handle.routes.remove(pattern)


async def unroute_all(handle: "SessionHandle") -> None:
    """Remove every rule and detach the interceptor."""
    handle.routes.clear()
    handle.routes.block_unmatched = False
    handle.routes.installed = False
    await handle.page.set_request_interceptor(None)
