"""Value types exchanged with browser engines."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Literal

type ElementAction = Literal["click", "fill", "clear", "hover", "focus", "press"]


@dataclass(frozen=True, kw_only=True)
class ElementSnapshot:
    """One element of a page's DOM, captured at a point in time.

    ``element_id`` is assigned by the engine and is stable until the page
    navigates.
    """

    element_id: str
    tag: str
    attributes: Mapping[str, str] = field(default_factory=dict)
    text: str = ""
    own_text: str = ""
    label: str | None = None
    value: str | None = None
    visible: bool = True
    parent_id: str | None = None


@dataclass(frozen=True, kw_only=True)
class BoundingBox:
    """Element geometry in CSS pixels."""

    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True, kw_only=True)
class ConsoleMessage:
    """A message written to the page console."""

    type: str
    text: str


@dataclass(frozen=True, kw_only=True)
class DialogEvent:
    """A JavaScript dialog (alert, confirm, prompt) opened by the page."""

    type: str
    message: str


@dataclass(frozen=True, kw_only=True)
class InterceptedRequest:
    """A network request offered to route handlers."""

    url: str
    method: str = "GET"
    headers: Mapping[str, str] = field(default_factory=dict)
    post_data: str | None = None
    resource_type: str | None = None


@dataclass(frozen=True, kw_only=True)
class Fulfill:
    """Answer the request with a synthesized response."""

    status: int = 200
    body: str | bytes = ""
    headers: Mapping[str, str] = field(default_factory=dict)
    content_type: str | None = None


@dataclass(frozen=True, kw_only=True)
class Passthrough:
    """Let the request continue to the real network."""


@dataclass(frozen=True, kw_only=True)
class Abort:
    """Fail the request as if the network were unreachable."""

    reason: str = "failed"


type RouteDecision = Fulfill | Passthrough | Abort
