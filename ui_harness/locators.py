"""Declarative element queries, re-resolved against the live DOM on every use.

A query is one of a small set of tagged variants. Each variant has its own
resolution rule, applied to a DOM snapshot in document order:

* ``ByRole``: explicit ``role`` attribute, else the implicit role of the tag,
  optionally filtered by accessible name.
* ``ByText``: the innermost elements whose text matches.
* ``ByLabel``: form controls whose label (or ``aria-label``) matches.
* ``ByPlaceholder``: elements whose ``placeholder`` matches.
* ``ByAttribute``: elements carrying an attribute, optionally with a value.
* ``BySelector``: delegated to the engine's CSS engine.
* ``AnyOf``: the union of several queries.

Resolving never fails because nothing matched; absence is zero matches.
Strings match case-insensitively as substrings unless ``exact`` is set;
compiled patterns are searched as-is.
"""

import logging
import re
from collections import defaultdict
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal, cast

from ui_harness.errors import (
    AmbiguousLocator,
    MalformedQuery,
    StaleElementRef,
    WaitTimeout,
)
from ui_harness.models.browser import BoundingBox, ElementAction, ElementSnapshot
from ui_harness.waiting import Ok, wait_for

if TYPE_CHECKING:
    from ui_harness.session import SessionHandle

log = logging.getLogger(__name__)

type TextPattern = str | re.Pattern[str]
type WaitState = Literal["visible", "hidden", "attached", "detached"]


@dataclass(frozen=True, kw_only=True)
class ByRole:
    role: str
    name: TextPattern | None = None
    exact: bool = False


@dataclass(frozen=True, kw_only=True)
class ByText:
    text: TextPattern
    exact: bool = False


@dataclass(frozen=True, kw_only=True)
class ByLabel:
    text: TextPattern
    exact: bool = False


@dataclass(frozen=True, kw_only=True)
class ByPlaceholder:
    text: TextPattern
    exact: bool = False


@dataclass(frozen=True, kw_only=True)
class ByAttribute:
    name: str
    value: TextPattern | None = None


@dataclass(frozen=True, kw_only=True)
class BySelector:
    selector: str


@dataclass(frozen=True, kw_only=True)
class AnyOf:
    queries: tuple["Query", ...]


type Query = ByRole | ByText | ByLabel | ByPlaceholder | ByAttribute | BySelector | AnyOf

KNOWN_ROLES = frozenset(
    {
        "alert", "alertdialog", "article", "banner", "button", "cell",
        "checkbox", "columnheader", "combobox", "complementary",
        "contentinfo", "dialog", "document", "figure", "form", "grid",
        "gridcell", "group", "heading", "img", "link", "list", "listbox",
        "listitem", "log", "main", "marquee", "menu", "menubar", "menuitem",
        "navigation", "none", "option", "presentation", "progressbar",
        "radio", "radiogroup", "region", "row", "rowgroup", "rowheader",
        "search", "searchbox", "separator", "slider", "spinbutton", "status",
        "switch", "tab", "table", "tablist", "tabpanel", "textbox", "timer",
        "toolbar", "tooltip", "tree", "treeitem",
    }
)  # fmt: skip

_TAG_ROLES: Mapping[str, str] = {
    "article": "article",
    "aside": "complementary",
    "button": "button",
    "dialog": "dialog",
    "fieldset": "group",
    "figure": "figure",
    "footer": "contentinfo",
    "form": "form",
    "h1": "heading",
    "h2": "heading",
    "h3": "heading",
    "h4": "heading",
    "h5": "heading",
    "h6": "heading",
    "header": "banner",
    "hr": "separator",
    "li": "listitem",
    "main": "main",
    "nav": "navigation",
    "ol": "list",
    "option": "option",
    "progress": "progressbar",
    "section": "region",
    "select": "combobox",
    "table": "table",
    "tbody": "rowgroup",
    "td": "cell",
    "textarea": "textbox",
    "th": "columnheader",
    "thead": "rowgroup",
    "tr": "row",
    "ul": "list",
}

_INPUT_ROLES: Mapping[str, str] = {
    "button": "button",
    "checkbox": "checkbox",
    "email": "textbox",
    "image": "button",
    "number": "spinbutton",
    "radio": "radio",
    "range": "slider",
    "reset": "button",
    "search": "searchbox",
    "submit": "button",
    "tel": "textbox",
    "text": "textbox",
    "url": "textbox",
}

_FORM_CONTROLS = frozenset({"input", "select", "textarea"})
_NON_TEXT_TAGS = frozenset({"head", "html", "noscript", "script", "style", "title"})
_SNAPSHOT_ATTEMPTS = 3


def normalize_whitespace(text: str) -> str:
    """Collapse runs of whitespace the way rendered text reads."""
    return " ".join(text.split())


def text_matches(value: str | None, pattern: TextPattern, *, exact: bool = False) -> bool:
    """Match text against a string or compiled pattern."""
    if value is None:
        return False
    value = normalize_whitespace(value)
    if isinstance(pattern, re.Pattern):
        return pattern.search(value) is not None
    expected = normalize_whitespace(pattern)
    if exact:
        return value == expected
    return expected.lower() in value.lower()


def implicit_role(element: ElementSnapshot) -> str | None:
    """Role an element has without an explicit ``role`` attribute."""
    tag = element.tag
    if tag == "a":
        return "link" if "href" in element.attributes else None
    if tag == "img":
        return "presentation" if element.attributes.get("alt") == "" else "img"
    if tag == "input":
        input_type = element.attributes.get("type", "text").lower()
        return _INPUT_ROLES.get(input_type)
    return _TAG_ROLES.get(tag)


def role_of(element: ElementSnapshot) -> str | None:
    """Effective role: the first token of ``role``, else the implicit role."""
    explicit = element.attributes.get("role", "").split()
    if explicit:
        return explicit[0]
    return implicit_role(element)


class DomIndex:
    """Lookup structure over one DOM snapshot."""

    def __init__(self, elements: Sequence[ElementSnapshot]) -> None:
        self.elements = list(elements)
        self.by_id = {el.element_id: el for el in self.elements}
        self.order = {el.element_id: i for i, el in enumerate(self.elements)}
        self.by_dom_id = {
            el.attributes["id"]: el for el in self.elements if "id" in el.attributes
        }
        self.children: dict[str, list[ElementSnapshot]] = defaultdict(list)
        for el in self.elements:
            if el.parent_id is not None:
                self.children[el.parent_id].append(el)

    def ancestors(self, element: ElementSnapshot) -> Iterator[ElementSnapshot]:
        parent_id = element.parent_id
        while parent_id is not None and parent_id in self.by_id:
            parent = self.by_id[parent_id]
            yield parent
            parent_id = parent.parent_id

    def has_ancestor_in(self, element: ElementSnapshot, ids: set[str]) -> bool:
        return any(a.element_id in ids for a in self.ancestors(element))

    def in_document_order(
        self, elements: Sequence[ElementSnapshot]
    ) -> list[ElementSnapshot]:
        unique = {el.element_id: el for el in elements}
        return sorted(unique.values(), key=lambda el: self.order[el.element_id])

    def accessible_name(self, element: ElementSnapshot) -> str:
        attrs = element.attributes
        if attrs.get("aria-label"):
            return normalize_whitespace(attrs["aria-label"])
        if attrs.get("aria-labelledby"):
            parts = [
                self.by_dom_id[ref].text
                for ref in attrs["aria-labelledby"].split()
                if ref in self.by_dom_id
            ]
            if parts:
                return normalize_whitespace(" ".join(parts))
        if element.label:
            return normalize_whitespace(element.label)
        if element.tag == "img":
            return normalize_whitespace(attrs.get("alt", ""))
        if element.tag == "input" and attrs.get("type") in {"button", "submit", "reset"}:
            return normalize_whitespace(attrs.get("value", ""))
        if element.tag not in _FORM_CONTROLS and element.text.strip():
            return normalize_whitespace(element.text)
        return normalize_whitespace(attrs.get("title", "") or attrs.get("placeholder", ""))


def describe_pattern(pattern: TextPattern) -> str:
    if isinstance(pattern, re.Pattern):
        flags = "i" if pattern.flags & re.IGNORECASE else ""
        return f"/{pattern.pattern}/{flags}"
    return f'"{pattern}"'


def describe_query(query: Query) -> str:
    """Render a query the way it appears in failure messages."""
    match query:
        case ByRole(role=role, name=None):
            return f"role={role}"
        case ByRole(role=role, name=name):
            return f"role={role}[name={describe_pattern(name)}]"
        case ByText(text=text):
            return f"text={describe_pattern(text)}"
        case ByLabel(text=text):
            return f"label={describe_pattern(text)}"
        case ByPlaceholder(text=text):
            return f"placeholder={describe_pattern(text)}"
        case ByAttribute(name=name, value=None):
            return f"[{name}]"
        case ByAttribute(name=name, value=value):
            return f"[{name}={describe_pattern(value)}]"
        case BySelector(selector=selector):
            return f"css={selector}"
        case AnyOf(queries=queries):
            return " or ".join(describe_query(q) for q in queries)
    raise MalformedQuery(f"Unsupported query: {query!r}")


def _require_text(pattern: TextPattern, what: str) -> None:
    if isinstance(pattern, str) and not pattern.strip():
        raise MalformedQuery(f"{what} must not be empty")


async def match_query(
    handle: "SessionHandle", index: DomIndex, query: Query
) -> list[ElementSnapshot]:
    """Apply a query's resolution rule to a snapshot, in document order."""
    match query:
        case ByRole(role=role, name=name, exact=exact):
            if role not in KNOWN_ROLES:
                raise MalformedQuery(f"Unknown ARIA role '{role}'")
            return [
                el
                for el in index.elements
                if role_of(el) == role
                and (name is None or text_matches(index.accessible_name(el), name, exact=exact))
            ]
        case ByText(text=text, exact=exact):
            _require_text(text, "Text query")
            hits = [
                el
                for el in index.elements
                if el.tag not in _NON_TEXT_TAGS and text_matches(el.text, text, exact=exact)
            ]
            hit_ids = {el.element_id for el in hits}
            return [
                el
                for el in hits
                if not any(c.element_id in hit_ids for c in index.children[el.element_id])
            ]
        case ByLabel(text=text, exact=exact):
            _require_text(text, "Label query")
            return [
                el
                for el in index.elements
                if el.tag in _FORM_CONTROLS
                and (
                    text_matches(el.label, text, exact=exact)
                    or text_matches(el.attributes.get("aria-label"), text, exact=exact)
                )
            ]
        case ByPlaceholder(text=text, exact=exact):
            _require_text(text, "Placeholder query")
            return [
                el
                for el in index.elements
                if text_matches(el.attributes.get("placeholder"), text, exact=exact)
            ]
        case ByAttribute(name=name, value=value):
            if not name.strip():
                raise MalformedQuery("Attribute name must not be empty")
            return [
                el
                for el in index.elements
                if name in el.attributes
                and (
                    value is None
                    or (
                        value.search(el.attributes[name]) is not None
                        if isinstance(value, re.Pattern)
                        else el.attributes[name] == value
                    )
                )
            ]
        case BySelector(selector=selector):
            if not selector.strip():
                raise MalformedQuery("Selector must not be empty")
            ids = await handle.page.select(selector)
            return index.in_document_order([index.by_id[i] for i in ids if i in index.by_id])
        case AnyOf(queries=queries):
            if not queries:
                raise MalformedQuery("AnyOf needs at least one query")
            found: list[ElementSnapshot] = []
            for sub in queries:
                found.extend(await match_query(handle, index, sub))
            return index.in_document_order(found)
    raise MalformedQuery(f"Unsupported query: {query!r}")


def describe_dom(elements: Sequence[ElementSnapshot], limit: int = 40) -> str:
    """Compact rendering of a snapshot for failure reports."""
    shown_attrs = ("id", "class", "role", "name", "type", "aria-label", "href")
    lines = []
    for el in elements[:limit]:
        attrs = "".join(
            f' {name}="{el.attributes[name]}"' for name in shown_attrs if name in el.attributes
        )
        hidden = "" if el.visible else " hidden"
        text = normalize_whitespace(el.own_text)[:60]
        lines.append(f"<{el.tag}{attrs}{hidden}>{text}")
    if len(elements) > limit:
        lines.append(f"... {len(elements) - limit} more elements")
    return "\n".join(lines)


@dataclass(frozen=True, kw_only=True)
class ElementRef:
    """A resolved element; valid until the page navigates."""

    handle: "SessionHandle" = field(repr=False)
    snapshot: ElementSnapshot
    generation: int

    @property
    def element_id(self) -> str:
        return self.snapshot.element_id

    def ensure_fresh(self) -> None:
        """Raise StaleElementRef if the page navigated since resolution."""
        if self.handle.navigation_generation != self.generation:
            raise StaleElementRef(
                f"Element <{self.snapshot.tag}> was resolved before a navigation"
            )

    async def perform(self, action: ElementAction, value: str | None = None) -> None:
        self.ensure_fresh()
        await self.handle.page.perform(self.element_id, action, value)


async def resolve(handle: "SessionHandle", query: Query) -> Sequence[ElementRef]:
    """Resolve a query against the current DOM."""
    return await Locator(handle, query).all()


class Locator:
    """Lazily-resolved element query bound to a session.

    Holds no element handle: every operation resolves the query again.
    """

    def __init__(
        self,
        handle: "SessionHandle",
        query: Query,
        *,
        parent: "Locator | None" = None,
        nth: int | None = None,
    ) -> None:
        self.handle = handle
        self.query = query
        self.parent = parent
        self._nth = nth

    def __repr__(self) -> str:
        return f"Locator({self.description})"

    @property
    def description(self) -> str:
        text = describe_query(self.query)
        if self.parent is not None:
            text = f"{self.parent.description} >> {text}"
        if self._nth is not None:
            text = f"{text} >> nth={self._nth}"
        return text

    def _chain(self, query: Query) -> "Locator":
        return Locator(self.handle, query, parent=self)

    def locator(self, selector: str) -> "Locator":
        return self._chain(BySelector(selector=selector))

    def get_by_role(
        self, role: str, *, name: TextPattern | None = None, exact: bool = False
    ) -> "Locator":
        return self._chain(ByRole(role=role, name=name, exact=exact))

    def get_by_text(self, text: TextPattern, *, exact: bool = False) -> "Locator":
        return self._chain(ByText(text=text, exact=exact))

    def get_by_label(self, text: TextPattern, *, exact: bool = False) -> "Locator":
        return self._chain(ByLabel(text=text, exact=exact))

    def nth(self, index: int) -> "Locator":
        return Locator(self.handle, self.query, parent=self.parent, nth=index)

    def first(self) -> "Locator":
        return self.nth(0)

    def last(self) -> "Locator":
        return self.nth(-1)

    def or_(self, other: "Locator") -> "Locator":
        """Match elements of either locator."""
        if self.parent is not None or other.parent is not None or (
            self._nth is not None or other._nth is not None
        ):
            raise MalformedQuery("or_() combines unchained locators only")
        return Locator(self.handle, AnyOf(queries=(self.query, other.query)))

    async def _select(self, index: DomIndex) -> list[ElementSnapshot]:
        matches = await match_query(self.handle, index, self.query)
        if self.parent is not None:
            scope = {el.element_id for el in await self.parent._select(index)}
            matches = [el for el in matches if index.has_ancestor_in(el, scope)]
        if self._nth is not None:
            try:
                return [matches[self._nth]]
            except IndexError:
                return []
        return matches

    async def _snapshots(self) -> tuple[list[ElementSnapshot], int]:
        for _ in range(_SNAPSHOT_ATTEMPTS):
            generation = self.handle.navigation_generation
            index = DomIndex(await self.handle.page.snapshot())
            matches = await self._select(index)
            if generation == self.handle.navigation_generation:
                return matches, generation
        # still navigating; report the document as empty until it settles
        return [], self.handle.navigation_generation

    async def all(self) -> list[ElementRef]:
        """Resolve every match, in document order."""
        matches, generation = await self._snapshots()
        return [
            ElementRef(handle=self.handle, snapshot=el, generation=generation)
            for el in matches
        ]

    async def count(self) -> int:
        return len(await self.all())

    async def one(self) -> ElementRef | None:
        """Resolve a match that must be unique.

        Raises:
            AmbiguousLocator: If more than one element matches

        """
        refs = await self.all()
        if len(refs) > 1:
            raise AmbiguousLocator(self.description, len(refs))
        return refs[0] if refs else None

    async def is_visible(self) -> bool:
        """Whether the first match exists and is visible."""
        refs = await self.all()
        return bool(refs) and refs[0].snapshot.visible

    async def is_hidden(self) -> bool:
        return not await self.is_visible()

    async def wait_for(
        self, state: WaitState = "visible", *, timeout_ms: int | None = None
    ) -> ElementRef | None:
        """Block until the first match reaches state.

        Raises:
            WaitTimeout: If the state is not reached in time

        """
        timeout = timeout_ms or self.handle.settings.action_timeout_ms

        async def _probe() -> tuple[ElementRef | None] | None:
            refs = await self.all()
            first = refs[0] if refs else None
            reached = {
                "visible": first is not None and first.snapshot.visible,
                "hidden": first is None or not first.snapshot.visible,
                "attached": first is not None,
                "detached": first is None,
            }[state]
            return (first,) if reached else None

        result = await wait_for(_probe, timeout, self.handle.settings.poll_interval_ms)
        if isinstance(result, Ok):
            return result.value[0]
        raise await self._timeout_error(f"to be {state}", timeout)

    async def _timeout_error(self, expectation: str, timeout_ms: int) -> WaitTimeout:
        url, dom = await capture_page_state(self.handle)
        return WaitTimeout(
            f"Timed out after {timeout_ms}ms waiting for {self.description} {expectation}",
            selector=self.description,
            url=url,
            dom_excerpt=dom,
        )

    async def _visible(self) -> ElementRef:
        # "visible" is only reached with a first match
        return cast(ElementRef, await self.wait_for("visible"))

    async def _act(self, action: ElementAction, value: str | None = None) -> None:
        ref = await self._visible()
        self.handle.record(action, target=self.description, detail=value)
        try:
            await ref.perform(action, value)
        except StaleElementRef:
            # the DOM changed between resolution and dispatch; resolve once more
            ref = await self._visible()
            await ref.perform(action, value)

    async def click(self) -> None:
        await self._act("click")

    async def fill(self, value: str) -> None:
        await self._act("fill", value)

    async def clear(self) -> None:
        await self._act("clear")

    async def hover(self) -> None:
        await self._act("hover")

    async def focus(self) -> None:
        await self._act("focus")

    async def press(self, key: str) -> None:
        await self._act("press", key)

    async def _attached(self) -> ElementRef:
        return cast(ElementRef, await self.wait_for("attached"))

    async def text_content(self) -> str:
        ref = await self._attached()
        return normalize_whitespace(ref.snapshot.text)

    async def all_text_contents(self) -> list[str]:
        return [normalize_whitespace(ref.snapshot.text) for ref in await self.all()]

    async def input_value(self) -> str:
        ref = await self._attached()
        return ref.snapshot.value or ""

    async def get_attribute(self, name: str) -> str | None:
        ref = await self._attached()
        return ref.snapshot.attributes.get(name)

    async def computed_style(self, *properties: str) -> Mapping[str, str]:
        ref = await self._attached()
        ref.ensure_fresh()
        return await self.handle.page.computed_style(ref.element_id, properties)

    async def bounding_box(self) -> BoundingBox | None:
        ref = await self._attached()
        ref.ensure_fresh()
        return await self.handle.page.bounding_box(ref.element_id)


async def capture_page_state(handle: "SessionHandle") -> tuple[str | None, str | None]:
    """Best-effort URL and DOM excerpt for diagnostics."""
    try:
        url = await handle.page.current_url()
        dom = describe_dom(await handle.page.snapshot())
    except Exception as e:
        log.debug("Could not capture page state: %s", e)
        return None, None
    return url, dom
