"""A small axe-core stand-in for the in-memory engine.

It accepts the same ``context`` and ``options`` arguments as ``axe.run`` and
returns results in axe's shape, evaluating a handful of rules against the
fake DOM.
"""

import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from ui_harness.errors import AuditEngineError, MalformedQuery
from ui_harness.testing.memory.dom import FakeElement, css_path, select_all

HELP_URL = "https://dequeuniversity.com/rules/axe/4.9/{rule}"


@dataclass(frozen=True, kw_only=True)
class Rule:
    id: str
    impact: str
    tags: tuple[str, ...]
    description: str
    help: str
    violates: Callable[[FakeElement, FakeElement], bool]


def _has_accessible_name(element: FakeElement, document: FakeElement) -> bool:
    attrs = element.attributes
    if attrs.get("aria-label", "").strip() or attrs.get("title", "").strip():
        return True
    if attrs.get("aria-labelledby"):
        return True
    return _label_text(element, document) is not None


def _label_text(element: FakeElement, document: FakeElement) -> str | None:
    element_id = element.attributes.get("id")
    for candidate in document.walk():
        if candidate.tag != "label":
            continue
        if (element_id and candidate.attributes.get("for") == element_id) or (
            candidate.contains(element) and candidate is not element
        ):
            text = candidate.text_content.strip()
            if text:
                return text
    return None


def _missing_label(element: FakeElement, document: FakeElement) -> bool:
    if element.tag == "input":
        if element.attributes.get("type", "text") in {"hidden", "submit", "button", "reset", "image"}:
            return False
    elif element.tag not in {"select", "textarea"}:
        return False
    return not _has_accessible_name(element, document)


def _missing_alt(element: FakeElement, document: FakeElement) -> bool:
    return (
        element.tag == "img"
        and "alt" not in element.attributes
        and element.attributes.get("role") not in {"presentation", "none"}
    )


def _missing_button_name(element: FakeElement, document: FakeElement) -> bool:
    is_button = element.tag == "button" or element.attributes.get("role") == "button"
    return (
        is_button
        and not element.text_content.strip()
        and not _has_accessible_name(element, document)
    )


def _missing_link_name(element: FakeElement, document: FakeElement) -> bool:
    return (
        element.tag == "a"
        and "href" in element.attributes
        and not element.text_content.strip()
        and not _has_accessible_name(element, document)
    )


_HEX = re.compile(r"#([0-9a-f]{3}|[0-9a-f]{6})", re.IGNORECASE)
_RGB = re.compile(r"rgba?\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)")
_NAMED = {"black": (0, 0, 0), "white": (255, 255, 255)}


def parse_color(value: str) -> tuple[int, int, int] | None:
    value = value.strip().lower()
    if value in _NAMED:
        return _NAMED[value]
    if match := _HEX.fullmatch(value):
        digits = match.group(1)
        if len(digits) == 3:
            digits = "".join(d * 2 for d in digits)
        return (int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16))
    if match := _RGB.match(value):
        r, g, b = (int(v) for v in match.groups())
        return (r, g, b)
    return None


def _luminance(rgb: tuple[int, int, int]) -> float:
    def channel(c: int) -> float:
        s = c / 255
        return s / 12.92 if s <= 0.03928 else ((s + 0.055) / 1.055) ** 2.4

    r, g, b = (channel(c) for c in rgb)
    return 0.2126 * r + 0.7152 * g + 0.0722 * b


def contrast_ratio(foreground: tuple[int, int, int], background: tuple[int, int, int]) -> float:
    lighter, darker = sorted((_luminance(foreground), _luminance(background)), reverse=True)
    return (lighter + 0.05) / (darker + 0.05)


def _low_contrast(element: FakeElement, document: FakeElement) -> bool:
    if not element.text.strip():
        return False
    foreground = parse_color(element.computed("color") or "#000000")
    background = parse_color(element.computed("background-color") or "#ffffff")
    if foreground is None or background is None:
        return False
    return contrast_ratio(foreground, background) < 4.5


RULES: Sequence[Rule] = (
    Rule(
        id="label",
        impact="critical",
        tags=("cat.forms", "wcag2a", "wcag412", "wcag131"),
        description="Ensures every form element has a label",
        help="Form elements must have labels",
        violates=_missing_label,
    ),
    Rule(
        id="image-alt",
        impact="critical",
        tags=("cat.text-alternatives", "wcag2a", "wcag111"),
        description="Ensures <img> elements have alternate text or a role of none or presentation",
        help="Images must have alternate text",
        violates=_missing_alt,
    ),
    Rule(
        id="button-name",
        impact="critical",
        tags=("cat.name-role-value", "wcag2a", "wcag412"),
        description="Ensures buttons have discernible text",
        help="Buttons must have discernible text",
        violates=_missing_button_name,
    ),
    Rule(
        id="link-name",
        impact="serious",
        tags=("cat.name-role-value", "wcag2a", "wcag244"),
        description="Ensures links have discernible text",
        help="Links must have discernible text",
        violates=_missing_link_name,
    ),
    Rule(
        id="color-contrast",
        impact="serious",
        tags=("cat.color", "wcag2aa", "wcag143"),
        description="Ensures the contrast between foreground and background colors "
        "meets WCAG 2 AA minimum contrast ratio thresholds",
        help="Elements must meet minimum color contrast ratio thresholds",
        violates=_low_contrast,
    ),
)

RULES_BY_ID = {rule.id: rule for rule in RULES}


def _select_rules(options: Mapping[str, Any]) -> list[Rule]:
    rules = list(RULES)
    run_only = options.get("runOnly")
    if run_only:
        values = set(run_only.get("values", ()))
        if run_only.get("type") == "rule":
            unknown = values - RULES_BY_ID.keys()
            if unknown:
                raise AuditEngineError(f"unknown rule `{sorted(unknown)[0]}` in options.runOnly")
            rules = [rule for rule in rules if rule.id in values]
        else:
            rules = [rule for rule in rules if values & set(rule.tags)]

    disabled = {
        rule_id
        for rule_id, setting in options.get("rules", {}).items()
        if not setting.get("enabled", True)
    }
    return [rule for rule in rules if rule.id not in disabled]


def _roots(document: FakeElement, selectors: Sequence[Sequence[str]]) -> list[FakeElement]:
    roots: list[FakeElement] = []
    for entry in selectors:
        for selector in entry:
            try:
                roots.extend(select_all(document, selector))
            except MalformedQuery as e:
                raise AuditEngineError(f"Invalid audit context selector: {e}") from e
    return roots


def run_audit(
    document: FakeElement,
    context: Mapping[str, Any] | None,
    options: Mapping[str, Any],
) -> Mapping[str, Any]:
    """Evaluate the selected rules over the context and return axe-shaped results."""
    context = context or {}
    included = _roots(document, context.get("include", [])) if "include" in context else [document]
    excluded = _roots(document, context.get("exclude", []))

    candidates: list[FakeElement] = []
    seen: set[int] = set()
    for root in included:
        for element in root.walk():
            if id(element) in seen or not element.rendered:
                continue
            if any(ex.contains(element) for ex in excluded):
                continue
            seen.add(id(element))
            candidates.append(element)

    violations = []
    for rule in _select_rules(options):
        nodes = [
            {"target": [css_path(element)]}
            for element in candidates
            if rule.violates(element, document)
        ]
        if nodes:
            violations.append(
                {
                    "id": rule.id,
                    "impact": rule.impact,
                    "tags": list(rule.tags),
                    "description": rule.description,
                    "help": rule.help,
                    "helpUrl": HELP_URL.format(rule=rule.id),
                    "nodes": nodes,
                }
            )
    return {"violations": violations}
