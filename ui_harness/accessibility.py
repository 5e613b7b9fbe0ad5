"""Accessibility audits: scope a rule-engine run and normalize its violations.

Rule evaluation itself belongs to the engine (axe-core in a real browser).
This module only translates an ``AuditScope`` into the engine's ``context``
and ``options`` arguments and turns the raw result into ``ViolationReport``
objects.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Self

from ui_harness.errors import AuditEngineError, InvalidAuditScope
from ui_harness.models.violation import IMPACT_RANK, Impact, ViolationReport

if TYPE_CHECKING:
    from ui_harness.session import SessionHandle

log = logging.getLogger(__name__)

WCAG21AA_TAGS = ("wcag2a", "wcag2aa", "wcag21a", "wcag21aa")


@dataclass(frozen=True, kw_only=True)
class AuditScope:
    """What part of the page to audit and with which rules.

    ``tags`` and ``rules`` both restrict the rule set and cannot be combined.
    """

    include: Sequence[str] = ()
    exclude: Sequence[str] = ()
    tags: Sequence[str] = ()
    rules: Sequence[str] = ()
    disabled_rules: Sequence[str] = ()
    min_impact: Impact | None = None


def validate_scope(scope: AuditScope) -> None:
    """Reject scopes the engine cannot evaluate.

    Raises:
        InvalidAuditScope: If the scope is malformed

    """
    for field_name in ("include", "exclude", "tags", "rules", "disabled_rules"):
        values = getattr(scope, field_name)
        if isinstance(values, str):
            raise InvalidAuditScope(f"'{field_name}' must be a sequence, not a string")
        if any(not isinstance(v, str) or not v.strip() for v in values):
            raise InvalidAuditScope(f"'{field_name}' contains an empty entry")

    if scope.tags and scope.rules:
        raise InvalidAuditScope("Restrict an audit by tags or by rules, not both")

    both = set(scope.rules) & set(scope.disabled_rules)
    if both:
        raise InvalidAuditScope(f"Rules both enabled and disabled: {sorted(both)}")

    if scope.min_impact is not None and scope.min_impact not in IMPACT_RANK:
        raise InvalidAuditScope(f"Unknown impact '{scope.min_impact}'")


def build_engine_arguments(
    scope: AuditScope,
) -> tuple[Mapping[str, Any] | None, Mapping[str, Any]]:
    """Translate a scope into rule-engine ``context`` and ``options``."""
    context: dict[str, Any] | None = None
    if scope.include or scope.exclude:
        context = {}
        if scope.include:
            context["include"] = [[selector] for selector in scope.include]
        if scope.exclude:
            context["exclude"] = [[selector] for selector in scope.exclude]

    options: dict[str, Any] = {}
    if scope.tags:
        options["runOnly"] = {"type": "tag", "values": list(scope.tags)}
    elif scope.rules:
        options["runOnly"] = {"type": "rule", "values": list(scope.rules)}
    if scope.disabled_rules:
        options["rules"] = {rule: {"enabled": False} for rule in scope.disabled_rules}
    return context, options


def _flatten_target(target: Any) -> str:
    # Targets inside iframes or shadow roots arrive as nested selector lists.
    if isinstance(target, str):
        return target
    if isinstance(target, Sequence):
        return " >>> ".join(_flatten_target(part) for part in target)
    raise AuditEngineError(f"Unexpected violation target: {target!r}")


def normalize_violations(
    raw: Mapping[str, Any], *, min_impact: Impact | None = None
) -> list[ViolationReport]:
    """Convert a raw rule-engine result into violation reports.

    Raises:
        AuditEngineError: If the result does not have the expected shape

    """
    violations = raw.get("violations")
    if not isinstance(violations, Sequence):
        raise AuditEngineError("Accessibility engine result has no 'violations' list")

    threshold = IMPACT_RANK[min_impact] if min_impact else 0
    reports: list[ViolationReport] = []
    for violation in violations:
        try:
            impact = violation.get("impact") or "minor"
            report = ViolationReport(
                rule_id=violation["id"],
                impact=impact,
                target_selectors=[
                    _flatten_target(node["target"]) for node in violation.get("nodes", [])
                ],
                description=violation.get("description") or violation.get("help", ""),
                help_url=violation.get("helpUrl"),
            )
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            raise AuditEngineError(f"Malformed violation {violation!r}: {e}") from e
        if IMPACT_RANK[report.impact] >= threshold:
            reports.append(report)
    return reports


async def audit(
    handle: "SessionHandle", scope: AuditScope | None = None
) -> Sequence[ViolationReport]:
    """Audit the page (or a part of it) and return normalized violations.

    Not retried: a malformed scope fails fast.

    Raises:
        InvalidAuditScope: If the scope is malformed

    """
    scope = scope or AuditScope()
    validate_scope(scope)
    context, options = build_engine_arguments(scope)
    handle.record("audit", detail=repr(context))
    raw = await handle.page.run_accessibility_engine(context, options)
    reports = normalize_violations(raw, min_impact=scope.min_impact)
    log.debug("Audit found %d violation(s)", len(reports))
    return reports


class AuditBuilder:
    """Fluent construction of an audit scope bound to a session."""

    def __init__(self, handle: "SessionHandle", scope: AuditScope | None = None) -> None:
        self.handle = handle
        self.scope = scope or AuditScope()

    def _with(self, **changes: Any) -> Self:
        return type(self)(self.handle, replace(self.scope, **changes))

    def include(self, *selectors: str) -> Self:
        return self._with(include=(*self.scope.include, *selectors))

    def exclude(self, *selectors: str) -> Self:
        return self._with(exclude=(*self.scope.exclude, *selectors))

    def with_tags(self, tags: Sequence[str]) -> Self:
        return self._with(tags=(*self.scope.tags, *tags))

    def with_rules(self, rules: Sequence[str]) -> Self:
        return self._with(rules=(*self.scope.rules, *rules))

    def disable_rules(self, rules: Sequence[str]) -> Self:
        return self._with(disabled_rules=(*self.scope.disabled_rules, *rules))

    def min_impact(self, impact: Impact) -> Self:
        return self._with(min_impact=impact)

    async def analyze(self) -> Sequence[ViolationReport]:
        return await audit(self.handle, self.scope)
