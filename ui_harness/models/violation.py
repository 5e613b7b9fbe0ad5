"""Normalized accessibility violations."""

from collections.abc import Mapping, Sequence
from typing import Literal

from pydantic import Field

from ui_harness.models.base import Model

type Impact = Literal["minor", "moderate", "serious", "critical"]

IMPACT_RANK: Mapping[Impact, int] = {
    "minor": 0,
    "moderate": 1,
    "serious": 2,
    "critical": 3,
}


class ViolationReport(Model):
    """A single accessibility rule failure."""

    rule_id: str
    impact: Impact
    target_selectors: Sequence[str] = Field(default_factory=tuple)
    description: str = ""
    help_url: str | None = None
