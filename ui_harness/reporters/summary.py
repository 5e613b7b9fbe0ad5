"""Aggregation of outcome records shared by every report format."""

from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from ui_harness.models.outcome import OutcomeRecord


@dataclass(frozen=True, kw_only=True)
class ReportSummary:
    """Outcome records in presentation order, with run-level totals."""

    records: Sequence[OutcomeRecord]
    incomplete: bool = False
    abort_reason: str | None = None

    @property
    def totals(self) -> Mapping[str, int]:
        statuses = Counter(record.status for record in self.records)
        return {
            "total": len(self.records),
            "passed": statuses["passed"],
            "failed": statuses["failed"],
            "timed_out": statuses["timedOut"],
            "skipped": statuses["skipped"],
            "flaky": sum(1 for record in self.records if record.flaky),
        }

    def by_project(self) -> Mapping[str, Sequence[OutcomeRecord]]:
        grouped: dict[str, list[OutcomeRecord]] = {}
        for record in self.records:
            grouped.setdefault(record.project_name, []).append(record)
        return grouped


def summarize(
    records: Iterable[OutcomeRecord],
    *,
    incomplete: bool = False,
    abort_reason: str | None = None,
) -> ReportSummary:
    """Order records by (test id, project) regardless of arrival order."""
    ordered = sorted(records, key=lambda r: (r.test_id, r.project_name))
    return ReportSummary(
        records=ordered,
        incomplete=incomplete or abort_reason is not None,
        abort_reason=abort_reason,
    )
