"""Report emission over every configured format."""

import logging
from collections.abc import Callable, Iterable, Mapping

from ui_harness.models.config import FormatKind
from ui_harness.models.outcome import OutcomeRecord
from ui_harness.reporters import html_reporter, json_reporter, junit_reporter, list_reporter
from ui_harness.reporters.summary import ReportSummary, summarize

log = logging.getLogger(__name__)

RENDERERS: Mapping[FormatKind, Callable[[ReportSummary], str]] = {
    "html": html_reporter.render,
    "json": json_reporter.render,
    "junit": junit_reporter.render,
    "list": list_reporter.render,
}


def emit(
    records: Iterable[OutcomeRecord],
    formats: Iterable[FormatKind],
    *,
    incomplete: bool = False,
    abort_reason: str | None = None,
) -> Mapping[FormatKind, str]:
    """Render outcome records in each requested format.

    Pure: records may arrive in any order and nothing is written anywhere.

    Args:
        records: Outcome records, possibly from a partial run
        formats: Report formats to produce
        incomplete: Whether the run stopped before every planned test reported
        abort_reason: Infrastructure failure that aborted the run, if any

    Returns:
        Serialized report per format

    """
    summary = summarize(records, incomplete=incomplete, abort_reason=abort_reason)
    reports: dict[FormatKind, str] = {}
    for kind in dict.fromkeys(formats):
        renderer = RENDERERS.get(kind)
        if renderer is None:
            raise ValueError(f"Unknown report format '{kind}'")
        reports[kind] = renderer(summary)
    log.debug("Rendered %d report(s) for %d record(s)", len(reports), len(summary.records))
    return reports
