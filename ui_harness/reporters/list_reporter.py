"""Console summary, one line per outcome."""

from ui_harness.reporters.summary import ReportSummary

STATUS_SYMBOLS = {
    "passed": "✅",
    "failed": "❌",
    "timedOut": "⏱️",
    "skipped": "⏭️",
}


def render(summary: ReportSummary) -> str:
    lines = ["=" * 80, "Test Results Summary:", "=" * 80]
    if summary.incomplete:
        reason = summary.abort_reason or "not every planned test reported an outcome"
        lines.append(f"❗ INCOMPLETE RUN: {reason}")

    for record in summary.records:
        symbol = STATUS_SYMBOLS.get(record.status, "?")
        line = (
            f"{symbol} [{record.project_name}] {record.title}: "
            f"{record.status} ({record.duration_ms / 1000:.2f}s)"
        )
        if record.flaky:
            line += f" flaky, passed on retry #{record.retry_attempt}"
        lines.append(line)
        if record.failure_detail:
            lines.append(f"  Message: {record.failure_detail.message}")
            if record.failure_detail.selector:
                lines.append(f"  Selector: {record.failure_detail.selector}")
        lines.extend(f"  Note: {note}" for note in record.annotations)

    totals = summary.totals
    lines.append(
        f"{totals['passed']} passed, {totals['failed']} failed, "
        f"{totals['timed_out']} timed out, {totals['skipped']} skipped, "
        f"{totals['flaky']} flaky"
    )
    return "\n".join(lines)
