"""Human-readable HTML report.

A single self-contained document: totals dashboard, an abort banner for
incomplete runs, and one table per project with failure context inline.
"""

import base64
from html import escape

from ui_harness.models.outcome import FailureDetail, OutcomeRecord
from ui_harness.reporters.summary import ReportSummary

STATUS_CLASSES = {
    "passed": "passed",
    "failed": "failed",
    "timedOut": "timed-out",
    "skipped": "skipped",
}


def _styles() -> str:
    return """<style>
        body { font-family: -apple-system, 'Segoe UI', Roboto, sans-serif; color: #333; margin: 20px; }
        .dashboard { display: flex; gap: 12px; margin-bottom: 20px; }
        .card { padding: 12px 20px; border-radius: 8px; background: #f5f5f5; }
        .incomplete { background: #fdecea; border: 1px solid #e53935; padding: 12px; margin-bottom: 20px; }
        table { border-collapse: collapse; width: 100%; margin-bottom: 24px; }
        th, td { text-align: left; padding: 6px 10px; border-bottom: 1px solid #ddd; vertical-align: top; }
        .passed { color: #2e7d32; }
        .failed { color: #c62828; }
        .timed-out { color: #ef6c00; }
        .skipped { color: #757575; }
        pre { white-space: pre-wrap; background: #fafafa; padding: 8px; }
        img.screenshot { max-width: 480px; border: 1px solid #ccc; }
    </style>"""


def _dashboard(summary: ReportSummary) -> str:
    cards = "".join(
        f'<div class="card"><strong>{count}</strong> {escape(name.replace("_", " "))}</div>'
        for name, count in summary.totals.items()
    )
    return f'<div class="dashboard">{cards}</div>'


def _banner(summary: ReportSummary) -> str:
    if not summary.incomplete:
        return ""
    reason = summary.abort_reason or "Not every planned test reported an outcome."
    return (
        '<div class="incomplete" id="incomplete"><strong>Incomplete run.</strong> '
        f"{escape(reason)}</div>"
    )


def _failure(detail: FailureDetail) -> str:
    parts = [f"<pre>{escape(detail.message)}</pre>"]
    for label, value in (
        ("Selector", detail.selector),
        ("Observed", detail.observed),
        ("URL", detail.url),
    ):
        if value:
            parts.append(f"<div>{label}: <code>{escape(value)}</code></div>")
    if detail.console_errors:
        items = "".join(f"<li>{escape(text)}</li>" for text in detail.console_errors)
        parts.append(f"<div>Console errors:<ul>{items}</ul></div>")
    if detail.dom_excerpt:
        parts.append(
            f"<details><summary>DOM</summary><pre>{escape(detail.dom_excerpt)}</pre></details>"
        )
    if detail.trace:
        steps = "".join(
            f"<li>{event.at_ms:.0f}ms {escape(event.action)} "
            f"{escape(event.target or '')} {escape(event.detail or '')}</li>"
            for event in detail.trace
        )
        parts.append(f"<details><summary>Trace</summary><ol>{steps}</ol></details>")
    return "".join(parts)


def _row(record: OutcomeRecord) -> str:
    css = STATUS_CLASSES.get(record.status, "")
    notes = "".join(f"<div>{escape(note)}</div>" for note in record.annotations)
    details = _failure(record.failure_detail) if record.failure_detail else ""
    if record.screenshot:
        encoded = base64.b64encode(record.screenshot).decode("ascii")
        details += f'<img class="screenshot" src="data:image/png;base64,{encoded}">'
    retry = f" (retry #{record.retry_attempt})" if record.retry_attempt else ""
    return (
        f"<tr><td>{escape(record.title)}</td>"
        f'<td class="{css}">{escape(record.status)}{retry}</td>'
        f"<td>{record.duration_ms / 1000:.2f}s</td>"
        f"<td>{notes}{details}</td></tr>"
    )


def _project_section(project: str, records: list[OutcomeRecord]) -> str:
    rows = "\n".join(_row(record) for record in records)
    return f"""<h2>{escape(project)}</h2>
    <table>
        <tr><th>Test</th><th>Status</th><th>Duration</th><th>Details</th></tr>
        {rows}
    </table>"""


def render(summary: ReportSummary) -> str:
    sections = "\n".join(
        _project_section(project, list(records))
        for project, records in summary.by_project().items()
    )
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>UI Test Report</title>
    {_styles()}
</head>
<body>
    <h1>UI Test Report</h1>
    {_banner(summary)}
    {_dashboard(summary)}
    {sections}
</body>
</html>"""
