"""Machine-readable JSON report."""

import base64
import json
from dataclasses import asdict
from typing import Any

from ui_harness.models.outcome import FailureDetail, OutcomeRecord
from ui_harness.reporters.summary import ReportSummary


def _failure(detail: FailureDetail | None) -> dict[str, Any] | None:
    if detail is None:
        return None
    return {
        "kind": detail.kind,
        "message": detail.message,
        "selector": detail.selector,
        "observed": detail.observed,
        "url": detail.url,
        "dom_excerpt": detail.dom_excerpt,
        "console_errors": list(detail.console_errors),
        "trace": [asdict(event) for event in detail.trace] if detail.trace else None,
    }


def _record(record: OutcomeRecord) -> dict[str, Any]:
    return {
        "test_id": record.test_id,
        "title": record.title,
        "project": record.project_name,
        "file": record.file,
        "status": record.status,
        "duration_ms": record.duration_ms,
        "retry_attempt": record.retry_attempt,
        "flaky": record.flaky,
        "annotations": list(record.annotations),
        "failure": _failure(record.failure_detail),
        "screenshot": (
            base64.b64encode(record.screenshot).decode("ascii")
            if record.screenshot
            else None
        ),
    }


def format_output(summary: ReportSummary) -> dict[str, Any]:
    """Format a summary as a JSON-serializable mapping."""
    return {
        **summary.totals,
        "incomplete": summary.incomplete,
        "abort_reason": summary.abort_reason,
        "results": [_record(record) for record in summary.records],
    }


def render(summary: ReportSummary) -> str:
    return json.dumps(format_output(summary), indent=2)
