"""Tests for the JSON report."""

import base64
import json

from ui_harness.models.outcome import OutcomeRecord
from ui_harness.reporters import json_reporter
from ui_harness.reporters.summary import summarize


def test_format_output(records: list[OutcomeRecord]) -> None:
    """Includes totals, run status and one entry per record."""
    output = json_reporter.format_output(summarize(records))

    assert output["total"] == 5
    assert output["flaky"] == 1
    assert output["incomplete"] is False
    assert output["abort_reason"] is None
    assert [r["status"] for r in output["results"]] == [
        "skipped", "failed", "timedOut", "failed", "passed",
    ]  # fmt: skip


def test_failure_context_is_serialized(records: list[OutcomeRecord]) -> None:
    """Failure details, trace and screenshot survive serialization."""
    output = json.loads(json_reporter.render(summarize(records)))

    failed = next(r for r in output["results"] if r["project"] == "Mobile Safari")
    assert failed["failure"]["selector"] == "role=alert"
    assert failed["failure"]["console_errors"] == ["Uncaught TypeError: x is undefined"]
    assert failed["failure"]["trace"] == [
        {"at_ms": 3.0, "action": "goto", "target": None, "detail": "http://localhost:3000/login"}
    ]
    assert base64.b64decode(failed["screenshot"]).startswith(b"\x89PNG")

    passed = next(r for r in output["results"] if r["status"] == "passed")
    assert passed["flaky"] is True
    assert passed["failure"] is None


def test_incomplete_run(records: list[OutcomeRecord]) -> None:
    """Aborted runs are flagged with their reason."""
    output = json.loads(
        json_reporter.render(summarize(records[:1], abort_reason="Target crashed"))
    )

    assert output["incomplete"] is True
    assert output["abort_reason"] == "Target crashed"
