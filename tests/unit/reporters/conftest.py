"""Outcome records shared by the reporter tests."""

import pytest

from ui_harness.models.outcome import OutcomeRecord, TraceEvent
from ui_harness.testing.factories import FailureDetailFactory, OutcomeRecordFactory


@pytest.fixture
def records() -> list[OutcomeRecord]:
    """One record of each status, deliberately out of order."""
    return [
        OutcomeRecordFactory.build(
            test_id="login_spec.py::login/rejects-bad-password",
            title="Login › rejects bad password",
            project_name="Mobile Safari",
            status="failed",
            duration_ms=1250.0,
            failure_detail=FailureDetailFactory.build(
                kind="assertion",
                message="Expected role=alert to be visible",
                selector="role=alert",
                url="http://localhost:3000/login",
                console_errors=("Uncaught TypeError: x is undefined",),
                trace=(TraceEvent(at_ms=3.0, action="goto", detail="http://localhost:3000/login"),),
            ),
            screenshot=b"\x89PNG\r\n\x1a\nfake",
        ),
        OutcomeRecordFactory.build(
            test_id="login_spec.py::login/signs-in",
            title="Login › signs in",
            project_name="Desktop Chrome",
            status="passed",
            duration_ms=800.0,
            retry_attempt=1,
        ),
        OutcomeRecordFactory.build(
            test_id="api_spec.py::slow-api",
            title="slow api",
            project_name="Desktop Chrome",
            status="timedOut",
            duration_ms=30000.0,
            failure_detail=FailureDetailFactory.build(
                kind="timeout", message="Test timeout of 30000ms exceeded"
            ),
            annotations=("warning: No loading indicator",),
        ),
        OutcomeRecordFactory.build(
            test_id="api_spec.py::crashes",
            title="crashes",
            project_name="Desktop Chrome",
            status="failed",
            duration_ms=10.0,
            failure_detail=FailureDetailFactory.build(kind="error", message="ValueError: bad"),
        ),
        OutcomeRecordFactory.build(
            test_id="a11y_spec.py::skipped",
            title="skipped",
            project_name="Desktop Chrome",
            status="skipped",
            duration_ms=0.0,
        ),
    ]
