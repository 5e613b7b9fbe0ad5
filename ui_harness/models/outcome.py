"""Models for test execution outcomes."""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal

type OutcomeStatus = Literal["passed", "failed", "timedOut", "skipped"]
type FailureKind = Literal["assertion", "timeout", "error"]


@dataclass(frozen=True, kw_only=True)
class TraceEvent:
    """A single action recorded against a session."""

    at_ms: float
    action: str
    target: str | None = None
    detail: str | None = None


@dataclass(frozen=True, kw_only=True)
class FailureDetail:
    """Diagnostic context for a failed or timed out test."""

    kind: FailureKind
    message: str
    selector: str | None = None
    observed: str | None = None
    url: str | None = None
    dom_excerpt: str | None = None
    console_errors: Sequence[str] = ()
    trace: Sequence[TraceEvent] | None = None


@dataclass(frozen=True, kw_only=True)
class OutcomeRecord:
    """Terminal outcome of one (test unit, project) execution."""

    test_id: str
    title: str
    project_name: str
    status: OutcomeStatus
    duration_ms: float
    retry_attempt: int = 0
    failure_detail: FailureDetail | None = None
    annotations: Sequence[str] = ()
    screenshot: bytes | None = field(default=None, repr=False)
    file: str | None = None

    @property
    def flaky(self) -> bool:
        """Passed, but only after at least one retry."""
        return self.status == "passed" and self.retry_attempt > 0
