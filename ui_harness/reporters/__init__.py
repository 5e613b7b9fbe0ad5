"""Report formats for outcome records."""

from ui_harness.reporters.base import emit
from ui_harness.reporters.summary import ReportSummary, summarize

__all__ = ["ReportSummary", "emit", "summarize"]
