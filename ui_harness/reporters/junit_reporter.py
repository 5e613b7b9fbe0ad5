"""JUnit XML report for CI systems."""

import xml.etree.ElementTree as ET

from ui_harness.models.outcome import OutcomeRecord
from ui_harness.reporters.summary import ReportSummary


def _seconds(duration_ms: float) -> str:
    return f"{duration_ms / 1000:.3f}"


def _testcase(parent: ET.Element, record: OutcomeRecord) -> None:
    case = ET.SubElement(
        parent,
        "testcase",
        name=record.title,
        classname=record.test_id.rsplit("/", 1)[0],
        time=_seconds(record.duration_ms),
    )
    detail = record.failure_detail

    if record.status == "skipped":
        ET.SubElement(case, "skipped")
    elif record.status in ("failed", "timedOut"):
        tag = "error" if detail is not None and detail.kind == "error" else "failure"
        message = detail.message if detail is not None else record.status
        element = ET.SubElement(case, tag, message=message, type=record.status)
        if detail is not None:
            lines = [message]
            if detail.selector:
                lines.append(f"Selector: {detail.selector}")
            if detail.url:
                lines.append(f"URL: {detail.url}")
            lines.extend(f"Console: {text}" for text in detail.console_errors)
            element.text = "\n".join(lines)

    if record.retry_attempt or record.annotations:
        properties = ET.SubElement(case, "properties")
        if record.retry_attempt:
            ET.SubElement(
                properties, "property", name="retry_attempt", value=str(record.retry_attempt)
            )
        for note in record.annotations:
            ET.SubElement(properties, "property", name="annotation", value=note)


def render(summary: ReportSummary) -> str:
    totals = summary.totals
    root = ET.Element(
        "testsuites",
        name="ui_harness",
        tests=str(totals["total"]),
        failures=str(totals["failed"] + totals["timed_out"]),
        skipped=str(totals["skipped"]),
        time=_seconds(sum(r.duration_ms for r in summary.records)),
    )
    if summary.incomplete:
        properties = ET.SubElement(root, "properties")
        ET.SubElement(properties, "property", name="incomplete", value="true")
        if summary.abort_reason:
            ET.SubElement(
                properties, "property", name="abort_reason", value=summary.abort_reason
            )

    for project, records in summary.by_project().items():
        suite = ET.SubElement(
            root,
            "testsuite",
            name=project,
            tests=str(len(records)),
            failures=str(sum(1 for r in records if r.status in ("failed", "timedOut"))),
            skipped=str(sum(1 for r in records if r.status == "skipped")),
            time=_seconds(sum(r.duration_ms for r in records)),
        )
        for record in records:
            _testcase(suite, record)

    ET.indent(root)
    return ET.tostring(root, encoding="unicode", xml_declaration=True)
