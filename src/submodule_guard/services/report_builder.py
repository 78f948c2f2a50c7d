"""
Report building and rendering.

The report keeps its records in path order so it is stable and diffable
across runs. The text rendering groups records by severity (Unpushed first)
so the blocking ones are read first; the JSON rendering keeps path order.
Both renderings are plain strings so every caller emits identical bytes.
"""

import json
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from ..models import ClassifiedRecord, ConsistencyReport, OverallStatus, RecordStatus

_TEXT_GROUP_ORDER = (
    RecordStatus.UNPUSHED,
    RecordStatus.INDETERMINATE,
    RecordStatus.SYNCED,
)
_STATUS_WIDTH = max(len(status.value) for status in RecordStatus)


def overall_status(records: Iterable[ClassifiedRecord]) -> OverallStatus:
    statuses = {record.status for record in records}
    if RecordStatus.UNPUSHED in statuses:
        return OverallStatus.FAIL
    if RecordStatus.INDETERMINATE in statuses:
        return OverallStatus.INDETERMINATE
    return OverallStatus.PASS


def build_report(
    records: Iterable[ClassifiedRecord], generated_at: Optional[datetime] = None
) -> ConsistencyReport:
    """Fold classified records into one ConsistencyReport."""
    ordered = sorted(records, key=lambda record: record.path)
    paths = [record.path for record in ordered]
    if len(set(paths)) != len(paths):
        raise ValueError("Each submodule path may appear only once in a report")
    return ConsistencyReport(
        overall_status=overall_status(ordered),
        records=ordered,
        generated_at=generated_at or datetime.now(timezone.utc),
    )


def summary_line(report: ConsistencyReport) -> str:
    total = len(report.records)
    noun = "submodule" if total == 1 else "submodules"
    counts = ", ".join(
        f"{report.count(status)} {status.value.lower()}"
        for status in (
            RecordStatus.SYNCED,
            RecordStatus.UNPUSHED,
            RecordStatus.INDETERMINATE,
        )
    )
    return (
        f"Submodule consistency: {report.overall_status.value.upper()} "
        f"({total} {noun}: {counts})"
    )


def render_text(report: ConsistencyReport) -> str:
    """Render the human-readable report."""
    lines: List[str] = [summary_line(report)]
    if not report.records:
        lines.append("No submodules recorded.")
        return "\n".join(lines) + "\n"

    lines.append("")
    for status in _TEXT_GROUP_ORDER:
        for record in report.records:
            if record.status is not status:
                continue
            label = status.value.upper().ljust(_STATUS_WIDTH)
            flag = " [detached]" if record.detached else ""
            lines.append(f"{label}  {record.path}{flag}  {record.detail}")
            if record.remediation:
                lines.append(f"{' ' * _STATUS_WIDTH}  -> {record.remediation}")
    return "\n".join(lines) + "\n"


def report_to_dict(report: ConsistencyReport) -> dict:
    return {
        "overallStatus": report.overall_status.value,
        "generatedAt": report.generated_at.isoformat(),
        "records": [
            {
                "path": record.path,
                "status": record.status.value,
                "detail": record.detail,
                "remediation": record.remediation,
                "detached": record.detached,
            }
            for record in report.records
        ],
    }


def render_json(report: ConsistencyReport) -> str:
    """Render the structured report for pipeline tooling."""
    return json.dumps(report_to_dict(report), indent=2) + "\n"
