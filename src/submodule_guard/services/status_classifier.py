"""Maps raw probe outcomes to per-submodule verdicts."""

from ..models import (
    ClassifiedRecord,
    ProbeResult,
    Reachability,
    RecordStatus,
    SubmoduleRecord,
)


def _one_line(text: str) -> str:
    return " ".join(text.split())


def push_remediation(path: str) -> str:
    return f"push `{path}` to its remote before retrying"


def retry_remediation(path: str) -> str:
    return f"check network access and credentials for `{path}`, then retry"


def classify(record: SubmoduleRecord, probe: ProbeResult) -> ClassifiedRecord:
    """
    Classify one probed submodule.

    Yes -> Synced, No -> Unpushed, Unknown -> Indeterminate. The Detached flag
    marks a reachable revision whose branch hint is not a live branch on the
    remote; it is informational and never changes the status.
    """
    if probe.path != record.path:
        raise ValueError(
            f"Probe result for {probe.path!r} does not belong to {record.path!r}"
        )

    revision = record.short_revision
    if probe.reachable is Reachability.YES:
        detached = bool(record.branch_hint) and (
            record.branch_hint not in probe.branch_tips
        )
        detail = f"{revision} is reachable on {record.remote_location}"
        if detached:
            detail += f" (branch '{record.branch_hint}' is not a live branch there)"
        return ClassifiedRecord(
            path=record.path,
            status=RecordStatus.SYNCED,
            detail=detail,
            detached=detached,
        )

    if probe.reachable is Reachability.NO:
        return ClassifiedRecord(
            path=record.path,
            status=RecordStatus.UNPUSHED,
            detail=f"{revision} not found on {record.remote_location}",
            remediation=push_remediation(record.path),
        )

    return ClassifiedRecord(
        path=record.path,
        status=RecordStatus.INDETERMINATE,
        detail=f"could not verify {revision}: {_one_line(probe.error or '')}",
        remediation=retry_remediation(record.path),
    )
