"""
Data model for submodule consistency checks.

All objects here are built fresh for a single check invocation and discarded
afterwards; nothing is persisted between runs.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import FrozenSet, List, Optional

from .errors import UnpushedReference


class Reachability(str, Enum):
    """Tri-state answer of a remote reachability probe."""

    YES = "Yes"
    NO = "No"
    UNKNOWN = "Unknown"


class RecordStatus(str, Enum):
    """Per-submodule verdict."""

    SYNCED = "Synced"
    UNPUSHED = "Unpushed"
    INDETERMINATE = "Indeterminate"


class OverallStatus(str, Enum):
    """Aggregate verdict for a whole superproject."""

    PASS = "Pass"
    FAIL = "Fail"
    INDETERMINATE = "Indeterminate"


@dataclass(frozen=True)
class SubmoduleRecord:
    """One pinned component reference recorded by the superproject."""

    path: str
    remote_location: str
    pinned_revision: str
    branch_hint: Optional[str] = None
    name: Optional[str] = None

    @property
    def short_revision(self) -> str:
        return self.pinned_revision[:7]


@dataclass(frozen=True)
class ReachabilityAnswer:
    """Answer of a backend that managed to talk to the remote."""

    reachable: bool
    branch_tips: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of probing one remote.

    ``error`` is populated if and only if ``reachable`` is UNKNOWN, so an
    operational failure can never masquerade as a "not reachable" answer.
    """

    path: str
    reachable: Reachability
    error: Optional[str] = None
    elapsed: float = 0.0
    branch_tips: FrozenSet[str] = frozenset()

    def __post_init__(self) -> None:
        if (self.error is not None) != (self.reachable is Reachability.UNKNOWN):
            raise ValueError(
                f"Probe result for {self.path!r}: error must be set if and only "
                f"if reachability is Unknown (got {self.reachable.value}, "
                f"error={self.error!r})"
            )

    @classmethod
    def unknown(cls, path: str, error: str, elapsed: float = 0.0) -> "ProbeResult":
        return cls(
            path=path, reachable=Reachability.UNKNOWN, error=error, elapsed=elapsed
        )


@dataclass(frozen=True)
class ClassifiedRecord:
    """A submodule with its verdict and the text shown to the user."""

    path: str
    status: RecordStatus
    detail: str
    remediation: Optional[str] = None
    detached: bool = False


@dataclass(frozen=True)
class ConsistencyReport:
    """Aggregate result of one check invocation.

    Reports compare equal when their verdicts and records match; the
    generation timestamp is informational only.
    """

    overall_status: OverallStatus
    records: List[ClassifiedRecord]
    generated_at: datetime = field(compare=False)

    @property
    def unpushed_paths(self) -> List[str]:
        return [r.path for r in self.records if r.status is RecordStatus.UNPUSHED]

    @property
    def indeterminate_paths(self) -> List[str]:
        return [
            r.path for r in self.records if r.status is RecordStatus.INDETERMINATE
        ]

    def count(self, status: RecordStatus) -> int:
        return sum(1 for r in self.records if r.status is status)

    def raise_for_unpushed(self) -> None:
        """Raise UnpushedReference if any pinned revision is missing."""
        unpushed = self.unpushed_paths
        if unpushed:
            raise UnpushedReference(unpushed)
