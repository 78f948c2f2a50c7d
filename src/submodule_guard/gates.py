"""
Enforcement gates.

Both gates consume the same ConsistencyReport and only decide what the
verdict means for the surrounding operation. The local pre-push gate lets a
developer downgrade a failure to a warning with an explicit, logged
override; the CI gate has no override.
"""

import logging
from dataclasses import dataclass, field
from typing import List

from .errors import UnpushedReference
from .models import ConsistencyReport, OverallStatus

logger = logging.getLogger(__name__)

EXIT_PASS = 0
EXIT_FAIL = 1
EXIT_INDETERMINATE = 2
EXIT_CONFIGURATION_ERROR = 3

OVERRIDE_ENV_VAR = "SUBMODULE_GUARD_OVERRIDE"


@dataclass
class GateDecision:
    """What a gate makes of a report: an exit code plus messages for stderr."""

    exit_code: int
    messages: List[str] = field(default_factory=list)

    @property
    def blocked(self) -> bool:
        return self.exit_code != EXIT_PASS


def worst_exit_code(codes: List[int]) -> int:
    """Combine exit codes of several checks: Fail outranks Indeterminate."""
    for code in (EXIT_CONFIGURATION_ERROR, EXIT_FAIL, EXIT_INDETERMINATE):
        if code in codes:
            return code
    return EXIT_PASS


class EnforcementGate:
    """Base policy shared by the local and CI gates."""

    name = "gate"

    def __init__(self, block_on_indeterminate: bool):
        self.block_on_indeterminate = block_on_indeterminate

    def decide(self, report: ConsistencyReport) -> GateDecision:
        try:
            report.raise_for_unpushed()
        except UnpushedReference as violation:
            return self.on_unpushed(violation)

        if report.overall_status is OverallStatus.INDETERMINATE:
            return self.on_indeterminate(report)
        return GateDecision(EXIT_PASS)

    def on_unpushed(self, violation: UnpushedReference) -> GateDecision:
        return GateDecision(
            EXIT_FAIL,
            [f"{self.name}: blocked. {violation}"]
            + violation.user_guidance.splitlines(),
        )

    def on_indeterminate(self, report: ConsistencyReport) -> GateDecision:
        paths = ", ".join(report.indeterminate_paths)
        if self.block_on_indeterminate:
            return GateDecision(
                EXIT_INDETERMINATE,
                [f"{self.name}: blocked. Could not verify: {paths}"],
            )
        logger.warning(f"{self.name}: could not verify {paths}; not blocking")
        return GateDecision(
            EXIT_PASS,
            [f"{self.name}: warning. Could not verify: {paths}"],
        )


class LocalPushGate(EnforcementGate):
    """Runs before the superproject's history is pushed."""

    name = "pre-push gate"

    def __init__(self, block_on_indeterminate: bool = False, override: bool = False):
        super().__init__(block_on_indeterminate)
        self.override = override

    def on_unpushed(self, violation: UnpushedReference) -> GateDecision:
        if not self.override:
            return super().on_unpushed(violation)
        logger.warning(
            f"Override active: allowing push with unpushed submodules: "
            f"{', '.join(violation.paths)}"
        )
        return GateDecision(
            EXIT_PASS,
            [f"{self.name}: OVERRIDE ACTIVE, push allowed. {violation}"]
            + violation.user_guidance.splitlines(),
        )


class CIGate(EnforcementGate):
    """Required pipeline stage; never honours the local override."""

    name = "CI gate"

    def __init__(
        self, block_on_indeterminate: bool = True, override_requested: bool = False
    ):
        super().__init__(block_on_indeterminate)
        self.override_requested = override_requested

    def decide(self, report: ConsistencyReport) -> GateDecision:
        decision = super().decide(report)
        if self.override_requested:
            logger.warning("Override requested in CI; ignored")
            decision.messages.insert(
                0, f"{self.name}: override is not available in CI and was ignored"
            )
        return decision
