"""Exception taxonomy for Submodule Guard.

Configuration errors abort a check before any remote is contacted. Probe
errors are per-submodule operational failures; the prober converts them into
an Indeterminate result and they never stop the rest of the batch.
UnpushedReference is the business-rule violation the gates enforce.
"""

from typing import List, Optional


class SubmoduleGuardError(Exception):
    """Base class for all Submodule Guard errors."""

    def __init__(self, message: str, user_guidance: Optional[str] = None):
        super().__init__(message)
        self.user_guidance = user_guidance or ""


class ConfigurationError(SubmoduleGuardError):
    """Raised when the submodule manifest or tool configuration is unusable."""


class ProbeError(SubmoduleGuardError):
    """Base class for failures while querying a submodule remote."""

    def __init__(
        self,
        message: str,
        remote_location: Optional[str] = None,
        user_guidance: Optional[str] = None,
    ):
        super().__init__(message, user_guidance=user_guidance)
        self.remote_location = remote_location


class NetworkError(ProbeError):
    """Remote could not be reached or the transport failed."""


class AuthError(ProbeError):
    """Remote refused the request because of missing or invalid credentials."""


class ProbeTimeoutError(ProbeError):
    """Remote did not answer within the per-probe timeout."""


class ProbeCancelledError(ProbeError):
    """Probe was stopped because the batch it belongs to ran out of time."""


class UnpushedReference(SubmoduleGuardError):
    """One or more pinned revisions are missing from their remotes."""

    def __init__(self, paths: List[str]):
        self.paths = list(paths)
        joined = ", ".join(self.paths)
        guidance = "\n".join(
            f"push `{path}` to its remote before retrying" for path in self.paths
        )
        super().__init__(
            f"Pinned revisions not found on remote for: {joined}",
            user_guidance=guidance,
        )
