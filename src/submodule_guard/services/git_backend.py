"""
Git-backed reachability capability.

A revision counts as reachable when it is a branch tip on the remote or an
ancestor of one. Tags do not count: a commit kept alive only by a tag is not
on any branch a clone would check out.

Branch tips come from ``git ls-remote --heads``. A revision that is not
itself a tip is looked up in the history of the branches, fetched without
blobs into a throw-away bare repository. The revision is never requested by
object id, because many servers hand out any object they store, including
commits that were force-pushed off every branch.
"""

import logging
import subprocess
import tempfile
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional

from ..errors import AuthError, NetworkError, ProbeCancelledError, ProbeTimeoutError
from ..models import ReachabilityAnswer
from ..utils.git_runner import GitCommandCancelled, run_git_command

logger = logging.getLogger(__name__)

AUTH_FAILURE_MARKERS = (
    "authentication failed",
    "permission denied",
    "could not read username",
    "could not read password",
    "terminal prompts disabled",
    "invalid username or password",
    "access denied",
    "http 401",
    "http 403",
    "the requested url returned error: 401",
    "the requested url returned error: 403",
    "host key verification failed",
)

# Stops git from downloading missing objects on demand in the scratch repo
NO_LAZY_FETCH_ENV = {"GIT_NO_LAZY_FETCH": "1"}


def _stderr_of(error: subprocess.CalledProcessError) -> str:
    return (error.stderr or "").strip()


def _last_line(text: str) -> str:
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    return lines[-1] if lines else ""


class GitReachabilityBackend:
    """ReachabilityBackend implementation that shells out to git."""

    def __init__(self, work_dir: Optional[Path] = None):
        """
        Args:
            work_dir: Directory for throw-away fetch repositories
                (default: the system temporary directory)
        """
        self.work_dir = work_dir

    def is_revision_reachable(
        self,
        remote_location: str,
        revision: str,
        timeout: float,
        branch_hint: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ReachabilityAnswer:
        """
        Determine whether ``revision`` is reachable from a branch of ``remote_location``.

        Args:
            remote_location: Remote URL or path of the component repository
            revision: Full object id pinned by the superproject
            timeout: Seconds allowed for the whole probe
            branch_hint: Branch the superproject tracks (informational)
            cancel_event: Kills the running git command when set

        Returns:
            ReachabilityAnswer with the live branch names of the remote

        Raises:
            AuthError: Credentials were missing or rejected
            ProbeTimeoutError: The remote did not answer in time
            ProbeCancelledError: cancel_event was set while probing
            NetworkError: Any other transport failure
        """
        deadline = time.monotonic() + timeout
        heads = self._list_heads(remote_location, timeout, cancel_event)
        branch_tips = frozenset(heads)

        if revision in heads.values():
            logger.debug(f"{revision[:7]} is a branch tip on {remote_location}")
            return ReachabilityAnswer(reachable=True, branch_tips=branch_tips)
        if not heads:
            logger.debug(f"{remote_location} has no branches")
            return ReachabilityAnswer(reachable=False, branch_tips=branch_tips)

        reachable = self._is_in_branch_history(
            remote_location, revision, deadline, timeout, cancel_event
        )
        return ReachabilityAnswer(reachable=reachable, branch_tips=branch_tips)

    def _list_heads(
        self,
        remote_location: str,
        timeout: float,
        cancel_event: Optional[threading.Event],
    ) -> Dict[str, str]:
        output = self._run(
            ["git", "ls-remote", "--heads", remote_location],
            remote_location,
            timeout,
            Path(self.work_dir or tempfile.gettempdir()),
            cancel_event,
        )
        heads: Dict[str, str] = {}
        for line in output.splitlines():
            object_id, _, ref = line.partition("\t")
            if ref.startswith("refs/heads/"):
                heads[ref[len("refs/heads/") :]] = object_id.strip()
        return heads

    def _is_in_branch_history(
        self,
        remote_location: str,
        revision: str,
        deadline: float,
        timeout: float,
        cancel_event: Optional[threading.Event],
    ) -> bool:
        with tempfile.TemporaryDirectory(
            prefix="submodule-guard-", dir=self.work_dir
        ) as scratch:
            scratch_dir = Path(scratch)
            self._run(
                ["git", "init", "--bare", "--quiet", "."],
                remote_location,
                self._remaining(deadline, timeout, remote_location),
                scratch_dir,
                cancel_event,
            )
            self._run(
                [
                    "git",
                    "fetch",
                    "--quiet",
                    "--no-tags",
                    "--filter=blob:none",
                    remote_location,
                    "+refs/heads/*:refs/heads/*",
                ],
                remote_location,
                self._remaining(deadline, timeout, remote_location),
                scratch_dir,
                cancel_event,
            )
            history = self._run(
                ["git", "rev-list", "--branches"],
                remote_location,
                self._remaining(deadline, timeout, remote_location),
                scratch_dir,
                cancel_event,
                env=NO_LAZY_FETCH_ENV,
            )

        reachable = revision in history.split()
        if not reachable:
            logger.debug(
                f"{revision[:7]} is not in the branch history of {remote_location}"
            )
        return reachable

    @staticmethod
    def _remaining(deadline: float, timeout: float, remote_location: str) -> float:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise ProbeTimeoutError(
                f"Timed out after {timeout:g}s probing {remote_location}",
                remote_location=remote_location,
            )
        return remaining

    def _run(
        self,
        cmd: List[str],
        remote_location: str,
        timeout: float,
        cwd: Path,
        cancel_event: Optional[threading.Event],
        env: Optional[Dict[str, str]] = None,
    ) -> str:
        kwargs = {"env": env} if env else {}
        try:
            result = run_git_command(
                cmd, cwd=cwd, timeout=timeout, cancel_event=cancel_event, **kwargs
            )
        except GitCommandCancelled as e:
            raise ProbeCancelledError(
                f"Probe of {remote_location} was cancelled",
                remote_location=remote_location,
            ) from e
        except subprocess.TimeoutExpired as e:
            raise ProbeTimeoutError(
                f"Timed out after {timeout:g}s probing {remote_location}",
                remote_location=remote_location,
            ) from e
        except FileNotFoundError as e:
            raise NetworkError(
                "git executable not found", remote_location=remote_location
            ) from e
        except subprocess.CalledProcessError as e:
            stderr = _stderr_of(e)
            lowered = stderr.lower()
            if any(m in lowered for m in AUTH_FAILURE_MARKERS):
                raise AuthError(
                    f"Authentication failed for {remote_location}: {_last_line(stderr)}",
                    remote_location=remote_location,
                    user_guidance="Check credentials or SSH keys for this remote.",
                ) from e
            raise NetworkError(
                f"git {cmd[1]} failed for {remote_location}: "
                f"{_last_line(stderr) or f'exit code {e.returncode}'}",
                remote_location=remote_location,
                user_guidance="Check network access to this remote and retry.",
            ) from e
        return result.stdout
