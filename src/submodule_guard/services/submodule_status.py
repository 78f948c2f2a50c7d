"""
Local state of submodule work trees for the ``list`` command.

Everything here is read from the submodules checked out under the
superproject; remotes are only contacted when an upstream fetch is requested.
Submodules that were never initialised are reported as such.
"""

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from ..models import SubmoduleRecord
from ..utils.git_runner import run_git_command

logger = logging.getLogger(__name__)

UP_TO_DATE = "✓ Up to date"
NOT_INITIALIZED = "Not initialized"
NOT_AT_PINNED = "Not at referenced commit"


@dataclass
class PinnedCommitInfo:
    """Log details of the pinned commit as seen in the submodule."""

    subject: str
    relative_date: str
    author: str


@dataclass
class WorkTreeStatus:
    """Checked-out state of one submodule compared to its pinned revision."""

    path: str
    pinned_revision: str
    initialized: bool
    pinned_commit: Optional[PinnedCommitInfo] = None
    head: Optional[str] = None
    current_branch: Optional[str] = None  # None when HEAD is detached
    modified: bool = False
    ahead: Optional[int] = None  # None without an upstream
    behind: Optional[int] = None

    @property
    def at_pinned_revision(self) -> bool:
        return self.head == self.pinned_revision

    @property
    def detached(self) -> bool:
        return self.initialized and self.current_branch is None

    def status_parts(self) -> List[str]:
        if not self.initialized:
            return [NOT_INITIALIZED]
        parts = []
        if self.modified:
            parts.append("Modified")
        if not self.at_pinned_revision:
            parts.append(NOT_AT_PINNED)
        if self.behind:
            parts.append(f"{self.behind} behind remote")
        if self.ahead:
            parts.append(f"{self.ahead} ahead of remote")
        return parts or [UP_TO_DATE]


def summarize(statuses: List[WorkTreeStatus]) -> List[str]:
    """Closing summary lines for a submodule listing."""
    initialized = [s for s in statuses if s.initialized]
    modified = sum(1 for s in initialized if s.modified)
    not_at_pinned = sum(1 for s in initialized if not s.at_pinned_revision)
    behind = sum(1 for s in initialized if s.behind)
    uninitialized = len(statuses) - len(initialized)

    lines = []
    if modified:
        lines.append(f"{modified} submodule(s) have uncommitted changes")
    if not_at_pinned:
        lines.append(f"{not_at_pinned} submodule(s) not at referenced commit")
    if behind:
        lines.append(f"{behind} submodule(s) behind remote")
    if uninitialized:
        lines.append(f"{uninitialized} submodule(s) not initialized")
    return lines


class SubmoduleInspector:
    """Reads the work tree state of submodules below a superproject."""

    def __init__(self, repo_root: Path, fetch: bool = False, timeout: float = 30.0):
        """
        Args:
            repo_root: Superproject work tree
            fetch: Fetch each submodule's upstream before counting ahead/behind
            timeout: Seconds allowed per git command
        """
        self.repo_root = Path(repo_root)
        self.fetch = fetch
        self.timeout = timeout

    def inspect(self, record: SubmoduleRecord) -> WorkTreeStatus:
        work_tree = self.repo_root / record.path
        if not self._is_initialized(work_tree):
            return WorkTreeStatus(
                path=record.path,
                pinned_revision=record.pinned_revision,
                initialized=False,
            )

        ahead, behind = self._upstream_counts(work_tree)
        status = self._git(work_tree, ["status", "--porcelain"])
        return WorkTreeStatus(
            path=record.path,
            pinned_revision=record.pinned_revision,
            initialized=True,
            pinned_commit=self._pinned_commit(work_tree, record.pinned_revision),
            head=self._git(work_tree, ["rev-parse", "HEAD"]),
            current_branch=self._git(work_tree, ["symbolic-ref", "--short", "-q", "HEAD"]),
            modified=bool(status),
            ahead=ahead,
            behind=behind,
        )

    def _is_initialized(self, work_tree: Path) -> bool:
        if not work_tree.is_dir():
            return False
        top_level = self._git(work_tree, ["rev-parse", "--show-toplevel"])
        return top_level is not None and Path(top_level).resolve() == work_tree.resolve()

    def _pinned_commit(
        self, work_tree: Path, revision: str
    ) -> Optional[PinnedCommitInfo]:
        output = self._git(work_tree, ["log", "-1", "--format=%s%x00%cr%x00%an", revision])
        if output is None:
            return None
        subject, _, rest = output.partition("\0")
        relative_date, _, author = rest.partition("\0")
        return PinnedCommitInfo(subject, relative_date, author)

    def _upstream_counts(self, work_tree: Path):
        upstream = self._git(
            work_tree, ["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}"]
        )
        if upstream is None:
            return None, None
        if self.fetch and self._git(work_tree, ["fetch", "--quiet"]) is None:
            logger.warning(f"Could not fetch upstream of {work_tree}; counts may be stale")

        counts = self._git(work_tree, ["rev-list", "--left-right", "--count", "HEAD...@{u}"])
        if counts is None:
            return None, None
        ahead, _, behind = counts.partition("\t")
        return int(ahead), int(behind)

    def _git(self, work_tree: Path, args: List[str]) -> Optional[str]:
        """Run git in a submodule; None when the command fails."""
        try:
            result = run_git_command(
                ["git"] + args, cwd=work_tree, check=False, timeout=self.timeout
            )
        except (subprocess.TimeoutExpired, FileNotFoundError) as e:
            logger.warning(f"git {args[0]} in {work_tree} failed: {e}")
            return None
        if result.returncode != 0:
            return None
        return result.stdout.strip()
