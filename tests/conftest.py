"""
Shared pytest fixtures for Submodule Guard tests.

Provides a scriptable reachability backend and manifest source so the check
pipeline can be exercised without touching real remotes.
"""

import os
import shutil
import subprocess
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

import pytest

from submodule_guard.errors import ProbeCancelledError, ProbeError, ProbeTimeoutError
from submodule_guard.models import ReachabilityAnswer, SubmoduleRecord
from submodule_guard.utils.exception_logger import ExceptionLogger

FIXED_TIME = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)

SHA_A = "a" * 40
SHA_B = "b" * 40
SHA_C = "c" * 40

Outcome = Union[bool, ProbeError, Callable[[float], ReachabilityAnswer]]


class FakeReachabilityBackend:
    """Backend returning scripted outcomes per remote location.

    An outcome is ``True``/``False`` (remote answered), a ProbeError instance
    (raised), or a callable receiving the timeout.
    """

    def __init__(
        self,
        outcomes: Dict[str, Outcome],
        branch_tips: Optional[Dict[str, List[str]]] = None,
        delays: Optional[Dict[str, float]] = None,
    ):
        self.outcomes = outcomes
        self.branch_tips = branch_tips or {}
        self.delays = delays or {}
        self.calls: List[str] = []
        self._lock = threading.Condition()
        self.max_in_flight = 0
        self._in_flight = 0

    def is_revision_reachable(
        self, remote_location, revision, timeout, branch_hint=None, cancel_event=None
    ):
        with self._lock:
            self.calls.append(remote_location)
            self._in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self._in_flight)
        try:
            delay = self.delays.get(remote_location, 0.0)
            if delay:
                if cancel_event is None:
                    time.sleep(delay)
                elif cancel_event.wait(delay):
                    raise ProbeCancelledError(f"cancelled probing {remote_location}")
            outcome = self.outcomes[remote_location]
            if isinstance(outcome, ProbeError):
                raise outcome
            if callable(outcome):
                return outcome(timeout)
            return ReachabilityAnswer(
                reachable=outcome,
                branch_tips=frozenset(self.branch_tips.get(remote_location, ["main"])),
            )
        finally:
            with self._lock:
                self._in_flight -= 1
                self._lock.notify_all()

    def wait_until_idle(self, timeout: float) -> bool:
        """Wait until no call is in flight; False if calls are still running."""
        with self._lock:
            return self._lock.wait_for(lambda: self._in_flight == 0, timeout)


class FakeManifestSource:
    """ManifestSource built from plain dictionaries."""

    def __init__(
        self,
        modules: Dict[str, Dict[str, str]],
        pins: Dict[str, str],
        superproject_url: Optional[str] = "https://git.example.com/org/super.git",
    ):
        self.modules = modules
        self.pins = pins
        self._superproject_url = superproject_url

    def gitmodules_entries(self) -> List[str]:
        lines = []
        for name, settings in self.modules.items():
            for key, value in settings.items():
                lines.append(f"submodule.{name}.{key}={value}")
        return lines

    def pinned_revisions(self) -> Dict[str, str]:
        return dict(self.pins)

    def superproject_url(self) -> Optional[str]:
        return self._superproject_url


def remote_for(path: str) -> str:
    return f"https://git.example.com/org/{path.replace('/', '-')}.git"


def make_record(path: str, revision: str = SHA_A, branch: Optional[str] = None) -> SubmoduleRecord:
    return SubmoduleRecord(
        path=path,
        remote_location=remote_for(path),
        pinned_revision=revision,
        branch_hint=branch,
        name=path,
    )


def make_source(paths_to_revisions: Dict[str, str]) -> FakeManifestSource:
    modules = {
        path: {"path": path, "url": remote_for(path)} for path in paths_to_revisions
    }
    return FakeManifestSource(modules, dict(paths_to_revisions))


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_TIME


@pytest.fixture
def scenario_a():
    """A is pushed, B is missing on its remote, C times out."""
    source = make_source({"A": SHA_A, "B": SHA_B, "C": SHA_C})
    backend = FakeReachabilityBackend(
        {
            remote_for("A"): True,
            remote_for("B"): False,
            remote_for("C"): ProbeTimeoutError(
                "Timed out after 5s probing C", remote_location=remote_for("C")
            ),
        }
    )
    return source, backend


@pytest.fixture(autouse=True)
def reset_exception_logger():
    ExceptionLogger.reset()
    yield
    ExceptionLogger.reset()


requires_git = pytest.mark.skipif(
    shutil.which("git") is None, reason="git executable not available"
)


def git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
        text=True,
        env={
            "GIT_AUTHOR_NAME": "Test",
            "GIT_AUTHOR_EMAIL": "test@example.com",
            "GIT_COMMITTER_NAME": "Test",
            "GIT_COMMITTER_EMAIL": "test@example.com",
            "GIT_CONFIG_NOSYSTEM": "1",
            "HOME": str(cwd),
            "PATH": os.environ.get("PATH", ""),
        },
    )
    return result.stdout.strip()
