"""
Centralized Git command runner.

Runs git with an environment that tolerates "dubious ownership" (hooks and CI
jobs frequently run as a different user than the repository owner) and that
never prompts for credentials, so an unauthenticated remote fails fast
instead of blocking a probe until its timeout.

Failures and timeouts are recorded through the ExceptionLogger when one has
been initialized.
"""

import os
import subprocess
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional

# Seconds between cancel-event checks while a cancellable command runs
CANCEL_POLL_INTERVAL = 0.1


def get_git_environment(project_dir: Path) -> Dict[str, str]:
    """
    Get environment variables for non-interactive git commands.

    Args:
        project_dir: Path to the repository the command runs in

    Returns:
        Dictionary of environment variables for git commands
    """
    env = os.environ.copy()

    # Fail instead of prompting for usernames, passwords or host keys
    env["GIT_TERMINAL_PROMPT"] = "0"
    env.setdefault("GIT_SSH_COMMAND", "ssh -o BatchMode=yes")

    # safe.directory goes in slot 0; caller-provided GIT_CONFIG_* entries shift up
    env["GIT_CONFIG_KEY_0"] = "safe.directory"
    env["GIT_CONFIG_VALUE_0"] = str(project_dir.resolve())

    config_count = 1
    for key in os.environ:
        if key.startswith("GIT_CONFIG_KEY_"):
            idx = key.replace("GIT_CONFIG_KEY_", "")
            if idx.isdigit():
                new_idx = int(idx) + 1
                env[f"GIT_CONFIG_KEY_{new_idx}"] = os.environ[key]
                if f"GIT_CONFIG_VALUE_{idx}" in os.environ:
                    env[f"GIT_CONFIG_VALUE_{new_idx}"] = os.environ[
                        f"GIT_CONFIG_VALUE_{idx}"
                    ]
                config_count = max(config_count, new_idx + 1)

    env["GIT_CONFIG_COUNT"] = str(config_count)
    return env


class GitCommandCancelled(Exception):
    """A git command was killed because its cancel event was set."""

    def __init__(self, cmd: List[str]):
        super().__init__(f"Git command cancelled: {' '.join(cmd)}")
        self.cmd = cmd


def run_git_command(
    cmd: List[str],
    cwd: Path,
    check: bool = True,
    timeout: Optional[float] = None,
    cancel_event: Optional[threading.Event] = None,
    **kwargs,
) -> subprocess.CompletedProcess:
    """
    Run a git command with captured text output.

    Args:
        cmd: Git command as a list (e.g., ["git", "status"])
        cwd: Working directory for the command
        check: Whether to raise CalledProcessError on non-zero exit
        timeout: Optional timeout in seconds
        cancel_event: When given, the process is killed as soon as it is set
        **kwargs: Additional arguments to pass to subprocess.run

    Returns:
        CompletedProcess instance with the command result

    Raises:
        subprocess.CalledProcessError: If check=True and command fails
        subprocess.TimeoutExpired: If timeout is exceeded
        GitCommandCancelled: If cancel_event was set before the command finished
    """
    if not cmd or cmd[0] != "git":
        raise ValueError("Command must start with 'git'")

    env = get_git_environment(cwd)
    if "env" in kwargs:
        env.update(kwargs.pop("env"))

    try:
        if cancel_event is not None:
            return _run_cancellable(cmd, cwd, check, timeout, cancel_event, env)
        return subprocess.run(
            cmd,
            cwd=cwd,
            check=check,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=env,
            **kwargs,
        )
    except subprocess.CalledProcessError as e:
        _log_git_failure(e, cmd, cwd)
        raise
    except subprocess.TimeoutExpired as e:
        _log_git_timeout(e, cmd, cwd, timeout)
        raise


def _run_cancellable(
    cmd: List[str],
    cwd: Path,
    check: bool,
    timeout: Optional[float],
    cancel_event: threading.Event,
    env: Dict[str, str],
) -> subprocess.CompletedProcess:
    """Run git through Popen, polling the cancel event while it runs."""
    if cancel_event.is_set():
        raise GitCommandCancelled(cmd)

    deadline = time.monotonic() + timeout if timeout is not None else None
    process = subprocess.Popen(
        cmd,
        cwd=cwd,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        env=env,
    )
    while True:
        try:
            stdout, stderr = process.communicate(timeout=CANCEL_POLL_INTERVAL)
            break
        except subprocess.TimeoutExpired:
            if cancel_event.is_set():
                process.kill()
                process.communicate()
                raise GitCommandCancelled(cmd)
            if deadline is not None and time.monotonic() >= deadline:
                process.kill()
                process.communicate()
                raise subprocess.TimeoutExpired(cmd, timeout)

    if check and process.returncode != 0:
        raise subprocess.CalledProcessError(
            process.returncode, cmd, output=stdout, stderr=stderr
        )
    return subprocess.CompletedProcess(cmd, process.returncode, stdout, stderr)


def _log_git_failure(
    exception: subprocess.CalledProcessError,
    cmd: List[str],
    cwd: Path,
) -> None:
    """Log a git command failure with full context."""
    from .exception_logger import ExceptionLogger

    logger = ExceptionLogger.get_instance()
    if logger:
        context = {
            "git_command": " ".join(cmd),
            "cwd": str(cwd),
            "returncode": exception.returncode,
            "stdout": getattr(exception, "stdout", ""),
            "stderr": getattr(exception, "stderr", ""),
        }
        logger.log_exception(
            Exception(f"Git command failed: {' '.join(cmd)}"), context=context
        )


def _log_git_timeout(
    exception: subprocess.TimeoutExpired,
    cmd: List[str],
    cwd: Path,
    timeout: Optional[float],
) -> None:
    """Log a git command timeout with full context."""
    from .exception_logger import ExceptionLogger

    logger = ExceptionLogger.get_instance()
    if logger:
        context = {
            "git_command": " ".join(cmd),
            "cwd": str(cwd),
            "timeout": timeout,
        }
        logger.log_exception(
            Exception(f"Git command timeout: {' '.join(cmd)}"), context=context
        )


def get_repository_root(project_dir: Path) -> Optional[Path]:
    """
    Get the top-level directory of the work tree containing project_dir.

    Returns:
        Repository root or None if project_dir is not inside a git work tree
    """
    try:
        result = run_git_command(
            ["git", "rev-parse", "--show-toplevel"], cwd=project_dir
        )
        return Path(result.stdout.strip())
    except (subprocess.CalledProcessError, FileNotFoundError):
        return None


def get_git_dir(project_dir: Path) -> Optional[Path]:
    """Get the absolute path of the repository's git directory."""
    try:
        result = run_git_command(
            ["git", "rev-parse", "--absolute-git-dir"], cwd=project_dir
        )
        return Path(result.stdout.strip())
    except (subprocess.CalledProcessError, FileNotFoundError):
        return None
