"""Unit tests for GitHookManager."""

import os
import shutil
import subprocess
from unittest.mock import patch

import pytest

from submodule_guard.services.git_hook_manager import (
    SECTION_BEGIN,
    SECTION_END,
    GitHookManager,
)


@pytest.fixture
def git_dir(tmp_path):
    git_dir = tmp_path / ".git"
    (git_dir / "hooks").mkdir(parents=True)
    with patch(
        "submodule_guard.services.git_hook_manager.get_git_dir", return_value=git_dir
    ):
        yield git_dir


@pytest.fixture
def manager(tmp_path, git_dir):
    return GitHookManager(tmp_path)


def test_install_creates_executable_hook(manager, git_dir):
    assert manager.install() is True

    hook = git_dir / "hooks" / "pre-push"
    content = hook.read_text()
    assert content.startswith("#!/bin/sh\n")
    assert 'submodule-guard pre-push "$@"' in content
    assert os.access(hook, os.X_OK)
    assert manager.is_installed()


def test_install_is_idempotent(manager):
    manager.install()

    assert manager.install() is False
    assert manager.hook_file.read_text().count(SECTION_BEGIN) == 1


def test_install_runs_before_existing_hook_content(manager, git_dir):
    hook = git_dir / "hooks" / "pre-push"
    hook.write_text("#!/bin/bash\necho existing\nexit 0\n")

    manager.install()

    content = hook.read_text()
    assert content.startswith("#!/bin/bash\n")
    assert content.index(SECTION_END) < content.index("echo existing")
    assert content.index(SECTION_END) < content.index("exit 0")


def test_install_into_hook_without_shebang(manager, git_dir):
    hook = git_dir / "hooks" / "pre-push"
    hook.write_text("echo existing\n")

    manager.install()

    content = hook.read_text()
    assert content.startswith("#!/bin/sh\n")
    assert content.index(SECTION_END) < content.index("echo existing")


@pytest.mark.skipif(shutil.which("sh") is None, reason="requires a POSIX shell")
def test_existing_hook_still_reads_pushed_refs(tmp_path, git_dir):
    refs = "refs/heads/main abc refs/heads/main def\n"
    guard = tmp_path / "fake-guard"
    guard.write_text(f'#!/bin/sh\ncat > "{tmp_path}/guard-input"\nexit 0\n')
    guard.chmod(0o755)
    hook = git_dir / "hooks" / "pre-push"
    hook.write_text(f'#!/bin/sh\ncat > "{tmp_path}/hook-input"\nexit 0\n')

    GitHookManager(tmp_path, command=str(guard)).install()
    result = subprocess.run(
        ["sh", str(hook), "origin", "git@example.com:org/super.git"],
        input=refs,
        text=True,
        capture_output=True,
    )

    assert result.returncode == 0
    assert (tmp_path / "guard-input").read_text() == refs
    assert (tmp_path / "hook-input").read_text() == refs


@pytest.mark.skipif(shutil.which("sh") is None, reason="requires a POSIX shell")
def test_failing_check_stops_existing_hook(tmp_path, git_dir):
    guard = tmp_path / "fake-guard"
    guard.write_text("#!/bin/sh\nexit 1\n")
    guard.chmod(0o755)
    hook = git_dir / "hooks" / "pre-push"
    hook.write_text(f'#!/bin/sh\ntouch "{tmp_path}/existing-ran"\nexit 0\n')

    GitHookManager(tmp_path, command=str(guard)).install()
    result = subprocess.run(["sh", str(hook)], input="", text=True, capture_output=True)

    assert result.returncode == 1
    assert not (tmp_path / "existing-ran").exists()


def test_remove_keeps_foreign_content(manager, git_dir):
    hook = git_dir / "hooks" / "pre-push"
    hook.write_text("#!/bin/sh\necho existing\n")
    manager.install()

    assert manager.remove() is True

    content = hook.read_text()
    assert "echo existing" in content
    assert SECTION_BEGIN not in content
    assert SECTION_END not in content


def test_remove_deletes_hook_we_created(manager):
    manager.install()

    assert manager.remove() is True
    assert not manager.hook_file.exists()


def test_remove_without_hook(manager):
    assert manager.remove() is False
    assert not manager.is_installed()


def test_custom_command(tmp_path, git_dir):
    GitHookManager(tmp_path, command="/opt/bin/submodule-guard").install()

    assert '/opt/bin/submodule-guard pre-push "$@"' in (
        git_dir / "hooks" / "pre-push"
    ).read_text()


def test_not_a_repository(tmp_path):
    with patch(
        "submodule_guard.services.git_hook_manager.get_git_dir", return_value=None
    ):
        with pytest.raises(ValueError, match="Not a git repository"):
            GitHookManager(tmp_path).install()
