"""Unit tests for the submodule-guard command line interface."""

import json
from unittest.mock import Mock, patch

import click
import click.testing
import pytest
from rich.console import Console

from submodule_guard.cli import DurationParamType, cli, read_pushed_revisions
from submodule_guard.errors import ConfigurationError
from submodule_guard.services.submodule_status import PinnedCommitInfo, WorkTreeStatus
from tests.conftest import SHA_A, SHA_B, FakeManifestSource, FakeReachabilityBackend, make_source, remote_for


@pytest.fixture
def guard_environment(tmp_path, scenario_a):
    """Patch git access so the CLI runs against scenario A."""
    source, backend = scenario_a
    with patch(
        "submodule_guard.cli.get_repository_root", return_value=tmp_path
    ), patch(
        "submodule_guard.cli.GitManifestSource", return_value=source
    ) as source_cls, patch(
        "submodule_guard.cli.GitReachabilityBackend", return_value=backend
    ):
        yield {"tmp_path": tmp_path, "source_cls": source_cls}


def invoke(tmp_path, args, **kwargs):
    runner = click.testing.CliRunner()
    return runner.invoke(cli, ["--path", str(tmp_path)] + args, **kwargs)


class TestScenarioC:
    """Local override versus strict CI policy on the same input."""

    def test_local_gate_with_override_passes_but_lists_unpushed(self, guard_environment):
        result = invoke(guard_environment["tmp_path"], ["check", "--override"])

        assert result.exit_code == 0
        assert "UNPUSHED" in result.stdout
        assert "B" in result.stdout
        assert "OVERRIDE ACTIVE" in result.output

    def test_override_from_environment(self, guard_environment):
        result = invoke(
            guard_environment["tmp_path"],
            ["check"],
            env={"SUBMODULE_GUARD_OVERRIDE": "1"},
        )

        assert result.exit_code == 0
        assert "OVERRIDE ACTIVE" in result.output

    def test_ci_gate_ignores_override(self, guard_environment):
        result = invoke(guard_environment["tmp_path"], ["check", "--gate", "ci", "--override"])

        assert result.exit_code == 1
        assert "ignored" in result.output

    def test_local_gate_without_override_fails(self, guard_environment):
        result = invoke(guard_environment["tmp_path"], ["check"])

        assert result.exit_code == 1
        assert "push `B` to its remote before retrying" in result.output

    def test_both_gates_print_identical_reports(self, guard_environment):
        tmp_path = guard_environment["tmp_path"]

        local = invoke(tmp_path, ["check", "--override"])
        ci = invoke(tmp_path, ["check", "--gate", "ci"])

        assert local.stdout == ci.stdout


class TestCheckCommand:
    def test_json_output(self, guard_environment):
        result = invoke(guard_environment["tmp_path"], ["check", "--output", "json"])

        payload = json.loads(result.stdout)
        assert payload["overallStatus"] == "Fail"
        assert [r["path"] for r in payload["records"]] == ["A", "B", "C"]
        assert [r["status"] for r in payload["records"]] == [
            "Synced",
            "Unpushed",
            "Indeterminate",
        ]

    def test_probe_flags_reach_the_checker(self, guard_environment):
        with patch("submodule_guard.cli.check_submodules") as check_mock:
            check_mock.side_effect = RuntimeError("stop")
            invoke(
                guard_environment["tmp_path"],
                ["check", "--timeout", "500ms", "--concurrency", "3", "--batch-timeout", "2m"],
            )

        probe_config = check_mock.call_args[0][2]
        assert probe_config.timeout == 0.5
        assert probe_config.concurrency == 3
        assert probe_config.batch_timeout == 120.0

    def test_treeish_is_forwarded(self, guard_environment):
        invoke(guard_environment["tmp_path"], ["check", "--treeish", "release"])

        assert guard_environment["source_cls"].call_args.kwargs["treeish"] == "release"

    def test_invalid_duration_is_a_usage_error(self, guard_environment):
        result = invoke(guard_environment["tmp_path"], ["check", "--timeout", "soon"])

        assert result.exit_code == 2
        assert "not a valid duration" in result.output


class TestIndeterminateEscalation:
    @pytest.fixture
    def uncertain_environment(self, tmp_path):
        from submodule_guard.errors import NetworkError

        source = make_source({"A": SHA_A})
        backend = FakeReachabilityBackend({remote_for("A"): NetworkError("unreachable")})
        with patch(
            "submodule_guard.cli.get_repository_root", return_value=tmp_path
        ), patch("submodule_guard.cli.GitManifestSource", return_value=source), patch(
            "submodule_guard.cli.GitReachabilityBackend", return_value=backend
        ):
            yield tmp_path

    def test_local_default_is_advisory(self, uncertain_environment):
        assert invoke(uncertain_environment, ["check"]).exit_code == 0

    def test_ci_default_blocks(self, uncertain_environment):
        assert invoke(uncertain_environment, ["check", "--gate", "ci"]).exit_code == 2

    def test_flag_overrides_config(self, uncertain_environment):
        result = invoke(
            uncertain_environment, ["check", "--block-on-indeterminate", "true"]
        )

        assert result.exit_code == 2

    def test_config_file_sets_ci_policy(self, uncertain_environment):
        config_dir = uncertain_environment / ".submodule-guard"
        config_dir.mkdir()
        (config_dir / "config.json").write_text(
            json.dumps({"ci": {"block_on_indeterminate": False}})
        )

        result = invoke(uncertain_environment, ["check", "--gate", "ci"])

        assert result.exit_code == 0


class TestConfigurationErrors:
    def test_malformed_manifest_exits_with_3(self, tmp_path):
        source = Mock()
        source.gitmodules_entries.side_effect = ConfigurationError("broken .gitmodules")
        with patch("submodule_guard.cli.get_repository_root", return_value=tmp_path), patch(
            "submodule_guard.cli.GitManifestSource", return_value=source
        ), patch("submodule_guard.cli.GitReachabilityBackend"):
            result = invoke(tmp_path, ["check"])

        assert result.exit_code == 3
        assert "broken .gitmodules" in result.output

    def test_invalid_config_file_exits_with_3(self, tmp_path):
        config_file = tmp_path / "guard.json"
        config_file.write_text(json.dumps({"probe": {"concurrency": 0}}))
        with patch("submodule_guard.cli.get_repository_root", return_value=tmp_path):
            result = click.testing.CliRunner().invoke(
                cli, ["--path", str(tmp_path), "--config", str(config_file), "check"]
            )

        assert result.exit_code == 3
        assert "Invalid config" in result.output


class TestPrePushCommand:
    def test_checks_each_pushed_commit(self, guard_environment):
        sha1 = "1" * 40
        sha2 = "2" * 40
        stdin = (
            f"refs/heads/main {sha1} refs/heads/main {'0' * 40}\n"
            f"refs/heads/old {'0' * 40} refs/heads/old {sha2}\n"
            f"refs/heads/topic {sha2} refs/heads/topic {sha1}\n"
        )

        result = invoke(
            guard_environment["tmp_path"],
            ["pre-push", "origin", "git@example.com:org/super.git"],
            input=stdin,
        )

        treeishes = [
            call.kwargs["treeish"] for call in guard_environment["source_cls"].call_args_list
        ]
        assert treeishes == [sha1, sha2]
        assert result.exit_code == 1

    def test_defaults_to_head_without_stdin(self, guard_environment):
        invoke(guard_environment["tmp_path"], ["pre-push"], input="")

        assert guard_environment["source_cls"].call_args.kwargs["treeish"] == "HEAD"

    def test_override_allows_push(self, guard_environment):
        result = invoke(
            guard_environment["tmp_path"],
            ["pre-push"],
            input="",
            env={"SUBMODULE_GUARD_OVERRIDE": "true"},
        )

        assert result.exit_code == 0
        assert "UNPUSHED" in result.stdout


class TestListCommand:
    @pytest.fixture(autouse=True)
    def wide_console(self):
        with patch("submodule_guard.cli.stdout_console", Console(width=250)):
            yield

    def test_lists_manifest(self, tmp_path):
        source = FakeManifestSource(
            {"api": {"path": "services/api", "url": "https://h/org/api.git", "branch": "main"}},
            {"services/api": SHA_A},
        )
        with patch("submodule_guard.cli.get_repository_root", return_value=tmp_path), patch(
            "submodule_guard.cli.GitManifestSource", return_value=source
        ):
            result = invoke(tmp_path, ["list"])

        assert result.exit_code == 0
        assert "services/api" in result.output
        assert SHA_A[:7] in result.output
        assert "Not initialized" in result.output
        assert "1 submodule(s) not initialized" in result.output

    def test_shows_work_tree_state(self, tmp_path):
        source = FakeManifestSource(
            {"api": {"path": "services/api", "url": "https://h/org/api.git"}},
            {"services/api": SHA_A},
        )
        status = WorkTreeStatus(
            path="services/api",
            pinned_revision=SHA_A,
            initialized=True,
            pinned_commit=PinnedCommitInfo("Add retries", "3 days ago", "Dana"),
            head=SHA_B,
            current_branch=None,
            modified=True,
            ahead=0,
            behind=2,
        )
        inspector = Mock()
        inspector.inspect.return_value = status
        with patch("submodule_guard.cli.get_repository_root", return_value=tmp_path), patch(
            "submodule_guard.cli.GitManifestSource", return_value=source
        ), patch("submodule_guard.cli.SubmoduleInspector", return_value=inspector) as cls:
            result = invoke(tmp_path, ["list", "--fetch"])

        assert result.exit_code == 0
        assert cls.call_args.kwargs["fetch"] is True
        assert "Add retries" in result.output
        assert "3 days ago by Dana" in result.output
        assert f"detached HEAD ({SHA_B[:8]})" in result.output
        assert "Modified, Not at referenced commit, 2 behind remote" in result.output
        assert "1 submodule(s) have uncommitted changes" in result.output
        assert "1 submodule(s) not at referenced commit" in result.output
        assert "1 submodule(s) behind remote" in result.output

    def test_empty_manifest(self, tmp_path):
        with patch("submodule_guard.cli.get_repository_root", return_value=tmp_path), patch(
            "submodule_guard.cli.GitManifestSource", return_value=FakeManifestSource({}, {})
        ):
            result = invoke(tmp_path, ["list"])

        assert "No submodules found." in result.output


def test_read_pushed_revisions_ignores_malformed_lines():
    assert read_pushed_revisions(["", "garbage", f"a {SHA_A} b c"]) == [SHA_A]


@pytest.mark.parametrize(
    "value, seconds",
    [("30", 30.0), ("2.5", 2.5), ("500ms", 0.5), ("45s", 45.0), ("1.5m", 90.0), (10, 10.0)],
)
def test_duration_param_type(value, seconds):
    assert DurationParamType().convert(value, None, None) == seconds


@pytest.mark.parametrize("value", ["0", "-1s", "ten", "5h"])
def test_duration_param_type_rejects(value):
    with pytest.raises(click.BadParameter):
        DurationParamType().convert(value, None, None)
