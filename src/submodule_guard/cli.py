"""Command line interface for Submodule Guard."""

import logging
import re
import sys
from pathlib import Path
from typing import List, Optional

import click
from rich.console import Console
from rich.table import Table
from rich.text import Text

from . import __version__
from .config import ConfigManager, GuardConfig, ProbeConfig
from .errors import ConfigurationError
from .gates import (
    EXIT_CONFIGURATION_ERROR,
    OVERRIDE_ENV_VAR,
    CIGate,
    EnforcementGate,
    LocalPushGate,
    worst_exit_code,
)
from .services.consistency_checker import check_submodules
from .services.git_backend import GitReachabilityBackend
from .services.git_hook_manager import GitHookManager
from .services.manifest_reader import GitManifestSource, ManifestReader
from .services.report_builder import render_json, render_text
from .services.submodule_status import SubmoduleInspector, WorkTreeStatus, summarize
from .utils.exception_logger import ExceptionLogger
from .utils.git_runner import get_repository_root

logger = logging.getLogger(__name__)

# Reports go to stdout through click.echo; everything else goes to stderr
console = Console(stderr=True)
stdout_console = Console()

ZERO_OID_RE = re.compile(r"^0+$")


class DurationParamType(click.ParamType):
    """Duration in seconds: ``30``, ``2.5``, ``500ms``, ``30s`` or ``2m``."""

    name = "duration"
    _PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m)?\s*$")
    _UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, None: 1.0}

    def convert(self, value, param, ctx):
        if isinstance(value, (int, float)):
            seconds = float(value)
        else:
            match = self._PATTERN.match(str(value))
            if not match:
                self.fail(f"{value!r} is not a valid duration", param, ctx)
            seconds = float(match.group(1)) * self._UNITS[match.group(2)]
        if seconds <= 0:
            self.fail(f"{value!r} must be greater than zero", param, ctx)
        return seconds


DURATION = DurationParamType()


def _print_message(message: str, style: str) -> None:
    console.print(message, style=style, markup=False, highlight=False, soft_wrap=True)


def _show_configuration_error(error: ConfigurationError) -> None:
    _print_message(f"❌ Configuration error: {error}", "red")
    if error.user_guidance:
        _print_message(f"   {error.user_guidance}", "yellow")


def _load_config(ctx: click.Context) -> GuardConfig:
    config_manager: ConfigManager = ctx.obj["config_manager"]
    try:
        config = config_manager.get_config()
    except ConfigurationError as e:
        _show_configuration_error(e)
        sys.exit(EXIT_CONFIGURATION_ERROR)

    if config.error_log_dir is not None:
        exception_logger = ExceptionLogger.initialize(config.error_log_dir)
        exception_logger.install_thread_exception_hook()
    return config


def _apply_probe_overrides(
    config: GuardConfig,
    timeout: Optional[float],
    batch_timeout: Optional[float],
    concurrency: Optional[int],
) -> ProbeConfig:
    updates = {}
    if timeout is not None:
        updates["timeout"] = timeout
    if batch_timeout is not None:
        updates["batch_timeout"] = batch_timeout
    if concurrency is not None:
        updates["concurrency"] = concurrency
    return config.probe.model_copy(update=updates)


def _run_gate(
    ctx: click.Context,
    gate: EnforcementGate,
    treeishes: List[str],
    output: str,
    config: GuardConfig,
    probe_config: ProbeConfig,
) -> int:
    repo_root: Path = ctx.obj["repo_root"]
    backend = GitReachabilityBackend()
    exit_codes: List[int] = []

    for treeish in treeishes:
        if len(treeishes) > 1:
            _print_message(f"Checking submodules of {treeish}", "dim")
        source = GitManifestSource(
            repo_root,
            treeish=treeish,
            remote_name=config.remote_name,
            timeout=probe_config.timeout,
        )
        try:
            report = check_submodules(source, backend, probe_config)
        except ConfigurationError as e:
            _show_configuration_error(e)
            exit_codes.append(EXIT_CONFIGURATION_ERROR)
            continue

        rendered = render_json(report) if output == "json" else render_text(report)
        click.echo(rendered, nl=False)

        decision = gate.decide(report)
        style = "red" if decision.blocked else "yellow"
        for message in decision.messages:
            _print_message(message, style)
        exit_codes.append(decision.exit_code)

    return worst_exit_code(exit_codes)


def read_pushed_revisions(lines: List[str]) -> List[str]:
    """
    Extract pushed commits from git's pre-push stdin.

    Each line is ``<local ref> <local sha> <remote ref> <remote sha>``; ref
    deletions (all-zero local sha) are skipped and duplicates collapsed.
    """
    revisions: List[str] = []
    for line in lines:
        parts = line.split()
        if len(parts) != 4:
            continue
        local_sha = parts[1]
        if ZERO_OID_RE.match(local_sha) or local_sha in revisions:
            continue
        revisions.append(local_sha)
    return revisions


@click.group(invoke_without_command=True)
@click.option(
    "--path",
    "-p",
    type=click.Path(exists=True, file_okay=False),
    help="Superproject directory (default: current directory)",
)
@click.option(
    "--config",
    "-c",
    type=click.Path(dir_okay=False),
    help="Path to config file (default: .submodule-guard/config.json)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(version=__version__, prog_name="submodule-guard")
@click.pass_context
def cli(ctx, path: Optional[str], config: Optional[str], verbose: bool):
    """Verify that pinned submodule revisions exist on their remotes.

    \b
    EXIT CODES:
      0  pass (or failure downgraded by an explicit local override)
      1  at least one pinned revision is missing from its remote
      2  a remote could not be verified and --block-on-indeterminate is set
      3  the submodule manifest or configuration is invalid

    \b
    EXAMPLES:
      submodule-guard check                      # local policy, text report
      submodule-guard check --gate ci --output json
      submodule-guard install-hook               # run automatically on git push
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s:%(name)s:%(message)s",
    )

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        return

    start_dir = Path(path).resolve() if path else Path.cwd()
    repo_root = get_repository_root(start_dir) or start_dir
    ctx.obj["repo_root"] = repo_root
    if config:
        ctx.obj["config_manager"] = ConfigManager(Path(config))
    else:
        ctx.obj["config_manager"] = ConfigManager.create_with_backtrack(repo_root)

    if verbose:
        _print_message(f"📁 Superproject: {repo_root}", "dim")


def _probe_options(func):
    func = click.option(
        "--concurrency",
        type=click.IntRange(min=1),
        help="Number of remotes probed in parallel (default: 8)",
    )(func)
    func = click.option(
        "--batch-timeout",
        type=DURATION,
        help="Timeout for all probes together (default: 120s)",
    )(func)
    func = click.option(
        "--timeout",
        type=DURATION,
        help="Per-probe timeout, e.g. 30, 30s, 1.5m, 500ms (default: 30s)",
    )(func)
    return func


@cli.command()
@click.option(
    "--gate",
    type=click.Choice(["local", "ci"]),
    default="local",
    show_default=True,
    help="Enforcement policy applied to the verdict",
)
@_probe_options
@click.option(
    "--block-on-indeterminate",
    type=click.BOOL,
    default=None,
    help="Exit with code 2 when a remote cannot be verified "
    "(default: false locally, true in CI; see config)",
)
@click.option(
    "--output",
    type=click.Choice(["text", "json"]),
    default="text",
    show_default=True,
    help="Report format written to stdout",
)
@click.option(
    "--override",
    is_flag=True,
    envvar=OVERRIDE_ENV_VAR,
    help=f"Local gate only: report failures as warnings (also {OVERRIDE_ENV_VAR}=1)",
)
@click.option(
    "--treeish",
    default="HEAD",
    show_default=True,
    help="Superproject commit whose pinned revisions are checked",
)
@click.pass_context
def check(
    ctx,
    gate: str,
    timeout: Optional[float],
    batch_timeout: Optional[float],
    concurrency: Optional[int],
    block_on_indeterminate: Optional[bool],
    output: str,
    override: bool,
    treeish: str,
):
    """Check every pinned submodule revision against its remote."""
    config = _load_config(ctx)
    probe_config = _apply_probe_overrides(config, timeout, batch_timeout, concurrency)

    enforcement: EnforcementGate
    if gate == "ci":
        block = (
            config.ci.block_on_indeterminate
            if block_on_indeterminate is None
            else block_on_indeterminate
        )
        enforcement = CIGate(block_on_indeterminate=block, override_requested=override)
    else:
        block = (
            config.local.block_on_indeterminate
            if block_on_indeterminate is None
            else block_on_indeterminate
        )
        enforcement = LocalPushGate(block_on_indeterminate=block, override=override)

    sys.exit(_run_gate(ctx, enforcement, [treeish], output, config, probe_config))


@cli.command("pre-push")
@click.argument("remote", required=False)
@click.argument("url", required=False)
@_probe_options
@click.option(
    "--override",
    is_flag=True,
    envvar=OVERRIDE_ENV_VAR,
    help=f"Push anyway, reporting failures as warnings (also {OVERRIDE_ENV_VAR}=1)",
)
@click.pass_context
def pre_push(
    ctx,
    remote: Optional[str],
    url: Optional[str],
    timeout: Optional[float],
    batch_timeout: Optional[float],
    concurrency: Optional[int],
    override: bool,
):
    """Git pre-push hook entry point (local gate).

    Reads the refs being pushed from stdin and checks the submodules of every
    pushed commit. Without stdin input, HEAD is checked.
    """
    config = _load_config(ctx)
    probe_config = _apply_probe_overrides(config, timeout, batch_timeout, concurrency)

    if sys.stdin is None or sys.stdin.isatty():
        lines = []
    else:
        lines = sys.stdin.read().splitlines()
    treeishes = read_pushed_revisions(lines) or ["HEAD"]
    logger.debug(f"pre-push to {remote or '?'} ({url or '?'}): {treeishes}")

    gate = LocalPushGate(
        block_on_indeterminate=config.local.block_on_indeterminate,
        override=override,
    )
    sys.exit(_run_gate(ctx, gate, treeishes, "text", config, probe_config))


@cli.command("list")
@click.option(
    "--treeish",
    default="HEAD",
    show_default=True,
    help="Superproject commit to read",
)
@click.option(
    "--fetch",
    is_flag=True,
    help="Fetch each submodule's upstream before counting ahead/behind",
)
@click.pass_context
def list_submodules(ctx, treeish: str, fetch: bool):
    """Show the submodules pinned by the superproject and their work trees."""
    config = _load_config(ctx)
    repo_root: Path = ctx.obj["repo_root"]
    source = GitManifestSource(repo_root, treeish=treeish, remote_name=config.remote_name)
    try:
        records = ManifestReader(source).read()
    except ConfigurationError as e:
        _show_configuration_error(e)
        sys.exit(EXIT_CONFIGURATION_ERROR)

    if not records:
        stdout_console.print("No submodules found.", style="yellow")
        return

    inspector = SubmoduleInspector(repo_root, fetch=fetch, timeout=config.probe.timeout)
    statuses = [inspector.inspect(record) for record in records]

    table = Table(title=f"Submodules at {treeish}")
    table.add_column("Path", style="green")
    table.add_column("Pinned", style="yellow")
    table.add_column("Commit")
    table.add_column("Branch", style="cyan")
    table.add_column("Checked out", style="cyan")
    table.add_column("Status")
    table.add_column("Remote")
    for record, status in zip(records, statuses):
        table.add_row(
            record.path,
            record.short_revision,
            Text(_describe_pinned_commit(status)),
            record.branch_hint or "-",
            _describe_checkout(status),
            ", ".join(status.status_parts()),
            Text(record.remote_location),
        )
    stdout_console.print(table)

    summary = summarize(statuses)
    if summary:
        stdout_console.print("Summary:", style="yellow", highlight=False)
        for line in summary:
            stdout_console.print(f"  - {line}", highlight=False)
    else:
        stdout_console.print("All submodules are up to date ✓", style="green")


def _describe_pinned_commit(status: WorkTreeStatus) -> str:
    if not status.initialized:
        return "-"
    info = status.pinned_commit
    if info is None:
        return "(commit not found in submodule)"
    return f"{info.subject}\n{info.relative_date} by {info.author}"


def _describe_checkout(status: WorkTreeStatus) -> str:
    if not status.initialized:
        return "-"
    if status.detached:
        return f"detached HEAD ({(status.head or '')[:8]})"
    return status.current_branch or "-"


@cli.command("install-hook")
@click.pass_context
def install_hook(ctx):
    """Install the pre-push hook in the superproject."""
    manager = GitHookManager(ctx.obj["repo_root"])
    try:
        changed = manager.install()
    except ValueError as e:
        _print_message(f"❌ {e}", "red")
        sys.exit(1)
    if changed:
        _print_message(f"✅ Pre-push check installed in {manager.hook_file}", "green")
    else:
        _print_message("Pre-push check already installed", "dim")


@cli.command("remove-hook")
@click.pass_context
def remove_hook(ctx):
    """Remove the pre-push hook section from the superproject."""
    manager = GitHookManager(ctx.obj["repo_root"])
    try:
        changed = manager.remove()
    except ValueError as e:
        _print_message(f"❌ {e}", "red")
        sys.exit(1)
    if changed:
        _print_message(f"✅ Pre-push check removed from {manager.hook_file}", "green")
    else:
        _print_message("Pre-push check was not installed", "dim")


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
