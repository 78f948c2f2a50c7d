"""
Manifest reader for superproject submodules.

Combines the ``.gitmodules`` entries (path, url, branch) with the gitlink
entries of a superproject tree (path -> pinned revision) into a path-sorted
list of SubmoduleRecord objects. The git-backed source reads committed state
only, so the same tree always yields the same manifest.
"""

import logging
import re
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Protocol
from urllib.parse import urlsplit

from ..errors import ConfigurationError
from ..models import SubmoduleRecord
from ..utils.git_runner import run_git_command

logger = logging.getLogger(__name__)

GITLINK_MODE = "160000"
REMOTE_SCHEMES = {"https", "http", "ssh", "git", "file", "git+ssh", "ssh+git"}

_REVISION_RE = re.compile(r"^[0-9a-f]{40}(?:[0-9a-f]{24})?$")
_SCP_LIKE_RE = re.compile(r"^(?:[\w.\-]+@)?[\w.\-]+:(?!//)\S+$")


class ManifestSource(Protocol):
    """Supplies the raw superproject state a manifest is built from."""

    def gitmodules_entries(self) -> List[str]:
        """Return ``submodule.<name>.<key>=<value>`` lines from .gitmodules."""
        ...

    def pinned_revisions(self) -> Dict[str, str]:
        """Return the gitlink path -> pinned object id mapping of the tree."""
        ...

    def superproject_url(self) -> Optional[str]:
        """Return the superproject remote URL, if one is configured."""
        ...


class GitManifestSource:
    """Reads manifest state from a git repository at a given tree-ish."""

    def __init__(
        self,
        repo_dir: Path,
        treeish: str = "HEAD",
        remote_name: str = "origin",
        timeout: float = 30.0,
    ):
        self.repo_dir = Path(repo_dir)
        self.treeish = treeish
        self.remote_name = remote_name
        self.timeout = timeout

    def _git(self, args: List[str], check: bool = True) -> subprocess.CompletedProcess:
        try:
            return run_git_command(
                ["git"] + args, cwd=self.repo_dir, check=check, timeout=self.timeout
            )
        except subprocess.CalledProcessError as e:
            raise ConfigurationError(
                f"git {' '.join(args)} failed in {self.repo_dir}: "
                f"{(e.stderr or '').strip() or e.returncode}",
                user_guidance="Run the check from inside the superproject work tree.",
            ) from e
        except (subprocess.TimeoutExpired, FileNotFoundError) as e:
            raise ConfigurationError(
                f"Could not read superproject state in {self.repo_dir}: {e}"
            ) from e

    def gitmodules_entries(self) -> List[str]:
        blob = f"{self.treeish}:.gitmodules"
        exists = self._git(["cat-file", "-e", blob], check=False)
        if exists.returncode != 0:
            logger.debug(f"No .gitmodules in {self.treeish}; manifest is empty")
            return []
        result = self._git(["config", "--blob", blob, "--list"])
        return [line for line in result.stdout.splitlines() if line.strip()]

    def pinned_revisions(self) -> Dict[str, str]:
        result = self._git(["ls-tree", "-r", "-z", self.treeish])
        return parse_ls_tree(result.stdout)

    def superproject_url(self) -> Optional[str]:
        result = self._git(
            ["config", "--get", f"remote.{self.remote_name}.url"], check=False
        )
        url = result.stdout.strip()
        return url or None


def parse_gitmodules_config(lines: List[str]) -> Dict[str, Dict[str, str]]:
    """
    Group ``submodule.<name>.<key>=<value>`` lines by submodule name.

    Submodule names may contain dots; the key is always the last segment.

    Raises:
        ConfigurationError: If a line is not a ``key=value`` pair
    """
    modules: Dict[str, Dict[str, str]] = {}
    for line in lines:
        key, sep, value = line.partition("=")
        if not sep:
            raise ConfigurationError(f"Malformed .gitmodules entry: {line!r}")
        section, _, rest = key.partition(".")
        name, dot, variable = rest.rpartition(".")
        if section.lower() != "submodule":
            logger.debug(f"Ignoring non-submodule .gitmodules entry: {key}")
            continue
        if not dot or not name or not variable:
            raise ConfigurationError(f"Malformed .gitmodules key: {key!r}")
        modules.setdefault(name, {})[variable.lower()] = value
    return modules


def parse_ls_tree(output: str) -> Dict[str, str]:
    """Extract gitlink entries from ``git ls-tree`` output (NUL or newline separated)."""
    separator = "\0" if "\0" in output else "\n"
    pins: Dict[str, str] = {}
    for entry in output.split(separator):
        if not entry.strip():
            continue
        meta, tab, path = entry.partition("\t")
        parts = meta.split()
        if not tab or len(parts) != 3:
            raise ConfigurationError(f"Unexpected ls-tree entry: {entry!r}")
        mode, _object_type, object_id = parts
        if mode == GITLINK_MODE:
            pins[path] = object_id
    return pins


def resolve_relative_url(base: Optional[str], relative: str) -> str:
    """
    Resolve a ``./`` or ``../`` submodule URL against the superproject URL.

    Follows git's convention: each ``../`` removes one trailing path component
    of the superproject URL, where ``:`` also separates components in
    scp-like URLs.
    """
    if not base:
        raise ConfigurationError(
            f"Relative submodule URL {relative!r} needs a superproject remote",
            user_guidance="Configure the superproject remote or use absolute submodule URLs.",
        )

    url = base.rstrip("/")
    rest = relative
    separator = "/"
    while True:
        if rest.startswith("./"):
            rest = rest[2:]
        elif rest.startswith("../"):
            rest = rest[3:]
            cut = max(url.rfind("/"), url.rfind(":"))
            if cut <= 0 or url[:cut].endswith((":", "/")):
                raise ConfigurationError(
                    f"Relative submodule URL {relative!r} escapes {base!r}"
                )
            separator = url[cut]
            url = url[:cut]
        else:
            break
    return f"{url}{separator}{rest}" if rest else url


def is_well_formed_remote(location: str) -> bool:
    """Check that a remote location is a URL, scp-like address or absolute path."""
    if not location or any(ch.isspace() for ch in location):
        return False
    if "://" in location:
        parts = urlsplit(location)
        if parts.scheme.lower() not in REMOTE_SCHEMES:
            return False
        if parts.scheme.lower() == "file":
            return bool(parts.path)
        return bool(parts.netloc) and bool(parts.path.strip("/"))
    if Path(location).is_absolute():
        return True
    return bool(_SCP_LIKE_RE.match(location))


class ManifestReader:
    """Builds validated SubmoduleRecords from a ManifestSource."""

    def __init__(self, source: ManifestSource):
        self.source = source

    def read(self) -> List[SubmoduleRecord]:
        """
        Read the manifest.

        Returns:
            SubmoduleRecords sorted by path

        Raises:
            ConfigurationError: On malformed entries, duplicate paths, bad
                remote locations, bad revisions or unmapped gitlinks
        """
        modules = parse_gitmodules_config(self.source.gitmodules_entries())
        pins = self.source.pinned_revisions()
        superproject_url: Optional[str] = None
        superproject_url_loaded = False

        records: Dict[str, SubmoduleRecord] = {}
        for name, settings in modules.items():
            path = settings.get("path", "").strip().rstrip("/")
            url = settings.get("url", "").strip()
            if not path:
                raise ConfigurationError(f"Submodule {name!r} has no path")
            if not url:
                raise ConfigurationError(f"Submodule {name!r} ({path}) has no url")
            if path in records:
                raise ConfigurationError(
                    f"Submodule path {path!r} is declared more than once"
                )

            if url.startswith(("./", "../")):
                if not superproject_url_loaded:
                    superproject_url = self.source.superproject_url()
                    superproject_url_loaded = True
                url = resolve_relative_url(superproject_url, url)
            if not is_well_formed_remote(url):
                raise ConfigurationError(
                    f"Submodule {path!r} has a malformed remote location: {url!r}"
                )

            revision = pins.get(path)
            if revision is None:
                logger.warning(
                    f"Submodule {path!r} is declared in .gitmodules but not "
                    f"recorded in the tree; skipping"
                )
                continue
            if not _REVISION_RE.match(revision):
                raise ConfigurationError(
                    f"Submodule {path!r} pins an invalid revision: {revision!r}"
                )

            branch = settings.get("branch", "").strip() or None
            records[path] = SubmoduleRecord(
                path=path,
                remote_location=url,
                pinned_revision=revision,
                branch_hint=branch,
                name=name,
            )

        unmapped = sorted(set(pins) - set(records))
        if unmapped:
            raise ConfigurationError(
                f"Gitlinks without a .gitmodules entry: {', '.join(unmapped)}",
                user_guidance="Add the missing submodules to .gitmodules or remove the gitlinks.",
            )

        return [records[path] for path in sorted(records)]
