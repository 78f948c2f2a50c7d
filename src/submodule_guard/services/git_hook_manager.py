"""
Git hook manager for the pre-push submodule gate.

Installs a marked section into the superproject's ``pre-push`` hook that runs
``submodule-guard pre-push``. The section goes directly below the shebang so
it runs before any ``exit`` in existing hook content; existing content is
preserved and only our section is removed on uninstall.
"""

import logging
from pathlib import Path
from typing import Optional

from ..utils.git_runner import get_git_dir

logger = logging.getLogger(__name__)

HOOK_NAME = "pre-push"
SECTION_BEGIN = "# >>> Submodule Guard Pre-Push Check >>>"
SECTION_END = "# <<< Submodule Guard Pre-Push Check <<<"
DEFAULT_SHEBANG = "#!/bin/sh"


class GitHookManager:
    """Manages the pre-push hook of a superproject."""

    def __init__(self, repo_path: Path, command: str = "submodule-guard"):
        """
        Args:
            repo_path: Path to the superproject work tree
            command: Executable the hook invokes
        """
        self.repo_path = Path(repo_path)
        self.command = command
        self._hooks_dir: Optional[Path] = None

    @property
    def hooks_dir(self) -> Path:
        if self._hooks_dir is None:
            git_dir = get_git_dir(self.repo_path)
            if git_dir is None:
                raise ValueError(f"Not a git repository: {self.repo_path}")
            self._hooks_dir = git_dir / "hooks"
        return self._hooks_dir

    @property
    def hook_file(self) -> Path:
        return self.hooks_dir / HOOK_NAME

    def is_installed(self) -> bool:
        hook_file = self.hook_file
        return hook_file.exists() and SECTION_BEGIN in hook_file.read_text()

    def install(self) -> bool:
        """Install the pre-push section.

        Returns:
            True if the hook was changed, False if it was already installed
        """
        hook_file = self.hook_file
        hook_file.parent.mkdir(parents=True, exist_ok=True)

        if hook_file.exists():
            existing_content = hook_file.read_text()
            if SECTION_BEGIN in existing_content:
                return False
            new_content = self._insert_section(existing_content)
        else:
            new_content = DEFAULT_SHEBANG + "\n\n" + self._generate_hook_content()

        hook_file.write_text(new_content)
        hook_file.chmod(0o755)
        logger.info(f"Installed pre-push submodule check in {hook_file}")
        return True

    def _insert_section(self, existing_content: str) -> str:
        """Place our section directly below the shebang of an existing hook."""
        first_line, _, rest = existing_content.partition("\n")
        if first_line.startswith("#!"):
            shebang, body = first_line, rest
        else:
            logger.warning(
                f"{self.hook_file} has no shebang; adding {DEFAULT_SHEBANG} above the check"
            )
            shebang, body = DEFAULT_SHEBANG, existing_content
        body = body.lstrip("\n")
        return f"{shebang}\n\n{self._generate_hook_content()}\n{body}"

    def _generate_hook_content(self) -> str:
        # git writes the pushed refs to stdin once; keep a copy so hook content
        # after our section can still read them
        return f"""{SECTION_BEGIN}
# Blocks the push when a pinned submodule revision is missing from its remote.
# Set SUBMODULE_GUARD_OVERRIDE=1 to push anyway (the report is still shown).
guard_refs=$(mktemp)
cat > "$guard_refs"
{self.command} pre-push "$@" < "$guard_refs"
guard_status=$?
exec < "$guard_refs"
rm -f "$guard_refs"
if [ $guard_status -ne 0 ]; then
    exit $guard_status
fi
{SECTION_END}
"""

    def remove(self) -> bool:
        """Remove our section from the pre-push hook.

        Returns:
            True if the hook was changed
        """
        hook_file = self.hook_file
        if not hook_file.exists():
            return False

        content = hook_file.read_text()
        if SECTION_BEGIN not in content:
            return False

        kept_lines = []
        skipping = False
        for line in content.split("\n"):
            if line.strip() == SECTION_BEGIN:
                skipping = True
                continue
            if skipping and line.strip() == SECTION_END:
                skipping = False
                continue
            if not skipping:
                kept_lines.append(line)

        new_content = "\n".join(kept_lines).strip()
        if new_content in ("", "#!/bin/sh", "#!/bin/bash"):
            hook_file.unlink()
        else:
            hook_file.write_text(new_content + "\n")
        logger.info(f"Removed pre-push submodule check from {hook_file}")
        return True
