"""
Submodule Guard - referential-integrity checks for git superprojects.

Verifies that every submodule revision pinned by a superproject is reachable
on the submodule's own remote, and enforces the verdict both as a local
pre-push gate and as a CI pipeline stage.
"""

__version__ = "1.2.0"
