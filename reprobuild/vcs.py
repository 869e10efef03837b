"""
vcs.py

Responsibility: derive the build identity from the source checkout.

A clean git checkout yields its full and short revision. A dirty worktree (or
no git metadata at all) yields no revision, and the version falls back to
`<prefix>-dirty`.
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path

import structlog

log = structlog.get_logger(__name__)

SHORT_REV_LEN = 7


@dataclass(frozen=True)
class Revision:
    rev: str | None = None

    @property
    def short_rev(self) -> str | None:
        return self.rev[:SHORT_REV_LEN] if self.rev else None

    def version(self, prefix: str) -> str:
        return f"{prefix}-{self.short_rev or 'dirty'}"

    @property
    def identity(self) -> str:
        return self.rev or ""


def _git(args: list[str], *, cwd: Path) -> str | None:
    try:
        proc = subprocess.run(
            ["git", *args],
            cwd=str(cwd),
            check=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            text=True,
        )
    except (OSError, subprocess.CalledProcessError):
        return None
    return proc.stdout


def source_revision(root: str | Path) -> Revision:
    root = Path(root)
    head = _git(["rev-parse", "HEAD"], cwd=root)
    if not head:
        log.debug("no_git_revision", root=str(root))
        return Revision()
    status = _git(["status", "--porcelain", "--untracked-files=no"], cwd=root)
    if status is None or status.strip():
        log.info("worktree_dirty", root=str(root))
        return Revision()
    return Revision(rev=head.strip())
