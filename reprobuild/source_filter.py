"""
source_filter.py

Responsibility: decide which files of the source tree enter the build sandbox.

Rules:
- A path is made relative by stripping `<root>/` exactly once.
- A path is excluded if any pattern *fully* matches it (`re.fullmatch`, never a
  substring search). With no patterns every path is kept.
- Ancestor directories are tested in their `dir/` form, so a pattern such as
  `^target/` prunes the whole `target` subtree.
- Walks and digests visit files in sorted relative-path order.

This module never mutates the source tree.
"""

from __future__ import annotations

import hashlib
import os
import re
import shutil
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path

import structlog

log = structlog.get_logger(__name__)

KeepFn = Callable[..., bool]


@dataclass(frozen=True)
class SourceTree:
    """A root directory plus the ordered exclusion patterns applied to it."""

    root: Path
    patterns: tuple[str, ...] = field(default_factory=tuple)


def _relative(root: str | os.PathLike[str], path: str | os.PathLike[str]) -> str:
    prefix = os.fspath(root).rstrip("/") + "/"
    p = os.fspath(path)
    return p[len(prefix) :] if p.startswith(prefix) else p


def _candidates(rel: str, entry_type: str) -> list[str]:
    """The relative path itself plus the `dir/` form of every enclosing directory."""
    parts = rel.split("/")
    out = ["/".join(parts[:i]) + "/" for i in range(1, len(parts))]
    out.append(rel)
    if entry_type == "directory" and not rel.endswith("/"):
        out.append(rel + "/")
    return out


def make_filter(root: str | os.PathLike[str], patterns: Iterable[str]) -> KeepFn:
    """
    Return `keep(path, entry_type="regular") -> bool` for the given root and patterns.

    Patterns are compiled once; the returned predicate is pure.
    """
    compiled = tuple(re.compile(p) for p in patterns)

    def keep(path: str | os.PathLike[str], entry_type: str = "regular") -> bool:
        if not compiled:
            return True
        rel = _relative(root, path)
        return not any(rx.fullmatch(c) for c in _candidates(rel, entry_type) for rx in compiled)

    return keep


def iter_source_files(tree: SourceTree) -> list[Path]:
    """
    Return all kept files under the tree root, in deterministic lexicographic order
    (relative path ordering). Excluded directories are not descended into.
    """
    root = Path(tree.root).resolve()
    keep = make_filter(root, tree.patterns)
    files: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dir_path = Path(dirpath)
        # os.walk lists symlinks to directories as dirnames without following them.
        linked = [d for d in dirnames if (dir_path / d).is_symlink()]
        dirnames[:] = sorted(d for d in dirnames if d not in linked and keep(dir_path / d, "directory"))
        for name in linked:
            if keep(dir_path / name, "symlink"):
                files.append(dir_path / name)
        for name in filenames:
            candidate = dir_path / name
            entry_type = "symlink" if candidate.is_symlink() else "regular"
            if keep(candidate, entry_type):
                files.append(candidate)
    files.sort(key=lambda p: p.relative_to(root).as_posix())
    return files


def source_digest(tree: SourceTree) -> str:
    """sha256 over the relative paths and contents of every kept file."""
    root = Path(tree.root).resolve()
    h = hashlib.sha256()
    for path in iter_source_files(tree):
        rel = path.relative_to(root).as_posix()
        h.update(rel.encode("utf-8") + b"\0")
        if path.is_symlink():
            h.update(b"L" + os.readlink(path).encode("utf-8"))
        else:
            h.update(b"F" + path.read_bytes())
        h.update(b"\0")
    return h.hexdigest()


def stage_source_tree(tree: SourceTree, destination_dir: str | Path) -> int:
    """
    Copy the kept files of `tree` into `destination_dir`.

    Returns the number of files staged. File permissions are copied from the source.
    """
    root = Path(tree.root).resolve()
    dst_root = Path(destination_dir)
    count = 0
    for src_path in iter_source_files(tree):
        dst_path = dst_root / src_path.relative_to(root)
        dst_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src_path, dst_path, follow_symlinks=False)
        count += 1
    log.debug("source_staged", root=str(root), destination=str(dst_root), files=count)
    return count
