"""
lockfile.py

Responsibility: the pinned, content-hashed dependency lock.

Each live dependency declaration (`name`, `version`, `source`) is hashed over its
canonical JSON form. The lock records one entry per declaration together with
that hash. Builds only ever read the lock; `write_lock` exists for the explicit
`reprobuild lock` command.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from reprobuild.errors import IntegrityError

LOCK_VERSION = 1


class LockFileError(ValueError):
    pass


@dataclass(frozen=True)
class Declaration:
    """One live dependency declaration from the project file."""

    name: str
    version: str
    source: str = ""

    def canonical(self) -> bytes:
        payload = {"name": self.name, "source": self.source, "version": self.version}
        return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")


@dataclass(frozen=True)
class LockedDependency:
    name: str
    version: str
    source: str
    hash: str


@dataclass(frozen=True)
class LockFile:
    version: int = LOCK_VERSION
    dependencies: tuple[LockedDependency, ...] = field(default_factory=tuple)

    def by_name(self) -> dict[str, LockedDependency]:
        return {d.name: d for d in self.dependencies}

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "dependencies": [
                {"name": d.name, "version": d.version, "source": d.source, "hash": d.hash}
                for d in self.dependencies
            ],
        }

    def digest(self) -> str:
        blob = json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":")).encode("utf-8")
        return hashlib.sha256(blob).hexdigest()


def declaration_hash(decl: Declaration) -> str:
    return "sha256-" + hashlib.sha256(decl.canonical()).hexdigest()


def generate_lock(declarations: Mapping[str, Declaration]) -> LockFile:
    """Pin every declaration; entries are sorted by name."""
    return LockFile(
        version=LOCK_VERSION,
        dependencies=tuple(
            LockedDependency(name=d.name, version=d.version, source=d.source, hash=declaration_hash(d))
            for _, d in sorted(declarations.items())
        ),
    )


def load_lock(path: str | Path) -> LockFile:
    p = Path(path)
    if not p.exists():
        raise LockFileError(f"Lock file does not exist: {p}")
    data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise LockFileError(f"Lock file must be a mapping at the top level: {p}")

    version = data.get("version", LOCK_VERSION)
    if version != LOCK_VERSION:
        raise LockFileError(f"Unsupported lock file version {version!r} in {p}")

    raw_deps = data.get("dependencies") or []
    if not isinstance(raw_deps, list):
        raise LockFileError("`dependencies` must be a list in the lock file.")

    deps: list[LockedDependency] = []
    for entry in raw_deps:
        if not isinstance(entry, dict) or not entry.get("name") or not entry.get("hash"):
            raise LockFileError(f"Malformed lock entry in {p}: {entry!r}")
        deps.append(
            LockedDependency(
                name=str(entry["name"]),
                version=str(entry.get("version") or ""),
                source=str(entry.get("source") or ""),
                hash=str(entry["hash"]),
            )
        )
    return LockFile(version=LOCK_VERSION, dependencies=tuple(deps))


def write_lock(lock: LockFile, path: str | Path) -> None:
    text = yaml.safe_dump(lock.to_dict(), sort_keys=False, default_flow_style=False)
    Path(path).write_text(text, encoding="utf-8", newline="\n")


def verify_lock(lock: LockFile, declarations: Mapping[str, Declaration]) -> None:
    """
    Raise IntegrityError unless the lock pins exactly the live declarations.

    Every declaration must have a lock entry whose hash matches, and the lock
    must not carry entries for dependencies that are no longer declared.
    """
    locked = lock.by_name()
    problems: list[str] = []
    for name, decl in sorted(declarations.items()):
        entry = locked.get(name)
        if entry is None:
            problems.append(f"{name}: not present in lock file")
            continue
        expected = declaration_hash(decl)
        if entry.hash != expected:
            problems.append(f"{name}: lock hash {entry.hash} does not match declaration {expected}")
    for name in sorted(set(locked) - set(declarations)):
        problems.append(f"{name}: locked but no longer declared")
    if problems:
        raise IntegrityError("Lock file integrity check failed:\n" + "\n".join(problems))
