"""
outputs.py

Responsibility: compose the per-system outputs exposed to the invoker.

For every system of the matrix:
- packages.<system>.<name> and packages.<system>.default (same descriptor)
- apps.<system>.default  -> {"type": "app", "program": <out>/bin/<bin>}
- formatter.<system>     -> the formatter package
- devShells.<system>.default

plus a system-independent `overlays.default` that binds the built package into
any package set. Everything is evaluated lazily and memoized per system; only
what is asked for must resolve.
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from functools import cached_property
from pathlib import Path
from typing import Any

import structlog

from reprobuild.config import Project
from reprobuild.descriptor import BuildDescriptor, assemble_descriptor
from reprobuild.devshell import DevShell, assemble_dev_shell
from reprobuild.errors import MissingDependencyError
from reprobuild.lockfile import LockFile, load_lock
from reprobuild.packages import (
    Overlay,
    Package,
    PackageSet,
    base_package_set,
    compose,
    toolchain_overlay,
)
from reprobuild.platforms import Platform, each_system
from reprobuild.source_filter import SourceTree, source_digest
from reprobuild.vcs import Revision, source_revision

log = structlog.get_logger(__name__)


def default_store_dir() -> Path:
    return Path(os.environ.get("REPROBUILD_STORE") or Path.home() / ".cache" / "reprobuild" / "store")


class EvaluationInputs:
    """Platform-independent inputs, computed at most once per evaluation."""

    def __init__(self, project: Project, *, lock: LockFile | None, revision: Revision | None) -> None:
        self.project = project
        self.source = SourceTree(root=project.root, patterns=project.exclude)
        self._lock = lock
        self._revision = revision

    @cached_property
    def source_hash(self) -> str:
        digest = source_digest(self.source)
        log.debug("source_evaluated", root=str(self.project.root), digest=digest)
        return digest

    @cached_property
    def lock(self) -> LockFile:
        return self._lock if self._lock is not None else load_lock(self.project.lock_path)

    @cached_property
    def revision(self) -> Revision:
        return self._revision if self._revision is not None else source_revision(self.project.root)


class SystemOutputs:
    """Lazily evaluated outputs for one platform."""

    def __init__(
        self,
        *,
        inputs: EvaluationInputs,
        platform: Platform,
        overlays: Sequence[Overlay],
        store_dir: Path,
    ) -> None:
        self.project = inputs.project
        self.platform = platform
        self._inputs = inputs
        self._overlays = tuple(overlays)
        self._store_dir = store_dir

    @cached_property
    def pkgs(self) -> PackageSet:
        base = base_package_set(self.project.packages, self.platform)
        return compose(base, [toolchain_overlay(self.project.toolchain), *self._overlays])

    @cached_property
    def package(self) -> BuildDescriptor:
        return assemble_descriptor(
            self.project,
            self._inputs.source,
            self.pkgs,
            self._inputs.lock,
            self._inputs.revision,
            source_hash=self._inputs.source_hash,
        )

    @property
    def packages(self) -> dict[str, BuildDescriptor]:
        return {self.project.name: self.package, "default": self.package}

    def out_path(self) -> Path:
        return self._store_dir / self.package.out_name

    @property
    def app(self) -> dict[str, str]:
        return {"type": "app", "program": str(self.out_path() / "bin" / self.project.bin_name)}

    @cached_property
    def formatter(self) -> Package:
        if self.project.formatter not in self.pkgs:
            raise MissingDependencyError(self.project.formatter, self.platform.system)
        return self.pkgs[self.project.formatter]

    @cached_property
    def dev_shell(self) -> DevShell:
        return assemble_dev_shell(self.project, self.pkgs)


@dataclass(frozen=True)
class Outputs:
    project: Project
    systems: dict[str, SystemOutputs]
    store_dir: Path

    def system(self, system: str | Platform) -> SystemOutputs:
        key = system.system if isinstance(system, Platform) else system
        try:
            return self.systems[key]
        except KeyError:
            raise KeyError(f"System {key!r} is not part of the build matrix") from None

    @property
    def overlay(self) -> Overlay:
        return package_overlay(self)

    def to_dict(self) -> dict[str, Any]:
        name = self.project.name
        packages: dict[str, Any] = {}
        apps: dict[str, Any] = {}
        formatter: dict[str, Any] = {}
        dev_shells: dict[str, Any] = {}
        for system, out in self.systems.items():
            desc = out.package.to_dict()
            desc["out"] = str(out.out_path())
            packages[system] = {name: desc, "default": desc}
            apps[system] = {"default": out.app}
            formatter[system] = out.formatter.to_dict()
            dev_shells[system] = {"default": out.dev_shell.to_dict()}
        return {
            "overlays": {"default": {"binds": [name]}},
            "packages": packages,
            "apps": apps,
            "formatter": formatter,
            "devShells": dev_shells,
        }


def package_overlay(outputs: Outputs) -> Overlay:
    """An overlay that binds the project's package (as built for that set's system)."""

    def overlay(prev: PackageSet) -> PackageSet:
        out = outputs.system(prev.platform)
        desc = out.package
        return prev.extend(
            {
                outputs.project.name: Package(
                    name=outputs.project.name,
                    version=desc.version,
                    prefix=str(out.out_path()),
                )
            }
        )

    return overlay


def evaluate(
    project: Project,
    revision: Revision | None = None,
    *,
    systems: Iterable[Platform] | None = None,
    lock: LockFile | None = None,
    overlays: Sequence[Overlay] = (),
    store_dir: str | Path | None = None,
) -> Outputs:
    """
    Evaluate the project's outputs over the build matrix.

    The filtered source tree, its digest, the lock and the revision are shared by
    every system and computed at most once, on first use.
    """
    inputs = EvaluationInputs(project, lock=lock, revision=revision)
    store = Path(store_dir) if store_dir is not None else default_store_dir()
    per_system = each_system(
        lambda p: SystemOutputs(inputs=inputs, platform=p, overlays=overlays, store_dir=store),
        project.systems if systems is None else systems,
    )
    return Outputs(project=project, systems=per_system, store_dir=store)
