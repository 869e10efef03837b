"""
descriptor.py

Responsibility: assemble one platform's hermetic build task.

`assemble_descriptor` is a pure function of (filtered source, package set, lock,
revision, project settings). The resulting `BuildDescriptor` serializes to
canonical JSON, so identical inputs give byte-identical descriptors and the
same digest. The digest names the output directory in the store.
"""

from __future__ import annotations

import hashlib
import json
import posixpath
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from reprobuild.artifacts import ArtifactPlan
from reprobuild.config import Project
from reprobuild.errors import MissingDependencyError
from reprobuild.lockfile import LockFile, verify_lock
from reprobuild.packages import Package, PackageSet
from reprobuild.platforms import OsFamily, Platform
from reprobuild.renderer import render_hook
from reprobuild.source_filter import SourceTree, source_digest
from reprobuild.vcs import Revision

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class BuildDescriptor:
    pname: str
    version: str
    system: str
    bin_name: str
    source_digest: str
    lock_digest: str
    features: tuple[str, ...]
    build_flags: tuple[str, ...]
    use_nextest: bool
    toolchain: tuple[Package, ...]
    native_build_inputs: tuple[Package, ...]
    build_inputs: tuple[Package, ...]
    env: dict[str, str]
    pre_check_env: dict[str, str]
    hooks: dict[str, str]
    build_command: tuple[str, ...]
    test_command: tuple[str, ...]
    install_from: str
    artifacts: ArtifactPlan
    passthrough_env: tuple[str, ...] = ()
    # Where to stage the source from; identity is carried by source_digest.
    source: SourceTree | None = field(default=None, compare=False)

    @property
    def name(self) -> str:
        return f"{self.pname}-{self.version}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "pname": self.pname,
            "version": self.version,
            "system": self.system,
            "bin": self.bin_name,
            "source": self.source_digest,
            "lock": self.lock_digest,
            "features": list(self.features),
            "build_flags": list(self.build_flags),
            "use_nextest": self.use_nextest,
            "toolchain": [p.to_dict() for p in self.toolchain],
            "native_build_inputs": [p.to_dict() for p in self.native_build_inputs],
            "build_inputs": [p.to_dict() for p in self.build_inputs],
            "env": dict(self.env),
            "pre_check_env": dict(self.pre_check_env),
            "hooks": dict(self.hooks),
            "build_command": list(self.build_command),
            "test_command": list(self.test_command),
            "install_from": self.install_from,
            "artifacts": self.artifacts.to_dict(),
            "passthrough_env": list(self.passthrough_env),
        }

    def to_json(self) -> bytes:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":")).encode("utf-8")

    def digest(self) -> str:
        return hashlib.sha256(self.to_json()).hexdigest()

    @property
    def out_name(self) -> str:
        return f"{self.digest()[:32]}-{self.name}"

    # The mapping fields are dicts; hash the canonical form instead.
    def __hash__(self) -> int:
        return hash(self.to_json())


def assemble_dependencies(base: Sequence[str], darwin_extras: Sequence[str], platform: Platform) -> tuple[str, ...]:
    """
    The platform-independent list, with the Darwin-only list appended on Darwin-like systems.
    """
    if platform.family is OsFamily.DARWIN_LIKE:
        return (*base, *darwin_extras)
    return tuple(base)


def default_build_command(features: Sequence[str], build_flags: Sequence[str]) -> tuple[str, ...]:
    cmd = ["cargo", "build", "--release", "--locked"]
    if features:
        cmd += ["--features", ",".join(features)]
    return (*cmd, *build_flags)


def default_test_command(features: Sequence[str], use_nextest: bool) -> tuple[str, ...]:
    cmd = ["cargo", "nextest", "run"] if use_nextest else ["cargo", "test"]
    cmd += ["--release", "--locked"]
    if features:
        cmd += ["--features", ",".join(features)]
    return tuple(cmd)


def _resolve(pkgs: PackageSet, names: Sequence[str]) -> tuple[Package, ...]:
    resolved: list[Package] = []
    for name in names:
        if name not in pkgs:
            raise MissingDependencyError(name, pkgs.platform.system)
        resolved.append(pkgs[name])
    return tuple(resolved)


def assemble_descriptor(
    project: Project,
    source: SourceTree,
    pkgs: PackageSet,
    lock: LockFile,
    revision: Revision,
    *,
    source_hash: str | None = None,
) -> BuildDescriptor:
    """
    Build the descriptor for `pkgs.platform`.

    Raises IntegrityError when the lock disagrees with the project's dependency
    declarations, and MissingDependencyError when a required package is absent
    from `pkgs`. Both are checked before anything is built.
    """
    platform = pkgs.platform
    verify_lock(lock, project.dependencies)

    toolchain = _resolve(pkgs, project.toolchain.components)
    native = _resolve(pkgs, project.native_build_inputs)
    build_inputs = _resolve(
        pkgs, assemble_dependencies(project.build_inputs, project.darwin_build_inputs, platform)
    )

    env = dict(project.env)
    env[project.identity_env] = revision.identity

    plan = project.artifacts
    hooks = {
        "pre_check": render_hook("exports", {"env": project.pre_check_env}),
        "post_install": render_hook(
            "post_install",
            {
                "bin": plan.bin_name,
                "man_command": list(plan.man_command),
                "man_path": plan.man_path,
                "man_dir": posixpath.dirname(plan.man_path),
                "completion_command": list(plan.completion_command),
                "completions": [
                    {"shell": s, "path": plan.completion_path(s), "dir": posixpath.dirname(plan.completion_path(s))}
                    for s in plan.shells
                ],
            },
        ),
    }

    descriptor = BuildDescriptor(
        pname=project.name,
        version=revision.version(project.version_prefix),
        system=platform.system,
        bin_name=project.bin_name,
        source_digest=source_hash if source_hash is not None else source_digest(source),
        lock_digest=lock.digest(),
        features=project.features,
        build_flags=project.cargo_build_flags,
        use_nextest=project.use_nextest,
        toolchain=toolchain,
        native_build_inputs=native,
        build_inputs=build_inputs,
        env=dict(sorted(env.items())),
        pre_check_env=dict(project.pre_check_env),
        hooks=hooks,
        build_command=project.build_command or default_build_command(project.features, project.cargo_build_flags),
        test_command=project.test_command or default_test_command(project.features, project.use_nextest),
        install_from=project.install_from or f"target/release/{project.bin_name}",
        artifacts=plan,
        passthrough_env=project.passthrough_env,
        source=source,
    )
    log.debug("descriptor_assembled", system=platform.system, name=descriptor.name, digest=descriptor.digest())
    return descriptor
