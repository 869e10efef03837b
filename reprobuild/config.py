"""
config.py

Responsibility: load and parse a project file (`reprobuild.yaml`) into a typed model.

The project file is plain YAML. Every key is optional except `name`; defaults
describe the jj CLI packaging so a minimal file only has to name the package.

The rest of the package treats the parsed `Project` as the single source of truth.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from reprobuild.artifacts import SHELLS, ArtifactPlan
from reprobuild.lockfile import Declaration
from reprobuild.packages import Package, Toolchain, catalog_from_mapping
from reprobuild.platforms import DEFAULT_SYSTEMS, Platform

DEFAULT_PROJECT_FILE = "reprobuild.yaml"
DEFAULT_LOCK_FILE = "reprobuild.lock"

DEFAULT_EXCLUDE: tuple[str, ...] = (
    r".*\.nix$",
    r"^.jj/",
    r"^flake\.lock$",
    r"^target/",
)
DEFAULT_NATIVE_BUILD_INPUTS: tuple[str, ...] = ("gzip", "installShellFiles", "makeWrapper", "pkg-config")
DEFAULT_BUILD_INPUTS: tuple[str, ...] = ("openssl", "zstd", "libgit2", "libssh2")
DEFAULT_DARWIN_BUILD_INPUTS: tuple[str, ...] = (
    "darwin.apple_sdk.frameworks.Security",
    "darwin.apple_sdk.frameworks.SystemConfiguration",
    "libiconv",
)
DEFAULT_ENV: dict[str, str] = {
    "ZSTD_SYS_USE_PKG_CONFIG": "1",
    "LIBSSH2_SYS_USE_PKG_CONFIG": "1",
    "CARGO_INCREMENTAL": "0",
}
DEFAULT_PRE_CHECK_ENV: dict[str, str] = {"RUST_BACKTRACE": "1"}
DEFAULT_PASSTHROUGH_ENV: tuple[str, ...] = ("CARGO_HOME", "RUSTUP_HOME")
DEFAULT_DEV_SHELL_PACKAGES: tuple[str, ...] = (
    "openssl",
    "zstd",
    "libgit2",
    "libssh2",
    "pkg-config",
    "rust-analyzer",
    "cargo-deny",
    "cargo-insta",
    "cargo-nextest",
    "cargo-watch",
    "poetry",
)
DEFAULT_DEV_SHELL_ENV: dict[str, str] = {
    "RUST_BACKTRACE": "1",
    "ZSTD_SYS_USE_PKG_CONFIG": "1",
    "LIBSSH2_SYS_USE_PKG_CONFIG": "1",
}


class ProjectError(ValueError):
    pass


@dataclass(frozen=True)
class DevShellSpec:
    """Tools and environment for the interactive development shell."""

    packages: tuple[str, ...] = DEFAULT_DEV_SHELL_PACKAGES
    toolchain_extensions: tuple[str, ...] = ("rust-src", "clippy")
    nightly_components: tuple[str, ...] = ("rustfmt",)
    env: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_DEV_SHELL_ENV))


@dataclass(frozen=True)
class Project:
    """Parsed project file contents."""

    name: str
    project_dir: Path
    bin_name: str = "jj"
    description: str = ""
    version_prefix: str = "unstable"
    source_root: Path | None = None
    exclude: tuple[str, ...] = DEFAULT_EXCLUDE
    lock_file: Path | None = None
    features: tuple[str, ...] = ("packaging",)
    cargo_build_flags: tuple[str, ...] = ("--bin", "jj")
    use_nextest: bool = True
    toolchain: Toolchain = field(default_factory=lambda: Toolchain(version="1.71.0"))
    systems: tuple[Platform, ...] = DEFAULT_SYSTEMS
    packages: dict[str, Package] = field(default_factory=dict)
    native_build_inputs: tuple[str, ...] = DEFAULT_NATIVE_BUILD_INPUTS
    build_inputs: tuple[str, ...] = DEFAULT_BUILD_INPUTS
    darwin_build_inputs: tuple[str, ...] = DEFAULT_DARWIN_BUILD_INPUTS
    env: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_ENV))
    identity_env: str = "NIX_JJ_GIT_HASH"
    pre_check_env: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_PRE_CHECK_ENV))
    passthrough_env: tuple[str, ...] = DEFAULT_PASSTHROUGH_ENV
    build_command: tuple[str, ...] | None = None
    test_command: tuple[str, ...] | None = None
    install_from: str | None = None
    artifacts: ArtifactPlan = field(default_factory=lambda: ArtifactPlan(bin_name="jj"))
    formatter: str = "nixpkgs-fmt"
    dependencies: dict[str, Declaration] = field(default_factory=dict)
    dev_shell: DevShellSpec = field(default_factory=DevShellSpec)

    @property
    def root(self) -> Path:
        return self.source_root if self.source_root is not None else self.project_dir

    @property
    def lock_path(self) -> Path:
        return self.lock_file if self.lock_file is not None else self.project_dir / DEFAULT_LOCK_FILE


def _mapping(data: Mapping[str, Any], key: str) -> dict[str, Any]:
    raw = data.get(key)
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ProjectError(f"`{key}` must be an object/mapping when provided.")
    return raw


def _str_list(data: Mapping[str, Any], key: str, default: tuple[str, ...]) -> tuple[str, ...]:
    if key not in data or data[key] is None:
        return default
    raw = data[key]
    if isinstance(raw, str) or not isinstance(raw, list):
        raise ProjectError(f"`{key}` must be a list when provided.")
    return tuple(str(v) for v in raw)


def _str_map(data: Mapping[str, Any], key: str, default: Mapping[str, str]) -> dict[str, str]:
    if key not in data or data[key] is None:
        return dict(default)
    raw = _mapping(data, key)
    # Deterministic ordering at the boundary; descriptors are serialized from these.
    return {str(k): "" if v is None else str(v) for k, v in sorted(raw.items(), key=lambda kv: str(kv[0]))}


def _command(data: Mapping[str, Any], key: str) -> tuple[str, ...] | None:
    raw = data.get(key)
    if raw is None:
        return None
    if not isinstance(raw, list) or not raw:
        raise ProjectError(f"`commands.{key}` must be a non-empty list of arguments.")
    return tuple(str(v) for v in raw)


def _parse_systems(data: Mapping[str, Any]) -> tuple[Platform, ...]:
    raw = _str_list(data, "systems", ())
    if not raw:
        return DEFAULT_SYSTEMS
    try:
        return tuple(Platform.parse(s) for s in raw)
    except ValueError as e:
        raise ProjectError(str(e)) from e


def _parse_dependencies(data: Mapping[str, Any]) -> dict[str, Declaration]:
    deps: dict[str, Declaration] = {}
    for name, entry in sorted(_mapping(data, "dependencies").items(), key=lambda kv: str(kv[0])):
        if isinstance(entry, (str, int, float)):
            entry = {"version": str(entry)}
        if not isinstance(entry, dict) or not entry.get("version"):
            raise ProjectError(f"Dependency {name!r} must declare a `version`.")
        deps[str(name)] = Declaration(
            name=str(name),
            version=str(entry["version"]),
            source=str(entry.get("source") or ""),
        )
    return deps


def parse_project(project_path: str | Path) -> Project:
    """
    Parse a project YAML file into a `Project`.

    Recognized top-level keys:
    - name: str (required), bin, description, version
    - source.root, source.exclude
    - lock_file, features, cargo_build_flags, use_nextest
    - toolchain.{version, channel, components, prefix}
    - systems, packages, native_build_inputs, build_inputs, darwin_build_inputs
    - env, identity_env, pre_check_env, passthrough_env
    - commands.{build, test}, install_from
    - artifacts.{man_command, completion_command, shells}
    - formatter, dependencies, dev_shell.{packages, toolchain_extensions, nightly_components, env}
    """
    path = Path(project_path)
    if path.is_dir():
        path = path / DEFAULT_PROJECT_FILE
    if not path.exists():
        raise ProjectError(f"Project file does not exist: {path}")

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ProjectError(f"Project file is not valid YAML: {path}") from e
    if not isinstance(data, dict):
        raise ProjectError("Project file must be a mapping/object at the top level.")

    name = str(data.get("name") or "").strip()
    if not name:
        raise ProjectError("Project must define `name`.")

    project_dir = path.parent.resolve()
    bin_name = str(data.get("bin") or "jj").strip()

    source = _mapping(data, "source")
    source_root = (project_dir / str(source["root"])).resolve() if source.get("root") else None
    lock_file = (project_dir / str(data["lock_file"])).resolve() if data.get("lock_file") else None

    tc = _mapping(data, "toolchain")
    toolchain = Toolchain(
        version=str(tc.get("version") or "1.71.0"),
        channel=str(tc.get("channel") or "stable"),
        components=_str_list(tc, "components", ("rustc", "cargo")),
        prefix=str(tc["prefix"]) if tc.get("prefix") else None,
    )

    try:
        catalog = catalog_from_mapping(_mapping(data, "packages"))
    except ValueError as e:
        raise ProjectError(str(e)) from e

    art = _mapping(data, "artifacts")
    shells = _str_list(art, "shells", SHELLS)
    unknown = sorted(set(shells) - set(SHELLS))
    if unknown:
        raise ProjectError(f"Unsupported completion shells: {', '.join(unknown)}")
    if shells != SHELLS:
        raise ProjectError(f"artifacts.shells must be exactly {', '.join(SHELLS)} (in that order), got {list(shells)}")
    artifacts = ArtifactPlan(
        bin_name=bin_name,
        man_command=_str_list(art, "man_command", ("util", "mangen")),
        completion_command=_str_list(art, "completion_command", ("util", "completion")),
        shells=shells,
    )

    commands = _mapping(data, "commands")

    ds = _mapping(data, "dev_shell")
    dev_shell = DevShellSpec(
        packages=_str_list(ds, "packages", DEFAULT_DEV_SHELL_PACKAGES),
        toolchain_extensions=_str_list(ds, "toolchain_extensions", ("rust-src", "clippy")),
        nightly_components=_str_list(ds, "nightly_components", ("rustfmt",)),
        env=_str_map(ds, "env", DEFAULT_DEV_SHELL_ENV),
    )

    return Project(
        name=name,
        project_dir=project_dir,
        bin_name=bin_name,
        description=str(data.get("description") or "").strip(),
        version_prefix=str(data.get("version") or "unstable").strip(),
        source_root=source_root,
        exclude=_str_list(source, "exclude", DEFAULT_EXCLUDE),
        lock_file=lock_file,
        features=_str_list(data, "features", ("packaging",)),
        cargo_build_flags=_str_list(data, "cargo_build_flags", ("--bin", bin_name)),
        use_nextest=bool(data.get("use_nextest", True)),
        toolchain=toolchain,
        systems=_parse_systems(data),
        packages=catalog,
        native_build_inputs=_str_list(data, "native_build_inputs", DEFAULT_NATIVE_BUILD_INPUTS),
        build_inputs=_str_list(data, "build_inputs", DEFAULT_BUILD_INPUTS),
        darwin_build_inputs=_str_list(data, "darwin_build_inputs", DEFAULT_DARWIN_BUILD_INPUTS),
        env=_str_map(data, "env", DEFAULT_ENV),
        identity_env=str(data.get("identity_env") or "NIX_JJ_GIT_HASH"),
        pre_check_env=_str_map(data, "pre_check_env", DEFAULT_PRE_CHECK_ENV),
        passthrough_env=_str_list(data, "passthrough_env", DEFAULT_PASSTHROUGH_ENV),
        build_command=_command(commands, "build"),
        test_command=_command(commands, "test"),
        install_from=str(data["install_from"]) if data.get("install_from") else None,
        artifacts=artifacts,
        formatter=str(data.get("formatter") or "nixpkgs-fmt"),
        dependencies=_parse_dependencies(data),
        dev_shell=dev_shell,
    )
