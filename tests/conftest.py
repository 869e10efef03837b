from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable

import pytest
import structlog
import yaml

from reprobuild.config import Project, parse_project
from reprobuild.lockfile import generate_lock, write_lock

FAKE_JJ = """#!/bin/sh
case "$1 $2" in
  "util mangen") printf '.TH JJ 1\\n.SH NAME\\njj \\\\- Jujutsu\\n' ;;
  "util completion") printf '# %s completion for jj\\n' "$3" ;;
  *) echo "unknown command: $*" >&2; exit 2 ;;
esac
"""

CATALOG: dict[str, Any] = {
    "gzip": "1.12",
    "installShellFiles": "1",
    "makeWrapper": "1",
    "pkg-config": "0.29.2",
    "openssl": "3.0.9",
    "zstd": "1.5.5",
    "libgit2": "1.6.4",
    "libssh2": "1.11.0",
    "libiconv": {"version": "50", "platforms": ["darwin"]},
    "darwin.apple_sdk.frameworks.Security": {"version": "11.0", "platforms": ["darwin"]},
    "darwin.apple_sdk.frameworks.SystemConfiguration": {"version": "11.0", "platforms": ["darwin"]},
    "rustc": "1.70.0",
    "cargo": "1.70.0",
    "nixpkgs-fmt": "1.3.0",
    "rust-analyzer": "2023-06-19",
    "cargo-deny": "0.13.9",
    "cargo-insta": "1.29.0",
    "cargo-nextest": "0.9.53",
    "cargo-watch": "8.4.0",
    "poetry": "1.5.1",
}

DEPENDENCIES: dict[str, Any] = {
    "clap": {"version": "4.3.10", "source": "registry+https://github.com/rust-lang/crates.io-index"},
    "git2": {"version": "0.17.2", "source": "registry+https://github.com/rust-lang/crates.io-index"},
}

# Stands in for cargo: "builds" by copying the fake binary into place.
FAKE_BUILD = ["/bin/sh", "-c", "mkdir -p target/release && cp fake-jj.sh target/release/jj && chmod +x target/release/jj"]
FAKE_TEST = ["/bin/sh", "-c", 'test "$RUST_BACKTRACE" = 1 && test "$CARGO_INCREMENTAL" = 0']


def _write_source_tree(root: Path) -> None:
    (root / "src").mkdir(parents=True, exist_ok=True)
    (root / "src" / "main.rs").write_text("fn main() {}\n", encoding="utf-8")
    (root / "Cargo.toml").write_text('[package]\nname = "jj"\n', encoding="utf-8")
    (root / "fake-jj.sh").write_text(FAKE_JJ, encoding="utf-8")
    (root / "fake-jj.sh").chmod(0o755)
    (root / ".jj").mkdir(exist_ok=True)
    (root / ".jj" / "state").write_text("working copy state\n", encoding="utf-8")
    (root / "target" / "debug").mkdir(parents=True, exist_ok=True)
    (root / "target" / "debug" / "jj").write_text("stale\n", encoding="utf-8")
    (root / "flake.nix").write_text("{ }\n", encoding="utf-8")


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    structlog.reset_defaults()
    logging.getLogger().handlers.clear()


@pytest.fixture
def project_data() -> dict[str, Any]:
    return {
        "name": "jujutsu",
        "bin": "jj",
        "packages": dict(CATALOG),
        "dependencies": dict(DEPENDENCIES),
        "commands": {"build": list(FAKE_BUILD), "test": list(FAKE_TEST)},
    }


@pytest.fixture
def make_project(tmp_path: Path, project_data: dict[str, Any]) -> Callable[..., Project]:
    """
    Write a source tree, a project file and a matching lock into tmp_path/repo.

    Keyword overrides replace top-level project keys.
    """

    def _make(*, locked: bool = True, **overrides: Any) -> Project:
        root = tmp_path / "repo"
        _write_source_tree(root)
        data = {**project_data, **overrides}
        path = root / "reprobuild.yaml"
        path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
        project = parse_project(path)
        if locked:
            write_lock(generate_lock(project.dependencies), project.lock_path)
        return project

    return _make


@pytest.fixture
def fake_binary(tmp_path: Path) -> Path:
    path = tmp_path / "bin" / "jj"
    path.parent.mkdir(parents=True)
    path.write_text(FAKE_JJ, encoding="utf-8")
    path.chmod(0o755)
    return path
