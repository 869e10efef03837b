from __future__ import annotations

from pathlib import Path

import pytest

from reprobuild.config import parse_project
from reprobuild.errors import IntegrityError
from reprobuild.lockfile import (
    Declaration,
    LockFile,
    LockFileError,
    declaration_hash,
    generate_lock,
    load_lock,
    verify_lock,
    write_lock,
)

SAMPLE_PROJECT = Path(__file__).resolve().parents[1] / "samples" / "jujutsu"

DECLS = {
    "clap": Declaration("clap", "4.3.10", "registry"),
    "git2": Declaration("git2", "0.17.2", "registry"),
}


def test_generated_lock_verifies() -> None:
    lock = generate_lock(DECLS)
    verify_lock(lock, DECLS)
    assert [d.name for d in lock.dependencies] == ["clap", "git2"]
    assert lock.dependencies[0].hash == declaration_hash(DECLS["clap"])
    assert lock.dependencies[0].hash.startswith("sha256-")


def test_hash_mismatch_is_an_integrity_error() -> None:
    lock = generate_lock(DECLS)
    live = dict(DECLS, clap=Declaration("clap", "4.4.0", "registry"))
    with pytest.raises(IntegrityError, match="clap"):
        verify_lock(lock, live)


def test_undeclared_and_unlocked_entries_fail() -> None:
    lock = generate_lock(DECLS)
    with pytest.raises(IntegrityError, match="no longer declared"):
        verify_lock(lock, {"clap": DECLS["clap"]})
    with pytest.raises(IntegrityError, match="not present"):
        verify_lock(lock, dict(DECLS, zstd=Declaration("zstd", "0.12.3")))


def test_empty_declarations_and_lock_agree() -> None:
    verify_lock(LockFile(), {})


def test_write_then_load(tmp_path: Path) -> None:
    lock = generate_lock(DECLS)
    path = tmp_path / "reprobuild.lock"
    write_lock(lock, path)
    loaded = load_lock(path)
    assert loaded == lock
    assert loaded.digest() == lock.digest()


def test_load_rejects_malformed_files(tmp_path: Path) -> None:
    path = tmp_path / "reprobuild.lock"
    with pytest.raises(LockFileError):
        load_lock(path)
    path.write_text("version: 2\ndependencies: []\n", encoding="utf-8")
    with pytest.raises(LockFileError, match="version"):
        load_lock(path)
    path.write_text("version: 1\ndependencies:\n- name: clap\n", encoding="utf-8")
    with pytest.raises(LockFileError, match="Malformed"):
        load_lock(path)


def test_sample_lock_pins_sample_declarations() -> None:
    project = parse_project(SAMPLE_PROJECT)
    verify_lock(load_lock(project.lock_path), project.dependencies)
