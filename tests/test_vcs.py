from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

from reprobuild.vcs import Revision, source_revision


def test_revision_version_strings() -> None:
    assert Revision("abcdef0123456789").version("unstable") == "unstable-abcdef0"
    assert Revision().version("unstable") == "unstable-dirty"
    assert Revision().identity == ""
    assert Revision("abc").identity == "abc"


def test_no_repository_means_no_revision(tmp_path: Path) -> None:
    assert source_revision(tmp_path) == Revision()


@pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")
def test_clean_and_dirty_checkouts(tmp_path: Path) -> None:
    env = {
        "GIT_AUTHOR_NAME": "t",
        "GIT_AUTHOR_EMAIL": "t@example.invalid",
        "GIT_COMMITTER_NAME": "t",
        "GIT_COMMITTER_EMAIL": "t@example.invalid",
        "PATH": "/usr/bin:/bin:/usr/local/bin",
        "HOME": str(tmp_path),
    }

    def git(*args: str) -> str:
        return subprocess.run(["git", *args], cwd=tmp_path, env=env, check=True, capture_output=True, text=True).stdout

    git("init", "-q")
    (tmp_path / "f").write_text("1", encoding="utf-8")
    git("add", "f")
    git("commit", "-q", "-m", "init")
    head = git("rev-parse", "HEAD").strip()

    assert source_revision(tmp_path) == Revision(rev=head)
    (tmp_path / "f").write_text("2", encoding="utf-8")
    assert source_revision(tmp_path) == Revision()
