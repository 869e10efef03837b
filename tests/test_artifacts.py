from __future__ import annotations

from pathlib import Path

import pytest

from reprobuild.artifacts import ArtifactPlan, generate_artifacts
from reprobuild.errors import ArtifactGenerationError


def test_generates_man_page_and_three_completions(fake_binary: Path, tmp_path: Path) -> None:
    out = tmp_path / "out"
    out.mkdir()
    artifacts = generate_artifacts(fake_binary, ArtifactPlan(bin_name="jj"), out)

    assert [(a.kind, a.name) for a in artifacts] == [
        ("man", "1"),
        ("completion", "bash"),
        ("completion", "fish"),
        ("completion", "zsh"),
    ]
    for a in artifacts:
        assert a.path.is_file()
        assert a.path.stat().st_size > 0
    assert (out / "share/man/man1/jj.1").read_text(encoding="utf-8").startswith(".TH JJ 1")
    assert (out / "share/bash-completion/completions/jj.bash").read_text(encoding="utf-8") == "# --bash completion for jj\n"
    assert (out / "share/fish/vendor_completions.d/jj.fish").exists()
    assert (out / "share/zsh/site-functions/_jj").exists()


def test_missing_binary_fails(tmp_path: Path) -> None:
    with pytest.raises(ArtifactGenerationError, match="not found"):
        generate_artifacts(tmp_path / "nope", ArtifactPlan(bin_name="jj"), tmp_path)


def test_failing_subcommand_fails(fake_binary: Path, tmp_path: Path) -> None:
    plan = ArtifactPlan(bin_name="jj", man_command=("util", "no-such-command"))
    with pytest.raises(ArtifactGenerationError) as exc:
        generate_artifacts(fake_binary, plan, tmp_path)
    assert "unknown command" in exc.value.output


def test_empty_output_fails(tmp_path: Path) -> None:
    silent = tmp_path / "silent"
    silent.write_text("#!/bin/sh\nexit 0\n", encoding="utf-8")
    silent.chmod(0o755)
    with pytest.raises(ArtifactGenerationError, match="no output"):
        generate_artifacts(silent, ArtifactPlan(bin_name="jj"), tmp_path)


def test_unknown_shell_has_no_completion_path() -> None:
    with pytest.raises(ValueError):
        ArtifactPlan(bin_name="jj").completion_path("powershell")
