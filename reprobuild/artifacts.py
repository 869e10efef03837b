"""
artifacts.py

Responsibility: generate the auxiliary outputs of a finished build.

Runs the built binary inside the sandbox, strictly in this order:
1) the manual-page subcommand -> `share/man/man1/<bin>.1`
2) the completion subcommand once per shell, in the plan's fixed shell order

Any failure (missing binary, non-zero exit, empty output) raises
ArtifactGenerationError; the caller discards the staging output in that case.
"""

from __future__ import annotations

import subprocess
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from reprobuild.errors import ArtifactGenerationError

log = structlog.get_logger(__name__)

SHELLS: tuple[str, ...] = ("bash", "fish", "zsh")


@dataclass(frozen=True)
class ArtifactPlan:
    bin_name: str
    man_command: tuple[str, ...] = ("util", "mangen")
    completion_command: tuple[str, ...] = ("util", "completion")
    shells: tuple[str, ...] = SHELLS
    man_section: int = 1

    def completion_path(self, shell: str) -> str:
        if shell == "bash":
            return f"share/bash-completion/completions/{self.bin_name}.bash"
        if shell == "fish":
            return f"share/fish/vendor_completions.d/{self.bin_name}.fish"
        if shell == "zsh":
            return f"share/zsh/site-functions/_{self.bin_name}"
        raise ValueError(f"Unsupported shell: {shell!r}")

    @property
    def man_path(self) -> str:
        return f"share/man/man{self.man_section}/{self.bin_name}.{self.man_section}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "bin": self.bin_name,
            "man_command": list(self.man_command),
            "completion_command": list(self.completion_command),
            "shells": list(self.shells),
            "man_section": self.man_section,
        }


@dataclass(frozen=True)
class Artifact:
    kind: str  # "man" or "completion"
    name: str  # section number or shell name
    path: Path


def _capture(cmd: list[str], *, env: Mapping[str, str] | None, cwd: Path) -> bytes:
    try:
        proc = subprocess.run(
            cmd,
            cwd=str(cwd),
            env=dict(env) if env is not None else None,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            check=False,
        )
    except OSError as e:
        raise ArtifactGenerationError(f"Could not run {' '.join(cmd)}: {e}") from e
    if proc.returncode != 0:
        stderr = proc.stderr.decode("utf-8", errors="replace")
        raise ArtifactGenerationError(
            f"Command failed ({proc.returncode}): {' '.join(cmd)}",
            output=stderr,
        )
    if not proc.stdout.strip():
        raise ArtifactGenerationError(f"Command produced no output: {' '.join(cmd)}")
    return proc.stdout


def _write(out_dir: Path, rel: str, data: bytes) -> Path:
    path = out_dir / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


def generate_artifacts(
    binary: str | Path,
    plan: ArtifactPlan,
    out_dir: str | Path,
    *,
    env: Mapping[str, str] | None = None,
) -> list[Artifact]:
    """
    Run the artifact commands against `binary` and write their output under `out_dir`.

    Returns the artifacts in generation order: the manual page, then one
    completion script per shell.
    """
    bin_path = Path(binary)
    out = Path(out_dir)
    if not bin_path.is_file():
        raise ArtifactGenerationError(f"Built binary not found: {bin_path}")

    artifacts: list[Artifact] = []

    man = _capture([str(bin_path), *plan.man_command], env=env, cwd=out)
    artifacts.append(Artifact(kind="man", name=str(plan.man_section), path=_write(out, plan.man_path, man)))
    log.info("artifact_written", kind="man", path=plan.man_path)

    for shell in plan.shells:
        script = _capture([str(bin_path), *plan.completion_command, f"--{shell}"], env=env, cwd=out)
        rel = plan.completion_path(shell)
        artifacts.append(Artifact(kind="completion", name=shell, path=_write(out, rel, script)))
        log.info("artifact_written", kind="completion", shell=shell, path=rel)

    return artifacts
