"""
executor.py

Responsibility: hand a BuildDescriptor to the build tools and publish the result.

High-level flow (`LocalExecutor.realise`):
1) Reuse the output if `<store>/<out_name>` already exists (outputs are content addressed)
2) Stage the filtered source into a fresh sandbox directory
3) Run the build command, then the test command with the pre-check env added
4) Install the binary into a staging output and generate the artifacts there
5) Atomically rename the staging output into the store

On any failure the sandbox and staging output are removed, so either the
complete output (binary + every artifact) exists or nothing does.
"""

from __future__ import annotations

import os
import shutil
import subprocess
import tempfile
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from reprobuild.artifacts import Artifact, generate_artifacts
from reprobuild.descriptor import BuildDescriptor
from reprobuild.errors import BuildError, TestFailure
from reprobuild.source_filter import stage_source_tree

log = structlog.get_logger(__name__)

# 1980-01-01, the earliest timestamp zip-based tooling accepts.
SOURCE_DATE_EPOCH = "315532800"


@dataclass(frozen=True)
class BuildResult:
    out_path: Path
    binary: Path
    artifacts: tuple[Artifact, ...] = field(default_factory=tuple)
    cached: bool = False


def _run(cmd: Sequence[str], *, cwd: Path, env: Mapping[str, str], error: type[BuildError] = BuildError) -> str:
    """
    Run a subprocess command, raising `error` (with the captured output) on failure.
    """
    try:
        proc = subprocess.run(
            list(cmd),
            cwd=str(cwd),
            env=dict(env),
            check=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
        )
    except FileNotFoundError as e:
        raise error(f"Command not found: {cmd[0]}") from e
    except subprocess.CalledProcessError as e:
        raise error(f"Command failed ({e.returncode}): {' '.join(cmd)}", output=e.stdout or "") from e
    return proc.stdout


class LocalExecutor:
    """Realises descriptors on the local host, one at a time."""

    def __init__(self, store_dir: str | Path, *, keep_failed: bool = False) -> None:
        self._store_dir = Path(store_dir)
        self._keep_failed = keep_failed

    @property
    def store_dir(self) -> Path:
        return self._store_dir

    def out_path(self, descriptor: BuildDescriptor) -> Path:
        return self._store_dir / descriptor.out_name

    def sandbox_env(self, descriptor: BuildDescriptor, sandbox: Path) -> dict[str, str]:
        """
        The hermetic environment: descriptor env, PATH from package prefixes,
        a private HOME, a fixed SOURCE_DATE_EPOCH and the explicit passthrough list.
        """
        prefixes = [
            p.prefix
            for p in (*descriptor.toolchain, *descriptor.native_build_inputs, *descriptor.build_inputs)
            if p.prefix
        ]
        bin_dirs = list(dict.fromkeys(str(Path(p) / "bin") for p in prefixes))
        path = os.pathsep.join(bin_dirs) if bin_dirs else os.environ.get("PATH", os.defpath)

        env: dict[str, str] = {
            "PATH": path,
            "HOME": str(sandbox / "home"),
            "TMPDIR": str(sandbox / "tmp"),
            "SOURCE_DATE_EPOCH": SOURCE_DATE_EPOCH,
            "LC_ALL": "C",
        }
        for key in descriptor.passthrough_env:
            if key in os.environ:
                env[key] = os.environ[key]
        env.update(descriptor.env)
        return env

    def realise(self, descriptor: BuildDescriptor) -> BuildResult:
        out_path = self.out_path(descriptor)
        binary = out_path / "bin" / descriptor.bin_name
        bound = log.bind(system=descriptor.system, name=descriptor.name)

        if out_path.exists():
            bound.info("output_cached", out=str(out_path))
            return BuildResult(out_path=out_path, binary=binary, cached=True)

        if descriptor.source is None:
            raise BuildError(f"Descriptor {descriptor.name} carries no source tree to stage")

        self._store_dir.mkdir(parents=True, exist_ok=True)
        sandbox = Path(tempfile.mkdtemp(prefix=f"reprobuild-{descriptor.pname}-"))
        staging = Path(tempfile.mkdtemp(prefix=f".tmp-{descriptor.out_name}-", dir=self._store_dir))
        succeeded = False
        try:
            src = sandbox / "source"
            (sandbox / "home").mkdir()
            (sandbox / "tmp").mkdir()
            staged = stage_source_tree(descriptor.source, src)
            bound.info("sandbox_prepared", sandbox=str(sandbox), files=staged)

            env = self.sandbox_env(descriptor, sandbox)
            self._build(descriptor, src=src, env=env)
            self._check(descriptor, src=src, env=env)

            staged_bin = self._install(descriptor, src=src, out=staging)
            artifacts = generate_artifacts(staged_bin, descriptor.artifacts, staging, env=env)

            os.replace(staging, out_path)
            succeeded = True
        except BaseException:
            bound.error("build_failed", sandbox=str(sandbox))
            raise
        finally:
            if not succeeded and staging.exists():
                shutil.rmtree(staging, ignore_errors=True)
            if succeeded or not self._keep_failed:
                shutil.rmtree(sandbox, ignore_errors=True)

        bound.info("output_published", out=str(out_path), artifacts=len(artifacts))
        published = tuple(
            Artifact(kind=a.kind, name=a.name, path=out_path / a.path.relative_to(staging)) for a in artifacts
        )
        return BuildResult(out_path=out_path, binary=binary, artifacts=published)

    def _build(self, descriptor: BuildDescriptor, *, src: Path, env: Mapping[str, str]) -> None:
        log.info("build_started", system=descriptor.system, command=" ".join(descriptor.build_command))
        try:
            _run(descriptor.build_command, cwd=src, env=env)
        except BuildError as e:
            log.error("build_command_failed", output=e.output)
            raise

    def _check(self, descriptor: BuildDescriptor, *, src: Path, env: Mapping[str, str]) -> None:
        check_env = {**env, **descriptor.pre_check_env}
        log.info("check_started", system=descriptor.system, command=" ".join(descriptor.test_command))
        try:
            _run(descriptor.test_command, cwd=src, env=check_env, error=TestFailure)
        except TestFailure as e:
            log.error("tests_failed", output=e.output)
            raise

    def _install(self, descriptor: BuildDescriptor, *, src: Path, out: Path) -> Path:
        built = src / descriptor.install_from
        if not built.is_file():
            raise BuildError(f"Build did not produce {descriptor.install_from}")
        target = out / "bin" / descriptor.bin_name
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(built, target)
        target.chmod(0o755)
        return target
