"""
devshell.py

Responsibility: the interactive development shell descriptor.

Sibling output to the package: the pinned toolchain with editor/lint extensions,
nightly formatter components, foreign libraries and contributor tools, plus the
environment exported on entry.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any

from reprobuild.config import Project
from reprobuild.errors import MissingDependencyError
from reprobuild.packages import Package, PackageSet
from reprobuild.renderer import render_hook


@dataclass(frozen=True)
class DevShell:
    system: str
    packages: tuple[Package, ...]
    env: dict[str, str]
    shell_hook: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "system": self.system,
            "packages": [p.to_dict() for p in self.packages],
            "env": dict(self.env),
            "shell_hook": self.shell_hook,
        }


def assemble_dev_shell(project: Project, pkgs: PackageSet) -> DevShell:
    spec = project.dev_shell
    selected: list[Package] = []

    for name in project.toolchain.components:
        if name not in pkgs:
            raise MissingDependencyError(name, pkgs.platform.system)
        selected.append(dataclasses.replace(pkgs[name], extensions=spec.toolchain_extensions))

    # The CI checks formatting against the latest nightly, so the shell does too.
    selected.extend(Package(name=c, version="nightly-latest") for c in spec.nightly_components)

    for name in spec.packages:
        if name not in pkgs:
            raise MissingDependencyError(name, pkgs.platform.system)
        selected.append(pkgs[name])

    env = dict(sorted(spec.env.items()))
    return DevShell(
        system=pkgs.platform.system,
        packages=tuple(selected),
        env=env,
        shell_hook=render_hook("exports", {"env": env}),
    )
