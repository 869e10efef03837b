"""
platforms.py

Responsibility: the build matrix.

A `Platform` names one build target as `<arch>-<os>` (e.g. `x86_64-linux`).
`each_system` drives per-platform composition: it calls a builder once per
platform and collects the results keyed by the platform identifier.
"""

from __future__ import annotations

import enum
import platform as _host
import sys
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TypeVar

T = TypeVar("T")

ARCHES: tuple[str, ...] = ("x86_64", "aarch64")
OS_KINDS: tuple[str, ...] = ("linux", "darwin")


class OsFamily(enum.Enum):
    """Selects the OS-conditional dependency list."""

    LINUX_LIKE = "linux-like"
    DARWIN_LIKE = "darwin-like"


_FAMILIES: dict[str, OsFamily] = {
    "linux": OsFamily.LINUX_LIKE,
    "darwin": OsFamily.DARWIN_LIKE,
}

_HOST_ARCH_ALIASES: dict[str, str] = {
    "amd64": "x86_64",
    "x86_64": "x86_64",
    "arm64": "aarch64",
    "aarch64": "aarch64",
}


@dataclass(frozen=True, order=True)
class Platform:
    arch: str
    os: str

    def __post_init__(self) -> None:
        if self.arch not in ARCHES:
            raise ValueError(f"Unsupported architecture: {self.arch!r}")
        if self.os not in _FAMILIES:
            raise ValueError(f"Unsupported OS kind: {self.os!r}")

    @property
    def system(self) -> str:
        return f"{self.arch}-{self.os}"

    @property
    def family(self) -> OsFamily:
        return _FAMILIES[self.os]

    @property
    def is_darwin(self) -> bool:
        return self.family is OsFamily.DARWIN_LIKE

    @classmethod
    def parse(cls, system: str) -> Platform:
        arch, sep, os_kind = system.partition("-")
        if not sep:
            raise ValueError(f"System identifier must look like '<arch>-<os>': {system!r}")
        return cls(arch=arch, os=os_kind)

    @classmethod
    def host(cls) -> Platform:
        arch = _HOST_ARCH_ALIASES.get(_host.machine().lower(), _host.machine().lower())
        os_kind = "darwin" if sys.platform == "darwin" else "linux"
        return cls(arch=arch, os=os_kind)

    def __str__(self) -> str:
        return self.system


DEFAULT_SYSTEMS: tuple[Platform, ...] = tuple(Platform(arch, os_kind) for arch in ARCHES for os_kind in OS_KINDS)


def default_systems() -> tuple[Platform, ...]:
    return DEFAULT_SYSTEMS


def each_system(builder: Callable[[Platform], T], systems: Iterable[Platform] | None = None) -> dict[str, T]:
    """
    Call `builder` once per platform and key the results by system identifier.

    Iteration follows the declared order of `systems`; duplicates are evaluated once.
    """
    out: dict[str, T] = {}
    for p in DEFAULT_SYSTEMS if systems is None else systems:
        if p.system in out:
            continue
        out[p.system] = builder(p)
    return out
