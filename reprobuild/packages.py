"""
packages.py

Responsibility: platform-specialized package sets and overlay composition.

A `PackageSet` is an immutable name -> `Package` mapping bound to one platform.
An overlay is a plain function `PackageSet -> PackageSet`; `compose` folds a list
of overlays over a base set in declared order, so a later overlay's binding for
a name always wins. There is no global overlay state: callers pass the composed
set explicitly.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from reprobuild.platforms import Platform


@dataclass(frozen=True)
class Package:
    name: str
    version: str
    # Restricts availability to OS kinds ("darwin") or systems ("aarch64-linux").
    platforms: tuple[str, ...] = ()
    # Install prefix; `<prefix>/bin` joins the sandbox PATH when set.
    prefix: str | None = None
    extensions: tuple[str, ...] = ()

    def available_on(self, platform: Platform) -> bool:
        if not self.platforms:
            return True
        return platform.os in self.platforms or platform.system in self.platforms

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name, "version": self.version}
        if self.prefix:
            out["prefix"] = self.prefix
        if self.extensions:
            out["extensions"] = list(self.extensions)
        return out


class PackageSet(Mapping[str, Package]):
    """Immutable package mapping for one platform."""

    def __init__(self, platform: Platform, packages: Mapping[str, Package] | None = None) -> None:
        self._platform = platform
        self._packages: dict[str, Package] = dict(packages or {})

    @property
    def platform(self) -> Platform:
        return self._platform

    def __getitem__(self, name: str) -> Package:
        return self._packages[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._packages)

    def __len__(self) -> int:
        return len(self._packages)

    def __repr__(self) -> str:
        return f"PackageSet({self._platform.system}, {sorted(self._packages)!r})"

    def extend(self, bindings: Mapping[str, Package]) -> PackageSet:
        """Return a new set where `bindings` shadow existing entries of the same name."""
        merged = dict(self._packages)
        merged.update(bindings)
        return PackageSet(self._platform, merged)


Overlay = Callable[[PackageSet], PackageSet]


def compose(base: PackageSet, overlays: Iterable[Overlay]) -> PackageSet:
    """Apply `overlays` to `base` left to right."""
    pkgs = base
    for overlay in overlays:
        pkgs = overlay(pkgs)
    return pkgs


def base_package_set(catalog: Mapping[str, Package], platform: Platform) -> PackageSet:
    """Select the catalog entries available on `platform`."""
    return PackageSet(platform, {name: pkg for name, pkg in catalog.items() if pkg.available_on(platform)})


@dataclass(frozen=True)
class Toolchain:
    """A pinned compiler release."""

    version: str
    channel: str = "stable"
    components: tuple[str, ...] = ("rustc", "cargo")
    extensions: tuple[str, ...] = ()
    prefix: str | None = None

    @property
    def label(self) -> str:
        return f"{self.channel}-{self.version}"


def toolchain_overlay(toolchain: Toolchain) -> Overlay:
    """
    Rebind the toolchain components (compiler, build tool) to the pinned release.

    Every other entry of the incoming set is left untouched.
    """

    def overlay(prev: PackageSet) -> PackageSet:
        return prev.extend(
            {
                name: Package(
                    name=name,
                    version=toolchain.label,
                    prefix=toolchain.prefix,
                    extensions=toolchain.extensions,
                )
                for name in toolchain.components
            }
        )

    return overlay


def bind_overlay(bindings: Mapping[str, Package]) -> Overlay:
    """An overlay that adds or replaces the given entries."""

    def overlay(prev: PackageSet) -> PackageSet:
        return prev.extend(bindings)

    return overlay


def catalog_from_mapping(raw: Mapping[str, Any]) -> dict[str, Package]:
    """Build a package catalog from `{name: {version, platforms?, prefix?}}` data."""
    catalog: dict[str, Package] = {}
    for name, entry in raw.items():
        entry = entry or {}
        if isinstance(entry, (str, int, float)):
            entry = {"version": str(entry)}
        if not isinstance(entry, Mapping):
            raise ValueError(f"Package entry for {name!r} must be a mapping or a version string.")
        platforms = entry.get("platforms") or ()
        if isinstance(platforms, str):
            platforms = (platforms,)
        catalog[str(name)] = Package(
            name=str(name),
            version=str(entry.get("version") or "0"),
            platforms=tuple(str(p) for p in platforms),
            prefix=str(entry["prefix"]) if entry.get("prefix") else None,
        )
    return dict(sorted(catalog.items()))
