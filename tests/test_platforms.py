from __future__ import annotations

import pytest

from reprobuild.platforms import DEFAULT_SYSTEMS, OsFamily, Platform, default_systems, each_system


def test_default_matrix_is_arch_by_os() -> None:
    systems = {p.system for p in default_systems()}
    assert systems == {"x86_64-linux", "x86_64-darwin", "aarch64-linux", "aarch64-darwin"}
    assert len(DEFAULT_SYSTEMS) == 4


def test_parse_and_family() -> None:
    p = Platform.parse("aarch64-darwin")
    assert (p.arch, p.os) == ("aarch64", "darwin")
    assert p.family is OsFamily.DARWIN_LIKE
    assert p.is_darwin
    assert Platform.parse("x86_64-linux").family is OsFamily.LINUX_LIKE
    assert str(p) == "aarch64-darwin"


@pytest.mark.parametrize("bad", ["x86_64", "riscv64-linux", "x86_64-windows", ""])
def test_parse_rejects_unknown_systems(bad: str) -> None:
    with pytest.raises(ValueError):
        Platform.parse(bad)


def test_host_is_a_supported_platform() -> None:
    try:
        host = Platform.host()
    except ValueError:
        pytest.skip("host architecture is outside the build matrix")
    assert host in DEFAULT_SYSTEMS


def test_each_system_keys_results_by_identifier() -> None:
    calls: list[str] = []

    def builder(p: Platform) -> str:
        calls.append(p.system)
        return f"built for {p.arch} on {p.os}"

    out = each_system(builder)
    assert list(out) == [p.system for p in DEFAULT_SYSTEMS]
    assert out["aarch64-linux"] == "built for aarch64 on linux"
    assert calls == list(out)


def test_each_system_respects_declared_order_and_dedupes() -> None:
    systems = [Platform.parse("aarch64-darwin"), Platform.parse("x86_64-linux"), Platform.parse("aarch64-darwin")]
    out = each_system(lambda p: p.family, systems)
    assert list(out) == ["aarch64-darwin", "x86_64-linux"]
    assert out["x86_64-linux"] is OsFamily.LINUX_LIKE


def test_each_system_is_referentially_transparent() -> None:
    def builder(p: Platform) -> tuple[str, str]:
        return (p.system, p.family.value)

    assert each_system(builder) == each_system(builder)
