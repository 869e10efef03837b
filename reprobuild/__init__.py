"""
reprobuild package

Reproducible, multi-platform packaging of a single compiled CLI tool.

Key responsibilities are split across modules:
- `source_filter.py`: decide which source files enter the build sandbox
- `platforms.py`: the build matrix (`<arch>-<os>` systems)
- `packages.py`: platform package sets, the toolchain overlay and overlay composition
- `lockfile.py`: the hash-pinned dependency lock and its integrity check
- `descriptor.py`: assemble one system's hermetic build descriptor
- `artifacts.py`: manual page and shell completions from the built binary
- `executor.py`: sandboxed build, test and atomic publication
- `outputs.py`: packages, apps, formatter, devShells and overlays per system
- `cli.py`: CLI entrypoint (show / build / lock / develop)
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
