"""
cli.py

Responsibility: CLI entrypoint for reprobuild.

Commands:
- `show`:    evaluate the outputs (packages, apps, formatter, devShells) and print them as JSON
- `build`:   realise packages.<system>.default and print the output path
- `lock`:    pin the project's dependency declarations into the lock file
- `develop`: print the export lines of the development shell

This module orchestrates; the work lives in:
- Project parsing: `config.py`
- Output composition: `outputs.py`
- Building and publishing: `executor.py`
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path

import structlog

from reprobuild import __version__
from reprobuild.config import DEFAULT_PROJECT_FILE, Project, ProjectError, parse_project
from reprobuild.errors import ReproBuildError
from reprobuild.executor import LocalExecutor
from reprobuild.lockfile import LockFileError, generate_lock, write_lock
from reprobuild.logging import configure_logging
from reprobuild.outputs import default_store_dir, evaluate
from reprobuild.platforms import Platform
from reprobuild.renderer import RenderError

log = structlog.get_logger(__name__)


class CLIError(RuntimeError):
    pass


def _project(args: argparse.Namespace) -> Project:
    return parse_project(args.project)


def _platforms(args: argparse.Namespace) -> list[Platform] | None:
    if not args.system:
        return None
    try:
        return [Platform.parse(s) for s in args.system]
    except ValueError as e:
        raise CLIError(str(e)) from e


def _single_platform(args: argparse.Namespace) -> Platform:
    platforms = _platforms(args)
    if platforms is None:
        try:
            return Platform.host()
        except ValueError as e:
            raise CLIError(f"{e}; pass --system explicitly") from e
    if len(platforms) != 1:
        raise CLIError("Exactly one --system is accepted by this command")
    return platforms[0]


def show_cmd(args: argparse.Namespace) -> int:
    project = _project(args)
    outputs = evaluate(project, systems=_platforms(args), store_dir=args.store)
    json.dump(outputs.to_dict(), sys.stdout, indent=2, sort_keys=True)
    sys.stdout.write("\n")
    return 0


def _update_out_link(link: Path, target: Path) -> None:
    if link.is_symlink():
        link.unlink()
    elif link.exists():
        raise CLIError(f"Refusing to replace non-symlink: {link}")
    link.symlink_to(target)


def build_cmd(args: argparse.Namespace) -> int:
    project = _project(args)
    platform = _single_platform(args)
    outputs = evaluate(project, systems=[platform], store_dir=args.store)
    descriptor = outputs.system(platform).package

    result = LocalExecutor(outputs.store_dir, keep_failed=bool(args.keep_failed)).realise(descriptor)

    if args.out_link:
        _update_out_link(Path(args.out_link), result.out_path)
    print(result.out_path)
    return 0


def lock_cmd(args: argparse.Namespace) -> int:
    project = _project(args)
    lock = generate_lock(project.dependencies)
    write_lock(lock, project.lock_path)
    log.info("lock_written", path=str(project.lock_path), dependencies=len(lock.dependencies))
    print(project.lock_path)
    return 0


def develop_cmd(args: argparse.Namespace) -> int:
    project = _project(args)
    platform = _single_platform(args)
    shell = evaluate(project, systems=[platform], store_dir=args.store).system(platform).dev_shell
    for pkg in shell.packages:
        log.debug("dev_shell_package", name=pkg.name, version=pkg.version)
    sys.stdout.write(shell.shell_hook)
    return 0


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="reprobuild", description="Reproducible multi-platform packaging of a CLI tool")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("--log-level", default=os.environ.get("REPROBUILD_LOG_LEVEL", "INFO"), help="Log level")
    p.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines")
    sub = p.add_subparsers(dest="command", required=True)

    def common(sp: argparse.ArgumentParser) -> None:
        sp.add_argument(
            "--project",
            default=DEFAULT_PROJECT_FILE,
            help=f"Project file or directory (default: {DEFAULT_PROJECT_FILE})",
        )
        sp.add_argument("--store", default=None, help=f"Output store directory (default: {default_store_dir()})")

    s = sub.add_parser("show", help="Print the evaluated outputs as JSON")
    common(s)
    s.add_argument("--system", action="append", default=[], help="Restrict to a system (repeatable)")
    s.set_defaults(func=show_cmd)

    b = sub.add_parser("build", help="Build, test and publish the package for one system")
    common(b)
    b.add_argument("--system", action="append", default=[], help="Target system (default: host)")
    b.add_argument("--out-link", default=None, help="Create a symlink to the output at this path")
    b.add_argument("--keep-failed", action="store_true", help="Keep the sandbox directory of a failed build")
    b.set_defaults(func=build_cmd)

    lk = sub.add_parser("lock", help="Write the lock file from the dependency declarations")
    common(lk)
    lk.set_defaults(func=lock_cmd)

    d = sub.add_parser("develop", help="Print the development shell environment")
    common(d)
    d.add_argument("--system", action="append", default=[], help="Target system (default: host)")
    d.set_defaults(func=develop_cmd)
    return p


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level, json_output=bool(args.json_logs))
    try:
        return int(args.func(args))
    except (ReproBuildError, ProjectError, LockFileError, RenderError, CLIError, KeyError) as e:
        log.error("command_failed", command=args.command, error=str(e), kind=type(e).__name__)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
