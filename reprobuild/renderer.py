"""
renderer.py

Responsibility: deterministically render lifecycle hook scripts.

Rules:
- Hook templates live in `reprobuild/templates/<hook>.sh.j2`.
- Rendering uses StrictUndefined: a missing context key is an error, never "".
- Output newlines are normalized to "\n" so the rendered hooks (and the
  descriptor that embeds them) are byte-identical across hosts.

Hooks are rendered, never executed here. `post_install` writes to the same
`$out`-relative paths as `ArtifactPlan`; `LocalExecutor` performs those steps
through `generate_artifacts` instead of running the script.
"""

from __future__ import annotations

import shlex
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"


class RenderError(RuntimeError):
    pass


def _environment(templates_dir: Path) -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(templates_dir)),
        autoescape=False,
        undefined=StrictUndefined,
        keep_trailing_newline=True,
    )
    env.filters["shquote"] = shlex.quote
    return env


def render_hook(name: str, context: dict[str, Any], *, templates_dir: str | Path | None = None) -> str:
    """
    Render the hook template `<name>.sh.j2` with `context`.
    """
    tpl_dir = Path(templates_dir) if templates_dir is not None else TEMPLATES_DIR
    if not (tpl_dir / f"{name}.sh.j2").is_file():
        raise RenderError(f"Hook template not found: {name} (in {tpl_dir})")
    try:
        out = _environment(tpl_dir).get_template(f"{name}.sh.j2").render(**context)
    except TemplateError as e:
        raise RenderError(f"Failed rendering hook template: {name}") from e
    return out.replace("\r\n", "\n")
