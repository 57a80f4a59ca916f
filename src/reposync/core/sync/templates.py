"""
Template rendering for synced files.

Files synced with a ``template`` context are rendered with Jinja2
(autoescaping on, block whitespace trimmed) before they are written.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined, Undefined


def _environment(template_dir: Path, strict: bool) -> Environment:
    return Environment(
        # Includes resolve next to the template first, then from the cwd
        loader=FileSystemLoader([str(template_dir), str(Path.cwd())]),
        autoescape=True,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
        undefined=StrictUndefined if strict else Undefined,
    )


def render(path: str | Path, context: dict[str, Any] | None = None, strict: bool = False) -> str:
    """
    Render a template file.

    Args:
        path: Template file
        context: Variables available to the template
        strict: Raise on undefined variables instead of rendering them empty

    Returns:
        Rendered text

    Raises:
        OSError: If the template cannot be read
        jinja2.TemplateError: If the template is invalid
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Template not found: {path}")
    env = _environment(path.resolve().parent, strict)
    template = env.get_template(path.name)
    return template.render(**(context or {}))


def write(source: str | Path, dest: str | Path, context: dict[str, Any] | None = None) -> None:
    """Render ``source`` and write the result to ``dest``, creating parent directories."""
    content = render(source, context)
    dest = Path(dest)
    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_text(content)
