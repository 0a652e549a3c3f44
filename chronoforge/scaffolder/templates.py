"""Jinja2 template rendering for framework scaffolding.

Provides the TemplateRenderer class which loads Jinja2 templates from the
``chronoforge/scaffolder/templates/`` directory and renders them with
organization-specific context data.  Every file written through the renderer
is wrapped in the attribution header/footer block.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape


# ---------------------------------------------------------------------------
# Template directory discovery
# ---------------------------------------------------------------------------

_DEFAULT_TEMPLATE_DIR = Path(__file__).parent / "templates"


# ---------------------------------------------------------------------------
# Attribution block
# ---------------------------------------------------------------------------

# Lines that must stay first for the file to keep working.
_PINNED_FIRST_LINES: tuple[str, ...] = ("#!", "// swift-tools-version")

_HASH_SUFFIXES = {".sh", ".py", ".tf", ".yml", ".yaml", ".service", ".conf", ".toml"}
_HASH_NAMES = {"Makefile", "Dockerfile"}
_XML_SUFFIXES = {".md", ".csproj", ".xml", ".html"}


@dataclass(frozen=True)
class Attribution:
    """Fixed copyright block written at the top and bottom of every file."""

    holder: str
    year: int

    def lines(self) -> list[str]:
        return [f"Copyright © {self.year} {self.holder}.", "All Rights Reserved."]

    def block_for(self, filename: str) -> str:
        """Render the block in the comment syntax of *filename*."""
        path = Path(filename)
        if path.name in _HASH_NAMES or path.suffix in _HASH_SUFFIXES:
            return "\n".join(f"# {line}" for line in self.lines())
        if path.suffix in _XML_SUFFIXES:
            body = "\n".join(f"  {line}" for line in self.lines())
            return f"<!--\n{body}\n-->"
        body = "\n".join(f" * {line}" for line in self.lines())
        return f"/*\n{body}\n */"


def wrap_with_attribution(content: str, filename: str, attribution: Attribution) -> str:
    """Surround *content* with the attribution block.

    A shebang (or any other pinned first line) is kept as the first line of
    the file so that scripts remain executable.
    """
    block = attribution.block_for(filename)
    first_line = ""
    body = content
    if content.startswith(_PINNED_FIRST_LINES):
        first_line, _, body = content.partition("\n")
        first_line += "\n"
    body = body.rstrip("\n")
    return f"{first_line}{block}\n{body}\n{block}\n"


# ---------------------------------------------------------------------------
# TemplateRenderer
# ---------------------------------------------------------------------------


class TemplateRenderer:
    """Renders Jinja2 templates for framework scaffolding.

    The renderer discovers ``.j2`` template files under a configurable
    template directory.  Templates are rendered with a context dictionary that
    typically contains organization metadata (key, display name, app name).
    """

    def __init__(
        self,
        attribution: Attribution,
        template_dir: str | Path | None = None,
    ) -> None:
        if template_dir is None:
            template_dir = _DEFAULT_TEMPLATE_DIR
        self.template_dir = Path(template_dir)
        self.attribution = attribution
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape([]),
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
            undefined=StrictUndefined,
        )
        self.env.filters["slugify"] = _slugify_filter
        self.env.filters["pascal_case"] = _pascal_case_filter

    # -- Single template rendering -----------------------------------------

    def render(self, template_path: str, context: dict[str, Any]) -> str:
        """Render a single template with the provided context.

        Args:
            template_path: Path relative to the template directory (e.g.
                ``"common/Makefile.j2"``).
            context: Dictionary of variables available inside the template.
        """
        template = self.env.get_template(template_path)
        return template.render(**context)

    def render_string(self, template_string: str, context: dict[str, Any]) -> str:
        """Render an inline template string (used for output file names)."""
        template = self.env.from_string(template_string)
        return template.render(**context)

    # -- File-based rendering (async) --------------------------------------

    async def render_to_file(
        self,
        template_path: str,
        output_path: str | Path,
        context: dict[str, Any],
    ) -> Path:
        """Render a template, wrap it with attribution and write it.

        Parent directories are created automatically.  Returns the output path.
        """
        out = Path(output_path)
        content = wrap_with_attribution(
            self.render(template_path, context), out.name, self.attribution
        )
        await asyncio.to_thread(_write_file, out, content)
        return out

    # -- Utility -----------------------------------------------------------

    def list_templates(self, prefix: str = "") -> list[str]:
        """Return a sorted list of all ``.j2`` template paths under *prefix*."""
        search_dir = self.template_dir / prefix if prefix else self.template_dir
        if not search_dir.is_dir():
            return []
        return sorted(
            p.relative_to(self.template_dir).as_posix()
            for p in search_dir.rglob("*.j2")
        )


# ---------------------------------------------------------------------------
# Jinja2 custom filters
# ---------------------------------------------------------------------------

def _slugify_filter(value: str) -> str:
    """Convert a string to a filename-safe slug."""
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower().strip())
    return slug.strip("-")


def _pascal_case_filter(value: str) -> str:
    """Convert ``some-thing`` or ``some_thing`` to ``SomeThing``."""
    parts = re.split(r"[-_\s]+", value)
    return "".join(word.capitalize() for word in parts if word)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _write_file(path: Path, content: str) -> None:
    """Synchronous helper: create parent dirs and write content."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
