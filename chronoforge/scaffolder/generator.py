"""Framework tree creation and the organization-independent scaffold.

The framework directory is always created fresh: an existing directory at the
derived path is renamed aside to a timestamped backup, never merged into or
overwritten.  ``CommonScaffoldGenerator`` then writes the base scaffold every
organization gets, followed by the organization's stack strategies.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from jinja2 import TemplateError

from chronoforge.config import RunConfig
from chronoforge.errors import GenerationError
from chronoforge.utils import make_executable

from .registry import GenerationTask
from .templates import Attribution, TemplateRenderer

logger = logging.getLogger(__name__)


@dataclass
class FrameworkTree:
    """The on-disk generated directory for one run."""

    path: Path
    backup_path: Path | None = None
    files: list[Path] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Directory preparation
# ---------------------------------------------------------------------------


def _backup_target(path: Path, now: Callable[[], float]) -> Path:
    base = path.with_name(f"{path.name}_backup_{int(now())}")
    candidate = base
    counter = 1
    while candidate.exists():
        candidate = base.with_name(f"{base.name}_{counter}")
        counter += 1
    return candidate


def prepare_framework_dir(
    config: RunConfig, now: Callable[[], float] = time.time
) -> FrameworkTree:
    """Create the framework directory, backing up any previous one.

    Raises:
        GenerationError: If the backup rename or the directory creation fails.
    """
    target = config.framework_dir
    backup: Path | None = None

    if target.exists():
        backup = _backup_target(target, now)
        logger.warning("Existing folder – backing up to %s", backup.name)
        try:
            target.rename(backup)
        except OSError as exc:
            raise GenerationError(f"Cannot back up {target}: {exc}") from exc

    try:
        target.mkdir(parents=True)
    except OSError as exc:
        raise GenerationError(f"Cannot create {target}: {exc}") from exc

    return FrameworkTree(path=target, backup_path=backup)


# ---------------------------------------------------------------------------
# Context building
# ---------------------------------------------------------------------------


def build_context(config: RunConfig, task: GenerationTask) -> dict[str, Any]:
    """Build the Jinja2 template context for *task*."""
    app = f"{task.org_key.lower()}forge"
    app_title = f"{task.display_name}Forge"
    return {
        **config.template_context(),
        "display_name": task.display_name,
        "app": app,
        "app_title": app_title,
        "java_group": "org.devinroyal",
        "java_package": f"org.devinroyal.{app}",
        "stacks": task.stack_names,
    }


# ---------------------------------------------------------------------------
# CommonScaffoldGenerator
# ---------------------------------------------------------------------------


class CommonScaffoldGenerator:
    """Writes the base scaffold and then the organization's stacks.

    The base scaffold contains:
    - ``setup.sh`` bootstrap entrypoint (executable) and a ``Makefile``
    - ``Dockerfile``, ``terraform/main.tf`` and ``ansible/playbook.yml``
    - a systemd unit, CI manifest and cron stub
    - README, LICENSE and pitch document
    """

    # Template name -> output path (rendered as a template string)
    _COMMON_FILES: tuple[tuple[str, str], ...] = (
        ("setup.sh.j2", "setup.sh"),
        ("Makefile.j2", "Makefile"),
        ("Dockerfile.j2", "Dockerfile"),
        ("main.tf.j2", "terraform/main.tf"),
        ("playbook.yml.j2", "ansible/playbook.yml"),
        ("app.service.j2", "systemd/{{ app }}.service"),
        ("cicd-pipeline.yaml.j2", "cicd-pipeline.yaml"),
        ("cron-job.conf.j2", "cron-job.conf"),
        ("README.md.j2", "README.md"),
        ("LICENSE.md.j2", "LICENSE.md"),
        ("pitch-deck.md.j2", "pitch-deck.md"),
    )

    _EXECUTABLES: tuple[str, ...] = ("setup.sh",)

    def __init__(self, config: RunConfig, renderer: TemplateRenderer | None = None) -> None:
        self.config = config
        self.renderer = renderer or TemplateRenderer(
            Attribution(config.copyright_holder, config.copyright_year)
        )

    async def generate(self, tree: FrameworkTree, task: GenerationTask) -> FrameworkTree:
        """Populate *tree* with the common scaffold and every strategy of *task*.

        Raises:
            GenerationError: On any write failure.
        """
        context = build_context(self.config, task)
        try:
            tree.files.extend(await self._render_common(tree.path, context))
            for strategy in task.strategies:
                logger.info("Generating %s stack", strategy.name)
                tree.files.extend(
                    await strategy.generate(self.renderer, tree.path, context)
                )
        except (OSError, TemplateError) as exc:
            raise GenerationError(f"Writing framework files failed: {exc}") from exc

        logger.info("Generated %d files under %s", len(tree.files), tree.path)
        return tree

    async def _render_common(self, root: Path, ctx: dict[str, Any]) -> list[Path]:
        written: list[Path] = []
        for template_name, output_pattern in self._COMMON_FILES:
            out = root / self.renderer.render_string(output_pattern, ctx)
            logger.info("Creating %s", out)
            await self.renderer.render_to_file(f"common/{template_name}", out, ctx)
            if out.name in self._EXECUTABLES:
                await asyncio.to_thread(make_executable, out)
            written.append(out)
        return written
