"""ChronoForge top-level controller.

Wires preflight, organization resolution and the build pipeline into one run
and owns the process exit code.

Usage::

    chronoforge Google
    python -m chronoforge Google
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from dataclasses import dataclass
from types import FrameType, TracebackType
from typing import Callable

from pydantic import ValidationError
from rich.panel import Panel

from chronoforge.config import RunConfig
from chronoforge.errors import ChronoForgeError, ConfigurationError, RunInterrupted
from chronoforge.logging_utils import configure_logging, shutdown_logging
from chronoforge.pipeline import BuildPipeline, PipelineRun, PipelineState
from chronoforge.preflight import Preflight, PreflightReport
from chronoforge.scaffolder.registry import GenerationTask, GeneratorRegistry, default_registry
from chronoforge.utils import console, error_console, format_duration, print_summary_table

logger = logging.getLogger(__name__)

PipelineFactory = Callable[[RunConfig, GenerationTask], BuildPipeline]


@dataclass
class RunSummary:
    task: GenerationTask
    preflight: PreflightReport
    pipeline: PipelineRun

    @property
    def success(self) -> bool:
        return self.pipeline.state is PipelineState.DONE


# ---------------------------------------------------------------------------
# Run guard
# ---------------------------------------------------------------------------


class RunGuard:
    """Scoped guard around a whole run.

    Converts every way out of the ``with`` block -- normal completion, a fatal
    error, SIGINT or SIGTERM -- into an exit code, and always writes the
    closing log lines.  Files already written are left in place.
    """

    def __init__(self) -> None:
        self.exit_code = 0
        self.error: str | None = None
        self._previous_sigterm = None

    def __enter__(self) -> "RunGuard":
        try:
            self._previous_sigterm = signal.signal(signal.SIGTERM, self._on_sigterm)
        except ValueError:
            # Not on the main thread; SIGTERM keeps its default behaviour.
            self._previous_sigterm = None
        return self

    @staticmethod
    def _on_sigterm(signum: int, frame: FrameType | None) -> None:
        raise RunInterrupted("Terminated (SIGTERM)")

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        if self._previous_sigterm is not None:
            signal.signal(signal.SIGTERM, self._previous_sigterm)

        if exc is None:
            self.exit_code = 0
        elif isinstance(exc, ChronoForgeError):
            self._fail(str(exc))
        elif isinstance(exc, (KeyboardInterrupt, asyncio.CancelledError)):
            self._fail("Interrupted (SIGINT)")
        elif isinstance(exc, SystemExit):
            return False
        else:
            logger.error("Unexpected error", exc_info=(exc_type, exc, tb))
            self._fail(f"{type(exc).__name__}: {exc}")

        logger.info("Cleanup complete.")
        if self.exit_code == 0:
            logger.info("Run finished successfully (exit code 0)")
        else:
            logger.error("Run aborted: %s (exit code %d)", self.error, self.exit_code)
        return True

    def _fail(self, message: str) -> None:
        self.error = message
        self.exit_code = 1
        logger.error(message)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class Orchestrator:
    """Runs one organization end to end.

    Attributes:
        config: The immutable run configuration.
        registry: Organization -> generator strategies mapping.
    """

    def __init__(
        self,
        config: RunConfig,
        registry: GeneratorRegistry | None = None,
        preflight: Preflight | None = None,
        pipeline_factory: PipelineFactory | None = None,
    ) -> None:
        self.config = config
        self.registry = registry or default_registry()
        self.preflight = preflight or Preflight(config)
        self.pipeline_factory = pipeline_factory or BuildPipeline

    async def run(self) -> RunSummary:
        """Resolve, preflight, then drive the build pipeline.

        The organization is resolved first so that an unsupported key fails
        before anything is installed or created.

        Raises:
            ChronoForgeError: On any fatal failure.
        """
        console.print(
            Panel(
                f"[bold bright_cyan]ChronoForge {self.config.version}[/bold bright_cyan]\n"
                f"Organization : {self.config.organization}\n"
                f"Framework    : {self.config.framework_dir}\n"
                f"Artifacts    : {self.config.artifacts_dir}",
                title="[bold]Run Start[/bold]",
                border_style="bright_cyan",
            )
        )

        task = self.registry.resolve(self.config.org_key)
        report = await self.preflight.check()

        pipeline = self.pipeline_factory(self.config, task)
        pipeline_run = await pipeline.run()

        summary = RunSummary(task=task, preflight=report, pipeline=pipeline_run)
        self._print_summary(summary)
        logger.info(
            "ChronoForge finished – %s framework ready (%s)",
            self.config.org_key,
            self.config.version,
        )
        return summary

    def _print_summary(self, summary: RunSummary) -> None:
        rows = {
            "Organization": f"{summary.task.display_name} ({summary.task.org_key})",
            "Stacks": ", ".join(summary.task.stack_names),
            "Framework": str(self.config.framework_dir),
            "Duration": format_duration(summary.pipeline.duration_seconds),
        }
        if summary.preflight.failed_dependencies:
            rows["Missing tools"] = ", ".join(summary.preflight.failed_dependencies)
        if summary.pipeline.package is not None:
            rows["Manifest entries"] = str(len(summary.pipeline.package.manifest))
            for artifact in summary.pipeline.package.artifacts:
                rows[artifact.format] = f"{artifact.path.name} ({artifact.sha256[:12]})"
        print_summary_table(rows, title="ChronoForge Results")


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chronoforge",
        description="ChronoForge -- enterprise DevOps framework generator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Example:\n  chronoforge Google\n",
    )
    parser.add_argument("organization", help="Organization name (case-insensitive)")
    return parser


def _parse_config(argv: list[str] | None) -> RunConfig:
    parser = _build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        if exc.code == 0:
            raise
        raise ConfigurationError(
            f"Usage: {parser.prog} <Organization>   (e.g. Google)"
        ) from None
    try:
        return RunConfig.from_env(args.organization)
    except (ValidationError, ValueError) as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc


def main(
    argv: list[str] | None = None,
    orchestrator_factory: Callable[[RunConfig], Orchestrator] = Orchestrator,
) -> int:
    """Run ChronoForge and return the process exit code."""
    try:
        configure_logging(RunConfig.env_log_file())
    except OSError as exc:
        error_console.print(f"[bold red]Error:[/bold red] cannot open log file: {exc}")
        return 1

    try:
        with RunGuard() as guard:
            config = _parse_config(argv)
            asyncio.run(orchestrator_factory(config).run())
    finally:
        shutdown_logging()
    return guard.exit_code


def cli() -> None:
    """Console-script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    cli()
