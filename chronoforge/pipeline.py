"""ChronoForge build pipeline.

A state machine that drives one generated framework tree through its stages:

    INIT -> GENERATED -> SETUP_DONE -> BUILT -> REPAIRED -> PACKAGED -> DONE

``ABORTED`` is reachable from every non-terminal state on a fatal failure and
is irreversible.  Stages run strictly in order; nothing is scheduled
concurrently.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from chronoforge.builder.executor import (
    BuildResult,
    Command,
    RetryableCommand,
    RetryExecutor,
)
from chronoforge.builder.repair import RepairOutcome, RepairStage
from chronoforge.config import RunConfig
from chronoforge.errors import (
    ChronoForgeError,
    InvalidTransitionError,
    PipelineError,
    RetryExhaustedError,
)
from chronoforge.packager import Packager, PackageResult
from chronoforge.scaffolder.generator import (
    CommonScaffoldGenerator,
    FrameworkTree,
    prepare_framework_dir,
)
from chronoforge.scaffolder.registry import GenerationTask
from chronoforge.utils import format_duration, print_stage_header

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# States
# ---------------------------------------------------------------------------


class PipelineState(str, Enum):
    INIT = "init"
    GENERATED = "generated"
    SETUP_DONE = "setup-done"
    BUILT = "built"
    REPAIRED = "repaired"
    PACKAGED = "packaged"
    DONE = "done"
    ABORTED = "aborted"

    @property
    def terminal(self) -> bool:
        return self in (PipelineState.DONE, PipelineState.ABORTED)


_TRANSITIONS: dict[PipelineState, PipelineState | None] = {
    PipelineState.INIT: PipelineState.GENERATED,
    PipelineState.GENERATED: PipelineState.SETUP_DONE,
    PipelineState.SETUP_DONE: PipelineState.BUILT,
    PipelineState.BUILT: PipelineState.REPAIRED,
    PipelineState.REPAIRED: PipelineState.PACKAGED,
    PipelineState.PACKAGED: PipelineState.DONE,
    PipelineState.DONE: None,
    PipelineState.ABORTED: None,
}


def can_transition(current: PipelineState, target: PipelineState) -> bool:
    """Return whether *current* -> *target* is a legal transition."""
    if current.terminal:
        return False
    if target is PipelineState.ABORTED:
        return True
    return _TRANSITIONS[current] is target


@dataclass
class PipelineRun:
    """Everything a pipeline run produced, for reporting."""

    state: PipelineState = PipelineState.INIT
    history: list[PipelineState] = field(default_factory=lambda: [PipelineState.INIT])
    tree: FrameworkTree | None = None
    results: dict[str, BuildResult] = field(default_factory=dict)
    repairs: list[RepairOutcome] = field(default_factory=list)
    package: PackageResult | None = None
    error: str | None = None
    duration_seconds: float = 0.0


# ---------------------------------------------------------------------------
# BuildPipeline
# ---------------------------------------------------------------------------


class BuildPipeline:
    """Sequences generate -> setup -> build -> repair -> package.

    Attributes:
        config: Run configuration.
        task: Resolved generation task for the organization.
        run_state: Accumulated results; ``run_state.state`` is the current state.
    """

    def __init__(
        self,
        config: RunConfig,
        task: GenerationTask,
        *,
        generator: CommonScaffoldGenerator | None = None,
        executor: RetryExecutor | None = None,
        repair: RepairStage | None = None,
        packager: Packager | None = None,
    ) -> None:
        self.config = config
        self.task = task
        self.generator = generator or CommonScaffoldGenerator(config)
        self.executor = executor or RetryExecutor(timeout=config.command_timeout)
        self.repair = repair or RepairStage()
        self.packager = packager or Packager(config)
        self.run_state = PipelineRun()

    @property
    def state(self) -> PipelineState:
        return self.run_state.state

    def transition(self, target: PipelineState) -> None:
        """Move to *target*.

        Raises:
            InvalidTransitionError: If the move is not allowed.
        """
        current = self.run_state.state
        if not can_transition(current, target):
            raise InvalidTransitionError(current.value, target.value)
        self.run_state.state = target
        self.run_state.history.append(target)
        logger.info("Pipeline %s -> %s", current.value, target.value)

    def abort(self, reason: str) -> None:
        """Move to ``ABORTED`` unless the run already reached a terminal state."""
        if self.state.terminal:
            return
        self.run_state.error = reason
        self.transition(PipelineState.ABORTED)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    _STAGES: tuple[tuple[str, str, PipelineState], ...] = (
        ("generate", "_generate", PipelineState.GENERATED),
        ("setup", "_setup", PipelineState.SETUP_DONE),
        ("build", "_build", PipelineState.BUILT),
        ("repair", "_repair", PipelineState.REPAIRED),
        ("package", "_package", PipelineState.PACKAGED),
    )

    async def run(self) -> PipelineRun:
        """Execute every stage in order and return the run record.

        Raises:
            PipelineError: On a fatal stage failure (state is ``ABORTED``).
        """
        start = time.monotonic()
        stage_name = "init"
        try:
            for index, (stage_name, method_name, target) in enumerate(self._STAGES, 1):
                print_stage_header(index, stage_name)
                stage_start = time.monotonic()
                await getattr(self, method_name)()
                self.transition(target)
                logger.info(
                    "Stage %s completed in %s",
                    stage_name,
                    format_duration(time.monotonic() - stage_start),
                )
            self.transition(PipelineState.DONE)
        except ChronoForgeError as exc:
            self.abort(str(exc))
            raise PipelineError(stage_name, str(exc)) from exc
        except BaseException as exc:
            self.abort(f"{type(exc).__name__}: {exc}")
            raise
        finally:
            self.run_state.duration_seconds = time.monotonic() - start
        return self.run_state

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _generate(self) -> None:
        tree = prepare_framework_dir(self.config)
        self.run_state.tree = tree
        await self.generator.generate(tree, self.task)

    async def _setup(self) -> None:
        await self._retry("setup", self.config.setup_entrypoint)

    async def _build(self) -> None:
        await self._retry("build", self.config.build_entrypoint)

    async def _repair(self) -> None:
        self.run_state.repairs = await self.repair.run(self._tree_path())

    async def _package(self) -> None:
        self.run_state.package = await self.packager.package(self._tree_path())

    async def _retry(self, stage: str, argv: list[str]) -> BuildResult:
        command = Command(tuple(argv), cwd=self._tree_path())
        result = await self.executor.run(
            RetryableCommand.from_policy(command, self.config.retry, stage=stage)
        )
        self.run_state.results[stage] = result
        if not result.success:
            raise RetryExhaustedError(command.describe(), result.attempts, result.diagnostic)
        return result

    def _tree_path(self) -> Path:
        if self.run_state.tree is None:
            raise InvalidTransitionError(self.state.value, "stage without a framework tree")
        return self.run_state.tree.path
