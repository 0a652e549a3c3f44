"""Unit tests for the build pipeline state machine (chronoforge.pipeline).

Tests cover:
- can_transition: the linear order, ABORTED from any live state, terminal states
- BuildPipeline.transition / abort
- Happy path: INIT -> ... -> DONE with artifacts on disk
- Setup / build exhaustion aborts before packaging
- Non-ChronoForge exceptions abort and propagate
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from chronoforge.builder.executor import BuildResult, Outcome, RetryableCommand
from chronoforge.builder.repair import Fixer, RepairStage, RepairStatus
from chronoforge.config import RetryPolicy
from chronoforge.errors import InvalidTransitionError, PipelineError, RetryExhaustedError
from chronoforge.pipeline import BuildPipeline, PipelineState, can_transition
from chronoforge.scaffolder.registry import default_registry

ORDER = [
    PipelineState.INIT,
    PipelineState.GENERATED,
    PipelineState.SETUP_DONE,
    PipelineState.BUILT,
    PipelineState.REPAIRED,
    PipelineState.PACKAGED,
    PipelineState.DONE,
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeExecutor:
    """Returns a canned BuildResult per stage instead of running commands."""

    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = failing or set()
        self.calls: list[RetryableCommand] = []

    async def run(self, retryable: RetryableCommand) -> BuildResult:
        self.calls.append(retryable)
        if retryable.stage in self.failing:
            return BuildResult(
                stage=retryable.stage,
                outcome=Outcome.FATAL,
                attempts=retryable.max_attempts,
                diagnostic="exit code 2",
            )
        return BuildResult(stage=retryable.stage, outcome=Outcome.SUCCESS, attempts=1)


def _pipeline(config, executor=None, repair=None) -> BuildPipeline:
    task = default_registry().resolve(config.org_key)
    return BuildPipeline(
        config,
        task,
        executor=executor or FakeExecutor(),
        repair=repair or RepairStage([]),
    )


@pytest.fixture
def ready_config(run_config):
    run_config.artifacts_dir.mkdir(parents=True)
    return run_config


# ---------------------------------------------------------------------------
# can_transition
# ---------------------------------------------------------------------------


class TestCanTransition:
    @pytest.mark.unit
    def test_linear_order(self):
        for current, target in zip(ORDER, ORDER[1:]):
            assert can_transition(current, target)

    @pytest.mark.unit
    def test_no_skipping(self):
        assert not can_transition(PipelineState.INIT, PipelineState.SETUP_DONE)
        assert not can_transition(PipelineState.BUILT, PipelineState.PACKAGED)
        assert not can_transition(PipelineState.GENERATED, PipelineState.DONE)

    @pytest.mark.unit
    def test_packaged_only_after_repaired(self):
        sources = [s for s in PipelineState if can_transition(s, PipelineState.PACKAGED)]
        assert sources == [PipelineState.REPAIRED]

    @pytest.mark.unit
    def test_no_going_back(self):
        assert not can_transition(PipelineState.BUILT, PipelineState.GENERATED)

    @pytest.mark.unit
    @pytest.mark.parametrize("state", ORDER[:-1])
    def test_abort_from_any_live_state(self, state):
        assert can_transition(state, PipelineState.ABORTED)

    @pytest.mark.unit
    @pytest.mark.parametrize("target", list(PipelineState))
    def test_terminal_states_are_final(self, target):
        assert not can_transition(PipelineState.ABORTED, target)
        assert not can_transition(PipelineState.DONE, target)


# ---------------------------------------------------------------------------
# transition / abort
# ---------------------------------------------------------------------------


class TestTransition:
    @pytest.mark.unit
    def test_illegal_transition_raises(self, run_config):
        pipeline = _pipeline(run_config)
        with pytest.raises(InvalidTransitionError, match="init -> packaged"):
            pipeline.transition(PipelineState.PACKAGED)
        assert pipeline.state is PipelineState.INIT

    @pytest.mark.unit
    def test_abort_records_reason(self, run_config):
        pipeline = _pipeline(run_config)
        pipeline.abort("boom")
        assert pipeline.state is PipelineState.ABORTED
        assert pipeline.run_state.error == "boom"
        assert pipeline.run_state.history == [PipelineState.INIT, PipelineState.ABORTED]

    @pytest.mark.unit
    def test_abort_is_irreversible(self, run_config):
        pipeline = _pipeline(run_config)
        pipeline.abort("first")
        pipeline.abort("second")
        assert pipeline.run_state.error == "first"
        with pytest.raises(InvalidTransitionError):
            pipeline.transition(PipelineState.GENERATED)


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


class TestRun:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_happy_path(self, ready_config):
        executor = FakeExecutor()
        run = await _pipeline(ready_config, executor=executor).run()

        assert run.state is PipelineState.DONE
        assert run.history == ORDER
        assert [c.stage for c in executor.calls] == ["setup", "build"]
        assert executor.calls[0].command.argv == ("./setup.sh",)
        assert executor.calls[1].command.argv == ("make", "build")
        assert executor.calls[0].command.cwd == ready_config.framework_dir
        assert run.package is not None
        assert run.package.zip.path.is_file()
        assert run.package.tar.path.is_file()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_retry_policy_passed_through(self, make_config):
        config = make_config(retry=RetryPolicy(max_attempts=5, initial_backoff=0.5))
        config.artifacts_dir.mkdir(parents=True)
        executor = FakeExecutor()
        await _pipeline(config, executor=executor).run()
        assert executor.calls[0].max_attempts == 5
        assert executor.calls[0].initial_delay == 0.5

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "failing,last_good",
        [("setup", PipelineState.GENERATED), ("build", PipelineState.SETUP_DONE)],
    )
    async def test_exhaustion_aborts_before_packaging(self, ready_config, failing, last_good):
        pipeline = _pipeline(ready_config, executor=FakeExecutor({failing}))
        with pytest.raises(PipelineError) as exc_info:
            await pipeline.run()

        assert exc_info.value.stage == failing
        assert isinstance(exc_info.value.__cause__, RetryExhaustedError)
        assert "Command failed after 3 retries" in str(exc_info.value)
        assert pipeline.state is PipelineState.ABORTED
        assert pipeline.run_state.history[-2] is last_good
        assert PipelineState.PACKAGED not in pipeline.run_state.history
        assert list(ready_config.artifacts_dir.iterdir()) == []
        assert ready_config.framework_dir.is_dir()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_repair_failures_do_not_abort(self, ready_config):
        fixer = Fixer()
        fixer.repair = AsyncMock(side_effect=RuntimeError("lint crashed"))
        run = await _pipeline(ready_config, repair=RepairStage([fixer])).run()
        assert run.state is PipelineState.DONE
        assert run.repairs[0].status is RepairStatus.FAILED

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unexpected_error_aborts_and_propagates(self, ready_config):
        repair = RepairStage([])
        repair.run = AsyncMock(side_effect=RuntimeError("unexpected"))
        pipeline = _pipeline(ready_config, repair=repair)
        with pytest.raises(RuntimeError, match="unexpected"):
            await pipeline.run()
        assert pipeline.state is PipelineState.ABORTED
        assert pipeline.run_state.history[-2] is PipelineState.BUILT

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_run_twice_backs_up_first_tree(self, ready_config):
        await _pipeline(ready_config).run()
        await _pipeline(ready_config).run()
        backups = list(ready_config.root_dir.glob("GOOGLE_enterprise_framework_backup_*"))
        assert len(backups) == 1
