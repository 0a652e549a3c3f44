"""Unit tests for the top-level controller (chronoforge.orchestrator).

Tests cover:
- RunGuard exit codes for success, fatal errors, interrupts and SIGTERM
- Orchestrator.run: resolution happens before preflight, summary contents
- _parse_config usage errors
- main(): exit codes and closing log lines
"""

from __future__ import annotations

import os
import signal
from unittest.mock import MagicMock, patch

import pytest

from chronoforge.builder.executor import BuildResult, Outcome
from chronoforge.builder.repair import RepairStage
from chronoforge.errors import (
    ConfigurationError,
    PackagingError,
    UnsupportedOrganizationError,
)
from chronoforge.orchestrator import Orchestrator, RunGuard, _parse_config, main
from chronoforge.pipeline import BuildPipeline, PipelineState

pytestmark = pytest.mark.unit


class _OkExecutor:
    async def run(self, retryable):
        return BuildResult(stage=retryable.stage, outcome=Outcome.SUCCESS, attempts=1)


def _quiet_pipeline(config, task) -> BuildPipeline:
    return BuildPipeline(config, task, executor=_OkExecutor(), repair=RepairStage([]))


# ---------------------------------------------------------------------------
# RunGuard
# ---------------------------------------------------------------------------


class TestRunGuard:
    def test_success(self, log_records):
        with RunGuard() as guard:
            pass
        assert guard.exit_code == 0
        assert guard.error is None
        assert "Cleanup complete." in log_records.text
        assert "Run finished successfully (exit code 0)" in log_records.text

    def test_fatal_error(self, log_records):
        with RunGuard() as guard:
            raise PackagingError("tar failed")
        assert guard.exit_code == 1
        assert guard.error == "tar failed"
        assert "Run aborted: tar failed (exit code 1)" in log_records.text

    def test_keyboard_interrupt(self):
        with RunGuard() as guard:
            raise KeyboardInterrupt
        assert guard.exit_code == 1
        assert guard.error == "Interrupted (SIGINT)"

    def test_unexpected_exception(self):
        with RunGuard() as guard:
            raise RuntimeError("bug")
        assert guard.exit_code == 1
        assert guard.error == "RuntimeError: bug"

    def test_system_exit_propagates(self):
        with pytest.raises(SystemExit):
            with RunGuard():
                raise SystemExit(0)

    def test_sigterm(self):
        previous = signal.getsignal(signal.SIGTERM)
        with RunGuard() as guard:
            os.kill(os.getpid(), signal.SIGTERM)
        assert guard.exit_code == 1
        assert guard.error == "Terminated (SIGTERM)"
        assert signal.getsignal(signal.SIGTERM) == previous


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class TestOrchestrator:
    @pytest.mark.asyncio
    async def test_run_success(self, run_config, stub_preflight):
        run_config.artifacts_dir.mkdir(parents=True)
        summary = await Orchestrator(
            run_config, preflight=stub_preflight, pipeline_factory=_quiet_pipeline
        ).run()
        assert summary.success
        assert summary.pipeline.state is PipelineState.DONE
        assert summary.task.org_key == "GOOGLE"
        assert stub_preflight.ran

    @pytest.mark.asyncio
    async def test_unsupported_org_skips_preflight(self, make_config, stub_preflight):
        config = make_config("Nonexistent")
        factory = MagicMock()
        with pytest.raises(UnsupportedOrganizationError):
            await Orchestrator(config, preflight=stub_preflight, pipeline_factory=factory).run()
        assert not stub_preflight.ran
        factory.assert_not_called()
        assert not config.framework_dir.exists()

    @pytest.mark.asyncio
    async def test_summary_table(self, run_config, stub_preflight):
        run_config.artifacts_dir.mkdir(parents=True)
        with patch("chronoforge.orchestrator.print_summary_table") as mock_table:
            await Orchestrator(
                run_config, preflight=stub_preflight, pipeline_factory=_quiet_pipeline
            ).run()
        rows = mock_table.call_args.args[0]
        assert rows["Organization"] == "Google (GOOGLE)"
        assert rows["Stacks"] == "go-service, python-fastapi"
        assert rows["zip"].startswith("GOOGLE_enterprise_framework_v1.0.0.zip")
        assert rows["tar.gz"].startswith("GOOGLE_enterprise_framework_v1.0.0.tar.gz")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


class TestParseConfig:
    def test_valid(self):
        assert _parse_config(["google"]).org_key == "GOOGLE"

    def test_missing_argument(self):
        with pytest.raises(ConfigurationError, match="Usage: chronoforge <Organization>"):
            _parse_config([])

    def test_too_many_arguments(self):
        with pytest.raises(ConfigurationError):
            _parse_config(["Google", "Meta"])

    def test_blank_organization(self):
        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            _parse_config(["   "])

    def test_help_exits_cleanly(self):
        with pytest.raises(SystemExit) as exc_info:
            _parse_config(["--help"])
        assert exc_info.value.code == 0


class TestMain:
    @pytest.fixture(autouse=True)
    def _root(self, monkeypatch, tmp_root):
        monkeypatch.setenv("CHRONO_ROOT_DIR", str(tmp_root))

    def test_usage_error_is_logged(self, tmp_root):
        assert main([]) == 1
        log = (tmp_root / "chrono_v1.0.0.log").read_text(encoding="utf-8")
        assert "[ERROR] Usage: chronoforge <Organization>" in log
        assert "[ERROR] Run aborted:" in log

    def test_success_exit_code(self, tmp_root, stub_preflight):
        def factory(config):
            return Orchestrator(config, preflight=stub_preflight, pipeline_factory=_quiet_pipeline)

        (tmp_root / "artifacts").mkdir()
        assert main(["Google"], orchestrator_factory=factory) == 0
        log = (tmp_root / "chrono_v1.0.0.log").read_text(encoding="utf-8")
        assert "[INFO] Run finished successfully (exit code 0)" in log

    def test_unwritable_log_file(self, monkeypatch, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("file, not a dir")
        monkeypatch.setenv("CHRONO_ROOT_DIR", str(blocker / "root"))
        assert main(["Google"]) == 1
