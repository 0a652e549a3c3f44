"""Shared pytest fixtures for the ChronoForge test suite.

Provides reusable fixtures for:
- Temporary run roots and RunConfig instances
- A recording replacement for ``asyncio.sleep``
- Scripted command runners and PATH lookups
- A preflight stand-in that never touches the network
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import pytest

from chronoforge.builder.executor import CommandOutput
from chronoforge.config import RetryPolicy, RunConfig
from chronoforge.logging_utils import shutdown_logging
from chronoforge.preflight import InstallOutcome, PreflightReport


# ---------------------------------------------------------------------------
# Environment isolation
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Strip CHRONO_* overrides that may leak in from the caller's shell."""
    for name in ("CHRONO_ROOT_DIR", "CHRONO_VERSION", "CHRONO_RETRY_MAX", "CHRONO_BACKOFF"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    shutdown_logging()


# ---------------------------------------------------------------------------
# Paths & configuration
# ---------------------------------------------------------------------------

@pytest.fixture
def tmp_root(tmp_path: Path) -> Path:
    """Root directory for one run (auto-cleanup)."""
    root = tmp_path / "enterprise_framework"
    root.mkdir()
    yield root


@pytest.fixture
def make_config(tmp_root: Path):
    """Factory building a RunConfig rooted at ``tmp_root``."""

    def _make(organization: str = "Google", **overrides: Any) -> RunConfig:
        overrides.setdefault("root_dir", tmp_root)
        return RunConfig(organization=organization, **overrides)

    return _make


@pytest.fixture
def run_config(make_config) -> RunConfig:
    return make_config()


@pytest.fixture
def fast_retry() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, initial_backoff=2.0)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class SleepRecorder:
    """Stands in for ``asyncio.sleep`` and records every requested delay."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)

    @property
    def total(self) -> float:
        return sum(self.delays)


class ScriptedCommand:
    """Command double returning a fixed sequence of outputs."""

    def __init__(self, returncodes: Iterable[int], label: str = "./setup.sh") -> None:
        self._returncodes = list(returncodes)
        self.label = label
        self.calls = 0

    def describe(self) -> str:
        return self.label

    async def execute(self, timeout: int) -> CommandOutput:
        index = min(self.calls, len(self._returncodes) - 1)
        self.calls += 1
        rc = self._returncodes[index]
        return CommandOutput(rc, "ok" if rc == 0 else "", "" if rc == 0 else f"boom {self.calls}")


class FakeRunner:
    """Records commands passed to a preflight/repair runner."""

    def __init__(self, returncode: int = 0, overrides: dict[str, int] | None = None) -> None:
        self.returncode = returncode
        self.overrides = overrides or {}
        self.commands: list[str] = []

    async def __call__(self, command, timeout: int) -> CommandOutput:
        label = command.describe()
        self.commands.append(label)
        for needle, rc in self.overrides.items():
            if needle in label:
                return CommandOutput(rc, "", "failed" if rc else "")
        return CommandOutput(self.returncode, "", "failed" if self.returncode else "")


def which_from(available: Iterable[str]):
    """Build a ``shutil.which`` replacement that only knows *available*."""
    names = set(available)

    def _which(tool: str) -> str | None:
        return f"/usr/local/bin/{tool}" if tool in names else None

    return _which


class StubPreflight:
    """Preflight double that records whether it ran."""

    def __init__(self) -> None:
        self.ran = False

    async def check(self) -> PreflightReport:
        self.ran = True
        return PreflightReport(bootstrapper=InstallOutcome.PRESENT, docker_available=True)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def stub_preflight() -> StubPreflight:
    return StubPreflight()


@pytest.fixture
def log_records(caplog: pytest.LogCaptureFixture) -> pytest.LogCaptureFixture:
    caplog.set_level(logging.INFO, logger="chronoforge")
    return caplog


@pytest.fixture
def scripted_command():
    """Factory: ``scripted_command([1, 1, 0])`` fails twice then succeeds."""
    return ScriptedCommand


@pytest.fixture
def fake_runner():
    return FakeRunner


@pytest.fixture
def which():
    """Factory: ``which({"brew", "docker"})``."""
    return which_from
