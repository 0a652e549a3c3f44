"""Environment preflight checks.

Runs once before anything is generated:

1. Bootstrapper (Homebrew) present or installed -- fatal on failure.
2. Each external tool present or installed -- failures are advisory.
3. Container daemon reachable -- advisory.
4. Root volume usage below the threshold -- fatal otherwise.
5. Artifact directory created -- fatal on failure.

None of the checks is retried.
"""

from __future__ import annotations

import logging
import math
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, NamedTuple, Optional

import httpx

from chronoforge.builder.executor import Command, CommandRunner, execute_command
from chronoforge.config import RunConfig
from chronoforge.errors import PreflightError
from chronoforge.utils import ensure_dir

logger = logging.getLogger(__name__)

HOMEBREW_INSTALL_URL = "https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh"

# Tools whose Homebrew formula differs from the executable name.
_FORMULA_NAMES: dict[str, str] = {
    "python3": "python",
    "clang": "llvm",
    "awk": "gawk",
    "sed": "gnu-sed",
    "tr": "coreutils",
    "cut": "coreutils",
    "sort": "coreutils",
    "tee": "coreutils",
}

WhichFn = Callable[[str], Optional[str]]


class DiskUsage(NamedTuple):
    total: int
    used: int
    free: int


class InstallOutcome(str, Enum):
    PRESENT = "present"
    INSTALLED = "installed"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Capability-install collaborator
# ---------------------------------------------------------------------------


class HomebrewInstaller:
    """Checks for and installs tools through Homebrew.

    Parameters
    ----------
    runner:
        Coroutine executing a command; injectable for tests.
    which:
        PATH lookup, ``shutil.which`` by default.
    transport:
        Optional ``httpx`` transport used to download the install script.
    """

    def __init__(
        self,
        runner: CommandRunner = execute_command,
        which: WhichFn = shutil.which,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: int = 900,
    ) -> None:
        self._run = runner
        self._which = which
        self._transport = transport
        self.timeout = timeout

    def has(self, tool: str) -> bool:
        return self._which(tool) is not None

    async def bootstrap(self) -> InstallOutcome:
        """Make sure ``brew`` itself is available."""
        if self.has("brew"):
            return InstallOutcome.PRESENT

        logger.info("Installing Homebrew...")
        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=httpx.Timeout(60.0, connect=10.0),
                follow_redirects=True,
            ) as client:
                response = await client.get(HOMEBREW_INSTALL_URL)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Downloading the Homebrew installer failed: %s", exc)
            return InstallOutcome.FAILED

        output = await self._run(
            Command(("/bin/bash", "-c", response.text)), self.timeout
        )
        if not output.ok:
            logger.error("Homebrew installer exited %d: %s", output.returncode, output.stderr)
            return InstallOutcome.FAILED
        return InstallOutcome.INSTALLED

    async def ensure(self, tool: str) -> InstallOutcome:
        """Install *tool* unless it is already on PATH."""
        if self.has(tool):
            return InstallOutcome.PRESENT

        formula = _FORMULA_NAMES.get(tool, tool)
        logger.info("Installing %s via Homebrew...", tool)
        output = await self._run(Command(("brew", "install", formula)), self.timeout)
        return InstallOutcome.INSTALLED if output.ok else InstallOutcome.FAILED

    async def container_daemon_running(self) -> bool:
        if not self.has("docker"):
            return False
        output = await self._run(Command(("docker", "info")), 60)
        return output.ok


# ---------------------------------------------------------------------------
# Preflight
# ---------------------------------------------------------------------------


@dataclass
class PreflightReport:
    """What preflight found.  Only produced when every fatal check passed."""

    bootstrapper: InstallOutcome
    dependencies: dict[str, InstallOutcome] = field(default_factory=dict)
    docker_available: bool = False
    disk_usage_percent: int = 0

    @property
    def failed_dependencies(self) -> list[str]:
        return [
            name
            for name, outcome in self.dependencies.items()
            if outcome is InstallOutcome.FAILED
        ]


def _nearest_existing(path: Path) -> Path:
    current = path.resolve()
    while not current.exists() and current != current.parent:
        current = current.parent
    return current


class Preflight:
    """Validates environment prerequisites before any generation."""

    def __init__(
        self,
        config: RunConfig,
        installer: HomebrewInstaller | None = None,
        disk_usage: Callable[[Path], DiskUsage] = shutil.disk_usage,
    ) -> None:
        self.config = config
        self.installer = installer or HomebrewInstaller(timeout=config.command_timeout)
        self._disk_usage = disk_usage

    async def check(self) -> PreflightReport:
        """Run every check once, in order.

        Raises:
            PreflightError: On a fatal check failure.
        """
        logger.info("Preflight checks…")

        bootstrap = await self.installer.bootstrap()
        if bootstrap is InstallOutcome.FAILED:
            raise PreflightError("Homebrew install failed")
        report = PreflightReport(bootstrapper=bootstrap)

        for tool in self.config.dependencies:
            outcome = await self.installer.ensure(tool)
            if outcome is InstallOutcome.FAILED:
                logger.warning("brew install %s failed – non-fatal", tool)
            report.dependencies[tool] = outcome

        report.docker_available = await self.installer.container_daemon_running()
        if not report.docker_available:
            logger.warning("Docker daemon not running – Docker steps will be skipped")

        report.disk_usage_percent = self.check_space()
        self.ensure_artifacts_dir()

        logger.info("Preflight OK")
        return report

    def check_space(self) -> int:
        """Return root volume usage in percent (rounded up, like ``df``).

        Raises:
            PreflightError: If usage exceeds the configured threshold.
        """
        probe = _nearest_existing(self.config.root_dir)
        try:
            usage = self._disk_usage(probe)
        except OSError as exc:
            raise PreflightError(f"Cannot read disk usage for {probe}: {exc}") from exc

        capacity = usage.used + usage.free
        percent = math.ceil(usage.used * 100 / capacity) if capacity else 100
        if percent > self.config.disk_usage_threshold:
            raise PreflightError(f"Disk usage {percent}% – free space first.")
        return percent

    def ensure_artifacts_dir(self) -> Path:
        """Create the artifact directory.

        Raises:
            PreflightError: If the directory cannot be created.
        """
        target = self.config.artifacts_dir
        try:
            ensure_dir(target)
        except OSError as exc:
            raise PreflightError(f"Cannot create {target}: {exc}") from exc
        return target
