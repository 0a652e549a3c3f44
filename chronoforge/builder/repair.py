"""Best-effort repair of generated artifacts.

Each fixer inspects one artifact of the framework tree and tries to fix or
smoke-test it.  Fixers report a :class:`RepairOutcome` value; nothing in this
module raises into the pipeline, so repair can never abort a run.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from .executor import Command, CommandRunner, execute_command

logger = logging.getLogger(__name__)

WhichFn = Callable[[str], Optional[str]]


class RepairStatus(str, Enum):
    CLEAN = "clean"
    FIXED = "fixed"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class RepairOutcome:
    """Logged result of one fixer.  Never escalated."""

    name: str
    status: RepairStatus
    detail: str = ""


class Fixer:
    """Base class for repair collaborators."""

    name = "fixer"

    def __init__(
        self,
        timeout: int = 300,
        which: WhichFn = shutil.which,
        runner: CommandRunner = execute_command,
    ) -> None:
        self.timeout = timeout
        self._which = which
        self._run = runner

    async def repair(self, framework_dir: Path) -> RepairOutcome:
        raise NotImplementedError

    def _outcome(self, status: RepairStatus, detail: str = "") -> RepairOutcome:
        return RepairOutcome(self.name, status, detail)


class PlaybookLintFixer(Fixer):
    """Lints the Ansible playbook and runs ``ansible-lint --fix`` on failure."""

    name = "ansible-lint"
    playbook = Path("ansible") / "playbook.yml"

    async def repair(self, framework_dir: Path) -> RepairOutcome:
        playbook = framework_dir / self.playbook
        if not playbook.is_file():
            return self._outcome(RepairStatus.SKIPPED, "no playbook")

        if self._which("ansible-lint") is None:
            logger.warning("ansible-lint not available – skipping playbook lint")
            return self._outcome(RepairStatus.SKIPPED, "ansible-lint not installed")

        lint = await self._run(
            Command(("ansible-lint", str(playbook)), cwd=framework_dir), self.timeout
        )
        if lint.ok:
            return self._outcome(RepairStatus.CLEAN)

        logger.warning("ansible-lint failed – auto-fix")
        fix = await self._run(
            Command(("ansible-lint", "--fix", str(playbook)), cwd=framework_dir),
            self.timeout,
        )
        if fix.ok:
            return self._outcome(RepairStatus.FIXED)

        logger.warning("ansible-lint --fix failed: %s", fix.stderr or fix.stdout)
        return self._outcome(RepairStatus.FAILED, fix.stderr or fix.stdout)


class ContainerSmokeTest(Fixer):
    """Builds the generated Dockerfile once as a smoke test."""

    name = "docker-build"
    image_tag = "chrono-test"

    async def repair(self, framework_dir: Path) -> RepairOutcome:
        dockerfile = framework_dir / "Dockerfile"
        if not dockerfile.is_file():
            return self._outcome(RepairStatus.SKIPPED, "no Dockerfile")

        if self._which("docker") is None:
            logger.warning("docker not available – skipping container smoke test")
            return self._outcome(RepairStatus.SKIPPED, "docker not installed")

        argv = (
            "docker", "build", "-t", self.image_tag,
            "-f", str(dockerfile), str(framework_dir),
        )
        build = await self._run(Command(argv, cwd=framework_dir), self.timeout)
        if build.ok:
            return self._outcome(RepairStatus.CLEAN)

        logger.warning("Docker build failed – continuing")
        return self._outcome(RepairStatus.FAILED, build.stderr or build.stdout)


class RepairStage:
    """Runs every fixer once, in order, tolerating any failure."""

    def __init__(self, fixers: list[Fixer] | None = None) -> None:
        self.fixers = fixers if fixers is not None else [PlaybookLintFixer(), ContainerSmokeTest()]

    async def run(self, framework_dir: Path) -> list[RepairOutcome]:
        outcomes: list[RepairOutcome] = []
        for fixer in self.fixers:
            try:
                outcome = await fixer.repair(framework_dir)
            except Exception as exc:  # fixers are advisory only
                logger.warning("%s raised %s: %s", fixer.name, type(exc).__name__, exc)
                outcome = RepairOutcome(fixer.name, RepairStatus.FAILED, str(exc))
            logger.info("Repair %s: %s", outcome.name, outcome.status.value)
            outcomes.append(outcome)
        return outcomes
