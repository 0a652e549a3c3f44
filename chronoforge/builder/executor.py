"""Command descriptions and the retrying executor.

``RetryExecutor`` is the only retry policy in ChronoForge: bounded attempts
with exponential backoff (``B, 2B, 4B, ...``), no jitter and no cap on delay
growth beyond the attempt bound.  Exhaustion is reported as a FATAL
``BuildResult``; the caller decides to abort the run.
"""

from __future__ import annotations

import asyncio
import logging
import shlex
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable

from chronoforge.config import RetryPolicy
from chronoforge.utils import run_command, run_shell_command

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CommandOutput:
    """Captured result of one command execution."""

    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


@dataclass(frozen=True)
class Command:
    """A command run from an explicit argument vector (never a shell)."""

    argv: tuple[str, ...]
    cwd: Path | None = None

    def __post_init__(self) -> None:
        if not self.argv:
            raise ValueError("Command requires at least an executable")
        object.__setattr__(self, "argv", tuple(self.argv))

    def describe(self) -> str:
        return shlex.join(self.argv)

    async def execute(self, timeout: int) -> CommandOutput:
        rc, out, err = await run_command(list(self.argv), cwd=self.cwd, timeout=timeout)
        return CommandOutput(rc, out, err)


@dataclass(frozen=True)
class ShellCommand:
    """A command that needs shell features (pipes, redirection).

    Kept as a separate, explicit variant so that string-built shell commands
    are never the default.
    """

    script: str
    cwd: Path | None = None

    def describe(self) -> str:
        return self.script

    async def execute(self, timeout: int) -> CommandOutput:
        rc, out, err = await run_shell_command(self.script, cwd=self.cwd, timeout=timeout)
        return CommandOutput(rc, out, err)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class Outcome(str, Enum):
    """How a stage invocation ended."""

    SUCCESS = "success"
    FATAL = "fatal-failure"
    ADVISORY = "advisory-failure"


@dataclass
class BuildResult:
    """Result of one retried stage invocation.  Never persisted."""

    stage: str
    outcome: Outcome
    attempts: int
    diagnostic: str = ""
    delays: list[float] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.outcome is Outcome.SUCCESS

    def summary(self) -> str:
        """Return a one-line human-readable summary."""
        text = f"{self.stage}: {self.outcome.value} after {self.attempts} attempt(s)"
        if self.diagnostic:
            text += f" -- {self.diagnostic[:200]}"
        return text


@dataclass(frozen=True)
class RetryableCommand:
    """A command plus its backoff schedule."""

    command: Command | ShellCommand
    max_attempts: int = 3
    initial_delay: float = 2.0
    multiplier: float = 2.0
    stage: str = ""

    @classmethod
    def from_policy(
        cls, command: Command | ShellCommand, policy: RetryPolicy, stage: str = ""
    ) -> "RetryableCommand":
        return cls(
            command=command,
            max_attempts=policy.max_attempts,
            initial_delay=policy.initial_backoff,
            multiplier=policy.multiplier,
            stage=stage,
        )


# ---------------------------------------------------------------------------
# RetryExecutor
# ---------------------------------------------------------------------------


class RetryExecutor:
    """Runs a command with bounded attempts and exponential backoff.

    Parameters
    ----------
    sleep:
        Coroutine used to suspend between attempts.  The run has a single
        task, so the process makes no other progress while it sleeps.
    timeout:
        Per-attempt timeout in seconds.
    """

    def __init__(self, sleep: SleepFn = asyncio.sleep, timeout: int = 900) -> None:
        self._sleep = sleep
        self.timeout = timeout

    async def run(self, retryable: RetryableCommand) -> BuildResult:
        """Execute *retryable* until it succeeds or its attempts run out.

        Returns:
            A SUCCESS result as soon as an attempt succeeds, otherwise a FATAL
            result carrying the last diagnostic.
        """
        command = retryable.command
        label = command.describe()
        stage = retryable.stage or label
        start = time.monotonic()

        attempts = 0
        delay = retryable.initial_delay
        delays: list[float] = []
        diagnostic = ""

        while attempts < retryable.max_attempts:
            output = await command.execute(self.timeout)
            if output.ok:
                logger.info("Command succeeded: %s", label)
                return BuildResult(
                    stage=stage,
                    outcome=Outcome.SUCCESS,
                    attempts=attempts + 1,
                    diagnostic=output.stdout,
                    delays=delays,
                    duration_seconds=time.monotonic() - start,
                )

            diagnostic = output.stderr or output.stdout or f"exit code {output.returncode}"
            logger.warning(
                "Retry %d/%d failed: %s (sleeping %gs)",
                attempts + 1,
                retryable.max_attempts,
                label,
                delay,
            )
            await self._sleep(delay)
            delays.append(delay)
            delay *= retryable.multiplier
            attempts += 1

        if retryable.max_attempts == 0:
            diagnostic = "no attempts allowed"

        return BuildResult(
            stage=stage,
            outcome=Outcome.FATAL,
            attempts=attempts,
            diagnostic=diagnostic,
            delays=delays,
            duration_seconds=time.monotonic() - start,
        )


# ---------------------------------------------------------------------------
# Runner seam
# ---------------------------------------------------------------------------

CommandRunner = Callable[[Command | ShellCommand, int], Awaitable[CommandOutput]]


async def execute_command(command: Command | ShellCommand, timeout: int) -> CommandOutput:
    """Default runner: execute *command* once."""
    return await command.execute(timeout)
