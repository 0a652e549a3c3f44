"""Exception hierarchy for ChronoForge.

Every exception defined here is *fatal*: raising it aborts the run and the
process exits with code 1.  Advisory failures (optional tool installs, repair
fixers, the container daemon probe) are never raised -- they are logged as
warnings and carried as plain result values.
"""

from __future__ import annotations


class ChronoForgeError(Exception):
    """Base class for all fatal ChronoForge errors."""


class ConfigurationError(ChronoForgeError):
    """Raised when the run configuration cannot be built from the CLI input."""


class PreflightError(ChronoForgeError):
    """Raised when an environment prerequisite is not met."""


class UnsupportedOrganizationError(ChronoForgeError):
    """Raised when an organization key has no registered generator strategies."""

    def __init__(self, key: str, supported: list[str] | None = None) -> None:
        self.key = key
        self.supported = sorted(supported or [])
        message = f"Unsupported organization: {key}"
        if self.supported:
            message += f" (supported: {', '.join(self.supported)})"
        super().__init__(message)


class GenerationError(ChronoForgeError):
    """Raised when the framework tree cannot be created or written."""


class RetryExhaustedError(ChronoForgeError):
    """Raised when a retried command failed on every allowed attempt."""

    def __init__(self, command: str, attempts: int, diagnostic: str = "") -> None:
        self.command = command
        self.attempts = attempts
        self.diagnostic = diagnostic
        super().__init__(f"Command failed after {attempts} retries: {command}")


class PackagingError(ChronoForgeError):
    """Raised when the manifest or an archive cannot be written."""


class InvalidTransitionError(ChronoForgeError):
    """Raised on an illegal build-pipeline state transition."""

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Illegal pipeline transition: {current} -> {target}")


class PipelineError(ChronoForgeError):
    """Raised when a pipeline stage fails irrecoverably."""

    def __init__(self, stage: str, message: str) -> None:
        self.stage = stage
        super().__init__(f"Stage {stage}: {message}")


class RunInterrupted(ChronoForgeError):
    """Raised from a signal handler when the run is cancelled externally."""
