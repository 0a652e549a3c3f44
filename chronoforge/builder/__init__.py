"""ChronoForge builder module.

Runs commands against the generated framework tree and repairs what it can.

Key classes:
    Command / ShellCommand - Typed command descriptions
    RetryExecutor          - Bounded attempts with exponential backoff
    RepairStage            - Best-effort lint/smoke-test fixers
"""

from .executor import (
    BuildResult,
    Command,
    CommandOutput,
    Outcome,
    RetryableCommand,
    RetryExecutor,
    ShellCommand,
    CommandRunner,
    execute_command,
)
from .repair import (
    ContainerSmokeTest,
    Fixer,
    PlaybookLintFixer,
    RepairOutcome,
    RepairStage,
    RepairStatus,
)

__all__ = [
    # Commands and retries
    "Command",
    "ShellCommand",
    "CommandOutput",
    "RetryableCommand",
    "RetryExecutor",
    "BuildResult",
    "Outcome",
    "CommandRunner",
    "execute_command",
    # Repair
    "RepairStage",
    "RepairOutcome",
    "RepairStatus",
    "Fixer",
    "PlaybookLintFixer",
    "ContainerSmokeTest",
]
