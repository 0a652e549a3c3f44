"""ChronoForge run configuration.

One immutable ``RunConfig`` is constructed per process by the CLI entry point
and passed explicitly to every stage.  All settings use frozen Pydantic v2
models so they are validated at construction time and can never be mutated by
a stage halfway through a run.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_DEPENDENCIES: tuple[str, ...] = (
    "git",
    "jq",
    "unzip",
    "zip",
    "awk",
    "sed",
    "tr",
    "cut",
    "sort",
    "tee",
    "docker",
    "terraform",
    "ansible",
    "gradle",
    "python3",
    "node",
    "npm",
    "clang",
)


class RetryPolicy(BaseModel):
    """Bounded-attempt exponential backoff used for setup and build."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=0, description="Attempts before giving up")
    initial_backoff: float = Field(
        default=2.0, ge=0, description="Seconds slept after the first failure"
    )
    multiplier: float = Field(default=2.0, ge=1, description="Backoff growth factor")

    def schedule(self) -> list[float]:
        """Return every delay slept when all attempts fail (``B, 2B, 4B, ...``)."""
        delays: list[float] = []
        delay = self.initial_backoff
        for _ in range(self.max_attempts):
            delays.append(delay)
            delay *= self.multiplier
        return delays


class RunConfig(BaseModel):
    """Process-wide configuration for a single ChronoForge run.

    Holds the organization being generated, the on-disk layout and the retry
    policy.  Every derived path is a read-only property so that the layout is
    defined in exactly one place.
    """

    model_config = ConfigDict(frozen=True)

    organization: str = Field(..., description="Organization name as given on the CLI")
    root_dir: Path = Field(default=Path("./enterprise_framework"))
    artifacts_dir_name: str = Field(default="artifacts")
    version: str = Field(default="v1.0.0")
    manifest_name: str = Field(default="MANIFEST.txt")
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    disk_usage_threshold: float = Field(default=90.0, gt=0, le=100)
    command_timeout: int = Field(
        default=900, ge=1, description="Per-command timeout in seconds"
    )
    copyright_holder: str = Field(default="Devin B. Royal")
    copyright_year: int = Field(default=2025)
    dependencies: tuple[str, ...] = Field(default=DEFAULT_DEPENDENCIES)

    @field_validator("organization")
    @classmethod
    def _organization_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("organization name must not be empty")
        return value

    # ------------------------------------------------------------------
    # Derived values (read-only properties)
    # ------------------------------------------------------------------

    @property
    def org_key(self) -> str:
        """Case-normalized organization key used for registry lookup."""
        return self.organization.upper()

    @property
    def framework_dir(self) -> Path:
        """Directory the framework tree is generated into."""
        return self.root_dir / f"{self.org_key}_enterprise_framework"

    @property
    def artifacts_dir(self) -> Path:
        """Directory that receives the packaged archives."""
        return self.root_dir / self.artifacts_dir_name

    @property
    def log_file(self) -> Path:
        """Run-scoped log file, named with the version tag."""
        return self.root_dir / f"chrono_{self.version}.log"

    @property
    def artifact_basename(self) -> str:
        """Archive name without extension."""
        return f"{self.org_key}_enterprise_framework_{self.version}"

    @property
    def setup_entrypoint(self) -> list[str]:
        return ["./setup.sh"]

    @property
    def build_entrypoint(self) -> list[str]:
        return ["make", "build"]

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_env(cls, organization: str) -> "RunConfig":
        """Build a ``RunConfig`` for *organization* with optional env overrides.

        Recognised variables (all optional):
            CHRONO_ROOT_DIR, CHRONO_VERSION, CHRONO_RETRY_MAX, CHRONO_BACKOFF.
        """
        kwargs: dict[str, Any] = {"organization": organization, **_layout_from_env()}

        retry_kwargs: dict[str, Any] = {}
        if os.environ.get("CHRONO_RETRY_MAX"):
            retry_kwargs["max_attempts"] = int(os.environ["CHRONO_RETRY_MAX"])
        if os.environ.get("CHRONO_BACKOFF"):
            retry_kwargs["initial_backoff"] = float(os.environ["CHRONO_BACKOFF"])
        if retry_kwargs:
            kwargs["retry"] = RetryPolicy(**retry_kwargs)

        return cls(**kwargs)

    @classmethod
    def env_log_file(cls) -> Path:
        """Log file path for the environment's layout.

        Lets the entry point open the run log before the CLI arguments have
        been validated, so usage errors are logged too.
        """
        layout = _layout_from_env()
        root = layout.get("root_dir", cls.model_fields["root_dir"].default)
        version = layout.get("version", cls.model_fields["version"].default)
        return Path(root) / f"chrono_{version}.log"

    def template_context(self) -> dict[str, Any]:
        """Values every generated file may reference."""
        return {
            "org_key": self.org_key,
            "organization": self.organization,
            "version": self.version,
            "copyright_holder": self.copyright_holder,
            "copyright_year": self.copyright_year,
        }


def _layout_from_env() -> dict[str, Any]:
    layout: dict[str, Any] = {}
    if os.environ.get("CHRONO_ROOT_DIR"):
        layout["root_dir"] = Path(os.environ["CHRONO_ROOT_DIR"])
    if os.environ.get("CHRONO_VERSION"):
        layout["version"] = os.environ["CHRONO_VERSION"]
    return layout
