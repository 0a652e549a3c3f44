"""Organization registry: maps an organization key to its stack strategies.

Resolution is exact-match on the upper-cased key.  There is no fuzzy matching
and no fallback strategy; adding an organization means adding a registry
entry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from chronoforge.errors import UnsupportedOrganizationError

from .stacks import (
    CPP_TOOL,
    DOTNET,
    GO_SERVICE,
    NODE_SERVICE,
    OBJC_TOOL,
    PYTHON_FASTAPI,
    PYTHON_FLASK,
    PYTHON_PYTORCH,
    SWIFT_PACKAGE,
    StackGenerator,
    java_gradle,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrganizationProfile:
    """Registry entry for one organization."""

    key: str
    display_name: str
    stacks: tuple[StackGenerator, ...]


@dataclass(frozen=True)
class GenerationTask:
    """Resolved organization plus the ordered strategies to run for it."""

    org_key: str
    display_name: str
    strategies: tuple[StackGenerator, ...]

    @property
    def stack_names(self) -> list[str]:
        return [s.name for s in self.strategies]


class GeneratorRegistry:
    """Static mapping from organization key to generator strategies."""

    def __init__(self, profiles: list[OrganizationProfile] | None = None) -> None:
        self._profiles: dict[str, OrganizationProfile] = {}
        for profile in profiles or []:
            self.register(profile)

    def register(self, profile: OrganizationProfile) -> None:
        """Add (or replace) an organization entry."""
        if not profile.stacks:
            raise ValueError(f"Organization {profile.key} needs at least one stack")
        self._profiles[profile.key.upper()] = profile

    def keys(self) -> list[str]:
        return sorted(self._profiles)

    def resolve(self, org_key: str) -> GenerationTask:
        """Return the generation task for *org_key*.

        Raises:
            UnsupportedOrganizationError: If no entry matches the key.
        """
        profile = self._profiles.get(org_key.upper())
        if profile is None:
            raise UnsupportedOrganizationError(org_key, self.keys())
        task = GenerationTask(
            org_key=profile.key.upper(),
            display_name=profile.display_name,
            strategies=profile.stacks,
        )
        logger.info(
            "Resolved %s -> %s", task.org_key, ", ".join(task.stack_names)
        )
        return task


def default_registry() -> GeneratorRegistry:
    """The built-in set of supported organizations."""
    return GeneratorRegistry(
        [
            OrganizationProfile("ORACLE", "Oracle", (java_gradle(application=True),)),
            OrganizationProfile("MICROSOFT", "Microsoft", (DOTNET,)),
            OrganizationProfile("META", "Meta", (PYTHON_FASTAPI, NODE_SERVICE, CPP_TOOL)),
            OrganizationProfile("IBM", "IBM", (java_gradle(), NODE_SERVICE)),
            OrganizationProfile("AMAZON", "Amazon", (java_gradle(), PYTHON_FLASK)),
            OrganizationProfile("GOOGLE", "Google", (GO_SERVICE, PYTHON_FASTAPI)),
            OrganizationProfile("APPLE", "Apple", (SWIFT_PACKAGE, OBJC_TOOL, CPP_TOOL)),
            OrganizationProfile("OPENAI", "OpenAI", (PYTHON_PYTORCH,)),
        ]
    )
