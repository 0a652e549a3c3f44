"""ChronoForge scaffolder -- generates organization framework trees.

Quick usage::

    from chronoforge.scaffolder import (
        CommonScaffoldGenerator,
        default_registry,
        prepare_framework_dir,
    )

    task = default_registry().resolve(config.org_key)
    tree = prepare_framework_dir(config)
    await CommonScaffoldGenerator(config).generate(tree, task)
"""

from chronoforge.scaffolder.generator import (
    CommonScaffoldGenerator,
    FrameworkTree,
    build_context,
    prepare_framework_dir,
)
from chronoforge.scaffolder.registry import (
    GenerationTask,
    GeneratorRegistry,
    OrganizationProfile,
    default_registry,
)
from chronoforge.scaffolder.stacks import StackGenerator
from chronoforge.scaffolder.templates import (
    Attribution,
    TemplateRenderer,
    wrap_with_attribution,
)

__all__ = [
    "Attribution",
    "CommonScaffoldGenerator",
    "FrameworkTree",
    "GenerationTask",
    "GeneratorRegistry",
    "OrganizationProfile",
    "StackGenerator",
    "TemplateRenderer",
    "build_context",
    "default_registry",
    "prepare_framework_dir",
    "wrap_with_attribution",
]
