"""Language/stack generator strategies.

A strategy is pure payload: a named list of templates and the paths (relative
to ``<framework>/src``) they are rendered to.  Output paths are themselves
small Jinja2 strings so that stacks can place files under organization-derived
package directories.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .templates import TemplateRenderer


@dataclass(frozen=True)
class StackGenerator:
    """Writes one language/stack payload into a framework tree."""

    name: str
    files: tuple[tuple[str, str], ...]
    options: dict[str, Any] = field(default_factory=dict)

    async def generate(
        self,
        renderer: TemplateRenderer,
        framework_dir: Path,
        context: dict[str, Any],
    ) -> list[Path]:
        """Render every file of this stack under ``framework_dir/src``.

        Returns:
            The written file paths, in declaration order.
        """
        stack_ctx = {**context, **self.options}
        src_dir = framework_dir / "src"
        written: list[Path] = []
        for template_name, output_pattern in self.files:
            relative = renderer.render_string(output_pattern, stack_ctx)
            path = await renderer.render_to_file(
                f"stacks/{template_name}", src_dir / relative, stack_ctx
            )
            written.append(path)
        return written


_JAVA_SOURCE = "src/main/java/{{ java_package | replace('.', '/') }}/{{ app_title }}.java"


def java_gradle(application: bool = False) -> StackGenerator:
    """Java sources built with Gradle, optionally as a runnable application."""
    return StackGenerator(
        name="java-gradle-app" if application else "java-gradle",
        files=(
            ("build.gradle.j2", "build.gradle"),
            ("Main.java.j2", _JAVA_SOURCE),
        ),
        options={"gradle_application": application},
    )


DOTNET = StackGenerator(
    name="dotnet",
    files=(
        ("Project.csproj.j2", "{{ app_title }}.csproj"),
        ("Program.cs.j2", "Program.cs"),
    ),
)

PYTHON_FASTAPI = StackGenerator(
    name="python-fastapi",
    files=(("fastapi_app.py.j2", "app.py"),),
)

PYTHON_FLASK = StackGenerator(
    name="python-flask",
    files=(("flask_app.py.j2", "app.py"),),
)

PYTHON_PYTORCH = StackGenerator(
    name="python-pytorch",
    files=(("pytorch_app.py.j2", "app.py"),),
)

NODE_SERVICE = StackGenerator(
    name="node-service",
    files=(("server.js.j2", "server.js"),),
)

CPP_TOOL = StackGenerator(
    name="cpp-tool",
    files=(("tool.cpp.j2", "{{ app }}_tool.cpp"),),
)

GO_SERVICE = StackGenerator(
    name="go-service",
    files=(("main.go.j2", "main.go"),),
)

SWIFT_PACKAGE = StackGenerator(
    name="swift-package",
    files=(
        ("Package.swift.j2", "Package.swift"),
        ("main.swift.j2", "main.swift"),
    ),
)

OBJC_TOOL = StackGenerator(
    name="objc-tool",
    files=(("hello.m.j2", "hello.m"),),
)
