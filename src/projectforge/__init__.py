"""projectforge -- blueprint-driven project generation.

A blueprint declares option axes, conditional file templates, dependency
declarations and post-generation hooks.  A generation resolves a user's
selections against one blueprint, renders every applicable file in memory,
merges the dependency manifest and commits the tree atomically.

Quick usage::

    from projectforge import BlueprintRegistry, ProjectGenerator

    registry = BlueprintRegistry.builtin()
    generator = ProjectGenerator(registry)
    result = await generator.generate(
        {
            "name": "my-api",
            "module": "github.com/acme/my-api",
            "blueprint": "web-api",
            "selections": {"framework": "gin", "logger": "zap"},
        },
        "/tmp/output",
    )
"""

from projectforge.config import Config, Profile
from projectforge.dependencies import merge
from projectforge.errors import (
    BlueprintNotFoundError,
    ConfigValidationError,
    DependencyConflictError,
    FileCollisionError,
    ForgeError,
    HookExecutionError,
    MaterializationError,
    RegistryLoadError,
    TemplateRenderError,
)
from projectforge.generator import ProjectGenerator
from projectforge.hooks import HookRunner
from projectforge.materializer import Materializer, materialize
from projectforge.models import (
    BlueprintDefinition,
    GeneratedProject,
    GenerationResult,
    HookReport,
    ProjectConfiguration,
    ResolvedConfiguration,
)
from projectforge.registry import BlueprintRegistry
from projectforge.rendering import TemplateRenderer, render
from projectforge.resolver import resolve

__version__ = "0.1.0"

__all__ = [
    # Orchestration
    "ProjectGenerator",
    "Config",
    "Profile",
    # Pipeline stages
    "BlueprintRegistry",
    "resolve",
    "render",
    "TemplateRenderer",
    "merge",
    "Materializer",
    "materialize",
    "HookRunner",
    # Models
    "BlueprintDefinition",
    "ProjectConfiguration",
    "ResolvedConfiguration",
    "GeneratedProject",
    "GenerationResult",
    "HookReport",
    # Errors
    "ForgeError",
    "RegistryLoadError",
    "BlueprintNotFoundError",
    "ConfigValidationError",
    "TemplateRenderError",
    "FileCollisionError",
    "DependencyConflictError",
    "MaterializationError",
    "HookExecutionError",
]
