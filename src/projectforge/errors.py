"""Error taxonomy for projectforge.

Every failure the engine can surface derives from :class:`ForgeError`.  Each
class carries the offending identifiers (axis names, template ids, dependency
identifiers) as attributes so callers can report them verbatim, and an
``exit_code`` the CLI maps directly to the process status.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Sequence

if TYPE_CHECKING:
    from .models import HookReport


class ForgeError(Exception):
    """Base class for all projectforge errors."""

    exit_code: int = 1


class RegistryLoadError(ForgeError):
    """Raised when a blueprint definition is malformed or self-inconsistent."""

    exit_code = 7

    def __init__(self, message: str, blueprint_id: str = "") -> None:
        self.blueprint_id = blueprint_id
        prefix = f"Blueprint '{blueprint_id}': " if blueprint_id else ""
        super().__init__(f"{prefix}{message}")


class BlueprintNotFoundError(ForgeError):
    """Raised when a blueprint identifier is not present in the registry."""

    exit_code = 2

    def __init__(self, blueprint_id: str, available: Sequence[str] = ()) -> None:
        self.blueprint_id = blueprint_id
        self.available = list(available)
        message = f"Blueprint '{blueprint_id}' not found"
        if self.available:
            message += f" (available: {', '.join(self.available)})"
        super().__init__(message)


class ConfigValidationError(ForgeError):
    """Raised when a project configuration is illegal for a blueprint.

    ``axes`` lists every axis involved: one for an illegal or missing value,
    both sides for a violated cross-axis constraint.
    """

    exit_code = 2

    def __init__(
        self,
        message: str,
        axes: Sequence[str] = (),
        value: str | None = None,
    ) -> None:
        self.axes = list(axes)
        self.value = value
        super().__init__(message)


class TemplateRenderError(ForgeError):
    """Raised when a template (content or destination path) fails to render."""

    exit_code = 3

    def __init__(self, message: str, template_id: str = "") -> None:
        self.template_id = template_id
        prefix = f"Template '{template_id}': " if template_id else ""
        super().__init__(f"{prefix}{message}")


class FileCollisionError(ForgeError):
    """Raised when two templates resolve to the same destination path."""

    exit_code = 3

    def __init__(self, path: str, first_template: str, second_template: str) -> None:
        self.path = path
        self.templates = (first_template, second_template)
        super().__init__(
            f"Templates '{first_template}' and '{second_template}' "
            f"both resolve to '{path}'"
        )


class DependencyConflictError(ForgeError):
    """Raised when the constraints declared for one dependency cannot all hold."""

    exit_code = 4

    def __init__(self, identifier: str, constraints: Sequence[str]) -> None:
        self.identifier = identifier
        self.constraints = list(constraints)
        super().__init__(
            f"Dependency '{identifier}' has incompatible constraints: "
            + ", ".join(self.constraints)
        )


class MaterializationError(ForgeError, OSError):
    """Raised when the generated tree cannot be staged or published."""

    exit_code = 5

    def __init__(self, message: str, path: str = "") -> None:
        self.path = path
        super().__init__(message)

    def __str__(self) -> str:
        return self.args[0] if self.args else ""


class HookExecutionError(ForgeError):
    """Raised when a required post-generation hook fails or times out.

    The committed project is left in place; ``report`` holds the outcome of
    every hook that ran up to and including the failing one, and ``result``
    is filled in by the orchestrator with the otherwise successful generation.
    """

    exit_code = 6

    def __init__(self, hook: str, reason: str, report: "HookReport | None" = None) -> None:
        self.hook = hook
        self.reason = reason
        self.report = report
        self.result: Any = None
        super().__init__(f"Required hook '{hook}' failed: {reason}")
