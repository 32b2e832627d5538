"""Configuration resolution.

Turns a raw :class:`ProjectConfiguration` into an immutable
:class:`ResolvedConfiguration` for one blueprint.  Resolution is pure: it
never touches storage, so an invalid configuration aborts before any file
exists on disk.

Precedence per axis: explicit selection, then a value implied by an axis
resolved earlier, then the axis default.  Explicit selections always win.
"""

from __future__ import annotations

import re
from types import MappingProxyType
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from .errors import ConfigValidationError
from .models import (
    AxisSource,
    BlueprintDefinition,
    ProjectConfiguration,
    ResolvedConfiguration,
)
from .predicates import referenced_axes

_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_MODULE_RE = re.compile(
    r"^[a-zA-Z0-9]([a-zA-Z0-9-]*[a-zA-Z0-9])?(\.[a-zA-Z0-9]([a-zA-Z0-9-]*[a-zA-Z0-9])?)*"
    r"(/[a-zA-Z0-9]([a-zA-Z0-9._~-]*[a-zA-Z0-9])?)*$"
)
_RESERVED_NAMES = frozenset(
    ["con", "prn", "aux", "nul"]
    + [f"com{i}" for i in range(1, 10)]
    + [f"lpt{i}" for i in range(1, 10)]
)
MAX_NAME_LENGTH = 214
MAX_MODULE_LENGTH = 500


def validate_project_name(name: str) -> None:
    """Raise :class:`ConfigValidationError` unless *name* is a usable project name."""
    if not name:
        raise ConfigValidationError("Project name cannot be empty", axes=["name"])
    if len(name) > MAX_NAME_LENGTH:
        raise ConfigValidationError(
            f"Project name too long (max {MAX_NAME_LENGTH} characters)", axes=["name"], value=name
        )
    if not _NAME_RE.match(name):
        raise ConfigValidationError(
            f"Project name '{name}' can only contain letters, numbers, hyphens and underscores",
            axes=["name"],
            value=name,
        )
    if name[0] in "-_" or name[-1] in "-_":
        raise ConfigValidationError(
            f"Project name '{name}' cannot start or end with a hyphen or underscore",
            axes=["name"],
            value=name,
        )
    if name.lower() in _RESERVED_NAMES:
        raise ConfigValidationError(f"Project name '{name}' is reserved", axes=["name"], value=name)


def validate_module_path(module: str) -> None:
    """Raise :class:`ConfigValidationError` unless *module* looks like ``domain.tld/path``."""
    if not module:
        raise ConfigValidationError("Module path cannot be empty", axes=["module"])
    if len(module) > MAX_MODULE_LENGTH:
        raise ConfigValidationError(
            f"Module path too long (max {MAX_MODULE_LENGTH} characters)", axes=["module"], value=module
        )
    if not _MODULE_RE.match(module):
        raise ConfigValidationError(
            f"Invalid module path format: '{module}'", axes=["module"], value=module
        )
    parts = module.split("/")
    if len(parts) < 2 or "." not in parts[0]:
        raise ConfigValidationError(
            f"Module path '{module}' should start with a domain and contain a path "
            "(e.g. github.com/user/repo)",
            axes=["module"],
            value=module,
        )


def resolve(
    definition: BlueprintDefinition,
    raw: ProjectConfiguration | Mapping[str, Any],
) -> ResolvedConfiguration:
    """Validate *raw* against *definition* and apply defaults.

    Raises:
        ConfigValidationError: On an invalid name or module, an unknown axis,
            an illegal or missing value, a violated cross-axis constraint, or
            an invalid variable.
    """
    if not isinstance(raw, ProjectConfiguration):
        try:
            raw = ProjectConfiguration.model_validate(raw)
        except ValidationError as exc:
            raise ConfigValidationError(f"Invalid project configuration: {exc}") from exc

    if raw.blueprint and raw.blueprint != definition.id:
        raise ConfigValidationError(
            f"Configuration targets blueprint '{raw.blueprint}', not '{definition.id}'",
            axes=["blueprint"],
            value=raw.blueprint,
        )

    validate_project_name(raw.name)
    validate_module_path(raw.module)

    # Unknown axes and illegal values fail before any defaulting happens.
    for axis_name, value in raw.selections.items():
        axis = definition.axis(axis_name)
        if axis is None:
            raise ConfigValidationError(
                f"Unknown axis '{axis_name}' for blueprint '{definition.id}' "
                f"(declared: {', '.join(definition.axis_names) or 'none'})",
                axes=[axis_name],
                value=value,
            )
        if value not in axis.values:
            raise ConfigValidationError(
                f"Illegal value '{value}' for axis '{axis_name}' "
                f"(legal: {', '.join(axis.values)})",
                axes=[axis_name],
                value=value,
            )

    values: dict[str, Optional[str]] = {}
    sources: dict[str, AxisSource] = {}
    implied: dict[str, tuple[str, str]] = {}  # target axis -> (value, implying axis)

    for axis in definition.axes:
        if axis.name in raw.selections:
            values[axis.name] = raw.selections[axis.name]
            sources[axis.name] = "explicit"
        elif axis.name in implied:
            values[axis.name] = implied[axis.name][0]
            sources[axis.name] = "implied"
        elif axis.default is not None:
            values[axis.name] = axis.default
            sources[axis.name] = "default"
        elif axis.required:
            raise ConfigValidationError(
                f"Axis '{axis.name}' is required and has no default "
                f"(choose one of: {', '.join(axis.values)})",
                axes=[axis.name],
            )
        else:
            values[axis.name] = None
            sources[axis.name] = "unset"

        selected = values[axis.name]
        if selected is not None:
            for target, target_value in axis.implies.get(selected, {}).items():
                implied.setdefault(target, (target_value, axis.name))

    for constraint in definition.constraints:
        if constraint.when.evaluate(values) and not constraint.require.evaluate(values):
            involved = list(
                dict.fromkeys(referenced_axes(constraint.when) + referenced_axes(constraint.require))
            )
            chosen = ", ".join(f"{name}={values.get(name) or 'none'}" for name in involved)
            detail = constraint.message or (
                f"requires {constraint.require.describe()} when {constraint.when.describe()}"
            )
            raise ConfigValidationError(
                f"Incompatible selection ({chosen}): {detail}",
                axes=involved,
            )

    variables = _resolve_variables(definition, raw.variables)

    try:
        selections = definition.selection_model.model_validate(values)
    except ValidationError as exc:  # unreachable once the registry has validated defaults
        raise ConfigValidationError(f"Invalid selections: {exc}") from exc

    return ResolvedConfiguration(
        name=raw.name,
        module=raw.module,
        blueprint_id=definition.id,
        selections=selections,
        variables=MappingProxyType(variables),
        sources=MappingProxyType(sources),
    )


def _resolve_variables(definition: BlueprintDefinition, supplied: Mapping[str, str]) -> dict[str, str]:
    for name in supplied:
        if definition.variable(name) is None:
            raise ConfigValidationError(
                f"Unknown variable '{name}' for blueprint '{definition.id}'", axes=[name]
            )

    resolved: dict[str, str] = {}
    for spec in definition.variables:
        value = supplied.get(spec.name, spec.default)
        if value is None or value == "":
            if spec.required:
                raise ConfigValidationError(f"Variable '{spec.name}' is required", axes=[spec.name])
            value = value or ""
        elif spec.pattern and not re.fullmatch(spec.pattern, value):
            raise ConfigValidationError(
                f"Variable '{spec.name}' value '{value}' does not match '{spec.pattern}'",
                axes=[spec.name],
                value=value,
            )
        resolved[spec.name] = value
    return resolved
