"""Data model for blueprints, configurations and generation results.

Blueprint-side models are frozen Pydantic v2 models so a definition cannot
change once the registry has validated it.  Per-invocation objects
(``ResolvedConfiguration``, ``GeneratedProject``) are frozen dataclasses built
fresh for every generation and never shared.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Literal, Mapping, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    computed_field,
    create_model,
    field_validator,
    model_validator,
)

from .predicates import ALWAYS, parse_predicate

_AXIS_NAME_RE = re.compile(r"^[a-z][a-z0-9_-]*$")

FILE_MODE = 0o644
EXEC_MODE = 0o755
DIR_MODE = 0o755


def _scalar_str(value: Any) -> Any:
    """Coerce YAML scalars (``true``, ``1.21``) to the strings axes compare against."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return value


# ---------------------------------------------------------------------------
# Blueprint definition
# ---------------------------------------------------------------------------


class OptionAxis(BaseModel):
    """A named configuration dimension with an enumerated set of legal values."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Axis name, e.g. 'logger' or 'database-driver'")
    values: tuple[str, ...] = Field(..., min_length=1, description="Legal values, in display order")
    default: Optional[str] = Field(default=None, description="Value used when none is selected")
    required: bool = Field(default=False, description="Fail resolution when no value can be found")
    description: str = Field(default="")
    implies: dict[str, dict[str, str]] = Field(
        default_factory=dict,
        description="value -> {other_axis: value} defaults implied by selecting value",
    )

    @field_validator("name")
    @classmethod
    def _check_name(cls, v: str) -> str:
        if not _AXIS_NAME_RE.match(v):
            raise ValueError(f"invalid axis name '{v}' (lowercase letters, digits, '-' and '_')")
        return v

    @field_validator("values", mode="before")
    @classmethod
    def _coerce_values(cls, v: Any) -> Any:
        if isinstance(v, (list, tuple)):
            return tuple(_scalar_str(item) for item in v)
        return v

    @field_validator("default", mode="before")
    @classmethod
    def _coerce_default(cls, v: Any) -> Any:
        return _scalar_str(v)

    @field_validator("implies", mode="before")
    @classmethod
    def _coerce_implies(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return {
                str(_scalar_str(key)): {str(k): _scalar_str(val) for k, val in (targets or {}).items()}
                for key, targets in v.items()
            }
        return v

    @property
    def field_name(self) -> str:
        """Python identifier used for this axis on the closed selections model."""
        return self.name.replace("-", "_")


class FileTemplate(BaseModel):
    """One potential output file or directory of a blueprint."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: str = Field(default="", description="Stable identifier; defaults to the destination")
    destination: str = Field(..., min_length=1, description="Jinja2 path expression")
    source: Optional[str] = Field(default=None, description="File under the blueprint's templates/")
    content: Optional[str] = Field(default=None, description="Inline template content")
    when: Any = Field(default=ALWAYS, description="Inclusion predicate")
    literal: bool = Field(default=False, description="Copy bytes verbatim instead of rendering")
    executable: bool = Field(default=False)
    kind: Literal["file", "directory"] = Field(default="file")

    @model_validator(mode="before")
    @classmethod
    def _default_id(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("id") and data.get("destination"):
            data = {**data, "id": data["destination"]}
        return data

    @field_validator("when", mode="before")
    @classmethod
    def _parse_when(cls, v: Any) -> Any:
        return parse_predicate(v)

    @model_validator(mode="after")
    def _check_content_source(self) -> "FileTemplate":
        if self.kind == "directory":
            if self.source is not None or self.content is not None:
                raise ValueError(f"directory template '{self.id}' cannot have content")
        elif (self.source is None) == (self.content is None):
            raise ValueError(f"file template '{self.id}' needs exactly one of 'source' or 'content'")
        return self

    @property
    def mode(self) -> int:
        if self.kind == "directory" or self.executable:
            return EXEC_MODE
        return FILE_MODE


class DependencyDeclaration(BaseModel):
    """``(axis, value) -> (identifier, constraint)``; unconditional when axis is absent.

    ``when`` optionally narrows the contribution further, e.g. a GORM driver
    that is only needed for one database.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, arbitrary_types_allowed=True)

    identifier: str = Field(..., validation_alias=AliasChoices("identifier", "module", "name"))
    constraint: str = Field(default="*", validation_alias=AliasChoices("constraint", "version"))
    axis: Optional[str] = None
    value: Optional[str] = None
    when: Any = Field(default=ALWAYS)

    @field_validator("constraint", "value", mode="before")
    @classmethod
    def _coerce(cls, v: Any) -> Any:
        return _scalar_str(v)

    @field_validator("when", mode="before")
    @classmethod
    def _parse_when(cls, v: Any) -> Any:
        return parse_predicate(v)

    @model_validator(mode="after")
    def _axis_and_value(self) -> "DependencyDeclaration":
        if (self.axis is None) != (self.value is None):
            raise ValueError(
                f"dependency '{self.identifier}' must declare both 'axis' and 'value' or neither"
            )
        return self

    def matches(self, selections: Mapping[str, Optional[str]]) -> bool:
        if not self.when.evaluate(selections):
            return False
        if self.axis is None:
            return True
        selected = selections.get(self.axis)
        if selected is None:
            return self.value == "none"
        return selected == self.value

    def describe_source(self) -> str:
        parts = [] if self.axis is None else [f"{self.axis}={self.value}"]
        if self.when != ALWAYS:
            parts.append(self.when.describe())
        return " and ".join(parts) or "always"


class AxisConstraint(BaseModel):
    """Cross-axis rule: whenever ``when`` holds, ``require`` must hold too."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    when: Any = Field(default=ALWAYS)
    require: Any = Field(...)
    message: str = Field(default="")

    @field_validator("when", "require", mode="before")
    @classmethod
    def _parse(cls, v: Any) -> Any:
        return parse_predicate(v)


class VariableSpec(BaseModel):
    """A free-form string variable (author, license, language version...)."""

    model_config = ConfigDict(frozen=True)

    name: str
    default: Optional[str] = None
    required: bool = False
    pattern: Optional[str] = None
    description: str = ""

    @field_validator("default", mode="before")
    @classmethod
    def _coerce_default(cls, v: Any) -> Any:
        return _scalar_str(v)

    @field_validator("pattern")
    @classmethod
    def _check_pattern(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            re.compile(v)
        return v


class HookSpec(BaseModel):
    """An external command run against the committed project root."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    command: str | tuple[str, ...]
    required: bool = False
    timeout: Optional[float] = Field(default=None, gt=0, description="Overrides the per-hook timeout")
    work_dir: str = Field(default=".", description="Working directory relative to the project root")
    when: Any = Field(default=ALWAYS)

    @field_validator("command", mode="before")
    @classmethod
    def _coerce_command(cls, v: Any) -> Any:
        if isinstance(v, list):
            return tuple(str(part) for part in v)
        return v

    @field_validator("when", mode="before")
    @classmethod
    def _parse_when(cls, v: Any) -> Any:
        return parse_predicate(v)

    @property
    def display_command(self) -> str:
        return self.command if isinstance(self.command, str) else " ".join(self.command)


class ManifestSpec(BaseModel):
    """Where (and how) the merged dependency manifest is written."""

    model_config = ConfigDict(frozen=True)

    path: str
    source: Optional[str] = None
    content: Optional[str] = None


class BlueprintDefinition(BaseModel):
    """A generatable project family: axes, file templates, dependencies, hooks."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str = ""
    description: str = ""
    type: str = ""
    axes: tuple[OptionAxis, ...] = ()
    variables: tuple[VariableSpec, ...] = ()
    files: tuple[FileTemplate, ...] = ()
    dependencies: tuple[DependencyDeclaration, ...] = ()
    constraints: tuple[AxisConstraint, ...] = ()
    hooks: tuple[HookSpec, ...] = ()
    manifest: Optional[ManifestSpec] = None
    root: Optional[Path] = Field(default=None, description="Directory containing templates/")

    _selection_model: type[BaseModel] = PrivateAttr()

    def model_post_init(self, __context: Any) -> None:
        self._selection_model = _build_selection_model(self.id, self.axes)

    @property
    def selection_model(self) -> type[BaseModel]:
        """Closed, frozen model with exactly one ``Literal`` field per axis."""
        return self._selection_model

    @property
    def templates_dir(self) -> Optional[Path]:
        return self.root / "templates" if self.root is not None else None

    @property
    def axis_names(self) -> list[str]:
        return [axis.name for axis in self.axes]

    def axis(self, name: str) -> Optional[OptionAxis]:
        for axis in self.axes:
            if axis.name == name:
                return axis
        return None

    def variable(self, name: str) -> Optional[VariableSpec]:
        for spec in self.variables:
            if spec.name == name:
                return spec
        return None


def _build_selection_model(blueprint_id: str, axes: tuple[OptionAxis, ...]) -> type[BaseModel]:
    fields: dict[str, Any] = {}
    for axis in axes:
        literal = Literal[tuple(axis.values)]  # type: ignore[valid-type]
        fields[axis.field_name] = (Optional[literal], Field(default=None, alias=axis.name))
    model_name = "".join(part.capitalize() for part in re.split(r"[-_\s]+", blueprint_id) if part)
    return create_model(
        f"{model_name or 'Blueprint'}Selections",
        __config__=ConfigDict(
            frozen=True,
            extra="forbid",
            populate_by_name=True,
            protected_namespaces=(),
        ),
        **fields,
    )


# ---------------------------------------------------------------------------
# Configurations
# ---------------------------------------------------------------------------


class ProjectConfiguration(BaseModel):
    """Raw user input for one generation."""

    name: str = Field(..., description="Project name (used in paths and package names)")
    module: str = Field(..., description="Module identity, e.g. github.com/acme/widget")
    blueprint: str = Field(..., description="Blueprint identifier")
    selections: dict[str, str] = Field(default_factory=dict, description="axis -> value")
    variables: dict[str, str] = Field(default_factory=dict)

    @field_validator("selections", "variables", mode="before")
    @classmethod
    def _coerce(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return {str(k): _scalar_str(val) for k, val in v.items()}
        return v


AxisSource = Literal["explicit", "implied", "default", "unset"]


@dataclass(frozen=True)
class ResolvedConfiguration:
    """Validated, defaulted configuration; the only input to render and merge."""

    name: str
    module: str
    blueprint_id: str
    selections: BaseModel
    variables: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    sources: Mapping[str, AxisSource] = field(default_factory=lambda: MappingProxyType({}))

    def value(self, axis: str) -> Optional[str]:
        """Return the selected value of *axis* (``None`` when unset)."""
        return getattr(self.selections, axis.replace("-", "_"))

    def as_selections(self) -> dict[str, Optional[str]]:
        """Axis name -> value mapping, keyed by the blueprint's axis names."""
        return self.selections.model_dump(by_alias=True)


# ---------------------------------------------------------------------------
# Generation output
# ---------------------------------------------------------------------------


class DependencyEntry(BaseModel):
    """One merged dependency line."""

    model_config = ConfigDict(frozen=True)

    identifier: str
    constraint: str
    version: Optional[str] = Field(default=None, description="Lowest version satisfying the constraint")
    contributors: tuple[str, ...] = ()

    @property
    def line(self) -> str:
        return f"{self.identifier} {self.constraint}"


class DependencyManifest(BaseModel):
    model_config = ConfigDict(frozen=True)

    entries: tuple[DependencyEntry, ...] = ()

    def lines(self) -> list[str]:
        return [entry.line for entry in self.entries]

    def identifiers(self) -> list[str]:
        return [entry.identifier for entry in self.entries]

    def get(self, identifier: str) -> Optional[DependencyEntry]:
        for entry in self.entries:
            if entry.identifier == identifier:
                return entry
        return None


@dataclass(frozen=True)
class RenderedFile:
    """A single manifest entry: relative POSIX path, bytes and permission bits."""

    path: str
    content: bytes
    mode: int
    template_id: str
    is_dir: bool = False


@dataclass(frozen=True)
class GeneratedProject:
    """In-memory result of rendering, held until the materializer commits it."""

    blueprint_id: str
    project_name: str
    files: tuple[RenderedFile, ...]
    dependencies: DependencyManifest = field(default_factory=DependencyManifest)

    @property
    def paths(self) -> list[str]:
        return [f.path for f in self.files]

    def file(self, path: str) -> Optional[RenderedFile]:
        for rendered in self.files:
            if rendered.path == path:
                return rendered
        return None


# ---------------------------------------------------------------------------
# Hook reporting
# ---------------------------------------------------------------------------

HookStatus = Literal["ok", "failed", "timeout", "skipped"]


class HookResult(BaseModel):
    """Outcome of one hook invocation."""

    name: str
    command: str
    required: bool = False
    status: HookStatus = "ok"
    returncode: Optional[int] = None
    output: str = Field(default="", description="Combined stdout/stderr, trimmed")
    duration_seconds: float = Field(default=0.0, ge=0.0)

    @computed_field  # type: ignore[misc]
    @property
    def succeeded(self) -> bool:
        return self.status in ("ok", "skipped")


class HookReport(BaseModel):
    """Ordered hook outcomes; optional failures surface as warnings."""

    results: list[HookResult] = Field(default_factory=list)

    @computed_field  # type: ignore[misc]
    @property
    def ok(self) -> bool:
        return all(r.succeeded for r in self.results)

    @property
    def warnings(self) -> list[str]:
        return [
            f"Hook '{r.name}' {'timed out' if r.status == 'timeout' else 'failed'}"
            + (f": {r.output}" if r.output else "")
            for r in self.results
            if not r.succeeded and not r.required
        ]


class GenerationResult(BaseModel):
    """Summary of a completed generation."""

    project_path: Path
    blueprint_id: str
    files: list[str] = Field(default_factory=list)
    dependencies: DependencyManifest = Field(default_factory=DependencyManifest)
    hooks: HookReport = Field(default_factory=HookReport)
    duration_seconds: float = 0.0

    @property
    def warnings(self) -> list[str]:
        return self.hooks.warnings
