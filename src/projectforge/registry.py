"""Blueprint registry: eager loading, self-validation and lookup.

A blueprint lives in its own directory::

    library/
        blueprint.yaml      # axes, variables, files, dependencies, hooks
        templates/          # Jinja2 sources referenced by ``files[].source``

:meth:`BlueprintRegistry.load` parses every definition up front and rejects
any that is internally inconsistent, so a broken blueprint surfaces before a
user ever attempts a generation.  The registry is read-only once built and is
passed explicitly to whoever needs it; concurrent lookups need no locking.
"""

from __future__ import annotations

import itertools
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Iterator, Optional, Union

import yaml
from jinja2 import Environment, TemplateSyntaxError
from pydantic import ValidationError

from .dependencies import ConstraintError, parse_constraint
from .errors import BlueprintNotFoundError, RegistryLoadError
from .models import BlueprintDefinition, OptionAxis
from .predicates import ALWAYS, Predicate
from .rendering import normalize_destination

BLUEPRINT_FILE = "blueprint.yaml"
BUILTIN_DIR = Path(__file__).parent / "blueprints"

# Above this many axis combinations the static collision check is skipped and
# collisions are caught at render time instead.
MAX_COMBINATIONS = 4096

_RESERVED_CONTEXT = {"project_name", "module_path", "blueprint", "blueprint_type", "features", "dependencies"}

Source = Union[str, Path, BlueprintDefinition]


class BlueprintRegistry:
    """Immutable index of validated blueprint definitions."""

    def __init__(self, definitions: Iterable[BlueprintDefinition] = ()) -> None:
        index: dict[str, BlueprintDefinition] = {}
        for definition in definitions:
            if definition.id in index:
                raise RegistryLoadError("duplicate blueprint id", definition.id)
            validate_definition(definition)
            index[definition.id] = definition
        self._index = MappingProxyType(index)

    # -- Construction ------------------------------------------------------

    @classmethod
    def load(cls, source: Source | Iterable[Source]) -> "BlueprintRegistry":
        """Load and validate every blueprint reachable from *source*.

        *source* may be a directory of blueprint directories, a single
        blueprint directory, a ``blueprint.yaml`` path, a definition, or an
        iterable mixing any of these.

        Raises:
            RegistryLoadError: If any definition cannot be parsed or fails
                self-validation.
        """
        if isinstance(source, (str, Path, BlueprintDefinition)):
            sources: list[Source] = [source]
        else:
            sources = list(source)

        definitions: list[BlueprintDefinition] = []
        for item in sources:
            if isinstance(item, BlueprintDefinition):
                definitions.append(item)
            else:
                definitions.extend(load_directory(Path(item)))
        return cls(definitions)

    @classmethod
    def builtin(cls, extra: Optional[Source | Iterable[Source]] = None) -> "BlueprintRegistry":
        """Load the blueprints shipped with projectforge, plus *extra* sources."""
        sources: list[Source] = [BUILTIN_DIR]
        if extra is not None:
            if isinstance(extra, (str, Path, BlueprintDefinition)):
                sources.append(extra)
            else:
                sources.extend(extra)
        return cls.load(sources)

    # -- Lookup ------------------------------------------------------------

    def lookup(self, blueprint_id: str) -> BlueprintDefinition:
        """Return the definition registered under *blueprint_id*.

        Raises:
            BlueprintNotFoundError: If no such blueprint exists.
        """
        try:
            return self._index[blueprint_id]
        except KeyError:
            raise BlueprintNotFoundError(blueprint_id, self.ids()) from None

    def ids(self) -> list[str]:
        return sorted(self._index)

    def list(self) -> list[BlueprintDefinition]:
        """All definitions, ordered by type then id."""
        return sorted(self._index.values(), key=lambda d: (d.type, d.id))

    def __contains__(self, blueprint_id: object) -> bool:
        return blueprint_id in self._index

    def __len__(self) -> int:
        return len(self._index)

    def __iter__(self) -> Iterator[BlueprintDefinition]:
        return iter(self.list())


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def load_directory(path: Path) -> list[BlueprintDefinition]:
    """Load one blueprint directory, or every blueprint directory below *path*."""
    if path.is_file():
        return [load_blueprint_file(path)]
    if not path.is_dir():
        raise RegistryLoadError(f"blueprint source not found: {path}")
    if (path / BLUEPRINT_FILE).is_file():
        return [load_blueprint_file(path / BLUEPRINT_FILE)]
    return [
        load_blueprint_file(child / BLUEPRINT_FILE)
        for child in sorted(path.iterdir())
        if child.is_dir() and (child / BLUEPRINT_FILE).is_file()
    ]


def load_blueprint_file(path: Path) -> BlueprintDefinition:
    """Parse a ``blueprint.yaml`` into a :class:`BlueprintDefinition`."""
    fallback_id = path.parent.name
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise RegistryLoadError(f"invalid YAML in {path}: {exc}", fallback_id) from exc
    except OSError as exc:
        raise RegistryLoadError(f"cannot read {path}: {exc}", fallback_id) from exc

    if not isinstance(data, dict):
        raise RegistryLoadError(f"{path} must contain a mapping", fallback_id)

    data.setdefault("id", fallback_id)
    data["root"] = path.parent
    try:
        return BlueprintDefinition.model_validate(data)
    except ValidationError as exc:
        raise RegistryLoadError(f"invalid definition in {path}: {exc}", str(data["id"])) from exc


# ---------------------------------------------------------------------------
# Self-validation
# ---------------------------------------------------------------------------


def validate_definition(definition: BlueprintDefinition) -> None:
    """Check a definition's internal consistency.

    Raises:
        RegistryLoadError: Naming the blueprint and the first problem found.
    """
    bid = definition.id

    def fail(message: str) -> None:
        raise RegistryLoadError(message, bid)

    names = definition.axis_names
    if len(set(names)) != len(names):
        fail("duplicate axis names")
    if len({a.field_name for a in definition.axes}) != len(names):
        fail("axis names collide once '-' is mapped to '_'")

    for position, axis in enumerate(definition.axes):
        if len(set(axis.values)) != len(axis.values):
            fail(f"axis '{axis.name}' lists a value twice")
        if axis.default is not None and axis.default not in axis.values:
            fail(f"axis '{axis.name}' default '{axis.default}' is not a legal value")
        for value, targets in axis.implies.items():
            if value not in axis.values:
                fail(f"axis '{axis.name}' implies from unknown value '{value}'")
            for target, target_value in targets.items():
                target_axis = definition.axis(target)
                if target_axis is None:
                    fail(f"axis '{axis.name}' implies undeclared axis '{target}'")
                elif names.index(target) <= position:
                    fail(f"axis '{axis.name}' implies '{target}', which is declared before it")
                elif target_value not in target_axis.values:
                    fail(f"axis '{axis.name}' implies illegal value '{target_value}' for '{target}'")

    variable_names = [v.name for v in definition.variables]
    if len(set(variable_names)) != len(variable_names):
        fail("duplicate variable names")
    for name in variable_names:
        if name in _RESERVED_CONTEXT or name in {a.field_name for a in definition.axes}:
            fail(f"variable '{name}' shadows a built-in or axis name")

    env = Environment()
    template_ids: set[str] = set()
    for template in definition.files:
        if template.id in template_ids:
            fail(f"duplicate file template id '{template.id}'")
        template_ids.add(template.id)
        _check_predicate(definition, template.when, f"file '{template.id}'", fail)
        try:
            env.parse(template.destination)
        except TemplateSyntaxError as exc:
            fail(f"file '{template.id}' destination does not parse: {exc}")
        if template.source is not None:
            _check_source(definition, template.source, f"file '{template.id}'", fail)

    if definition.manifest is not None and definition.manifest.source is not None:
        _check_source(definition, definition.manifest.source, "manifest", fail)

    for declaration in definition.dependencies:
        where = f"dependency '{declaration.identifier}'"
        if declaration.axis is not None:
            axis = definition.axis(declaration.axis)
            if axis is None:
                fail(f"{where} references undeclared axis '{declaration.axis}'")
            elif not _value_reachable(axis, declaration.value):
                fail(f"{where} references illegal value '{declaration.value}' for axis '{axis.name}'")
        _check_predicate(definition, declaration.when, where, fail)
        try:
            parse_constraint(declaration.constraint)
        except ConstraintError as exc:
            fail(f"{where}: {exc}")

    for index, constraint in enumerate(definition.constraints):
        _check_predicate(definition, constraint.when, f"constraint #{index + 1}", fail)
        _check_predicate(definition, constraint.require, f"constraint #{index + 1}", fail)

    hook_names = [h.name for h in definition.hooks]
    if len(set(hook_names)) != len(hook_names):
        fail("duplicate hook names")
    for hook in definition.hooks:
        _check_predicate(definition, hook.when, f"hook '{hook.name}'", fail)

    _check_static_collisions(definition, fail)


def _value_reachable(axis: OptionAxis, value: Optional[str]) -> bool:
    if value in axis.values:
        return True
    # "none" also stands for an optional axis left unset.
    return value == "none" and not axis.required and axis.default is None


def _check_predicate(definition: BlueprintDefinition, predicate: Predicate, where: str, fail) -> None:
    for axis_name, value in predicate.references():
        axis = definition.axis(axis_name)
        if axis is None:
            fail(f"{where} references undeclared axis '{axis_name}'")
        elif not _value_reachable(axis, value):
            fail(f"{where} references illegal value '{value}' for axis '{axis_name}'")


def _check_source(definition: BlueprintDefinition, source: str, where: str, fail) -> None:
    templates_dir = definition.templates_dir
    if templates_dir is None:
        fail(f"{where} uses source '{source}' but the blueprint has no template directory")
    elif not (templates_dir / source).is_file():
        fail(f"{where} source '{source}' not found under {templates_dir}")


def _check_static_collisions(definition: BlueprintDefinition, fail) -> None:
    """Reject two templates with the same literal destination that can co-occur."""
    static: dict[str, list[tuple[str, Predicate]]] = {}
    for template in definition.files:
        if "{" in template.destination:
            continue
        try:
            path = normalize_destination(template.destination)
        except ValueError as exc:
            fail(f"file '{template.id}': {exc}")
        static.setdefault(path, []).append((template.id, template.when))
    if definition.manifest is not None and "{" not in definition.manifest.path:
        try:
            path = normalize_destination(definition.manifest.path)
        except ValueError as exc:
            fail(f"manifest: {exc}")
        static.setdefault(path, []).append(("<dependency-manifest>", ALWAYS))

    for path, claimants in static.items():
        for (first_id, first), (second_id, second) in itertools.combinations(claimants, 2):
            if _can_co_occur(definition, first, second):
                fail(f"files '{first_id}' and '{second_id}' can both resolve to '{path}'")


def _can_co_occur(definition: BlueprintDefinition, first: Predicate, second: Predicate) -> bool:
    """True when some legal configuration satisfies both predicates.

    Enumerates the axes the two predicates and the cross-axis constraints
    mention.  Returns False when the space is too large to enumerate; the
    render-time check still catches those collisions.
    """
    axes: dict[str, OptionAxis] = {}
    predicates = [first, second]
    for constraint in definition.constraints:
        predicates.extend([constraint.when, constraint.require])
    for predicate in predicates:
        for axis_name, _ in predicate.references():
            axis = definition.axis(axis_name)
            if axis is not None:
                axes[axis_name] = axis

    choices: list[list[Optional[str]]] = []
    total = 1
    for axis in axes.values():
        options: list[Optional[str]] = list(axis.values)
        if not axis.required and axis.default is None:
            options.append(None)
        choices.append(options)
        total *= len(options)
        if total > MAX_COMBINATIONS:
            return False

    names = list(axes)
    for combo in itertools.product(*choices):
        selections = dict(zip(names, combo))
        if not all(c.require.evaluate(selections) for c in definition.constraints if c.when.evaluate(selections)):
            continue
        if first.evaluate(selections) and second.evaluate(selections):
            return True
    return False
