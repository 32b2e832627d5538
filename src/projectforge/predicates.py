"""Inclusion predicates over resolved axis selections.

Blueprints express conditions declaratively in YAML::

    when: {logger: zap}                       # single value
    when: {database-driver: [postgres, mysql]} # any of several values
    when: {all: [{framework: gin}, {not: {auth-type: none}}]}
    when: {any: [{logger: zap}, {logger: zerolog}]}

A mapping with several keys is a conjunction.  Parsing produces a small,
closed tree of frozen predicate objects; every node can report which axes and
values it references so that the registry can reject a blueprint that
mentions an undeclared axis before any generation runs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator, Mapping, Union

# Axis name -> selected value (``None`` when an optional axis is unset).
Selections = Mapping[str, Union[str, None]]


class PredicateError(ValueError):
    """Raised when a declarative predicate cannot be parsed."""


@dataclass(frozen=True)
class Always:
    """Predicate that holds for every configuration."""

    def evaluate(self, selections: Selections) -> bool:
        return True

    def references(self) -> Iterator[tuple[str, str | None]]:
        return iter(())

    def describe(self) -> str:
        return "always"


@dataclass(frozen=True)
class AxisIn:
    """Holds when ``axis`` is set to one of ``values``.

    The value ``"none"`` in a declaration also matches an unset optional axis.
    """

    axis: str
    values: tuple[str, ...]

    def evaluate(self, selections: Selections) -> bool:
        selected = selections.get(self.axis)
        if selected is None:
            return "none" in self.values
        return selected in self.values

    def references(self) -> Iterator[tuple[str, str | None]]:
        for value in self.values:
            yield self.axis, value

    def describe(self) -> str:
        if len(self.values) == 1:
            return f"{self.axis}={self.values[0]}"
        return f"{self.axis} in ({', '.join(self.values)})"


@dataclass(frozen=True)
class AllOf:
    operands: tuple["Predicate", ...]

    def evaluate(self, selections: Selections) -> bool:
        return all(op.evaluate(selections) for op in self.operands)

    def references(self) -> Iterator[tuple[str, str | None]]:
        for op in self.operands:
            yield from op.references()

    def describe(self) -> str:
        return " and ".join(f"({op.describe()})" for op in self.operands)


@dataclass(frozen=True)
class AnyOf:
    operands: tuple["Predicate", ...]

    def evaluate(self, selections: Selections) -> bool:
        return any(op.evaluate(selections) for op in self.operands)

    def references(self) -> Iterator[tuple[str, str | None]]:
        for op in self.operands:
            yield from op.references()

    def describe(self) -> str:
        return " or ".join(f"({op.describe()})" for op in self.operands)


@dataclass(frozen=True)
class Not:
    operand: "Predicate"

    def evaluate(self, selections: Selections) -> bool:
        return not self.operand.evaluate(selections)

    def references(self) -> Iterator[tuple[str, str | None]]:
        return self.operand.references()

    def describe(self) -> str:
        return f"not ({self.operand.describe()})"


Predicate = Union[Always, AxisIn, AllOf, AnyOf, Not]

ALWAYS = Always()


def parse_predicate(raw: Any) -> Predicate:
    """Build a predicate tree from its declarative YAML form.

    ``None`` and ``True`` mean "always"; a mapping is parsed key by key.

    Raises:
        PredicateError: If the structure is not a recognised predicate form.
    """
    if raw is None or raw is True:
        return ALWAYS
    if isinstance(raw, (Always, AxisIn, AllOf, AnyOf, Not)):
        return raw
    if not isinstance(raw, Mapping):
        raise PredicateError(f"predicate must be a mapping, got {type(raw).__name__}: {raw!r}")
    if not raw:
        return ALWAYS

    clauses: list[Predicate] = []
    for key, value in raw.items():
        if key == "all":
            clauses.append(AllOf(tuple(parse_predicate(v) for v in _as_list(key, value))))
        elif key == "any":
            clauses.append(AnyOf(tuple(parse_predicate(v) for v in _as_list(key, value))))
        elif key == "not":
            clauses.append(Not(parse_predicate(value)))
        else:
            clauses.append(AxisIn(str(key), _axis_values(str(key), value)))

    if len(clauses) == 1:
        return clauses[0]
    return AllOf(tuple(clauses))


def referenced_axes(predicate: Predicate) -> list[str]:
    """Return the distinct axis names a predicate mentions, in first-seen order."""
    seen: dict[str, None] = {}
    for axis, _ in predicate.references():
        seen.setdefault(axis, None)
    return list(seen)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _as_list(key: str, value: Any) -> list[Any]:
    if not isinstance(value, (list, tuple)) or not value:
        raise PredicateError(f"'{key}' expects a non-empty list of predicates")
    return list(value)


def _axis_values(axis: str, value: Any) -> tuple[str, ...]:
    if isinstance(value, (list, tuple)):
        if not value:
            raise PredicateError(f"axis '{axis}' lists no values")
        return tuple(_scalar(axis, v) for v in value)
    return (_scalar(axis, value),)


def _scalar(axis: str, value: Any) -> str:
    if value is None:
        return "none"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    raise PredicateError(f"axis '{axis}' has a non-scalar value: {value!r}")
