"""Dependency merging and semver constraint arithmetic.

Each active feature selection contributes ``(identifier, constraint)`` pairs.
Constraints for the same identifier are intersected; an empty intersection is
a :class:`DependencyConflictError`.  The merged manifest has one entry per
identifier, sorted lexicographically so the output is stable across runs.

Constraint grammar (comma-separated clauses are ANDed)::

    v1.2.3 | =v1.2.3 | ==1.2.3   exact pin
    >=1.2  >1.2  <=1.4  <2       bounds
    ^1.2.3  ^0.2.3  ^0.0.3       below the next left-most non-zero part:
                                 <2.0.0  <0.3.0  <0.0.4  (^0 <1.0.0, ^0.0 <0.1.0)
    ~1.2.3  ~1.2  ~1             same minor when one is given, else same major
    *                            anything
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import total_ordering
from typing import Optional

from .errors import DependencyConflictError
from .models import BlueprintDefinition, DependencyEntry, DependencyManifest, ResolvedConfiguration

_VERSION_RE = re.compile(
    r"^(?P<prefix>v?)(?P<major>0|[1-9]\d*)"
    r"(?:\.(?P<minor>0|[1-9]\d*))?"
    r"(?:\.(?P<patch>0|[1-9]\d*))?"
    r"(?:-(?P<pre>[0-9A-Za-z.-]+))?"
    r"(?:\+[0-9A-Za-z.-]+)?$"
)

_CLAUSE_RE = re.compile(r"^(?P<op>>=|<=|==|=|>|<|\^|~)?\s*(?P<version>\S+)$")


class ConstraintError(ValueError):
    """Raised when a version or constraint string cannot be parsed."""


# ---------------------------------------------------------------------------
# Versions
# ---------------------------------------------------------------------------


@total_ordering
@dataclass(frozen=True)
class Version:
    """A semantic version; ``text`` keeps the spelling used by the blueprint."""

    major: int
    minor: int
    patch: int
    prerelease: tuple[str, ...] = ()
    text: str = ""

    @classmethod
    def parse(cls, text: str) -> "Version":
        match = _VERSION_RE.match(text.strip())
        if match is None:
            raise ConstraintError(f"invalid version '{text}'")
        pre = match.group("pre")
        return cls(
            major=int(match.group("major")),
            minor=int(match.group("minor") or 0),
            patch=int(match.group("patch") or 0),
            prerelease=tuple(pre.split(".")) if pre else (),
            text=text.strip(),
        )

    @property
    def _key(self) -> tuple:
        # A release sorts after all of its prereleases.
        if not self.prerelease:
            return (self.major, self.minor, self.patch, 1, ())
        parts = tuple((0, int(p), "") if p.isdigit() else (1, 0, p) for p in self.prerelease)
        return (self.major, self.minor, self.patch, 0, parts)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._key == other._key

    def __lt__(self, other: "Version") -> bool:
        return self._key < other._key

    def __hash__(self) -> int:
        return hash(self._key)

    def __str__(self) -> str:
        return self.text or f"{self.major}.{self.minor}.{self.patch}"

    def bump(self, part: str) -> "Version":
        prefix = "v" if self.text.startswith("v") else ""
        if part == "major":
            return Version.parse(f"{prefix}{self.major + 1}.0.0")
        if part == "minor":
            return Version.parse(f"{prefix}{self.major}.{self.minor + 1}.0")
        return Version.parse(f"{prefix}{self.major}.{self.minor}.{self.patch + 1}")


# ---------------------------------------------------------------------------
# Ranges
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VersionRange:
    """A contiguous version interval; a missing bound is unbounded."""

    lower: Optional[Version] = None
    lower_inclusive: bool = True
    upper: Optional[Version] = None
    upper_inclusive: bool = False

    @property
    def is_empty(self) -> bool:
        if self.lower is None or self.upper is None:
            return False
        if self.lower > self.upper:
            return True
        if self.lower == self.upper:
            return not (self.lower_inclusive and self.upper_inclusive)
        return False

    @property
    def is_exact(self) -> bool:
        return (
            self.lower is not None
            and self.lower == self.upper
            and self.lower_inclusive
            and self.upper_inclusive
        )

    def contains(self, version: Version) -> bool:
        if self.lower is not None:
            if version < self.lower or (version == self.lower and not self.lower_inclusive):
                return False
        if self.upper is not None:
            if version > self.upper or (version == self.upper and not self.upper_inclusive):
                return False
        return True

    def intersect(self, other: "VersionRange") -> "VersionRange":
        lower, lower_inc = _tighter_lower(
            (self.lower, self.lower_inclusive), (other.lower, other.lower_inclusive)
        )
        upper, upper_inc = _tighter_upper(
            (self.upper, self.upper_inclusive), (other.upper, other.upper_inclusive)
        )
        return VersionRange(lower, lower_inc, upper, upper_inc)

    def minimum(self) -> Optional[Version]:
        """Lowest version in the range, when the lower bound is inclusive."""
        if self.lower is not None and self.lower_inclusive:
            return self.lower
        return None

    def __str__(self) -> str:
        if self.is_exact:
            return str(self.lower)
        clauses: list[str] = []
        if self.lower is not None:
            clauses.append(f"{'>=' if self.lower_inclusive else '>'}{self.lower}")
        if self.upper is not None:
            clauses.append(f"{'<=' if self.upper_inclusive else '<'}{self.upper}")
        return ", ".join(clauses) or "*"


ANY = VersionRange()


def _tighter_lower(a: tuple[Optional[Version], bool], b: tuple[Optional[Version], bool]):
    if a[0] is None:
        return b
    if b[0] is None:
        return a
    if a[0] != b[0]:
        return a if a[0] > b[0] else b
    return a[0], a[1] and b[1]


def _tighter_upper(a: tuple[Optional[Version], bool], b: tuple[Optional[Version], bool]):
    if a[0] is None:
        return b
    if b[0] is None:
        return a
    if a[0] != b[0]:
        return a if a[0] < b[0] else b
    return a[0], a[1] and b[1]


def parse_constraint(text: str) -> VersionRange:
    """Parse a constraint string into a single :class:`VersionRange`.

    Raises:
        ConstraintError: On an unknown operator or malformed version.
    """
    result = ANY
    for raw_clause in str(text).split(","):
        clause = raw_clause.strip()
        if clause in ("", "*", "latest"):
            continue
        match = _CLAUSE_RE.match(clause)
        if match is None:
            raise ConstraintError(f"invalid constraint clause '{clause}'")
        result = result.intersect(_clause_range(match.group("op") or "=", Version.parse(match.group("version"))))
    return result


def _clause_range(op: str, version: Version) -> VersionRange:
    if op in ("=", "=="):
        return VersionRange(version, True, version, True)
    if op == ">=":
        return VersionRange(lower=version, lower_inclusive=True)
    if op == ">":
        return VersionRange(lower=version, lower_inclusive=False)
    if op == "<=":
        return VersionRange(upper=version, upper_inclusive=True)
    if op == "<":
        return VersionRange(upper=version, upper_inclusive=False)
    if op == "^":
        return VersionRange(version, True, version.bump(_caret_part(version)), False)
    # "~"
    part = "minor" if _precision(version) > 1 else "major"
    return VersionRange(version, True, version.bump(part), False)


def _precision(version: Version) -> int:
    """Number of numeric parts spelled out: 1 for ``1``, 2 for ``1.2``, 3 for ``1.2.3``."""
    match = _VERSION_RE.match(version.text)
    if match is None:
        return 3
    return 1 + (match.group("minor") is not None) + (match.group("patch") is not None)


def _caret_part(version: Version) -> str:
    # The ceiling bumps the left-most non-zero part that was spelled out, or
    # the last spelled-out part when all of them are zero.
    given = _precision(version)
    if version.major > 0 or given == 1:
        return "major"
    if version.minor > 0 or given == 2:
        return "minor"
    return "patch"


def intersect(constraints: list[str]) -> VersionRange:
    """Intersect several constraint strings; may return an empty range."""
    result = ANY
    for constraint in constraints:
        result = result.intersect(parse_constraint(constraint))
    return result


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def merge(definition: BlueprintDefinition, resolved: ResolvedConfiguration) -> DependencyManifest:
    """Merge the dependency declarations active for *resolved*.

    Raises:
        DependencyConflictError: If the constraints for one identifier have
            no version in common.
    """
    selections = resolved.as_selections()
    groups: dict[str, list[tuple[str, str]]] = {}
    for declaration in definition.dependencies:
        if declaration.matches(selections):
            groups.setdefault(declaration.identifier, []).append(
                (declaration.constraint, declaration.describe_source())
            )

    entries: list[DependencyEntry] = []
    for identifier in sorted(groups):
        contributions = groups[identifier]
        constraints = list(dict.fromkeys(c for c, _ in contributions))
        merged = intersect(constraints)
        if merged.is_empty:
            raise DependencyConflictError(identifier, constraints)
        minimum = merged.minimum()
        entries.append(
            DependencyEntry(
                identifier=identifier,
                constraint=str(merged),
                version=str(minimum) if minimum is not None else None,
                contributors=tuple(dict.fromkeys(src for _, src in contributions)),
            )
        )
    return DependencyManifest(entries=tuple(entries))
