"""projectforge configuration.

Typed user settings for the generator.  All settings use Pydantic v2 models
so they can be validated at construction time and serialised to/from JSON or
environment variables without boiler-plate.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Iterable, Optional

from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigValidationError

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "projectforge" / "config.json"


class Profile(BaseModel):
    """Named set of default selections and variables.

    A profile is applied underneath whatever the user passes explicitly, so
    ``--set logger=zap`` always beats a profile's ``logger``.
    """

    selections: dict[str, str] = Field(default_factory=dict, description="axis -> value defaults")
    variables: dict[str, str] = Field(default_factory=dict)
    description: str = Field(default="")


class Config(BaseModel):
    """Global projectforge configuration.

    Instances are typically created once by the CLI entry point and then
    passed to :class:`~projectforge.generator.ProjectGenerator`.
    """

    blueprints_dir: Optional[Path] = Field(
        default=None, description="Extra directory of blueprints loaded next to the built-ins"
    )
    output_dir: Path = Field(default=Path("."))
    hook_timeout: int = Field(default=120, ge=1, description="Per-hook timeout in seconds")
    git_init: bool = Field(default=True, description="Run 'git init' after generation")
    run_hooks: bool = Field(default=True)

    current_profile: str = Field(default="")
    profiles: dict[str, Profile] = Field(default_factory=dict)

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def profile(self, name: Optional[str] = None) -> Profile:
        """Return the profile called *name*, or the current profile.

        An empty name with no current profile yields an empty profile.

        Raises:
            ConfigValidationError: If a named profile does not exist.
        """
        key = name if name is not None else self.current_profile
        if not key:
            return Profile()
        try:
            return self.profiles[key]
        except KeyError:
            available = ", ".join(sorted(self.profiles)) or "none"
            raise ConfigValidationError(
                f"Profile '{key}' not found (available: {available})"
            ) from None

    def apply_profile(
        self,
        selections: dict[str, str],
        variables: dict[str, str],
        name: Optional[str] = None,
        axes: Optional[Iterable[str]] = None,
        variable_names: Optional[Iterable[str]] = None,
    ) -> tuple[dict[str, str], dict[str, str]]:
        """Layer explicit *selections* and *variables* over a profile's defaults.

        A profile is shared across blueprints, so when *axes* or
        *variable_names* are given its defaults are narrowed to the ones the
        target blueprint declares.  Explicit values are passed through
        untouched and validated later by the resolver.
        """
        profile = self.profile(name)
        profile_selections = _only(profile.selections, axes)
        profile_variables = _only(profile.variables, variable_names)
        return (
            {**profile_selections, **selections},
            {**profile_variables, **variables},
        )

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def save(self, path: Path | None = None) -> Path:
        """Persist the configuration to a JSON file.

        Args:
            path: Destination file. Defaults to ``~/.config/projectforge/config.json``.

        Returns:
            The resolved path where the file was written.
        """
        target = Path(path) if path is not None else DEFAULT_CONFIG_PATH
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return target

    @classmethod
    def load(cls, path: Path) -> "Config":
        """Load a previously-saved configuration from JSON.

        Raises:
            ConfigValidationError: If the file is unreadable or invalid.
        """
        try:
            raw = Path(path).read_text(encoding="utf-8")
            return cls.model_validate_json(raw)
        except OSError as exc:
            raise ConfigValidationError(f"Cannot read config file {path}: {exc}") from exc
        except ValidationError as exc:
            raise ConfigValidationError(f"Invalid config file {path}: {exc}") from exc

    @classmethod
    def from_env(cls, base: Optional["Config"] = None) -> "Config":
        """Build a ``Config`` from environment variables.

        Values found in the environment override *base* (or the defaults).

        Recognised variables (all optional):
            FORGE_BLUEPRINTS_DIR, FORGE_OUTPUT_DIR, FORGE_HOOK_TIMEOUT,
            FORGE_NO_GIT, FORGE_PROFILE.
        """
        data: dict[str, Any] = json.loads(base.model_dump_json()) if base is not None else {}

        if os.environ.get("FORGE_BLUEPRINTS_DIR"):
            data["blueprints_dir"] = os.environ["FORGE_BLUEPRINTS_DIR"]
        if os.environ.get("FORGE_OUTPUT_DIR"):
            data["output_dir"] = os.environ["FORGE_OUTPUT_DIR"]
        if os.environ.get("FORGE_HOOK_TIMEOUT"):
            data["hook_timeout"] = os.environ["FORGE_HOOK_TIMEOUT"]
        if os.environ.get("FORGE_NO_GIT", "").lower() in ("1", "true", "yes"):
            data["git_init"] = False
        if os.environ.get("FORGE_PROFILE"):
            data["current_profile"] = os.environ["FORGE_PROFILE"]

        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ConfigValidationError(f"Invalid environment configuration: {exc}") from exc


def _only(values: dict[str, str], keys: Optional[Iterable[str]]) -> dict[str, str]:
    if keys is None:
        return dict(values)
    allowed = set(keys)
    return {k: v for k, v in values.items() if k in allowed}
