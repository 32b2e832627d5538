"""Shared pytest fixtures for the projectforge test suite.

Provides reusable fixtures for:
- Blueprint directories written into ``tmp_path``
- A loaded sample definition and registry
- Raw project configurations
- Mock subprocess helpers
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock

import pytest
import yaml

from projectforge.models import BlueprintDefinition
from projectforge.registry import BlueprintRegistry, load_blueprint_file


# ---------------------------------------------------------------------------
# Blueprint writers
# ---------------------------------------------------------------------------

SAMPLE_BLUEPRINT: dict[str, Any] = {
    "id": "library",
    "name": "Sample library",
    "description": "Fixture blueprint exercising every engine feature",
    "type": "library",
    "axes": [
        {"name": "framework", "values": ["gin", "fiber"], "default": "gin",
         "implies": {"fiber": {"logger": "beta"}}},
        {"name": "logger", "values": ["alpha", "beta"], "default": "alpha"},
        {"name": "database-driver", "values": ["postgres", "mysql", "redis"]},
        {"name": "database-orm", "values": ["gorm", "sqlx"]},
    ],
    "constraints": [
        {
            "when": {"database-orm": ["gorm", "sqlx"]},
            "require": {"database-driver": ["postgres", "mysql"]},
            "message": "an ORM needs a SQL driver",
        },
    ],
    "variables": [
        {"name": "author", "default": "anonymous"},
        {"name": "license", "default": "MIT", "pattern": "MIT|Apache-2.0"},
    ],
    "files": [
        {"destination": "README.md", "source": "README.md.tmpl"},
        {"id": "main", "destination": "main.go", "content": "package main // {{ module_path }}\n"},
        {"id": "logger", "destination": "internal/logger/{{ logger }}.go",
         "content": "package logger // {{ logger }} by {{ author }}\n"},
        {"id": "database", "destination": "internal/db/{{ database_driver }}.go",
         "content": "package db // {{ database_driver }}{% if database_orm %} via {{ database_orm }}{% endif %}\n",
         "when": {"not": {"database-driver": "none"}}},
        {"id": "run-script", "destination": "scripts/run.sh",
         "content": "#!/bin/sh\necho {{ project_name }}\n", "executable": True},
        {"id": "raw", "destination": "docs/raw.txt", "content": "{{ not rendered }}\n", "literal": True},
        {"id": "data-dir", "destination": "data", "kind": "directory"},
    ],
    "dependencies": [
        {"module": "alpha-pkg", "version": "^1.2.0", "axis": "logger", "value": "alpha"},
        {"module": "beta-pkg", "version": "v2.0.0", "axis": "logger", "value": "beta"},
        {"module": "shared-pkg", "version": ">=1.0.0"},
        {"module": "shared-pkg", "version": "<2.0.0", "axis": "database-driver", "value": "postgres"},
        {"module": "orm-pkg", "version": "~1.25.0", "axis": "database-orm", "value": "gorm"},
    ],
    "manifest": {"path": "deps.txt"},
}

SAMPLE_TEMPLATES: dict[str, str] = {
    "README.md.tmpl": "# {{ project_name }}\n\nLicense: {{ license }}\n",
}


def write_blueprint(
    root: Path,
    data: dict[str, Any],
    templates: dict[str, str] | None = None,
) -> Path:
    """Write ``<root>/<id>/blueprint.yaml`` plus its templates; return the directory."""
    directory = root / str(data["id"])
    (directory / "templates").mkdir(parents=True, exist_ok=True)
    (directory / "blueprint.yaml").write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    for rel, content in (templates or {}).items():
        target = directory / "templates" / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    return directory


@pytest.fixture
def blueprint_data() -> dict[str, Any]:
    """A deep copy of the sample blueprint, safe to mutate per test."""
    return copy.deepcopy(SAMPLE_BLUEPRINT)


@pytest.fixture
def blueprints_root(tmp_path: Path) -> Path:
    root = tmp_path / "blueprints"
    root.mkdir()
    return root


@pytest.fixture
def make_blueprint(blueprints_root: Path) -> Callable[..., Path]:
    """Factory writing a blueprint directory under ``blueprints_root``.

    Usage:
        def test_x(make_blueprint, blueprint_data):
            blueprint_data["files"].append(...)
            path = make_blueprint(blueprint_data)
    """

    def factory(data: dict[str, Any], templates: dict[str, str] | None = None) -> Path:
        return write_blueprint(blueprints_root, data, SAMPLE_TEMPLATES if templates is None else templates)

    return factory


@pytest.fixture
def make_definition(make_blueprint: Callable[..., Path]) -> Callable[..., BlueprintDefinition]:
    """Factory returning a parsed (not yet registry-validated) definition."""

    def factory(data: dict[str, Any], templates: dict[str, str] | None = None) -> BlueprintDefinition:
        return load_blueprint_file(make_blueprint(data, templates) / "blueprint.yaml")

    return factory


@pytest.fixture
def sample_dir(make_blueprint: Callable[..., Path], blueprint_data: dict[str, Any]) -> Path:
    return make_blueprint(blueprint_data)


@pytest.fixture
def sample_registry(sample_dir: Path) -> BlueprintRegistry:
    return BlueprintRegistry.load(sample_dir)


@pytest.fixture
def sample_definition(sample_registry: BlueprintRegistry) -> BlueprintDefinition:
    return sample_registry.lookup("library")


# ---------------------------------------------------------------------------
# Configurations
# ---------------------------------------------------------------------------

@pytest.fixture
def raw_config() -> dict[str, Any]:
    """Raw configuration for the sample blueprint."""
    return {
        "name": "foo",
        "module": "example.com/foo",
        "blueprint": "library",
        "selections": {},
        "variables": {},
    }


# ---------------------------------------------------------------------------
# Mock subprocess helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_subprocess():
    """Mock asyncio subprocess for testing command execution.

    Returns a factory that creates mock subprocess instances with configurable
    stdout, stderr, and return codes.

    Usage:
        def test_command(mock_subprocess):
            proc = mock_subprocess(stdout="output", returncode=0)
            with patch("asyncio.create_subprocess_exec", return_value=proc):
                ...
    """
    def factory(
        stdout: str = "",
        stderr: str = "",
        returncode: int = 0,
    ) -> AsyncMock:
        mock_proc = AsyncMock()
        mock_proc.communicate = AsyncMock(
            return_value=(stdout.encode("utf-8"), stderr.encode("utf-8"))
        )
        mock_proc.returncode = returncode
        mock_proc.pid = 99999
        mock_proc.kill = MagicMock()
        mock_proc.wait = AsyncMock(return_value=returncode)
        return mock_proc

    return factory
