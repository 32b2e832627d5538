"""Jinja2 template rendering for blueprint file templates.

Provides the TemplateRenderer class which loads templates from a blueprint's
``templates/`` directory and renders destination paths and file contents with
a context derived from the resolved configuration.  :func:`render` walks a
blueprint's file templates in declaration order, evaluates each inclusion
predicate and produces an in-memory :class:`GeneratedProject`; nothing here
touches the output directory.
"""

from __future__ import annotations

import re
from pathlib import Path, PurePosixPath
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError, select_autoescape

from .errors import FileCollisionError, TemplateRenderError
from .models import (
    DIR_MODE,
    FILE_MODE,
    BlueprintDefinition,
    DependencyManifest,
    FileTemplate,
    GeneratedProject,
    RenderedFile,
    ResolvedConfiguration,
)


# ---------------------------------------------------------------------------
# TemplateRenderer
# ---------------------------------------------------------------------------


class TemplateRenderer:
    """Renders Jinja2 templates for one blueprint.

    Undefined variables are errors rather than empty strings, so a template
    referencing a misspelled axis fails loudly instead of producing a
    silently broken file.
    """

    def __init__(self, template_dir: str | Path | None = None) -> None:
        self.template_dir = Path(template_dir) if template_dir is not None else None
        loader = FileSystemLoader(str(self.template_dir)) if self.template_dir is not None else None
        self.env = Environment(
            loader=loader,
            autoescape=select_autoescape([]),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        # Register custom filters
        self.env.filters["slugify"] = _slugify_filter
        self.env.filters["pascal_case"] = _pascal_case_filter
        self.env.filters["snake_case"] = _snake_case_filter
        self.env.filters["camel_case"] = _camel_case_filter
        self.env.filters["basename"] = _basename_filter

    def render(self, template_path: str, context: dict[str, Any]) -> str:
        """Render a template file (relative to the template directory)."""
        if self.template_dir is None:
            raise TemplateRenderError(f"no template directory to load '{template_path}' from")
        template = self.env.get_template(template_path)
        return template.render(**context)

    def render_string(self, template_string: str, context: dict[str, Any]) -> str:
        """Render an inline template string with the provided context."""
        template = self.env.from_string(template_string)
        return template.render(**context)

    def read_bytes(self, template_path: str) -> bytes:
        """Return a template file's raw bytes for literal copies."""
        if self.template_dir is None:
            raise TemplateRenderError(f"no template directory to read '{template_path}' from")
        return (self.template_dir / template_path).read_bytes()


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------


def build_context(definition: BlueprintDefinition, resolved: ResolvedConfiguration) -> dict[str, Any]:
    """Build the template context for *resolved*.

    Every axis is exposed under its name with ``-`` replaced by ``_``; the raw
    axis names are available through ``features``.  Unset optional axes are
    the empty string so ``{% if database_driver %}`` reads naturally.
    """
    selections = resolved.as_selections()
    context: dict[str, Any] = {
        "project_name": resolved.name,
        "module_path": resolved.module,
        "blueprint": definition.id,
        "blueprint_type": definition.type,
        "features": {axis: value or "" for axis, value in selections.items()},
    }
    for axis in definition.axes:
        context[axis.field_name] = selections.get(axis.name) or ""
    for name, value in resolved.variables.items():
        context.setdefault(name, value)
    return context


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def render(definition: BlueprintDefinition, resolved: ResolvedConfiguration) -> GeneratedProject:
    """Render every file template of *definition* whose predicate holds.

    Raises:
        TemplateRenderError: If a destination or content template fails.
        FileCollisionError: If two templates resolve to the same path.
    """
    renderer = TemplateRenderer(definition.templates_dir)
    context = build_context(definition, resolved)
    selections = resolved.as_selections()

    produced: dict[str, tuple[str, bool]] = {}  # path -> (template id, is_dir)
    files: list[RenderedFile] = []

    for template in definition.files:
        if not template.when.evaluate(selections):
            continue
        path = _render_destination(renderer, template.id, template.destination, context)
        _claim(produced, path, template.id, template.kind == "directory")
        if template.kind == "directory":
            files.append(RenderedFile(path=path, content=b"", mode=DIR_MODE, template_id=template.id, is_dir=True))
            continue
        content = _render_content(renderer, template, context)
        files.append(RenderedFile(path=path, content=content, mode=template.mode, template_id=template.id))

    return GeneratedProject(
        blueprint_id=definition.id,
        project_name=resolved.name,
        files=tuple(files),
    )


def attach_manifest(
    definition: BlueprintDefinition,
    resolved: ResolvedConfiguration,
    project: GeneratedProject,
    manifest: DependencyManifest,
) -> GeneratedProject:
    """Return *project* with the merged manifest recorded and, if the
    blueprint names a manifest location, written there as one more file.

    Raises:
        TemplateRenderError: If the manifest template fails.
        FileCollisionError: If the manifest path is already produced.
    """
    files = list(project.files)
    spec = definition.manifest
    if spec is not None:
        template_id = "<dependency-manifest>"
        renderer = TemplateRenderer(definition.templates_dir)
        context = build_context(definition, resolved)
        context["dependencies"] = list(manifest.entries)
        path = _render_destination(renderer, template_id, spec.path, context)
        produced = {f.path: (f.template_id, f.is_dir) for f in files}
        _claim(produced, path, template_id, False)
        try:
            if spec.source is not None:
                text = renderer.render(spec.source, context)
            elif spec.content is not None:
                text = renderer.render_string(spec.content, context)
            else:
                text = "".join(f"{line}\n" for line in manifest.lines())
        except TemplateError as exc:
            raise TemplateRenderError(str(exc), template_id) from exc
        files.append(RenderedFile(path=path, content=text.encode("utf-8"), mode=FILE_MODE, template_id=template_id))

    return GeneratedProject(
        blueprint_id=project.blueprint_id,
        project_name=project.project_name,
        files=tuple(files),
        dependencies=manifest,
    )


def normalize_destination(raw: str) -> str:
    """Normalize a rendered destination to a clean relative POSIX path.

    Raises:
        ValueError: For empty, absolute or parent-escaping paths.
    """
    text = raw.strip().replace("\\", "/")
    if not text:
        raise ValueError("destination renders to an empty path")
    if text.startswith("/") or re.match(r"^[A-Za-z]:/", text):
        raise ValueError(f"destination '{text}' is absolute")
    parts = [part for part in PurePosixPath(text).parts if part not in ("", ".")]
    if not parts:
        raise ValueError(f"destination '{text}' names the project root")
    if ".." in parts:
        raise ValueError(f"destination '{text}' escapes the project root")
    return "/".join(parts)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _render_destination(
    renderer: TemplateRenderer, template_id: str, expression: str, context: dict[str, Any]
) -> str:
    try:
        rendered = renderer.render_string(expression, context) if "{" in expression else expression
        return normalize_destination(rendered)
    except TemplateError as exc:
        raise TemplateRenderError(f"destination '{expression}': {exc}", template_id) from exc
    except ValueError as exc:
        raise TemplateRenderError(str(exc), template_id) from exc


def _claim(produced: dict[str, tuple[str, bool]], path: str, template_id: str, is_dir: bool) -> None:
    if path in produced:
        raise FileCollisionError(path, produced[path][0], template_id)
    # A regular file cannot also be a parent directory of another entry.
    for existing, (existing_id, existing_is_dir) in produced.items():
        if not existing_is_dir and path.startswith(existing + "/"):
            raise FileCollisionError(existing, existing_id, template_id)
        if not is_dir and existing.startswith(path + "/"):
            raise FileCollisionError(path, existing_id, template_id)
    produced[path] = (template_id, is_dir)


def _render_content(renderer: TemplateRenderer, template: FileTemplate, context: dict[str, Any]) -> bytes:
    try:
        if template.literal:
            if template.content is not None:
                return template.content.encode("utf-8")
            return renderer.read_bytes(template.source)  # type: ignore[arg-type]
        if template.content is not None:
            return renderer.render_string(template.content, context).encode("utf-8")
        return renderer.render(template.source, context).encode("utf-8")  # type: ignore[arg-type]
    except TemplateError as exc:
        raise TemplateRenderError(str(exc) or type(exc).__name__, template.id) from exc
    except OSError as exc:
        raise TemplateRenderError(f"cannot read '{template.source}': {exc}", template.id) from exc


# ---------------------------------------------------------------------------
# Jinja2 custom filters
# ---------------------------------------------------------------------------

def _slugify_filter(value: str) -> str:
    """Convert a string to a URL/filename-safe slug."""
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower().strip())
    return slug.strip("-")


def _pascal_case_filter(value: str) -> str:
    """Convert ``some-thing`` or ``some_thing`` to ``SomeThing``."""
    parts = re.split(r"[-_\s]+", value)
    return "".join(word.capitalize() for word in parts if word)


def _snake_case_filter(value: str) -> str:
    """Convert ``SomeThing`` or ``some-thing`` to ``some_thing``."""
    s1 = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", value)
    s2 = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s1)
    return re.sub(r"[-\s]+", "_", s2).lower()


def _camel_case_filter(value: str) -> str:
    """Convert ``some-thing`` or ``some_thing`` to ``someThing``."""
    pascal = _pascal_case_filter(value)
    if pascal:
        return pascal[0].lower() + pascal[1:]
    return ""


def _basename_filter(value: str) -> str:
    """Last ``/``-separated segment, e.g. the package name of a module path."""
    return value.rstrip("/").rsplit("/", 1)[-1]
