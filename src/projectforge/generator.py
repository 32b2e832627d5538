"""Main generation orchestrator.

Runs one project generation end to end, strictly in order::

    lookup -> resolve -> render -> merge dependencies -> materialize -> hooks

Everything before materialization happens in memory, so a failure in any of
those stages leaves nothing on disk.  Hook failures happen after the project
has been committed and never roll it back.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Mapping, Optional

from rich.markup import escape

from .config import Config
from .dependencies import merge
from .errors import HookExecutionError
from .hooks import GIT_INIT_HOOK, HookRunner
from .materializer import Materializer
from .models import (
    BlueprintDefinition,
    GeneratedProject,
    GenerationResult,
    HookReport,
    HookSpec,
    ProjectConfiguration,
    ResolvedConfiguration,
)
from .registry import BlueprintRegistry
from .rendering import attach_manifest, render
from .resolver import resolve
from .utils import console, format_duration


class ProjectGenerator:
    """Generation orchestrator.

    The registry is passed in explicitly and only read; one generator may be
    shared by concurrent invocations because every invocation builds its own
    resolved configuration and in-memory project.
    """

    def __init__(
        self,
        registry: BlueprintRegistry,
        config: Optional[Config] = None,
        verbose: bool = False,
    ) -> None:
        self.registry = registry
        self.config = config or Config()
        self.verbose = verbose

    # -- Public API --------------------------------------------------------

    def preview(self, raw: ProjectConfiguration | Mapping[str, Any]) -> GeneratedProject:
        """Resolve, render and merge without touching the filesystem.

        Raises:
            BlueprintNotFoundError, ConfigValidationError, TemplateRenderError,
            FileCollisionError, DependencyConflictError.
        """
        _, _, project = self._prepare(raw)
        return project

    async def generate(
        self,
        raw: ProjectConfiguration | Mapping[str, Any],
        output_dir: str | Path | None = None,
        *,
        run_hooks: Optional[bool] = None,
        no_git: Optional[bool] = None,
    ) -> GenerationResult:
        """Generate a project into ``<output_dir>/<name>``.

        Args:
            raw: The project configuration.
            output_dir: Parent directory of the new project.  Defaults to
                ``config.output_dir``.
            run_hooks: Override ``config.run_hooks``.
            no_git: Skip the built-in ``git init`` hook.  Defaults to
                ``not config.git_init``.

        Returns:
            A :class:`GenerationResult` describing the committed project.

        Raises:
            ForgeError: Any pipeline failure.  A :class:`HookExecutionError`
                is raised only after the project is committed; its ``result``
                attribute holds the generation result.
        """
        start = time.monotonic()
        definition, resolved, project = self._prepare(raw)

        parent = Path(output_dir) if output_dir is not None else self.config.output_dir
        destination = parent / resolved.name
        if self.verbose:
            console.print(
                f"[bold]Generating[/bold] {resolved.name} from blueprint "
                f"[cyan]{definition.id}[/cyan] ({len(project.files)} entries)"
            )

        project_path = await Materializer(verbose=self.verbose).materialize(project, destination)

        should_run = self.config.run_hooks if run_hooks is None else run_hooks
        skip_git = (not self.config.git_init) if no_git is None else no_git
        hooks = self.hooks_for(definition, include_git=not skip_git) if should_run else []

        report = HookReport()
        hook_error: Optional[HookExecutionError] = None
        if hooks:
            try:
                report = await HookRunner(verbose=self.verbose).run(
                    hooks,
                    project_path,
                    per_hook_timeout=self.config.hook_timeout,
                    selections=resolved.as_selections(),
                )
            except HookExecutionError as exc:
                hook_error = exc
                report = exc.report or HookReport()

        result = GenerationResult(
            project_path=project_path,
            blueprint_id=definition.id,
            files=project.paths,
            dependencies=project.dependencies,
            hooks=report,
            duration_seconds=time.monotonic() - start,
        )
        if self.verbose:
            console.print(f"[green]Done[/green] in {format_duration(result.duration_seconds)}")

        if hook_error is not None:
            hook_error.result = result
            raise hook_error
        return result

    @staticmethod
    def hooks_for(definition: BlueprintDefinition, include_git: bool = True) -> list[HookSpec]:
        """The blueprint's hooks in declared order, then ``git init`` if enabled."""
        hooks = list(definition.hooks)
        if include_git and all(h.name != GIT_INIT_HOOK.name for h in hooks):
            hooks.append(GIT_INIT_HOOK)
        return hooks

    # -- Pipeline ----------------------------------------------------------

    def _prepare(
        self, raw: ProjectConfiguration | Mapping[str, Any]
    ) -> tuple[BlueprintDefinition, ResolvedConfiguration, GeneratedProject]:
        blueprint_id = raw.blueprint if isinstance(raw, ProjectConfiguration) else str(raw.get("blueprint", ""))
        definition = self.registry.lookup(blueprint_id)
        resolved = resolve(definition, raw)
        if self.verbose:
            self._print_selections(definition, resolved)
        project = render(definition, resolved)
        manifest = merge(definition, resolved)
        project = attach_manifest(definition, resolved, project, manifest)
        return definition, resolved, project

    @staticmethod
    def _print_selections(definition: BlueprintDefinition, resolved: ResolvedConfiguration) -> None:
        for axis in definition.axis_names:
            value = resolved.value(axis) or "none"
            source = resolved.sources.get(axis, "unset")
            console.print(f"  {escape(axis)} = [cyan]{escape(value)}[/cyan] [dim]({source})[/dim]")
