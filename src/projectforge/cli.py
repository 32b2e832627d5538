"""projectforge command-line interface.

Usage::

    projectforge new my-api --module github.com/acme/my-api --blueprint web-api \\
        --set framework=gin --set logger=zap
    projectforge list
    projectforge show web-api

The CLI only collects input and prints results; every decision is made by the
engine.  Each :class:`~projectforge.errors.ForgeError` maps to its own exit
status through its ``exit_code``.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .config import DEFAULT_CONFIG_PATH, Config
from .errors import ConfigValidationError, ForgeError, HookExecutionError
from .generator import ProjectGenerator
from .models import BlueprintDefinition, GeneratedProject, GenerationResult
from .registry import BlueprintRegistry
from .utils import (
    console,
    format_duration,
    parse_assignments,
    print_error,
    print_success,
    print_summary_table,
    print_warning,
)

EXIT_OK = 0
EXIT_USAGE = 2


# ---------------------------------------------------------------------------
# Setup helpers
# ---------------------------------------------------------------------------


def _load_config(args: argparse.Namespace) -> Config:
    """File config (explicit or default location), then environment, then flags."""
    base: Optional[Config] = None
    if getattr(args, "config", None):
        base = Config.load(Path(args.config))
    elif DEFAULT_CONFIG_PATH.is_file():
        base = Config.load(DEFAULT_CONFIG_PATH)
    config = Config.from_env(base)

    updates: dict[str, object] = {}
    if getattr(args, "blueprints", None):
        updates["blueprints_dir"] = Path(args.blueprints)
    if getattr(args, "output", None):
        updates["output_dir"] = Path(args.output)
    if getattr(args, "hook_timeout", None) is not None:
        if args.hook_timeout < 1:
            raise ConfigValidationError("--hook-timeout must be at least 1 second")
        updates["hook_timeout"] = args.hook_timeout
    if getattr(args, "no_git", False):
        updates["git_init"] = False
    if getattr(args, "no_hooks", False):
        updates["run_hooks"] = False
    return config.model_copy(update=updates) if updates else config


def _load_registry(config: Config) -> BlueprintRegistry:
    return BlueprintRegistry.builtin(extra=config.blueprints_dir)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_new(args: argparse.Namespace) -> int:
    config = _load_config(args)
    try:
        selections = parse_assignments(args.set, "selection")
        variables = parse_assignments(args.var, "variable")
    except ValueError as exc:
        print_error(f"Error: {exc}")
        return EXIT_USAGE

    registry = _load_registry(config)
    definition = registry.lookup(args.blueprint)
    selections, variables = config.apply_profile(
        selections,
        variables,
        args.profile,
        axes=definition.axis_names,
        variable_names=[spec.name for spec in definition.variables],
    )
    raw = {
        "name": args.name,
        "module": args.module,
        "blueprint": args.blueprint,
        "selections": selections,
        "variables": variables,
    }

    generator = ProjectGenerator(registry, config, verbose=args.verbose)
    if args.dry_run:
        project = generator.preview(raw)
        _print_preview(project)
        return EXIT_OK

    try:
        result = asyncio.run(generator.generate(raw))
    except HookExecutionError as exc:
        if exc.result is not None:
            _print_result(exc.result)
        print_error(f"Error: {exc}")
        print_warning("The project was generated; fix the hook failure and re-run it by hand.")
        return exc.exit_code

    _print_result(result)
    print_success(f"Project '{args.name}' created at {result.project_path}")
    return EXIT_OK


def cmd_list(args: argparse.Namespace) -> int:
    registry = _load_registry(_load_config(args))
    table = Table(title="Blueprints", show_header=True, header_style="bold cyan")
    table.add_column("ID", no_wrap=True)
    table.add_column("Type", style="dim")
    table.add_column("Name")
    table.add_column("Description")
    for definition in registry.list():
        table.add_row(
            escape(definition.id),
            escape(definition.type),
            escape(definition.name),
            escape(definition.description),
        )
    console.print(table)
    return EXIT_OK


def cmd_show(args: argparse.Namespace) -> int:
    registry = _load_registry(_load_config(args))
    definition = registry.lookup(args.id)
    _print_definition(definition)
    return EXIT_OK


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


def _print_definition(definition: BlueprintDefinition) -> None:
    console.print(
        Panel(
            escape(definition.description or definition.name or definition.id),
            title=f"[bold]{escape(definition.id)}[/bold]",
            border_style="cyan",
        )
    )

    axes = Table(title="Options", show_header=True, header_style="bold cyan")
    axes.add_column("Axis", no_wrap=True)
    axes.add_column("Values")
    axes.add_column("Default", style="green")
    axes.add_column("Required")
    for axis in definition.axes:
        axes.add_row(
            escape(axis.name),
            escape(", ".join(axis.values)),
            escape(axis.default or "-"),
            "yes" if axis.required else "",
        )
    console.print(axes)

    if definition.variables:
        print_summary_table(
            {v.name: v.default or ("(required)" if v.required else "") for v in definition.variables},
            title="Variables",
        )
    if definition.hooks:
        print_summary_table(
            {h.name: h.display_command + (" (required)" if h.required else "") for h in definition.hooks},
            title="Hooks",
        )


def _print_preview(project: GeneratedProject) -> None:
    table = Table(title=f"Dry run: {escape(project.project_name)}", show_header=True, header_style="bold cyan")
    table.add_column("Path")
    table.add_column("Mode", style="dim")
    table.add_column("Template", style="dim")
    for entry in project.files:
        table.add_row(
            escape(entry.path + ("/" if entry.is_dir else "")),
            oct(entry.mode),
            escape(entry.template_id),
        )
    console.print(table)
    if project.dependencies.entries:
        print_summary_table(
            {e.identifier: e.constraint for e in project.dependencies.entries},
            title="Dependencies",
        )


def _print_result(result: GenerationResult) -> None:
    data = {
        "Blueprint": result.blueprint_id,
        "Location": str(result.project_path),
        "Files": str(len(result.files)),
        "Dependencies": str(len(result.dependencies.entries)),
        "Duration": format_duration(result.duration_seconds),
    }
    for hook in result.hooks.results:
        data[f"Hook {hook.name}"] = hook.status
    print_summary_table(data, title="Generation Summary")
    for warning in result.warnings:
        print_warning(f"Warning: {warning}")


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="projectforge",
        description="projectforge -- generate projects from blueprints",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  projectforge new my-api --module github.com/acme/my-api --blueprint web-api\n"
            "  projectforge new my-lib --module github.com/acme/my-lib --blueprint library "
            "--set logger=zap --dry-run\n"
            "  projectforge show web-api\n"
        ),
    )
    parser.add_argument("--config", default=None, help="Path to a JSON config file")
    parser.add_argument(
        "--blueprints",
        default=None,
        help="Extra directory of blueprints loaded next to the built-ins",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Report progress")
    sub = parser.add_subparsers(dest="command", required=True)

    new = sub.add_parser("new", help="Generate a new project")
    new.add_argument("name", help="Project name")
    new.add_argument("--module", "-m", required=True, help="Module path, e.g. github.com/acme/app")
    new.add_argument("--blueprint", "-b", required=True, help="Blueprint identifier")
    new.add_argument(
        "--set", "-s", action="append", default=[], metavar="AXIS=VALUE",
        help="Select a value for an option axis (repeatable)",
    )
    new.add_argument(
        "--var", action="append", default=[], metavar="KEY=VALUE",
        help="Set a template variable (repeatable)",
    )
    new.add_argument("--output", "-o", default=None, help="Parent directory of the new project")
    new.add_argument("--no-git", action="store_true", help="Skip 'git init'")
    new.add_argument("--no-hooks", action="store_true", help="Skip all post-generation hooks")
    new.add_argument("--dry-run", action="store_true", help="Show what would be generated")
    new.add_argument("--hook-timeout", type=int, default=None, help="Per-hook timeout in seconds")
    new.add_argument("--profile", "-p", default=None, help="Apply a saved profile's defaults")
    new.set_defaults(func=cmd_new)

    lst = sub.add_parser("list", help="List available blueprints")
    lst.set_defaults(func=cmd_list)

    show = sub.add_parser("show", help="Show a blueprint's options")
    show.add_argument("id", help="Blueprint identifier")
    show.set_defaults(func=cmd_show)

    return parser


def run(argv: Optional[list[str]] = None) -> int:
    """Parse *argv*, dispatch, and return the process exit status."""
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except ForgeError as exc:
        print_error(f"Error: {exc}")
        return exc.exit_code
    except KeyboardInterrupt:
        print_warning("Interrupted.")
        return 130


def main(argv: Optional[list[str]] = None) -> None:
    """CLI entry point for ``projectforge``."""
    sys.exit(run(argv))


if __name__ == "__main__":
    main()
