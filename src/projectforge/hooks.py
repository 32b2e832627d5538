"""Post-generation hook runner.

Hooks are external commands (``go mod tidy``, ``gofmt -w .``, ``git init``)
run one after another against the committed project root.  A hook never
changes what was generated from the engine's point of view: its outcome is
recorded in a :class:`HookReport` and only a *required* hook can fail the
invocation.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Iterable, Mapping, Optional

from rich.markup import escape

from .errors import HookExecutionError
from .models import HookReport, HookResult, HookSpec
from .utils import CommandTimeout, console, run_command

DEFAULT_HOOK_TIMEOUT = 120

# Appended by the orchestrator unless version-control initialization is off.
GIT_INIT_HOOK = HookSpec(name="git-init", command=("git", "init", "-q"), required=False)

# Hook output kept in the report is capped so a chatty toolchain cannot
# bloat the result.
MAX_OUTPUT_CHARS = 4000


class HookRunner:
    """Runs an ordered list of hooks with a hard per-hook timeout."""

    def __init__(self, verbose: bool = False) -> None:
        self.verbose = verbose

    async def run(
        self,
        hooks: Iterable[HookSpec],
        project_root: str | Path,
        per_hook_timeout: float = DEFAULT_HOOK_TIMEOUT,
        selections: Optional[Mapping[str, Optional[str]]] = None,
    ) -> HookReport:
        """Run *hooks* sequentially inside *project_root*.

        Args:
            hooks: Hooks in execution order.
            project_root: The committed project directory.
            per_hook_timeout: Upper bound in seconds for every hook.  A hook's
                own ``timeout`` can only shorten it.
            selections: Resolved axis selections used to evaluate each hook's
                ``when`` predicate.  ``None`` runs every hook.

        Returns:
            A :class:`HookReport` with one result per hook.

        Raises:
            HookExecutionError: When a required hook fails or times out.  The
                exception carries the report up to and including that hook.
        """
        root = Path(project_root).resolve()
        report = HookReport()

        for hook in hooks:
            if selections is not None and not hook.when.evaluate(selections):
                report.results.append(
                    HookResult(
                        name=hook.name,
                        command=hook.display_command,
                        required=hook.required,
                        status="skipped",
                    )
                )
                if self.verbose:
                    console.print(f"  [dim]Skipped hook {escape(hook.name)}[/dim]")
                continue

            timeout = min(hook.timeout, per_hook_timeout) if hook.timeout else per_hook_timeout
            result = await self._run_one(hook, root, timeout)
            report.results.append(result)

            if result.succeeded:
                if self.verbose:
                    console.print(
                        f"  [green]Hook {escape(hook.name)} finished[/green] "
                        f"({result.duration_seconds:.1f}s)"
                    )
                continue

            reason = _failure_reason(result, timeout)
            if hook.required:
                raise HookExecutionError(hook.name, reason, report)
            if self.verbose:
                console.print(f"  [yellow]Optional hook {escape(hook.name)} {escape(reason)}[/yellow]")

        return report

    async def _run_one(self, hook: HookSpec, root: Path, timeout: float) -> HookResult:
        start = time.monotonic()
        base = HookResult(name=hook.name, command=hook.display_command, required=hook.required)

        cwd = (root / hook.work_dir).resolve()
        if cwd != root and root not in cwd.parents:
            return base.model_copy(
                update={"status": "failed", "output": f"work_dir '{hook.work_dir}' is outside the project"}
            )

        if self.verbose:
            console.print(f"  [cyan]Running hook {escape(hook.name)}:[/cyan] {escape(hook.display_command)}")

        try:
            returncode, stdout, stderr = await run_command(hook.command, cwd=cwd, timeout=timeout)
        except CommandTimeout:
            return base.model_copy(
                update={"status": "timeout", "duration_seconds": time.monotonic() - start}
            )
        except OSError as exc:
            # Missing executable or unusable working directory.
            return base.model_copy(
                update={
                    "status": "failed",
                    "output": str(exc),
                    "duration_seconds": time.monotonic() - start,
                }
            )

        output = "\n".join(part for part in (stdout, stderr) if part)[:MAX_OUTPUT_CHARS]
        return base.model_copy(
            update={
                "status": "ok" if returncode == 0 else "failed",
                "returncode": returncode,
                "output": output,
                "duration_seconds": time.monotonic() - start,
            }
        )


def _failure_reason(result: HookResult, timeout: float) -> str:
    if result.status == "timeout":
        return f"timed out after {timeout:g}s"
    if result.returncode is not None:
        detail = f"exited with status {result.returncode}"
        return f"{detail}: {result.output}" if result.output else detail
    return result.output or "failed"
