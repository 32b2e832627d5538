"""Atomic materialization of a generated project.

Files are written into a hidden staging directory next to the destination
and published with a single ``os.rename`` once every entry is on disk.  If
anything fails, including cancellation of the calling task, the staging tree
is removed and the destination is left exactly as it was.
"""

from __future__ import annotations

import asyncio
import os
import shutil
import tempfile
from pathlib import Path

from .errors import MaterializationError
from .models import DIR_MODE, GeneratedProject, RenderedFile
from .utils import console

STAGING_PREFIX = ".forge-staging-"


class Materializer:
    """Commits a :class:`GeneratedProject` to a destination directory."""

    def __init__(self, verbose: bool = False) -> None:
        self.verbose = verbose

    async def materialize(self, project: GeneratedProject, destination_root: str | Path) -> Path:
        """Write *project* to *destination_root* atomically.

        The destination must not exist, or must be an empty directory.

        Returns:
            The committed project path.

        Raises:
            MaterializationError: If the destination is occupied, or staging
                or publishing fails.  No partial tree is left behind.
        """
        destination = Path(destination_root).absolute()
        await asyncio.to_thread(_check_destination, destination)

        try:
            await asyncio.to_thread(destination.parent.mkdir, parents=True, exist_ok=True)
            staging = Path(
                await asyncio.to_thread(
                    tempfile.mkdtemp, prefix=f"{STAGING_PREFIX}{destination.name}-", dir=destination.parent
                )
            )
        except OSError as exc:
            raise MaterializationError(
                f"Cannot create staging directory next to {destination}: {exc}", str(destination)
            ) from exc

        try:
            for entry in project.files:
                await asyncio.to_thread(_write_entry, staging, entry)
            await asyncio.to_thread(os.chmod, staging, DIR_MODE)
            await asyncio.to_thread(_publish, staging, destination)
        except BaseException as exc:
            await asyncio.to_thread(shutil.rmtree, staging, ignore_errors=True)
            if isinstance(exc, OSError) and not isinstance(exc, MaterializationError):
                raise MaterializationError(
                    f"Failed to materialize {destination}: {exc}", str(destination)
                ) from exc
            raise

        if self.verbose:
            console.print(
                f"[green]Wrote[/green] {len(project.files)} entries to [bold]{destination}[/bold]"
            )
        return destination


async def materialize(project: GeneratedProject, destination_root: str | Path) -> Path:
    """Module-level shortcut for ``Materializer().materialize(...)``."""
    return await Materializer().materialize(project, destination_root)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _check_destination(destination: Path) -> None:
    if not destination.exists():
        return
    if not destination.is_dir():
        raise MaterializationError(f"Destination {destination} exists and is not a directory", str(destination))
    try:
        occupied = any(destination.iterdir())
    except OSError as exc:
        raise MaterializationError(f"Cannot inspect destination {destination}: {exc}", str(destination)) from exc
    if occupied:
        raise MaterializationError(f"Destination {destination} already exists and is not empty", str(destination))


def _write_entry(staging: Path, entry: RenderedFile) -> None:
    target = staging.joinpath(*entry.path.split("/"))
    if entry.is_dir:
        target.mkdir(parents=True, exist_ok=True)
        os.chmod(target, entry.mode)
        return
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(entry.content)
    os.chmod(target, entry.mode)


def _publish(staging: Path, destination: Path) -> None:
    # An empty destination directory is replaced.
    if destination.exists():
        destination.rmdir()
    try:
        os.rename(staging, destination)
    except OSError as exc:
        raise MaterializationError(f"Cannot publish {destination}: {exc}", str(destination)) from exc
