"""Protocol definitions for core abstractions.

This module defines abstract interfaces (Protocols) for the services the
installer depends on. Designing to interfaces enables:
- Loose coupling between components
- Easy substitution of test doubles
- Clear contracts for implementations

All concrete implementations satisfy these protocols structurally (duck typing).
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from offline_kit.types import InstallPhase, InstallResult

if TYPE_CHECKING:
    from offline_kit.install import InstallRequest
    from offline_kit.shell import CommandResult
    from offline_kit.store import InstalledArtifact


@runtime_checkable
class ShellRunner(Protocol):
    """Protocol for running external commands."""

    def run(
        self, args: list[str], cwd: Path | None = None, timeout: float | None = None
    ) -> CommandResult:
        """Run a command and capture its exit code and output.

        Args:
            args: Program and arguments.
            cwd: Working directory.
            timeout: Optional limit in seconds.

        Returns:
            CommandResult; non-zero exits are returned, not raised.
        """
        ...


@runtime_checkable
class PackageManager(Protocol):
    """Protocol for installing a project's dependencies from a local store."""

    def install(
        self, project_dir: Path, store_dir: Path, run_scripts: bool = False
    ) -> CommandResult:
        """Install the locked dependencies of project_dir without network access.

        Args:
            project_dir: Directory holding the manifest and lockfile.
            store_dir: Pre-populated package store.
            run_scripts: Allow package lifecycle scripts.

        Returns:
            CommandResult of the package manager run.
        """
        ...

    def version(self) -> str | None:
        """Report the package manager's version, or None if it cannot run."""
        ...


@runtime_checkable
class ArtifactInstaller(Protocol):
    """Protocol for installation operations."""

    def install(
        self,
        request: InstallRequest,
        cancel: threading.Event | None = None,
        on_phase: Callable[[InstallPhase], None] | None = None,
    ) -> InstallResult:
        """Resolve, verify and atomically install an artifact.

        Args:
            request: What to install and where.
            cancel: Optional event checked between phases.
            on_phase: Optional callback invoked on each phase transition.

        Returns:
            InstallResult describing the outcome.
        """
        ...

    def uninstall(self, prefix: Path, kind: str, platform: str, version: str) -> bool:
        """Remove an installed artifact.

        Returns:
            True if removed, False if it was not installed.
        """
        ...

    def list_installed(
        self, prefix: Path, kind: str | None = None, platform: str | None = None
    ) -> list[InstalledArtifact]:
        """List complete installs under a prefix."""
        ...


@runtime_checkable
class FileSystem(Protocol):
    """Protocol for the filesystem mutations performed while installing.

    Enables testing failure paths without a broken disk.
    """

    def exists(self, path: Path) -> bool:
        """Check if a path exists."""
        ...

    def is_dir(self, path: Path) -> bool:
        """Check if a path is a directory."""
        ...

    def mkdir(self, path: Path, parents: bool = False, exist_ok: bool = False) -> None:
        """Create a directory."""
        ...

    def copy_file(self, src: Path, dst: Path) -> None:
        """Copy a file with its permission bits."""
        ...

    def make_executable(self, path: Path) -> None:
        """Mark a file executable."""
        ...

    def rename(self, src: Path, dst: Path) -> None:
        """Rename a path atomically."""
        ...

    def rmtree(self, path: Path) -> None:
        """Remove a directory tree."""
        ...
