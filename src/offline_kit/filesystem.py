"""Filesystem abstraction for testability.

The installer performs every mutation through this object, which lets
tests inject failures at any step of staging or swapping. RealFileSystem
wraps the standard library operations.
"""

from __future__ import annotations

import os
import shutil
import stat
from pathlib import Path


class RealFileSystem:
    """Production filesystem implementation.

    Satisfies the FileSystem protocol structurally.
    """

    def exists(self, path: Path) -> bool:
        """Check if a path exists."""
        return path.exists()

    def is_dir(self, path: Path) -> bool:
        """Check if a path is a directory."""
        return path.is_dir()

    def mkdir(self, path: Path, parents: bool = False, exist_ok: bool = False) -> None:
        """Create a directory."""
        path.mkdir(parents=parents, exist_ok=exist_ok)

    def copy_file(self, src: Path, dst: Path) -> None:
        """Copy a file with its permission bits, creating parent directories."""
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src, dst)

    def make_executable(self, path: Path) -> None:
        """Add execute permission wherever read permission is granted."""
        mode = path.stat().st_mode
        path.chmod(mode | ((mode & 0o444) >> 2) | stat.S_IXUSR)

    def rename(self, src: Path, dst: Path) -> None:
        """Rename a path in a single filesystem operation.

        Raises:
            OSError: If the destination exists as a non-empty directory,
                or src and dst are on different filesystems (EXDEV).
        """
        os.rename(src, dst)

    def rmtree(self, path: Path) -> None:
        """Remove a directory tree."""
        shutil.rmtree(path)
