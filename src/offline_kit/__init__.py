"""Verified installer for offline payload kits."""

__version__ = "0.1.0"

# Export protocol interfaces for type hints and dependency injection
from offline_kit.protocols import (
    ArtifactInstaller,
    FileSystem,
    ShellRunner,
)

__all__ = [
    "__version__",
    "ArtifactInstaller",
    "FileSystem",
    "ShellRunner",
]
