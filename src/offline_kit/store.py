"""Destination layout and completion markers for installed artifacts.

Installs live at ``<prefix>/<kind>/<platform>/<version>/``. A directory
counts as installed only when it holds a readable completion marker whose
listed files all exist; staging and trash directories sit beside it and
are never reported.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

MARKER_NAME = ".install-complete"
STAGING_PREFIX = ".staging-"
TRASH_PREFIX = ".trash-"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._+-]")


def sanitize_component(value: str) -> str:
    """Make a string safe to use as a single directory name.

    Path separators and anything outside ``[A-Za-z0-9._+-]`` become ``_``;
    leading dots are replaced so the result can't be hidden or ``..``.

    Raises:
        ValueError: If nothing usable remains.
    """
    cleaned = _UNSAFE_CHARS.sub("_", value.strip())
    stripped = cleaned.lstrip(".")
    cleaned = "_" * (len(cleaned) - len(stripped)) + stripped
    if not cleaned or set(cleaned) == {"_"}:
        raise ValueError(f"Unusable directory name: {value!r}")
    return cleaned


class InstallMarker(BaseModel):
    """Contents of the completion marker written as the last staging step."""

    model_config = ConfigDict(populate_by_name=True)

    kind: str
    platform: str
    version: str
    files: list[str] = Field(default_factory=list)
    primary_executable: str | None = Field(default=None, alias="primaryExecutable")
    bin_dirs: list[str] = Field(default_factory=list, alias="binDirs")
    sources: dict[str, str] = Field(default_factory=dict)
    tool_version: str | None = Field(default=None, alias="toolVersion")
    installed_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), alias="installedAt"
    )


@dataclass(frozen=True)
class InstalledArtifact:
    """A complete install found under a prefix."""

    path: Path
    marker: InstallMarker

    @property
    def bin_paths(self) -> list[Path]:
        return [self.path / d if d else self.path for d in self.marker.bin_dirs]


class InstallStore:
    """Manages the versioned destination tree under one prefix."""

    def __init__(self, prefix: Path) -> None:
        """Initialize the store.

        Args:
            prefix: Root of the destination tree.
        """
        self.prefix = prefix

    @classmethod
    def create(cls, prefix: Path) -> InstallStore:
        return cls(prefix=prefix)

    def destination(self, kind: str, platform: str, version: str) -> Path:
        """Final install directory for a (kind, platform, version) triple.

        Raises:
            ValueError: If a component sanitizes to nothing.
        """
        return (
            self.prefix
            / sanitize_component(kind)
            / sanitize_component(platform)
            / sanitize_component(version)
        )

    def read_marker(self, directory: Path) -> InstallMarker | None:
        """Load the completion marker of a directory.

        Returns:
            Parsed marker, or None if absent or unreadable.
        """
        marker_path = directory / MARKER_NAME
        if not marker_path.is_file():
            return None
        try:
            return InstallMarker.model_validate_json(marker_path.read_text(encoding="utf-8"))
        except (OSError, ValidationError, ValueError) as e:
            logger.debug("Ignoring unreadable marker %s: %s", marker_path, e)
            return None

    def is_complete(self, directory: Path) -> bool:
        """Check that a directory holds a finished install."""
        marker = self.read_marker(directory)
        if marker is None:
            return False
        return all(os.path.lexists(directory / rel) for rel in marker.files)

    def write_marker(self, directory: Path, marker: InstallMarker) -> Path:
        """Write the completion marker into a (staging) directory."""
        marker_path = directory / MARKER_NAME
        marker_path.write_text(
            marker.model_dump_json(by_alias=True, indent=2), encoding="utf-8"
        )
        return marker_path

    def make_staging_dir(self, destination: Path) -> Path:
        """Create a fresh staging directory beside a destination.

        The staging directory shares the destination's parent so the final
        rename never crosses a filesystem boundary.
        """
        destination.parent.mkdir(parents=True, exist_ok=True)
        return Path(
            tempfile.mkdtemp(prefix=f"{STAGING_PREFIX}{destination.name}-", dir=destination.parent)
        )

    def trash_path(self, destination: Path) -> Path:
        """Unique sibling path an old install is moved to before deletion."""
        return destination.parent / f"{TRASH_PREFIX}{destination.name}-{uuid.uuid4().hex[:8]}"

    def list_installed(
        self, kind: str | None = None, platform: str | None = None
    ) -> list[InstalledArtifact]:
        """List complete installs under the prefix.

        Args:
            kind: Optional kind filter.
            platform: Optional platform filter.

        Returns:
            Installed artifacts sorted by kind, platform and version.
        """
        if not self.prefix.is_dir():
            return []

        found = []
        for directory in sorted(self.prefix.glob("*/*/*")):
            if not directory.is_dir() or directory.name.startswith("."):
                continue
            if not self.is_complete(directory):
                continue
            marker = self.read_marker(directory)
            if marker is None:
                continue
            if kind and marker.kind != kind:
                continue
            if platform and marker.platform != platform:
                continue
            found.append(InstalledArtifact(path=directory, marker=marker))
        return found
