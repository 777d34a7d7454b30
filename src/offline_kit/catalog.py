"""Artifact kind catalog.

The catalog is static configuration describing, for each artifact kind,
which files make up its payload and how they land in the destination.
A built-in catalog ships with the package; a kit may extend or override
it with its own YAML file.
"""

from __future__ import annotations

import re
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from offline_kit.platforms import normalize_platform_id

BUILTIN_CATALOG = "catalog.yaml"


class CatalogError(Exception):
    """Error loading an artifact catalog."""

    pass


class ArtifactFile(BaseModel):
    """One file pattern belonging to an artifact kind."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    pattern: str
    extract: bool = False
    strip_components: int = Field(default=0, ge=0)
    target: str = ""
    required: bool = True
    multiple: bool = False

    @field_validator("pattern", "target")
    @classmethod
    def _no_parent_segments(cls, value: str) -> str:
        if ".." in value.replace("\\", "/").split("/"):
            raise ValueError(f"'..' is not allowed in {value!r}")
        return value


class ArtifactKind(BaseModel):
    """Catalog entry for an installable artifact kind."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    description: str = ""
    base: str = ""
    files: list[ArtifactFile] = Field(min_length=1)
    primary_executable: str | None = None
    bin_dirs: list[str] = Field(default_factory=list)
    version_pattern: str | None = None
    platforms: list[str] | None = None
    smoke_args: list[str] = Field(default_factory=list)
    package_manager: str | None = None
    package_store: str | None = None

    @field_validator("version_pattern")
    @classmethod
    def _valid_regex(cls, value: str | None) -> str | None:
        if value is not None:
            try:
                re.compile(value)
            except re.error as e:
                raise ValueError(f"invalid version_pattern: {e}") from e
        return value

    @field_validator("package_manager", "package_store")
    @classmethod
    def _relative_template(cls, value: str | None) -> str | None:
        if value is not None and ".." in value.replace("\\", "/").split("/"):
            raise ValueError(f"'..' is not allowed in {value!r}")
        return value

    @model_validator(mode="after")
    def _package_manager_needs_store(self) -> ArtifactKind:
        if bool(self.package_manager) != bool(self.package_store):
            raise ValueError("package_manager and package_store must be set together")
        return self

    @field_validator("platforms")
    @classmethod
    def _known_platforms(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        return [normalize_platform_id(p) for p in value]

    def supports(self, platform_id: str) -> bool:
        """Check whether this kind is offered for a platform."""
        return self.platforms is None or platform_id in self.platforms


class Catalog(BaseModel):
    """Collection of artifact kinds keyed by name."""

    version: str = "1.0"
    kinds: dict[str, ArtifactKind] = Field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> Catalog:
        """Build a catalog from parsed YAML, filling kind names from keys.

        Raises:
            CatalogError: If the data does not describe a valid catalog.
        """
        if not isinstance(data, dict):
            raise CatalogError("Catalog must be a mapping")
        kinds = data.get("kinds") or {}
        if not isinstance(kinds, dict):
            raise CatalogError("'kinds' must be a mapping of name to kind")
        try:
            return cls(
                version=str(data.get("version", "1.0")),
                kinds={
                    name: ArtifactKind.model_validate({"name": name, **(spec or {})})
                    for name, spec in kinds.items()
                },
            )
        except (ValidationError, ValueError, TypeError) as e:
            raise CatalogError(f"Invalid catalog: {e}") from e

    @classmethod
    def from_file(cls, path: Path) -> Catalog:
        """Load a catalog YAML file.

        Raises:
            CatalogError: If the file is missing or invalid.
        """
        if not path.is_file():
            raise CatalogError(f"Catalog not found: {path}")
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise CatalogError(f"Invalid YAML in {path}: {e}") from e
        return cls.from_mapping(data)

    @classmethod
    def builtin(cls) -> Catalog:
        """Load the catalog shipped with the package."""
        text = resources.files("offline_kit").joinpath(BUILTIN_CATALOG).read_text(encoding="utf-8")
        return cls.from_mapping(yaml.safe_load(text))

    def merged(self, other: Catalog) -> Catalog:
        """Return a catalog where kinds from ``other`` replace same-named ones."""
        return Catalog(version=other.version, kinds={**self.kinds, **other.kinds})

    def get(self, name: str) -> ArtifactKind | None:
        return self.kinds.get(name)

    def names(self) -> list[str]:
        return sorted(self.kinds)


def load_catalog(path: Path | None = None) -> Catalog:
    """Load the built-in catalog, extended by an optional override file.

    Args:
        path: Optional YAML file whose kinds add to or replace built-ins.

    Returns:
        Effective catalog.
    """
    catalog = Catalog.builtin()
    if path is not None:
        catalog = catalog.merged(Catalog.from_file(path))
    return catalog


__all__ = [
    "ArtifactFile",
    "ArtifactKind",
    "Catalog",
    "CatalogError",
    "load_catalog",
]
