"""Resolution of (platform, artifact kind) pairs to concrete payload files."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from offline_kit.archive import is_archive
from offline_kit.catalog import ArtifactKind, Catalog
from offline_kit.manifest import normalize_relpath
from offline_kit.platforms import BasePlatform, UnknownPlatformError, get_platform

logger = logging.getLogger(__name__)


class ResolveError(Exception):
    """Error resolving an artifact to payload files.

    Attributes:
        missing: Patterns, paths or identifiers that could not be resolved.
    """

    def __init__(self, message: str, missing: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing = list(missing or [])


class UnsupportedPlatformError(ResolveError):
    """Platform id is unknown, or the kind is not offered for it."""


class UnsupportedKindError(ResolveError):
    """Artifact kind is not in the catalog."""


class NoMatchError(ResolveError):
    """A required file pattern matched nothing in the payload tree."""


class AmbiguousMatchError(ResolveError):
    """A single-file pattern matched more than one payload file.

    Attributes:
        matches: Pattern to the payload-relative paths it matched.
    """

    def __init__(self, message: str, matches: dict[str, list[str]]) -> None:
        super().__init__(message, missing=list(matches))
        self.matches = matches


@dataclass(frozen=True)
class ResolvedFile:
    """A payload file and where it lands in the destination.

    Attributes:
        source: Payload-relative posix path (a manifest key).
        install_path: Destination-relative path. For archives this is the
            directory the archive is extracted into ("" for the root).
        extract: Whether the file is an archive to unpack.
        strip_components: Leading archive path segments to drop.
    """

    source: str
    install_path: str
    extract: bool = False
    strip_components: int = 0


@dataclass(frozen=True)
class ArtifactSpec:
    """What must exist in a payload tree to install one kind on one platform.

    Attributes:
        package_manager: Payload-relative package manager executable that
            installs dependencies inside staging, if the kind needs one.
        package_store: Payload-relative package store directory it reads.
    """

    kind: str
    platform: str
    files: tuple[ResolvedFile, ...]
    primary_executable: str | None = None
    bin_dirs: tuple[str, ...] = ()
    version: str | None = None
    smoke_args: tuple[str, ...] = ()
    package_manager: str | None = None
    package_store: str | None = None

    @property
    def sources(self) -> list[str]:
        """Payload-relative paths to verify."""
        return [f.source for f in self.files]


def _clean_relative(text: str) -> str:
    """Normalize a destination-relative path; the root becomes ""."""
    stripped = text.replace("\\", "/").strip().strip("/")
    if stripped in ("", "."):
        return ""
    return normalize_relpath(stripped)


def _extractable(platform: BasePlatform, path: Path) -> bool:
    """Whether a file is an archive in a format shipped for the platform."""
    return is_archive(path) and path.name.lower().endswith(platform.archive_suffixes)


class Resolver:
    """Maps a platform and artifact kind to the payload files to install."""

    def __init__(self, catalog: Catalog) -> None:
        self.catalog = catalog

    def resolve(self, platform_id: str, kind_name: str, payload_root: Path) -> ArtifactSpec:
        """Resolve an artifact against the payload tree on disk.

        Wildcards are matched against the actual directory listing. A
        single-file pattern matching several files is an error rather
        than a guess.

        Args:
            platform_id: Platform id or accepted alias.
            kind_name: Artifact kind name from the catalog.
            payload_root: Payload root directory.

        Returns:
            Resolved ArtifactSpec.

        Raises:
            UnsupportedPlatformError: Unknown platform or kind not offered on it.
            UnsupportedKindError: Kind not in the catalog.
            AmbiguousMatchError: A single-file pattern matched several files.
            NoMatchError: A required pattern matched nothing.
        """
        try:
            platform = get_platform(platform_id)
        except UnknownPlatformError as e:
            raise UnsupportedPlatformError(str(e), missing=[platform_id]) from e

        kind = self.catalog.get(kind_name)
        if kind is None:
            raise UnsupportedKindError(
                f"Unknown artifact kind: {kind_name}. Supported: {self.catalog.names()}",
                missing=[kind_name],
            )
        if not kind.supports(platform.id):
            raise UnsupportedPlatformError(
                f"Artifact kind '{kind_name}' is not available for {platform.id}",
                missing=[platform.id],
            )

        files = self._resolve_files(platform, kind, payload_root)
        package_manager, package_store = self._resolve_package_manager(
            platform, kind, payload_root
        )
        version = self._discover_version(kind, files)

        primary = None
        if kind.primary_executable:
            primary = _clean_relative(platform.expand(kind.primary_executable))

        spec = ArtifactSpec(
            kind=kind.name,
            platform=platform.id,
            files=tuple(files),
            primary_executable=primary or None,
            bin_dirs=tuple(_clean_relative(platform.expand(d)) for d in kind.bin_dirs),
            version=version,
            smoke_args=tuple(kind.smoke_args),
            package_manager=package_manager,
            package_store=package_store,
        )
        logger.debug("Resolved %s/%s to %s", kind.name, platform.id, spec.sources)
        return spec

    def _resolve_files(
        self, platform: BasePlatform, kind: ArtifactKind, payload_root: Path
    ) -> list[ResolvedFile]:
        base = _clean_relative(platform.expand(kind.base))
        base_dir = payload_root / base if base else payload_root

        resolved: list[ResolvedFile] = []
        missing: list[str] = []
        ambiguous: dict[str, list[str]] = {}

        for entry in kind.files:
            pattern = platform.expand(entry.pattern).replace("\\", "/")
            display = f"{base}/{pattern}" if base else pattern
            matches = []
            if base_dir.is_dir():
                matches = sorted(p for p in base_dir.glob(pattern) if p.is_file())
            if entry.extract:
                # Only archives in this platform's formats.
                matches = [p for p in matches if _extractable(platform, p)]

            if not matches:
                if entry.required:
                    missing.append(display)
                continue
            if len(matches) > 1 and not entry.multiple:
                ambiguous[display] = [p.relative_to(payload_root).as_posix() for p in matches]
                continue

            target = _clean_relative(platform.expand(entry.target))
            for match in matches:
                source = match.relative_to(payload_root).as_posix()
                if entry.extract:
                    install_path = target
                else:
                    rel = match.relative_to(base_dir).as_posix()
                    install_path = str(PurePosixPath(target) / rel) if target else rel
                resolved.append(
                    ResolvedFile(
                        source=source,
                        install_path=install_path,
                        extract=entry.extract,
                        strip_components=entry.strip_components,
                    )
                )

        if ambiguous:
            details = "; ".join(f"{k} -> {', '.join(v)}" for k, v in ambiguous.items())
            raise AmbiguousMatchError(f"Ambiguous payload match: {details}", ambiguous)
        if missing:
            raise NoMatchError(f"No payload file matches: {', '.join(missing)}", missing)
        return resolved

    def _resolve_package_manager(
        self, platform: BasePlatform, kind: ArtifactKind, payload_root: Path
    ) -> tuple[str | None, str | None]:
        if not kind.package_manager or not kind.package_store:
            return None, None
        executable = normalize_relpath(platform.expand(kind.package_manager))
        store = normalize_relpath(platform.expand(kind.package_store))

        missing = []
        if not (payload_root / executable).is_file():
            missing.append(executable)
        if not (payload_root / store).is_dir():
            missing.append(f"{store}/")
        if missing:
            raise NoMatchError(f"Missing package manager payload: {', '.join(missing)}", missing)
        return executable, store

    def _discover_version(self, kind: ArtifactKind, files: list[ResolvedFile]) -> str | None:
        if not kind.version_pattern:
            return None
        regex = re.compile(kind.version_pattern)
        for resolved in files:
            match = regex.search(PurePosixPath(resolved.source).name)
            if match:
                return match.group(1) if match.groups() else match.group(0)
        return None
