"""Installation of verified offline artifacts.

An install moves through resolving, verifying, staging and swapping. All
writes happen in a staging directory beside the destination; the only
operation that touches the destination path is a single rename, so a
destination is either absent or a complete install.
"""

from __future__ import annotations

import errno
import hashlib
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from offline_kit.archive import ExtractionError, extract_archive
from offline_kit.catalog import Catalog, load_catalog
from offline_kit.filesystem import RealFileSystem
from offline_kit.manifest import (
    MANIFEST_NAME,
    Manifest,
    ManifestError,
    ManifestNotFoundError,
    load_manifest,
)
from offline_kit.packages import PnpmPackageManager
from offline_kit.platforms import detect_host_platform, get_platform, normalize_platform_id
from offline_kit.protocols import FileSystem, PackageManager, ShellRunner
from offline_kit.resolver import ArtifactSpec, ResolveError, Resolver
from offline_kit.shell import SubprocessRunner
from offline_kit.store import InstalledArtifact, InstallMarker, InstallStore
from offline_kit.types import InstallPhase, InstallResult, OperationCancelled
from offline_kit.verify import DEFAULT_MAX_WORKERS, verify_paths

logger = logging.getLogger(__name__)

CROSS_DEVICE_REASON = "cross-device rename unsupported"
# Scratch directory in staging holding the package manager while it runs.
PACKAGE_TOOLS_DIR = ".package-manager"


@dataclass(frozen=True)
class InstallRequest:
    """What to install and where.

    Attributes:
        platform: Platform id (``linux_x64``, ``win32_x64``, ...).
        kind: Artifact kind name from the catalog.
        payload_root: Read-only tree holding ``checksums.sha256``.
        prefix: Root of the destination tree.
        version: Explicit version; discovered from the payload if None.
        force: Replace an existing complete install.
        verify_only: Stop after verification.
        smoke_test: Run the primary executable before committing.
        run_scripts: Let the package manager run lifecycle scripts.
    """

    platform: str
    kind: str
    payload_root: Path
    prefix: Path
    version: str | None = None
    force: bool = False
    verify_only: bool = False
    smoke_test: bool = False
    run_scripts: bool = False


def content_version(spec: ArtifactSpec, manifest: Manifest) -> str:
    """Derive a version from the digests of the files being installed."""
    hasher = hashlib.sha256()
    for source in sorted(spec.sources):
        hasher.update(f"{source}\0{manifest[source]}\n".encode())
    return f"sha-{hasher.hexdigest()[:12]}"


def payload_paths(spec: ArtifactSpec, manifest: Manifest, payload_root: Path) -> list[str]:
    """Every payload path an install reads, for verification.

    Covers the resolved files, the package manager executable, and both
    the files found in the package store and the manifest entries under it,
    so unlisted and deleted store files are both caught.
    """
    paths = list(spec.sources)
    if spec.package_manager:
        paths.append(spec.package_manager)
    if spec.package_store:
        store_dir = payload_root / spec.package_store
        paths.extend(
            p.relative_to(payload_root).as_posix()
            for p in sorted(store_dir.rglob("*"))
            if p.is_file()
        )
        under_store = f"{spec.package_store}/"
        paths.extend(key for key in manifest if key.startswith(under_store))
    return paths


class _SwapLost(Exception):
    """A concurrent install already placed a valid destination."""


class Installer:
    """Handles verified installation of offline artifacts.

    Follows Separate Use from Creation: constructor requires all dependencies.
    Use factory method `create()` for production instantiation with defaults.
    """

    def __init__(
        self,
        resolver: Resolver,
        filesystem: FileSystem,
        runner: ShellRunner,
        max_workers: int = DEFAULT_MAX_WORKERS,
        host_platform: str | None = None,
        package_manager_factory: Callable[[Path, ShellRunner], PackageManager] = (
            PnpmPackageManager
        ),
    ) -> None:
        """Initialize installer with required dependencies.

        Args:
            resolver: Platform resolver (required).
            filesystem: Filesystem abstraction (required).
            runner: Shell runner used for smoke tests (required).
            max_workers: Hashing threads used during verification.
            host_platform: Platform id of this machine; smoke tests only
                run for artifacts built for it.
            package_manager_factory: Builds the package manager for an
                executable copied into staging.

        Note:
            Use factory method `create()` for production code.
            Direct construction is for testing with explicit dependencies.
        """
        self.resolver = resolver
        self.fs = filesystem
        self.runner = runner
        self.max_workers = max_workers
        self.host_platform = host_platform
        self.package_manager_factory = package_manager_factory

    @classmethod
    def create(
        cls,
        catalog: Catalog | None = None,
        filesystem: FileSystem | None = None,
        runner: ShellRunner | None = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ) -> Installer:
        """Factory method for production instantiation.

        Args:
            catalog: Artifact catalog (built-in catalog if not provided).
            filesystem: Optional filesystem abstraction.
            runner: Optional shell runner.
            max_workers: Hashing threads used during verification.

        Returns:
            Configured Installer instance.
        """
        return cls(
            resolver=Resolver(catalog or load_catalog()),
            filesystem=filesystem or RealFileSystem(),
            runner=runner or SubprocessRunner(),
            max_workers=max_workers,
            host_platform=detect_host_platform(),
        )

    def install(
        self,
        request: InstallRequest,
        cancel: threading.Event | None = None,
        on_phase: Callable[[InstallPhase], None] | None = None,
    ) -> InstallResult:
        """Resolve, verify and atomically install an artifact.

        Args:
            request: What to install and where.
            cancel: Optional event; honoured before each phase and between
                staged files, never during the final rename.
            on_phase: Optional callback invoked on each phase transition.

        Returns:
            InstallResult describing the outcome. Failures leave the
            destination exactly as it was.
        """
        kind = request.kind
        platform = request.platform

        def enter(phase: InstallPhase) -> None:
            logger.debug("%s/%s: %s", kind, platform, phase.value)
            if on_phase is not None:
                on_phase(phase)

        def cancelled() -> bool:
            if cancel is not None and cancel.is_set():
                enter(InstallPhase.FAILED)
                return True
            return False

        enter(InstallPhase.START)
        if cancelled():
            return InstallResult.cancelled(kind, platform)

        # Resolving
        enter(InstallPhase.RESOLVING)
        try:
            spec = self.resolver.resolve(platform, kind, request.payload_root)
        except ResolveError as e:
            enter(InstallPhase.FAILED)
            return InstallResult.not_found(kind, platform, e.missing or [str(e)], reason=str(e))
        platform = spec.platform

        if cancelled():
            return InstallResult.cancelled(kind, platform)

        # Verifying
        enter(InstallPhase.VERIFYING)
        manifest_path = request.payload_root / MANIFEST_NAME
        try:
            manifest = load_manifest(manifest_path)
        except ManifestNotFoundError as e:
            enter(InstallPhase.FAILED)
            return InstallResult.not_found(kind, platform, [str(manifest_path)], reason=str(e))
        except ManifestError as e:
            enter(InstallPhase.FAILED)
            return InstallResult.verification_failed(kind, platform, reason=str(e))

        report = verify_paths(
            manifest,
            request.payload_root,
            payload_paths(spec, manifest, request.payload_root),
            max_workers=self.max_workers,
        )
        if not report.ok:
            enter(InstallPhase.FAILED)
            return InstallResult.verification_failed(kind, platform, list(report.mismatches))

        version = request.version or spec.version or content_version(spec, manifest)
        if request.verify_only:
            enter(InstallPhase.DONE)
            return InstallResult.verified(kind, platform, version=version)

        store = InstallStore.create(request.prefix)
        try:
            destination = store.destination(kind, platform, version)
        except ValueError as e:
            enter(InstallPhase.FAILED)
            return InstallResult.not_found(kind, platform, [version], reason=str(e))

        bin_paths = [destination / d if d else destination for d in spec.bin_dirs]

        if not request.force and store.is_complete(destination):
            logger.info("%s/%s %s already installed at %s", kind, platform, version, destination)
            enter(InstallPhase.DONE)
            return InstallResult.already_installed(
                kind, platform, destination, bin_paths, version=version
            )

        if cancelled():
            return InstallResult.cancelled(kind, platform)

        # Staging
        enter(InstallPhase.STAGING)
        staging: Path | None = None
        try:
            staging = store.make_staging_dir(destination)
            installed_files = self._stage(spec, request.payload_root, staging, cancel)
            package_version = self._install_packages(spec, request, staging, cancel)
            tool_version = self._check_primary(spec, staging, request.smoke_test) or package_version
            store.write_marker(
                staging,
                InstallMarker(
                    kind=kind,
                    platform=platform,
                    version=version,
                    files=installed_files,
                    primary_executable=spec.primary_executable,
                    bin_dirs=list(spec.bin_dirs),
                    sources={s: manifest[s] for s in spec.sources},
                    tool_version=tool_version,
                ),
            )
            if cancel is not None and cancel.is_set():
                raise OperationCancelled("cancelled before swap")
        except OperationCancelled:
            self._discard(staging)
            enter(InstallPhase.FAILED)
            return InstallResult.cancelled(kind, platform)
        except ExtractionError as e:
            self._discard(staging)
            enter(InstallPhase.FAILED)
            return InstallResult.extraction_failed(kind, platform, str(e))
        except OSError as e:
            self._discard(staging)
            enter(InstallPhase.FAILED)
            return InstallResult.extraction_failed(kind, platform, _describe_os_error("staging", e))
        except Exception as e:
            logger.exception("Staging failed for %s/%s", kind, platform)
            self._discard(staging)
            enter(InstallPhase.FAILED)
            return InstallResult.extraction_failed(kind, platform, f"staging failed: {e}")

        # Swapping: not cancellable.
        enter(InstallPhase.SWAPPING)
        try:
            self._swap(staging, destination, request.force, store)
        except _SwapLost:
            self._discard(staging)
            logger.info("Concurrent install of %s/%s %s won the rename", kind, platform, version)
            enter(InstallPhase.DONE)
            return InstallResult.already_installed(
                kind, platform, destination, bin_paths, version=version
            )
        except OSError as e:
            self._discard(staging)
            enter(InstallPhase.FAILED)
            if e.errno == errno.EXDEV:
                return InstallResult.extraction_failed(kind, platform, CROSS_DEVICE_REASON)
            return InstallResult.extraction_failed(
                kind, platform, _describe_os_error(f"rename into {destination}", e)
            )

        logger.info("Installed %s/%s %s to %s", kind, platform, version, destination)
        enter(InstallPhase.DONE)
        return InstallResult.installed(
            kind, platform, destination, installed_files, bin_paths, version=version
        )

    def uninstall(self, prefix: Path, kind: str, platform: str, version: str) -> bool:
        """Remove an installed artifact.

        Args:
            prefix: Root of the destination tree.
            kind: Artifact kind.
            platform: Platform id or alias.
            version: Installed version.

        Returns:
            True if removed, False if it was not installed.
        """
        store = InstallStore.create(prefix)
        destination = store.destination(kind, normalize_platform_id(platform), version)
        if not self.fs.is_dir(destination):
            return False
        # Out of place first so readers never see a half-deleted tree.
        trash = store.trash_path(destination)
        self.fs.rename(destination, trash)
        self._discard(trash)
        return True

    def list_installed(
        self, prefix: Path, kind: str | None = None, platform: str | None = None
    ) -> list[InstalledArtifact]:
        """List complete installs under a prefix.

        Args:
            prefix: Root of the destination tree.
            kind: Optional kind filter.
            platform: Optional platform filter.

        Returns:
            Installed artifacts.
        """
        platform_id = normalize_platform_id(platform) if platform else None
        return InstallStore.create(prefix).list_installed(kind, platform_id)

    def _stage(
        self,
        spec: ArtifactSpec,
        payload_root: Path,
        staging: Path,
        cancel: threading.Event | None,
    ) -> list[str]:
        """Copy or extract every resolved file into the staging directory.

        Returns:
            Sorted destination-relative paths of staged files.
        """
        files: list[str] = []
        for resolved in spec.files:
            if cancel is not None and cancel.is_set():
                raise OperationCancelled("cancelled during staging")
            source = payload_root / resolved.source
            if resolved.extract:
                target_dir = staging / resolved.install_path if resolved.install_path else staging
                extracted = extract_archive(
                    source, target_dir, resolved.strip_components, cancel=cancel
                )
                prefix = PurePosixPath(resolved.install_path) if resolved.install_path else None
                files.extend(str(prefix / rel) if prefix else rel for rel in extracted)
            else:
                self.fs.copy_file(source, staging / resolved.install_path)
                files.append(resolved.install_path)
        return sorted(dict.fromkeys(files))

    def _install_packages(
        self,
        spec: ArtifactSpec,
        request: InstallRequest,
        staging: Path,
        cancel: threading.Event | None,
    ) -> str | None:
        """Run the bundled package manager offline inside staging, if the kind has one.

        Returns:
            The package manager's version, if one ran.

        Raises:
            ExtractionError: If the target is not the host or the install fails.
        """
        manager_source, store = spec.package_manager, spec.package_store
        if manager_source is None or store is None:
            return None
        if cancel is not None and cancel.is_set():
            raise OperationCancelled("cancelled before package install")
        if spec.platform != self.host_platform:
            raise ExtractionError(
                f"{spec.kind} for {spec.platform} runs its package manager "
                f"and must be installed on that platform (host is {self.host_platform})"
            )
        tools = staging / PACKAGE_TOOLS_DIR
        executable = tools / PurePosixPath(manager_source).name
        self.fs.copy_file(request.payload_root / manager_source, executable)
        if get_platform(spec.platform).os_family != "windows":
            self.fs.make_executable(executable)

        # Absolute: the command runs with staging as its working directory.
        manager = self.package_manager_factory(executable.absolute(), self.runner)
        result = manager.install(
            staging, (request.payload_root / store).absolute(), run_scripts=request.run_scripts
        )
        version = manager.version() if result.ok else None
        self.fs.rmtree(tools)
        if not result.ok:
            raise ExtractionError(
                f"Package install failed for {spec.kind} "
                f"(exit {result.returncode}): {result.first_line}"
            )
        logger.debug("Installed %s dependencies in %s", spec.kind, staging)
        return version

    def _check_primary(self, spec: ArtifactSpec, staging: Path, smoke_test: bool) -> str | None:
        """Confirm the primary executable landed, optionally running it.

        Returns:
            First line of the smoke-test output, if one ran.

        Raises:
            ExtractionError: If the executable is missing or the smoke test fails.
        """
        if not spec.primary_executable:
            return None

        executable = staging / spec.primary_executable
        if not executable.is_file():
            raise ExtractionError(
                f"Primary executable missing after staging: {spec.primary_executable}"
            )
        if get_platform(spec.platform).os_family != "windows":
            self.fs.make_executable(executable)

        if not smoke_test or not spec.smoke_args:
            return None
        if spec.platform != self.host_platform:
            logger.info("Skipping smoke test: %s is not the host platform", spec.platform)
            return None

        result = self.runner.run([str(executable), *spec.smoke_args], cwd=staging)
        if not result.ok:
            raise ExtractionError(
                f"Smoke test failed for {spec.primary_executable} "
                f"(exit {result.returncode}): {result.first_line}"
            )
        return result.first_line or None

    def _swap(self, staging: Path, destination: Path, force: bool, store: InstallStore) -> None:
        """Move the staging directory onto the destination.

        Raises:
            _SwapLost: A concurrent install already placed a valid destination.
            OSError: If a rename fails; the previous destination is restored.
        """
        self.fs.mkdir(destination.parent, parents=True, exist_ok=True)
        try:
            self.fs.rename(staging, destination)
            return
        except OSError as e:
            if e.errno == errno.EXDEV or not self.fs.exists(destination):
                raise

        if not force and store.is_complete(destination):
            raise _SwapLost()

        # Replace the old tree: move it aside, move ours in, then delete it.
        trash: Path | None = store.trash_path(destination)
        try:
            self.fs.rename(destination, trash)
        except OSError as e:
            if e.errno != errno.ENOENT:
                raise
            # A concurrent forced install moved it aside first.
            trash = None
        try:
            self.fs.rename(staging, destination)
        except OSError as e:
            if e.errno != errno.EXDEV and store.is_complete(destination):
                # A concurrent install filled the gap; its tree stays.
                self._discard(trash)
                raise _SwapLost() from e
            if trash is not None:
                try:
                    self.fs.rename(trash, destination)
                except OSError:
                    logger.error("Could not restore %s from %s", destination, trash)
                    self._discard(trash)
            raise
        self._discard(trash)

    def _discard(self, path: Path | None) -> None:
        """Remove a staging or trash directory, logging rather than raising."""
        if path is None or not self.fs.exists(path):
            return
        try:
            self.fs.rmtree(path)
        except OSError as e:
            logger.warning("Could not remove %s: %s", path, e)


def _describe_os_error(action: str, error: OSError) -> str:
    detail = error.strerror or str(error)
    if error.filename:
        return f"{action} failed: {detail}: {error.filename}"
    return f"{action} failed: {detail}"
