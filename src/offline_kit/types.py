"""Shared data types for offline-kit."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

__all__ = [
    "InstallPhase",
    "InstallResult",
    "InstallStatus",
    "Mismatch",
    "MismatchKind",
    "OperationCancelled",
]


class OperationCancelled(Exception):
    """Raised inside long-running steps when a cancel signal is observed."""

    pass


class MismatchKind(str, Enum):
    """Why a requested payload path failed verification."""

    NOT_IN_MANIFEST = "not_in_manifest"
    FILE_MISSING = "file_missing"
    HASH_MISMATCH = "hash_mismatch"
    UNREADABLE = "unreadable"


@dataclass(frozen=True)
class Mismatch:
    """A single verification failure.

    Attributes:
        path: Payload-relative posix path.
        kind: Failure category.
        expected: Digest recorded in the manifest (None if not in manifest).
        actual: Digest computed from disk (only set for hash mismatches).
        detail: OS error text for unreadable files.
    """

    path: str
    kind: MismatchKind
    expected: str | None = None
    actual: str | None = None
    detail: str | None = None

    def describe(self) -> str:
        """Human-readable one-line description."""
        if self.kind is MismatchKind.NOT_IN_MANIFEST:
            return f"{self.path}: not listed in manifest"
        if self.kind is MismatchKind.FILE_MISSING:
            return f"{self.path}: file missing"
        if self.kind is MismatchKind.UNREADABLE:
            return f"{self.path}: unreadable ({self.detail})"
        return f"{self.path}: expected {self.expected}, got {self.actual}"


class InstallPhase(str, Enum):
    """Phases of a single install invocation."""

    START = "start"
    RESOLVING = "resolving"
    VERIFYING = "verifying"
    STAGING = "staging"
    SWAPPING = "swapping"
    DONE = "done"
    FAILED = "failed"


class InstallStatus(str, Enum):
    """Outcome category of an install invocation."""

    INSTALLED = "installed"
    ALREADY_INSTALLED = "already_installed"
    VERIFIED = "verified"
    VERIFICATION_FAILED = "verification_failed"
    EXTRACTION_FAILED = "extraction_failed"
    NOT_FOUND = "not_found"
    CANCELLED = "cancelled"


# Process exit codes expected by wrapper scripts.
EXIT_OK = 0
EXIT_FAILED = 1
EXIT_NOT_FOUND = 2
EXIT_CANCELLED = 130

_EXIT_CODES = {
    InstallStatus.INSTALLED: EXIT_OK,
    InstallStatus.ALREADY_INSTALLED: EXIT_OK,
    InstallStatus.VERIFIED: EXIT_OK,
    InstallStatus.VERIFICATION_FAILED: EXIT_FAILED,
    InstallStatus.EXTRACTION_FAILED: EXIT_FAILED,
    InstallStatus.NOT_FOUND: EXIT_NOT_FOUND,
    InstallStatus.CANCELLED: EXIT_CANCELLED,
}


@dataclass(frozen=True)
class InstallResult:
    """Result of an installation operation.

    Only the fields belonging to the status are populated. Use the
    classmethod constructors rather than building one by hand.

    Attributes:
        status: Outcome category.
        kind: Artifact kind requested.
        platform: Platform id requested.
        path: Destination directory (installed / already installed).
        installed_files: Destination-relative files (installed only).
        bin_paths: Directories a caller may prepend to PATH.
        mismatches: Verification failures (verification_failed only).
        missing: Unresolvable paths or ids (not_found only).
        reason: Human-readable failure detail.
    """

    status: InstallStatus
    kind: str
    platform: str
    path: Path | None = None
    installed_files: tuple[str, ...] = ()
    bin_paths: tuple[Path, ...] = ()
    mismatches: tuple[Mismatch, ...] = ()
    missing: tuple[str, ...] = ()
    reason: str | None = None
    version: str | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        """Validate invariants."""
        if not self.kind:
            raise ValueError("kind cannot be empty")
        status = self.status
        if status in (InstallStatus.INSTALLED, InstallStatus.ALREADY_INSTALLED):
            if self.path is None:
                raise ValueError(f"{status.value} requires a path")
        elif self.path is not None:
            raise ValueError(f"{status.value} must not carry a path")
        if self.installed_files and status is not InstallStatus.INSTALLED:
            raise ValueError("installed_files is only valid for installed")
        if status is InstallStatus.VERIFICATION_FAILED:
            if not self.mismatches and self.reason is None:
                raise ValueError("verification_failed requires mismatches or a reason")
        elif self.mismatches:
            raise ValueError("mismatches are only valid for verification_failed")
        if status is InstallStatus.NOT_FOUND and not self.missing:
            raise ValueError("not_found requires missing entries")
        if status is InstallStatus.EXTRACTION_FAILED and not self.reason:
            raise ValueError("extraction_failed requires a reason")

    @property
    def success(self) -> bool:
        """True for every status that maps to exit code 0."""
        return self.exit_code == EXIT_OK

    @property
    def exit_code(self) -> int:
        """Process exit code for CLI wrappers."""
        return _EXIT_CODES[self.status]

    @property
    def error(self) -> str | None:
        """One-line failure summary, None on success."""
        if self.success:
            return None
        if self.reason:
            return self.reason
        if self.mismatches:
            return "; ".join(m.describe() for m in self.mismatches)
        if self.missing:
            return "not found: " + ", ".join(self.missing)
        return self.status.value

    @classmethod
    def installed(
        cls,
        kind: str,
        platform: str,
        path: Path,
        installed_files: list[str],
        bin_paths: list[Path] | None = None,
        version: str | None = None,
    ) -> InstallResult:
        return cls(
            InstallStatus.INSTALLED,
            kind,
            platform,
            path=path,
            installed_files=tuple(installed_files),
            bin_paths=tuple(bin_paths or ()),
            version=version,
        )

    @classmethod
    def already_installed(
        cls,
        kind: str,
        platform: str,
        path: Path,
        bin_paths: list[Path] | None = None,
        version: str | None = None,
    ) -> InstallResult:
        return cls(
            InstallStatus.ALREADY_INSTALLED,
            kind,
            platform,
            path=path,
            bin_paths=tuple(bin_paths or ()),
            version=version,
        )

    @classmethod
    def verified(cls, kind: str, platform: str, version: str | None = None) -> InstallResult:
        return cls(InstallStatus.VERIFIED, kind, platform, version=version)

    @classmethod
    def verification_failed(
        cls,
        kind: str,
        platform: str,
        mismatches: list[Mismatch] | None = None,
        reason: str | None = None,
    ) -> InstallResult:
        return cls(
            InstallStatus.VERIFICATION_FAILED,
            kind,
            platform,
            mismatches=tuple(mismatches or ()),
            reason=reason,
        )

    @classmethod
    def extraction_failed(cls, kind: str, platform: str, reason: str) -> InstallResult:
        return cls(InstallStatus.EXTRACTION_FAILED, kind, platform, reason=reason)

    @classmethod
    def not_found(
        cls, kind: str, platform: str, missing: list[str], reason: str | None = None
    ) -> InstallResult:
        return cls(
            InstallStatus.NOT_FOUND, kind, platform, missing=tuple(missing), reason=reason
        )

    @classmethod
    def cancelled(cls, kind: str, platform: str) -> InstallResult:
        return cls(InstallStatus.CANCELLED, kind, platform, reason="cancelled")
