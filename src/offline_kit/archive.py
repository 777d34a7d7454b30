"""Safe extraction of tar and zip archives.

Archives are validated in full before anything is written: absolute
member names, ``..`` segments, links pointing outside the destination,
and device or FIFO entries all reject the whole archive.
"""

from __future__ import annotations

import logging
import posixpath
import shutil
import stat
import tarfile
import threading
import zipfile
from pathlib import Path, PurePosixPath

from offline_kit.types import OperationCancelled

logger = logging.getLogger(__name__)

TAR_SUFFIXES = (".tar", ".tar.gz", ".tgz", ".tar.xz", ".txz", ".tar.bz2", ".tbz2")
ZIP_SUFFIXES = (".zip",)


class ExtractionError(Exception):
    """Error unpacking an archive.

    Attributes:
        archive: Archive being extracted.
        member: Offending archive member, if any.
    """

    def __init__(
        self, message: str, archive: Path | None = None, member: str | None = None
    ) -> None:
        super().__init__(message)
        self.archive = archive
        self.member = member


def is_archive(path: Path | str) -> bool:
    """Check whether a filename has a supported archive suffix."""
    name = str(path).lower()
    return name.endswith(TAR_SUFFIXES) or name.endswith(ZIP_SUFFIXES)


def _strip(name: str, strip_components: int) -> str | None:
    """Drop leading path segments; None when nothing remains."""
    parts = [p for p in name.replace("\\", "/").split("/") if p not in ("", ".")]
    if name.replace("\\", "/").startswith("/"):
        # Keep absolute names absolute so validation rejects them.
        return name
    remaining = parts[strip_components:]
    if not remaining:
        return None
    return "/".join(remaining)


def _validate_member_path(archive: Path, member_name: str) -> PurePosixPath:
    """Reject member paths that would land outside the destination."""
    normalized = member_name.replace("\\", "/")
    relative = PurePosixPath(normalized)
    if relative.is_absolute() or (len(normalized) > 1 and normalized[1] == ":"):
        raise ExtractionError(
            f"Unsafe absolute path in archive {archive.name}: {member_name}", archive, member_name
        )
    if any(part == ".." for part in relative.parts):
        raise ExtractionError(
            f"Unsafe path in archive {archive.name}: {member_name}", archive, member_name
        )
    return relative


def _check_cancel(cancel: threading.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelled("extraction cancelled")


def extract_archive(
    archive: Path,
    destination: Path,
    strip_components: int = 0,
    cancel: threading.Event | None = None,
) -> list[str]:
    """Extract an archive into a directory.

    Args:
        archive: Tar (optionally compressed) or zip file.
        destination: Directory to extract into (created if missing).
        strip_components: Leading path segments to drop from each member.
        cancel: Optional event checked between members.

    Returns:
        Destination-relative posix paths of extracted files and links.

    Raises:
        ExtractionError: If the archive is unsupported, corrupt or unsafe.
        OperationCancelled: If ``cancel`` was set during extraction.
    """
    destination.mkdir(parents=True, exist_ok=True)
    name = archive.name.lower()
    if name.endswith(ZIP_SUFFIXES):
        return _extract_zip(archive, destination, strip_components, cancel)
    if name.endswith(TAR_SUFFIXES):
        return _extract_tar(archive, destination, strip_components, cancel)
    raise ExtractionError(f"Unsupported archive format: {archive.name}", archive)


def _extract_tar(
    archive: Path, destination: Path, strip_components: int, cancel: threading.Event | None
) -> list[str]:
    try:
        with tarfile.open(archive, "r:*") as tar:
            # Phase 1: validate every member before writing anything.
            planned: list[tarfile.TarInfo] = []
            for member in tar.getmembers():
                # Raw names first: stripping must not hide a traversal.
                _validate_member_path(archive, member.name)
                new_name = _strip(member.name, strip_components)
                if new_name is None:
                    continue
                rel = _validate_member_path(archive, new_name)

                if member.isdev() or member.isfifo():
                    raise ExtractionError(
                        f"Special file not allowed in archive {archive.name}: {member.name}",
                        archive,
                        member.name,
                    )

                linkname = member.linkname
                if member.issym():
                    if linkname.startswith("/") or "\\" in linkname:
                        raise ExtractionError(
                            f"Absolute symlink in archive {archive.name}: {member.name}",
                            archive,
                            member.name,
                        )
                    target = posixpath.normpath(posixpath.join(str(rel.parent), linkname))
                    if target == ".." or target.startswith("../"):
                        raise ExtractionError(
                            f"Symlink escapes destination in {archive.name}: {member.name}",
                            archive,
                            member.name,
                        )
                elif member.islnk():
                    _validate_member_path(archive, linkname)
                    stripped_link = _strip(linkname, strip_components)
                    if stripped_link is None:
                        raise ExtractionError(
                            f"Hard link target stripped away in {archive.name}: {member.name}",
                            archive,
                            member.name,
                        )
                    linkname = str(_validate_member_path(archive, stripped_link))

                planned.append(member.replace(name=str(rel), linkname=linkname, deep=False))

            # Phase 2: extract the validated members.
            extracted: list[str] = []
            for member in planned:
                _check_cancel(cancel)
                tar.extract(member, destination, filter="data")
                if not member.isdir():
                    extracted.append(member.name)
    except tarfile.FilterError as e:
        raise ExtractionError(f"Unsafe member in archive {archive.name}: {e}", archive) from e
    except tarfile.TarError as e:
        raise ExtractionError(f"Corrupt archive {archive.name}: {e}", archive) from e

    logger.debug("Extracted %d entries from %s", len(extracted), archive)
    return extracted


def _extract_zip(
    archive: Path, destination: Path, strip_components: int, cancel: threading.Event | None
) -> list[str]:
    root = destination.resolve()
    try:
        with zipfile.ZipFile(archive) as zf:
            # Phase 1: validate every member before writing anything.
            planned: list[tuple[zipfile.ZipInfo, PurePosixPath]] = []
            for info in zf.infolist():
                _validate_member_path(archive, info.filename)
                new_name = _strip(info.filename, strip_components)
                if new_name is None:
                    continue
                rel = _validate_member_path(archive, new_name)
                mode = info.external_attr >> 16
                if stat.S_ISLNK(mode):
                    raise ExtractionError(
                        f"Symlink not allowed in zip archive {archive.name}: {info.filename}",
                        archive,
                        info.filename,
                    )
                target = (root / Path(*rel.parts)).resolve()
                if target != root and root not in target.parents:
                    raise ExtractionError(
                        f"Path escapes destination in {archive.name}: {info.filename}",
                        archive,
                        info.filename,
                    )
                planned.append((info, rel))

            # Phase 2: extract the validated members.
            extracted: list[str] = []
            for info, rel in planned:
                _check_cancel(cancel)
                target = destination / Path(*rel.parts)
                if info.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                with zf.open(info) as src, target.open("wb") as dst:
                    shutil.copyfileobj(src, dst)
                mode = (info.external_attr >> 16) & 0o777
                if mode:
                    target.chmod(mode & 0o755)
                extracted.append(str(rel))
    except zipfile.BadZipFile as e:
        raise ExtractionError(f"Corrupt archive {archive.name}: {e}", archive) from e

    logger.debug("Extracted %d entries from %s", len(extracted), archive)
    return extracted
