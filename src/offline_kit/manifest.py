"""Checksum manifest reading and writing.

A manifest maps payload-relative posix paths to lowercase hex SHA-256
digests. The on-disk format is the one produced by ``sha256sum``: one
entry per line, the digest, two or more spaces, then the path.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
import tempfile
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path, PurePosixPath
from types import MappingProxyType

logger = logging.getLogger(__name__)

MANIFEST_NAME = "checksums.sha256"

_LINE_RE = re.compile(r"^([a-f0-9]{64})\s{2,}(\S.+)$")

__all__ = [
    "MANIFEST_NAME",
    "Manifest",
    "ManifestEmptyError",
    "ManifestError",
    "ManifestMalformedError",
    "ManifestNotFoundError",
    "build_manifest",
    "load_manifest",
    "normalize_relpath",
    "sha256_file",
    "write_manifest",
]


class ManifestError(Exception):
    """Error loading a checksum manifest."""

    def __init__(self, message: str, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path


class ManifestNotFoundError(ManifestError):
    """The manifest file does not exist."""


class ManifestEmptyError(ManifestError):
    """The manifest parsed to zero entries."""


class ManifestMalformedError(ManifestError):
    """The manifest contains an unsafe or invalid entry."""

    def __init__(self, message: str, path: Path | None = None, line_no: int | None = None) -> None:
        super().__init__(message, path)
        self.line_no = line_no


def normalize_relpath(raw: str) -> str:
    """Normalize a payload-relative path to posix form.

    Backslashes become forward slashes, leading slashes and ``./``
    segments are dropped.

    Raises:
        ValueError: If the path contains a ``..`` segment or is empty.
    """
    text = raw.strip().replace("\\", "/").lstrip("/")
    parts = [p for p in text.split("/") if p not in ("", ".")]
    if any(p == ".." for p in parts):
        raise ValueError(f"path escapes payload root: {raw!r}")
    if not parts:
        raise ValueError(f"empty path: {raw!r}")
    return str(PurePosixPath(*parts))


class Manifest(Mapping[str, str]):
    """Immutable mapping of relative path to SHA-256 digest."""

    __slots__ = ("_entries", "source")

    def __init__(self, entries: Mapping[str, str], source: Path | None = None) -> None:
        self._entries = MappingProxyType(dict(entries))
        self.source = source

    def __getitem__(self, key: str) -> str:
        return self._entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"Manifest({len(self)} entries, source={self.source})"

    @classmethod
    def parse(cls, text: str, source: Path | None = None) -> Manifest:
        """Parse manifest text.

        Lines that do not look like ``<digest>  <path>`` are skipped.
        Later duplicates of a path replace earlier ones.

        Raises:
            ManifestMalformedError: If an entry path contains ``..``.
            ManifestEmptyError: If no valid entries were found.
        """
        entries: dict[str, str] = {}
        for line_no, line in enumerate(text.splitlines(), start=1):
            line = line.rstrip("\r")
            if not line.strip():
                continue
            match = _LINE_RE.match(line)
            if match is None:
                logger.debug("Skipping manifest line %d: %r", line_no, line)
                continue
            digest, raw_path = match.groups()
            try:
                rel = normalize_relpath(raw_path.rstrip().lstrip("*"))
            except ValueError as e:
                raise ManifestMalformedError(
                    f"Unsafe manifest entry on line {line_no}: {e}", source, line_no
                ) from e
            if rel in entries:
                logger.debug("Duplicate manifest entry for %s on line %d", rel, line_no)
            entries[rel] = digest.lower()

        if not entries:
            raise ManifestEmptyError(f"Manifest has no valid entries: {source or '<text>'}", source)
        return cls(entries, source)

    @classmethod
    def from_file(cls, path: Path) -> Manifest:
        """Load a manifest from disk.

        Raises:
            ManifestNotFoundError: If the file doesn't exist.
            ManifestEmptyError: If no valid entries were parsed.
            ManifestMalformedError: If an entry is unsafe.
        """
        if not path.is_file():
            raise ManifestNotFoundError(f"Manifest not found: {path}", path)
        text = path.read_text(encoding="utf-8", errors="replace")
        return cls.parse(text, source=path)

    def render(self) -> str:
        """Render in ``sha256sum`` format, sorted by path."""
        return "".join(f"{self._entries[p]}  {p}\n" for p in sorted(self._entries))


def load_manifest(path: Path) -> Manifest:
    """Load a manifest file. See :meth:`Manifest.from_file`."""
    return Manifest.from_file(path)


def sha256_file(path: Path) -> str:
    """Compute the lowercase hex SHA-256 digest of a file."""
    hasher = hashlib.sha256()
    with path.open("rb") as stream:
        for chunk in iter(lambda: stream.read(1 << 20), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def build_manifest(root: Path, exclude: Iterable[str] = (MANIFEST_NAME,)) -> Manifest:
    """Hash every regular file under a payload root.

    Args:
        root: Payload root directory.
        exclude: Root-relative posix paths to leave out.

    Returns:
        Manifest covering all files found.

    Raises:
        ManifestEmptyError: If the root holds no files.
    """
    skip = set(exclude)
    entries: dict[str, str] = {}
    for file_path in sorted(root.rglob("*")):
        if not file_path.is_file() or file_path.is_symlink():
            continue
        rel = file_path.relative_to(root).as_posix()
        if rel in skip:
            continue
        entries[rel] = sha256_file(file_path)
    if not entries:
        raise ManifestEmptyError(f"No files to checksum under {root}", root)
    return Manifest(entries)


def write_manifest(path: Path, manifest: Manifest) -> None:
    """Write a manifest next to its final location, then rename it in place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as handle:
            handle.write(manifest.render())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
