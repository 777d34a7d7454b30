"""Integrity verification of payload files against a manifest."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from offline_kit.manifest import Manifest, sha256_file
from offline_kit.types import Mismatch, MismatchKind

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4


@dataclass(frozen=True)
class VerificationReport:
    """Outcome of verifying a set of paths.

    Attributes:
        checked: Paths that were requested, in request order.
        mismatches: Every failure found (empty when all paths matched).
    """

    checked: tuple[str, ...]
    mismatches: tuple[Mismatch, ...] = field(default=())

    @property
    def ok(self) -> bool:
        return not self.mismatches


def _check_one(manifest: Manifest, root_dir: Path, rel: str) -> Mismatch | None:
    expected = manifest.get(rel)
    if expected is None:
        return Mismatch(rel, MismatchKind.NOT_IN_MANIFEST)

    target = root_dir / rel
    if not target.is_file():
        return Mismatch(rel, MismatchKind.FILE_MISSING, expected=expected)

    try:
        actual = sha256_file(target)
    except FileNotFoundError:
        return Mismatch(rel, MismatchKind.FILE_MISSING, expected=expected)
    except OSError as e:
        logger.warning("Cannot read %s: %s", target, e)
        return Mismatch(
            rel, MismatchKind.UNREADABLE, expected=expected, detail=e.strerror or str(e)
        )
    if actual != expected:
        return Mismatch(rel, MismatchKind.HASH_MISMATCH, expected=expected, actual=actual)
    return None


def verify_paths(
    manifest: Manifest,
    root_dir: Path,
    relative_paths: Iterable[str],
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> VerificationReport:
    """Confirm that files under root_dir match their manifest digests.

    Every requested path is checked; the report lists all failures rather
    than stopping at the first, so callers can tell how much of a payload
    needs replacing.

    Args:
        manifest: Loaded manifest.
        root_dir: Directory the manifest paths are relative to.
        relative_paths: Posix paths to check.
        max_workers: Upper bound on hashing threads (1 hashes inline).

    Returns:
        VerificationReport; ``report.ok`` is True only if every path matched.
    """
    paths = list(dict.fromkeys(relative_paths))
    if max_workers <= 1 or len(paths) <= 1:
        results = [_check_one(manifest, root_dir, rel) for rel in paths]
    else:
        with ThreadPoolExecutor(max_workers=min(max_workers, len(paths))) as pool:
            results = list(pool.map(lambda rel: _check_one(manifest, root_dir, rel), paths))

    mismatches = tuple(m for m in results if m is not None)
    for mismatch in mismatches:
        logger.debug("Verification failed: %s", mismatch.describe())
    return VerificationReport(checked=tuple(paths), mismatches=mismatches)


def verify_manifest(
    manifest: Manifest, root_dir: Path, max_workers: int = DEFAULT_MAX_WORKERS
) -> VerificationReport:
    """Verify every entry of a manifest, like ``sha256sum -c``."""
    return verify_paths(manifest, root_dir, sorted(manifest), max_workers=max_workers)
