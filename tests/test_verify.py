"""Tests for verify module."""

from __future__ import annotations

import errno
from pathlib import Path

import pytest

from offline_kit.manifest import Manifest
from offline_kit.types import MismatchKind
from offline_kit.verify import verify_manifest, verify_paths

EMPTY = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


@pytest.fixture
def root(tmp_path: Path) -> Path:
    """Payload root with one empty and one non-empty file."""
    (tmp_path / "dir").mkdir()
    (tmp_path / "dir" / "empty.bin").write_bytes(b"")
    (tmp_path / "hello.txt").write_bytes(b"hello")
    return tmp_path


@pytest.fixture
def manifest() -> Manifest:
    """Manifest matching the root fixture."""
    return Manifest(
        {
            "dir/empty.bin": EMPTY,
            "hello.txt": "2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824",
        }
    )


class TestVerifyPaths:
    """Tests for verify_paths."""

    def test_all_match(self, root: Path, manifest: Manifest) -> None:
        """Test matching files produce an ok report."""
        report = verify_paths(manifest, root, ["dir/empty.bin", "hello.txt"])

        assert report.ok
        assert report.checked == ("dir/empty.bin", "hello.txt")

    def test_not_in_manifest(self, root: Path, manifest: Manifest) -> None:
        """Test a path missing from the manifest is reported."""
        report = verify_paths(manifest, root, ["other.txt"])

        assert not report.ok
        assert report.mismatches[0].kind is MismatchKind.NOT_IN_MANIFEST
        assert report.mismatches[0].expected is None

    def test_file_missing(self, root: Path, manifest: Manifest) -> None:
        """Test a listed path absent on disk is reported with its expected digest."""
        (root / "hello.txt").unlink()

        report = verify_paths(manifest, root, ["hello.txt"])

        mismatch = report.mismatches[0]
        assert mismatch.kind is MismatchKind.FILE_MISSING
        assert mismatch.expected == manifest["hello.txt"]

    def test_hash_mismatch_reports_both_digests(self, root: Path, manifest: Manifest) -> None:
        """Test tampering is detected and both digests are reported."""
        (root / "dir" / "empty.bin").write_bytes(b"x")

        report = verify_paths(manifest, root, ["dir/empty.bin"])

        mismatch = report.mismatches[0]
        assert mismatch.kind is MismatchKind.HASH_MISMATCH
        assert mismatch.expected == EMPTY
        assert mismatch.actual == "2d711642b726b04401627ca9fbac32f5c8530fb1903cc4db02258717921a4881"

    def test_all_failures_reported(self, root: Path, manifest: Manifest) -> None:
        """Test verification continues past the first failure."""
        (root / "hello.txt").write_bytes(b"tampered")

        report = verify_paths(
            manifest, root, ["hello.txt", "nope.txt", "dir/empty.bin"], max_workers=3
        )

        assert [m.path for m in report.mismatches] == ["hello.txt", "nope.txt"]

    def test_duplicates_checked_once(self, root: Path, manifest: Manifest) -> None:
        """Test repeated paths are only hashed once."""
        report = verify_paths(manifest, root, ["hello.txt", "hello.txt"])

        assert report.checked == ("hello.txt",)

    def test_inline_hashing(self, root: Path, manifest: Manifest) -> None:
        """Test max_workers=1 verifies without a thread pool."""
        report = verify_paths(manifest, root, ["hello.txt", "dir/empty.bin"], max_workers=1)

        assert report.ok

    def test_directory_is_missing_file(self, root: Path) -> None:
        """Test a directory where a file is expected counts as missing."""
        manifest = Manifest({"dir": EMPTY})

        report = verify_paths(manifest, root, ["dir"])

        assert report.mismatches[0].kind is MismatchKind.FILE_MISSING

    def test_unreadable_file_is_reported(
        self, root: Path, manifest: Manifest, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test a read error becomes a mismatch instead of escaping."""

        def denied(path: Path) -> str:
            raise PermissionError(errno.EACCES, "Permission denied", str(path))

        monkeypatch.setattr("offline_kit.verify.sha256_file", denied)

        report = verify_paths(manifest, root, ["hello.txt", "dir/empty.bin"], max_workers=2)

        assert not report.ok
        assert [m.kind for m in report.mismatches] == [MismatchKind.UNREADABLE] * 2
        assert report.mismatches[0].detail == "Permission denied"
        assert report.mismatches[0].expected == manifest["hello.txt"]

    def test_file_removed_while_hashing(
        self, root: Path, manifest: Manifest, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test a file deleted between the listing and the read counts as missing."""

        def gone(path: Path) -> str:
            raise FileNotFoundError(errno.ENOENT, "No such file or directory", str(path))

        monkeypatch.setattr("offline_kit.verify.sha256_file", gone)

        report = verify_paths(manifest, root, ["hello.txt"])

        assert report.mismatches[0].kind is MismatchKind.FILE_MISSING


class TestVerifyManifest:
    """Tests for verify_manifest."""

    def test_checks_every_entry(self, root: Path, manifest: Manifest) -> None:
        """Test every manifest entry is checked in sorted order."""
        report = verify_manifest(manifest, root)

        assert report.ok
        assert report.checked == ("dir/empty.bin", "hello.txt")

    def test_reports_missing_entry(self, root: Path, manifest: Manifest) -> None:
        """Test a missing file fails whole-manifest verification."""
        (root / "dir" / "empty.bin").unlink()

        report = verify_manifest(manifest, root)

        assert not report.ok
        assert report.mismatches[0].path == "dir/empty.bin"
