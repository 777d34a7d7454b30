"""Shared test fixtures."""

from __future__ import annotations

import hashlib
import io
import tarfile
import zipfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from offline_kit.catalog import Catalog
from offline_kit.filesystem import RealFileSystem
from offline_kit.install import Installer
from offline_kit.manifest import MANIFEST_NAME
from offline_kit.resolver import Resolver
from offline_kit.shell import CommandResult

EMPTY_SHA256 = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


def sha256_bytes(data: bytes) -> str:
    """Hex SHA-256 of a byte string."""
    return hashlib.sha256(data).hexdigest()


class PayloadBuilder:
    """Builds a payload tree and its checksums.sha256 under a root."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)
        self.files: dict[str, bytes] = {}

    def add(self, rel: str, content: bytes = b"") -> Path:
        """Write a payload file and remember it for the manifest."""
        path = self.root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        self.files[rel] = content
        return path

    def add_tar(self, rel: str, members: dict[str, bytes], mode: int = 0o644) -> Path:
        """Write a gzipped tarball holding the given members."""
        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
            for name, data in members.items():
                info = tarfile.TarInfo(name)
                info.size = len(data)
                info.mode = mode
                tar.addfile(info, io.BytesIO(data))
        return self.add(rel, buffer.getvalue())

    def add_zip(self, rel: str, members: dict[str, bytes]) -> Path:
        """Write a zip archive holding the given members."""
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as zf:
            for name, data in members.items():
                zf.writestr(name, data)
        return self.add(rel, buffer.getvalue())

    def write_manifest(self, extra_lines: list[str] | None = None) -> Path:
        """Write checksums.sha256 covering every added file."""
        lines = [f"{sha256_bytes(data)}  {rel}" for rel, data in sorted(self.files.items())]
        lines.extend(extra_lines or [])
        manifest = self.root / MANIFEST_NAME
        manifest.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return manifest


@pytest.fixture
def payload(tmp_path: Path) -> PayloadBuilder:
    """Empty payload tree."""
    return PayloadBuilder(tmp_path / "payload")


@pytest.fixture
def tool_payload(payload: PayloadBuilder) -> PayloadBuilder:
    """Payload with a single zero-byte linux_x64 tool binary."""
    payload.add("linux_x64/tool/tool.bin")
    payload.write_manifest()
    return payload


@pytest.fixture
def prefix(tmp_path: Path) -> Path:
    """Install prefix (not created)."""
    return tmp_path / "installed"


@pytest.fixture
def builtin_catalog() -> Catalog:
    """Catalog shipped with the package."""
    return Catalog.builtin()


# ============================================================================
# Installer Fixtures
# ============================================================================


@pytest.fixture
def mock_runner() -> MagicMock:
    """Shell runner whose commands all succeed."""
    runner = MagicMock()
    runner.run.return_value = CommandResult(0, stdout="v20.11.1\n")
    return runner


@pytest.fixture
def installer(builtin_catalog: Catalog, mock_runner: MagicMock) -> Installer:
    """Installer over the built-in catalog and the real filesystem."""
    return Installer(
        resolver=Resolver(builtin_catalog),
        filesystem=RealFileSystem(),
        runner=mock_runner,
        max_workers=2,
        host_platform="linux_x64",
    )
