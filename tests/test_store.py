"""Tests for store module."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from offline_kit.store import (
    MARKER_NAME,
    InstallMarker,
    InstallStore,
    sanitize_component,
)


@pytest.fixture
def store(tmp_path: Path) -> InstallStore:
    """Store rooted at a temporary prefix."""
    return InstallStore.create(tmp_path / "prefix")


def _complete_install(store: InstallStore, kind: str, platform: str, version: str) -> Path:
    destination = store.destination(kind, platform, version)
    destination.mkdir(parents=True)
    (destination / "tool.bin").write_bytes(b"")
    store.write_marker(
        destination,
        InstallMarker(
            kind=kind, platform=platform, version=version, files=["tool.bin"], bin_dirs=[""]
        ),
    )
    return destination


class TestSanitizeComponent:
    """Tests for sanitize_component."""

    def test_safe_value_unchanged(self) -> None:
        """Test ordinary version strings pass through."""
        assert sanitize_component("20.11.1") == "20.11.1"
        assert sanitize_component("linux_x64") == "linux_x64"

    def test_separators_replaced(self) -> None:
        """Test path separators cannot create extra levels."""
        assert sanitize_component("a/b\\c") == "a_b_c"

    def test_leading_dots_replaced(self) -> None:
        """Test hidden names and .. are neutralized."""
        assert sanitize_component(".hidden") == "_hidden"

    @pytest.mark.parametrize("value", ["", "   ", "///", ".."])
    def test_unusable_rejected(self, value: str) -> None:
        """Test values with nothing usable left raise ValueError."""
        with pytest.raises(ValueError):
            sanitize_component(value)


class TestInstallStore:
    """Tests for InstallStore."""

    def test_destination_layout(self, store: InstallStore) -> None:
        """Test prefix/kind/platform/version layout."""
        assert store.destination("tool", "linux_x64", "1.0") == (
            store.prefix / "tool" / "linux_x64" / "1.0"
        )

    def test_marker_round_trip_uses_aliases(self, store: InstallStore, tmp_path: Path) -> None:
        """Test the marker file uses camelCase keys and reads back."""
        directory = tmp_path / "d"
        directory.mkdir()
        marker = InstallMarker(
            kind="runtime",
            platform="linux_x64",
            version="20.11.1",
            files=["bin/node"],
            primary_executable="bin/node",
            bin_dirs=["bin"],
        )

        path = store.write_marker(directory, marker)

        data = json.loads(path.read_text())
        assert data["primaryExecutable"] == "bin/node"
        assert data["binDirs"] == ["bin"]
        loaded = store.read_marker(directory)
        assert loaded is not None
        assert loaded.primary_executable == "bin/node"
        assert loaded.version == "20.11.1"

    def test_read_marker_missing(self, store: InstallStore, tmp_path: Path) -> None:
        """Test a directory without a marker reads as None."""
        assert store.read_marker(tmp_path) is None

    def test_read_marker_corrupt(self, store: InstallStore, tmp_path: Path) -> None:
        """Test an unparseable marker reads as None."""
        (tmp_path / MARKER_NAME).write_text("{not json")

        assert store.read_marker(tmp_path) is None

    def test_complete_install(self, store: InstallStore) -> None:
        """Test a directory with marker and files is complete."""
        destination = _complete_install(store, "tool", "linux_x64", "1.0")

        assert store.is_complete(destination)

    def test_missing_listed_file_incomplete(self, store: InstallStore) -> None:
        """Test a marker whose files are gone does not count as complete."""
        destination = _complete_install(store, "tool", "linux_x64", "1.0")
        (destination / "tool.bin").unlink()

        assert not store.is_complete(destination)

    def test_staging_dir_beside_destination(self, store: InstallStore) -> None:
        """Test staging directories share the destination's parent."""
        destination = store.destination("tool", "linux_x64", "1.0")

        staging = store.make_staging_dir(destination)

        assert staging.parent == destination.parent
        assert staging.name.startswith(".staging-1.0-")
        assert staging.is_dir()

    def test_trash_path_unique(self, store: InstallStore) -> None:
        """Test trash paths never collide."""
        destination = store.destination("tool", "linux_x64", "1.0")

        assert store.trash_path(destination) != store.trash_path(destination)

    def test_list_installed(self, store: InstallStore) -> None:
        """Test only complete installs are listed, with filters."""
        _complete_install(store, "tool", "linux_x64", "1.0")
        _complete_install(store, "tool", "mac_arm64", "1.0")
        _complete_install(store, "runtime", "linux_x64", "20.11.1")
        store.make_staging_dir(store.destination("tool", "linux_x64", "2.0"))
        (store.destination("tool", "linux_x64", "3.0")).mkdir(parents=True)

        everything = store.list_installed()
        linux_tools = store.list_installed(kind="tool", platform="linux_x64")

        assert [(i.marker.kind, i.marker.platform) for i in everything] == [
            ("runtime", "linux_x64"),
            ("tool", "linux_x64"),
            ("tool", "mac_arm64"),
        ]
        assert len(linux_tools) == 1
        assert linux_tools[0].bin_paths == [linux_tools[0].path]

    def test_list_installed_missing_prefix(self, store: InstallStore) -> None:
        """Test an absent prefix lists nothing."""
        assert store.list_installed() == []
