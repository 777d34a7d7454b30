"""Tests for platform handlers."""

from __future__ import annotations

import pytest

from offline_kit.platforms import (
    PLATFORMS,
    BasePlatform,
    LinuxPlatform,
    MacOSPlatform,
    PlatformSpec,
    UnknownPlatformError,
    WindowsPlatform,
    detect_host_platform,
    get_platform,
    list_platforms,
    normalize_platform_id,
)


class TestPlatformSpec:
    """Tests for PlatformSpec."""

    @pytest.mark.parametrize(
        ("os_family", "arch", "expected"),
        [
            ("windows", "x64", "win32_x64"),
            ("windows", "arm64", "win32_arm64"),
            ("linux", "x64", "linux_x64"),
            ("macos", "arm64", "mac_arm64"),
        ],
    )
    def test_id(self, os_family: str, arch: str, expected: str) -> None:
        """Test payload-tree ids."""
        assert PlatformSpec(os_family, arch).id == expected

    def test_invalid_os(self) -> None:
        """Test unknown OS family is rejected."""
        with pytest.raises(ValueError, match="OS family"):
            PlatformSpec("solaris", "x64")

    def test_invalid_arch(self) -> None:
        """Test unknown architecture is rejected."""
        with pytest.raises(ValueError, match="architecture"):
            PlatformSpec("linux", "riscv64")

    def test_table_has_six_platforms(self) -> None:
        """Test every OS/arch pair is in the table."""
        assert sorted(PLATFORMS) == [
            "linux_arm64",
            "linux_x64",
            "mac_arm64",
            "mac_x64",
            "win32_arm64",
            "win32_x64",
        ]


class TestNormalizePlatformId:
    """Tests for normalize_platform_id."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("linux_x64", "linux_x64"),
            ("LINUX_X64", "linux_x64"),
            ("linux-x86_64", "linux_x64"),
            ("linux_aarch64", "linux_arm64"),
            ("darwin_arm64", "mac_arm64"),
            ("macos-x64", "mac_x64"),
            ("windows_amd64", "win32_x64"),
            ("win_arm64", "win32_arm64"),
        ],
    )
    def test_aliases(self, raw: str, expected: str) -> None:
        """Test accepted spellings map to canonical ids."""
        assert normalize_platform_id(raw) == expected

    @pytest.mark.parametrize("raw", ["", "linux", "freebsd_x64", "linux_mips"])
    def test_unknown(self, raw: str) -> None:
        """Test unmappable ids raise UnknownPlatformError."""
        with pytest.raises(UnknownPlatformError) as exc_info:
            normalize_platform_id(raw)

        assert exc_info.value.platform_id == raw


class TestGetPlatform:
    """Tests for get_platform and the OS handlers."""

    def test_linux(self) -> None:
        """Test Linux handler naming rules."""
        platform = get_platform("linux_arm64")

        assert isinstance(platform, LinuxPlatform)
        assert platform.id == "linux_arm64"
        assert platform.arch == "arm64"
        assert platform.exe_suffix == ""
        assert platform.runtime_bin_dir == "bin"

    def test_macos(self) -> None:
        """Test macOS handler naming rules."""
        platform = get_platform("darwin_x64")

        assert isinstance(platform, MacOSPlatform)
        assert platform.id == "mac_x64"
        assert platform.exe_suffix == ""

    def test_windows(self) -> None:
        """Test Windows handler naming rules."""
        platform = get_platform("win32_x64")

        assert isinstance(platform, WindowsPlatform)
        assert platform.exe_suffix == ".exe"
        assert platform.archive_suffixes == (".zip",)
        assert platform.runtime_bin_dir == "."

    def test_handlers_are_base_platforms(self) -> None:
        """Test every handler derives from BasePlatform and names its archive formats."""
        for platform_id in PLATFORMS:
            platform = get_platform(platform_id)
            assert isinstance(platform, BasePlatform)
            assert platform.archive_suffixes

    def test_unknown(self) -> None:
        """Test get_platform rejects unknown ids."""
        with pytest.raises(UnknownPlatformError):
            get_platform("plan9_x64")


class TestTemplates:
    """Tests for catalog template expansion."""

    def test_expand_windows(self) -> None:
        """Test Windows executables get .exe and bin is the root."""
        platform = get_platform("win32_x64")

        assert platform.expand("{platform}/node/{bin}/node{exe}") == "win32_x64/node/./node.exe"

    def test_expand_linux(self) -> None:
        """Test Linux executables have no suffix."""
        platform = get_platform("linux_x64")

        assert platform.expand("{platform}/node/{bin}/node{exe}") == "linux_x64/node/bin/node"

    def test_template_vars(self) -> None:
        """Test available template variables."""
        assert get_platform("mac_arm64").template_vars() == {
            "platform": "mac_arm64",
            "os": "macos",
            "arch": "arm64",
            "exe": "",
            "bin": "bin",
        }

    def test_unknown_variable(self) -> None:
        """Test unknown template variables raise ValueError."""
        with pytest.raises(ValueError, match="Unknown template variable"):
            get_platform("linux_x64").expand("{platform}/{flavor}")


class TestHostDetection:
    """Tests for detect_host_platform and list_platforms."""

    def test_linux_x86_64(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test a Linux x86_64 host maps to linux_x64."""
        monkeypatch.setattr("offline_kit.platforms.sys.platform", "linux")
        monkeypatch.setattr("offline_kit.platforms._host.machine", lambda: "x86_64")

        assert detect_host_platform() == "linux_x64"

    def test_mac_arm(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test an Apple Silicon host maps to mac_arm64."""
        monkeypatch.setattr("offline_kit.platforms.sys.platform", "darwin")
        monkeypatch.setattr("offline_kit.platforms._host.machine", lambda: "arm64")

        assert detect_host_platform() == "mac_arm64"

    def test_windows_amd64(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test a Windows AMD64 host maps to win32_x64."""
        monkeypatch.setattr("offline_kit.platforms.sys.platform", "win32")
        monkeypatch.setattr("offline_kit.platforms._host.machine", lambda: "AMD64")

        assert detect_host_platform() == "win32_x64"

    def test_unsupported_os(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test unsupported operating systems return None."""
        monkeypatch.setattr("offline_kit.platforms.sys.platform", "sunos5")

        assert detect_host_platform() is None

    def test_unsupported_arch(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test unsupported CPUs return None."""
        monkeypatch.setattr("offline_kit.platforms.sys.platform", "linux")
        monkeypatch.setattr("offline_kit.platforms._host.machine", lambda: "ppc64le")

        assert detect_host_platform() is None

    def test_list_marks_host(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test list_platforms flags the host platform."""
        monkeypatch.setattr("offline_kit.platforms.detect_host_platform", lambda: "linux_arm64")

        rows = list_platforms()

        assert len(rows) == 6
        hosts = [row["id"] for row in rows if row["host"]]
        assert hosts == ["linux_arm64"]
