"""Linux platform implementation."""

from __future__ import annotations

from offline_kit.platforms.base import BasePlatform


class LinuxPlatform(BasePlatform):
    """Linux platform handler."""

    os_family = "linux"

    @property
    def exe_suffix(self) -> str:
        return ""

    @property
    def archive_suffixes(self) -> tuple[str, ...]:
        return (".tar.xz", ".tar.gz")

    @property
    def runtime_bin_dir(self) -> str:
        return "bin"
