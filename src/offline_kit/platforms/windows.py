"""Windows platform implementation."""

from __future__ import annotations

from offline_kit.platforms.base import BasePlatform


class WindowsPlatform(BasePlatform):
    """Windows platform handler."""

    os_family = "windows"

    @property
    def exe_suffix(self) -> str:
        return ".exe"

    @property
    def archive_suffixes(self) -> tuple[str, ...]:
        return (".zip",)

    @property
    def runtime_bin_dir(self) -> str:
        # Windows Node.js zips keep node.exe at the archive root.
        return "."
