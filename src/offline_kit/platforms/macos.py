"""macOS platform implementation."""

from __future__ import annotations

from offline_kit.platforms.base import BasePlatform


class MacOSPlatform(BasePlatform):
    """macOS platform handler.

    Payload trees use the ``mac_`` prefix even though the host reports
    itself as ``darwin``.
    """

    os_family = "macos"

    @property
    def exe_suffix(self) -> str:
        return ""

    @property
    def archive_suffixes(self) -> tuple[str, ...]:
        return (".tar.gz", ".tar.xz")

    @property
    def runtime_bin_dir(self) -> str:
        return "bin"
