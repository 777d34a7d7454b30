"""Platform-specific implementations."""

from __future__ import annotations

import platform as _host
import sys

from .base import ARCHITECTURES, OS_FAMILIES, BasePlatform, PlatformSpec
from .linux import LinuxPlatform
from .macos import MacOSPlatform
from .windows import WindowsPlatform

__all__ = [
    "ARCHITECTURES",
    "OS_FAMILIES",
    "BasePlatform",
    "LinuxPlatform",
    "MacOSPlatform",
    "PlatformSpec",
    "UnknownPlatformError",
    "WindowsPlatform",
    "detect_host_platform",
    "get_platform",
    "list_platforms",
    "normalize_platform_id",
]


OS_HANDLERS: dict[str, type[BasePlatform]] = {
    "linux": LinuxPlatform,
    "macos": MacOSPlatform,
    "windows": WindowsPlatform,
}

PLATFORMS: dict[str, PlatformSpec] = {
    "win32_x64": PlatformSpec("windows", "x64"),
    "win32_arm64": PlatformSpec("windows", "arm64"),
    "linux_x64": PlatformSpec("linux", "x64"),
    "linux_arm64": PlatformSpec("linux", "arm64"),
    "mac_x64": PlatformSpec("macos", "x64"),
    "mac_arm64": PlatformSpec("macos", "arm64"),
}

_OS_ALIASES = {
    "win32": "win32",
    "win": "win32",
    "windows": "win32",
    "linux": "linux",
    "mac": "mac",
    "macos": "mac",
    "darwin": "mac",
    "osx": "mac",
}

_ARCH_ALIASES = {
    "x64": "x64",
    "x86_64": "x64",
    "amd64": "x64",
    "arm64": "arm64",
    "aarch64": "arm64",
}


class UnknownPlatformError(ValueError):
    """Platform identifier is not one of the supported ids."""

    def __init__(self, platform_id: str) -> None:
        super().__init__(
            f"Unknown platform: {platform_id}. Supported: {list(PLATFORMS.keys())}"
        )
        self.platform_id = platform_id


def normalize_platform_id(raw: str) -> str:
    """Map accepted spellings (``darwin_arm64``, ``linux-x86_64``) to a canonical id.

    Raises:
        UnknownPlatformError: If the id cannot be mapped.
    """
    text = raw.strip().lower().replace("-", "_")
    if text in PLATFORMS:
        return text
    os_part, sep, arch_part = text.partition("_")
    if not sep:
        raise UnknownPlatformError(raw)
    candidate = f"{_OS_ALIASES.get(os_part, os_part)}_{_ARCH_ALIASES.get(arch_part, arch_part)}"
    if candidate not in PLATFORMS:
        raise UnknownPlatformError(raw)
    return candidate


def get_platform(platform_id: str) -> BasePlatform:
    """Get a platform handler by id.

    Args:
        platform_id: Platform id or accepted alias.

    Returns:
        Handler for the platform's OS family and architecture.

    Raises:
        UnknownPlatformError: If the platform is not supported.
    """
    spec = PLATFORMS[normalize_platform_id(platform_id)]
    return OS_HANDLERS[spec.os](spec.arch)


def detect_host_platform() -> str | None:
    """Detect the platform id of the running host.

    Returns:
        Canonical id, or None on an unsupported OS or CPU.
    """
    if sys.platform.startswith("linux"):
        os_part = "linux"
    elif sys.platform == "darwin":
        os_part = "mac"
    elif sys.platform == "win32":
        os_part = "win32"
    else:
        return None

    arch_part = _ARCH_ALIASES.get(_host.machine().lower())
    if arch_part is None:
        return None
    return f"{os_part}_{arch_part}"


def list_platforms() -> list[dict[str, str]]:
    """Describe every supported platform.

    Returns:
        List of dicts with keys: id, os, arch, host ("yes" for the host).
    """
    host = detect_host_platform()
    return [
        {
            "id": platform_id,
            "os": spec.os,
            "arch": spec.arch,
            "host": "yes" if platform_id == host else "",
        }
        for platform_id, spec in PLATFORMS.items()
    ]
