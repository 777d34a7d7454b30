"""Base platform implementation with shared behavior.

All operating-system families share the same naming scheme for payload
trees; they vary only in executable suffix, archive format and where a
runtime keeps its binaries.

Pattern: Template Method - base class builds the template variables,
subclasses provide the OS-specific pieces.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

OS_FAMILIES = ("windows", "linux", "macos")
ARCHITECTURES = ("x64", "arm64")

# Platform id prefix used in payload trees for each OS family.
ID_PREFIXES = {"windows": "win32", "linux": "linux", "macos": "mac"}


@dataclass(frozen=True)
class PlatformSpec:
    """A target environment: OS family plus CPU architecture."""

    os: str
    arch: str

    def __post_init__(self) -> None:
        """Validate invariants."""
        if self.os not in OS_FAMILIES:
            raise ValueError(f"Unknown OS family: {self.os}")
        if self.arch not in ARCHITECTURES:
            raise ValueError(f"Unknown architecture: {self.arch}")

    @property
    def id(self) -> str:
        """Payload-tree identifier, e.g. ``linux_x64``."""
        return f"{ID_PREFIXES[self.os]}_{self.arch}"

    def __str__(self) -> str:
        return self.id


class BasePlatform(ABC):
    """Base class for OS family handlers."""

    os_family: str

    def __init__(self, arch: str) -> None:
        self.spec = PlatformSpec(self.os_family, arch)

    @property
    def id(self) -> str:
        return self.spec.id

    @property
    def arch(self) -> str:
        return self.spec.arch

    @property
    @abstractmethod
    def exe_suffix(self) -> str:
        """Suffix appended to executable names."""
        ...

    @property
    @abstractmethod
    def archive_suffixes(self) -> tuple[str, ...]:
        """Archive formats payloads are shipped in, preferred first."""
        ...

    @property
    @abstractmethod
    def runtime_bin_dir(self) -> str:
        """Directory inside an extracted runtime holding executables."""
        ...

    def template_vars(self) -> dict[str, str]:
        """Values substituted into catalog path templates."""
        return {
            "platform": self.id,
            "os": self.os_family,
            "arch": self.arch,
            "exe": self.exe_suffix,
            "bin": self.runtime_bin_dir,
        }

    def expand(self, template: str) -> str:
        """Fill a catalog template such as ``{platform}/node/node{exe}``.

        Raises:
            ValueError: If the template names an unknown variable.
        """
        try:
            return template.format(**self.template_vars())
        except KeyError as e:
            raise ValueError(f"Unknown template variable {e} in {template!r}") from e

    def __repr__(self) -> str:
        return f"{type(self).__name__}(arch={self.arch!r})"
