"""Application context for dependency injection.

This module separates object creation from object use, enabling testability
and reducing coupling in CLI commands.

Dependencies are typed using Protocols (abstract interfaces) rather than
concrete implementations, so test doubles can be injected without
inheritance.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from offline_kit.catalog import Catalog
from offline_kit.config import KitConfig
from offline_kit.protocols import ArtifactInstaller


@dataclass
class AppContext:
    """Container for application dependencies.

    Provides a single injection point for all services used by CLI commands.
    """

    config: KitConfig
    catalog: Catalog
    installer: ArtifactInstaller


def create_context(
    config_file: Path | None = None,
    start_path: Path | None = None,
) -> AppContext:
    """Factory for application dependencies.

    Creates all services with proper wiring. Use this in production code.
    For tests, construct AppContext directly with test doubles.

    Args:
        config_file: Explicit kit config file.
        start_path: Directory to start kit-root discovery from (defaults to cwd).

    Returns:
        Configured AppContext with all dependencies.

    Raises:
        ConfigError: If the kit config is invalid.
        CatalogError: If the catalog override is invalid.
    """
    from offline_kit.catalog import load_catalog
    from offline_kit.config import load_config
    from offline_kit.filesystem import RealFileSystem
    from offline_kit.install import Installer
    from offline_kit.shell import SubprocessRunner

    config = load_config(config_file, start_path=start_path)
    catalog = load_catalog(config.catalog)
    installer = Installer.create(
        catalog=catalog,
        filesystem=RealFileSystem(),
        runner=SubprocessRunner(),
        max_workers=config.max_workers,
    )
    return AppContext(config=config, catalog=catalog, installer=installer)
