"""Offline dependency installs with a bundled package manager.

The kit ships a pnpm executable and a pre-populated pnpm store. Installing a
tool set copies its ``package.json`` and ``pnpm-lock.yaml`` into staging and
runs pnpm there against that store, with the network disabled.
"""

from __future__ import annotations

import logging
from pathlib import Path

from offline_kit.protocols import ShellRunner
from offline_kit.shell import CommandResult

logger = logging.getLogger(__name__)

# Large tool sets link thousands of files.
INSTALL_TIMEOUT = 900


class PnpmPackageManager:
    """Runs pnpm against a local store without touching the network.

    Satisfies the PackageManager protocol structurally.
    """

    def __init__(
        self, executable: Path, runner: ShellRunner, timeout: float = INSTALL_TIMEOUT
    ) -> None:
        self.executable = executable
        self.runner = runner
        self.timeout = timeout

    def install_args(self, store_dir: Path, run_scripts: bool = False) -> list[str]:
        """Command line for a frozen, offline install."""
        args = [
            str(self.executable),
            "install",
            "--offline",
            "--frozen-lockfile",
            "--store-dir",
            str(store_dir),
        ]
        if not run_scripts:
            args.append("--ignore-scripts")
        return args

    def install(
        self, project_dir: Path, store_dir: Path, run_scripts: bool = False
    ) -> CommandResult:
        """Install the locked dependencies of project_dir from store_dir.

        Args:
            project_dir: Directory holding package.json and pnpm-lock.yaml.
            store_dir: pnpm content-addressable store.
            run_scripts: Allow lifecycle scripts (skipped by default).

        Returns:
            CommandResult of the pnpm run; failures are returned, not raised.
        """
        logger.debug("pnpm install in %s using store %s", project_dir, store_dir)
        return self.runner.run(
            self.install_args(store_dir, run_scripts), cwd=project_dir, timeout=self.timeout
        )

    def version(self) -> str | None:
        """Report the pnpm version, or None if it cannot be run."""
        result = self.runner.run([str(self.executable), "--version"])
        if not result.ok:
            return None
        return result.first_line or None
