"""Rich rendering of install results, tables and prompts."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm
from rich.table import Table

from offline_kit.types import InstallResult, InstallStatus, Mismatch

if TYPE_CHECKING:
    from offline_kit.catalog import Catalog
    from offline_kit.config import KitConfig
    from offline_kit.store import InstalledArtifact


class ConsoleUI:
    """Text output for offline-kit commands (non-interactive mode)."""

    def __init__(self, console: Console | None = None) -> None:
        """Initialize the UI.

        Args:
            console: Rich console to print to. Defaults to stdout.
        """
        self.console = console or Console()

    def confirm(self, message: str, default: bool = False) -> bool:
        """Show confirmation prompt.

        Args:
            message: Confirmation message.
            default: Default response.

        Returns:
            User's response.
        """
        return Confirm.ask(message, default=default, console=self.console)

    def show_result(self, result: InstallResult) -> None:
        """Display the outcome of an install or verification.

        Args:
            result: Result returned by the installer.
        """
        label = f"{result.kind} ({result.platform})"
        if result.version:
            label += f" {result.version}"

        if result.status is InstallStatus.INSTALLED:
            self.show_success(f"Installed {label} to {result.path}")
            self.console.print(f"  {len(result.installed_files)} file(s)")
        elif result.status is InstallStatus.ALREADY_INSTALLED:
            self.show_info(f"{label} is already installed at {result.path}")
        elif result.status is InstallStatus.VERIFIED:
            self.show_success(f"Verified {label}")
        elif result.status is InstallStatus.CANCELLED:
            self.show_warning(f"Cancelled {label}; nothing was changed")
        elif result.status is InstallStatus.NOT_FOUND:
            self.show_error(f"Not found: {label}")
            if result.reason:
                self.console.print(f"  {result.reason}")
            for missing in result.missing:
                self.console.print(f"  [dim]missing:[/dim] {missing}")
        elif result.status is InstallStatus.VERIFICATION_FAILED:
            self.show_error(f"Verification failed for {label}")
            if result.reason:
                self.console.print(f"  {result.reason}")
            if result.mismatches:
                self.show_mismatches(list(result.mismatches))
        else:
            self.show_error(f"Install failed for {label}: {result.reason}")

        for bin_path in result.bin_paths:
            self.console.print(f"  [dim]bin:[/dim] {bin_path}")

    def show_mismatches(self, mismatches: list[Mismatch]) -> None:
        """Display verification failures with expected and actual digests.

        Args:
            mismatches: Failures from the integrity verifier.
        """
        table = Table(title="Verification Failures")
        table.add_column("Path", style="cyan")
        table.add_column("Problem")
        table.add_column("Expected")
        table.add_column("Actual")

        for mismatch in mismatches:
            table.add_row(
                mismatch.path,
                mismatch.kind.value,
                mismatch.expected or "-",
                mismatch.actual or mismatch.detail or "-",
            )

        self.console.print(table)

    def show_installed(self, items: list[InstalledArtifact]) -> None:
        """Display installed artifacts table.

        Args:
            items: Complete installs found under a prefix.
        """
        if not items:
            self.console.print("[yellow]Nothing installed[/yellow]")
            return

        table = Table(title="Installed Artifacts")
        table.add_column("Kind", style="cyan")
        table.add_column("Platform")
        table.add_column("Version")
        table.add_column("Path")
        table.add_column("Installed")

        for item in items:
            marker = item.marker
            table.add_row(
                marker.kind,
                marker.platform,
                marker.version,
                str(item.path),
                marker.installed_at.strftime("%Y-%m-%d %H:%M"),
            )

        self.console.print(table)

    def show_platforms(self, platforms: list[dict[str, str]]) -> None:
        """Display supported platforms, marking the host."""
        table = Table(title="Platforms")
        table.add_column("ID", style="cyan")
        table.add_column("OS")
        table.add_column("Arch")
        table.add_column("Host")

        for platform in platforms:
            host = "[green]✓[/green]" if platform["host"] else ""
            table.add_row(platform["id"], platform["os"], platform["arch"], host)

        self.console.print(table)

    def show_kinds(self, catalog: Catalog) -> None:
        """Display the artifact kinds of a catalog."""
        if not catalog.kinds:
            self.console.print("[yellow]No artifact kinds defined[/yellow]")
            return

        table = Table(title="Artifact Kinds")
        table.add_column("Kind", style="cyan")
        table.add_column("Description")
        table.add_column("Platforms")
        table.add_column("Files")

        for name in catalog.names():
            kind = catalog.kinds[name]
            platforms = ", ".join(kind.platforms) if kind.platforms else "all"
            table.add_row(
                name,
                kind.description,
                platforms,
                ", ".join(f.pattern for f in kind.files),
            )

        self.console.print(table)

    def show_config(self, config: KitConfig) -> None:
        """Display the effective kit configuration."""
        lines = [
            f"Kit root:     {config.kit_root or '[dim]none[/dim]'}",
            f"Config file:  {config.config_file or '[dim]none[/dim]'}",
            f"Payload root: {config.payload_root}",
            f"Prefix:       {config.prefix}",
            f"Platform:     {config.platform or '[dim]host[/dim]'}",
            f"Catalog:      {config.catalog or '[dim]built-in[/dim]'}",
            f"Max workers:  {config.max_workers}",
        ]
        self.console.print(Panel("\n".join(lines), title="Configuration", border_style="blue"))

    def show_success(self, message: str) -> None:
        """Show success message.

        Args:
            message: Success message.
        """
        self.console.print(f"[green]✓[/green] {message}")

    def show_error(self, message: str) -> None:
        """Show error message.

        Args:
            message: Error message.
        """
        self.console.print(f"[red]✗[/red] {message}")

    def show_warning(self, message: str) -> None:
        """Show warning message.

        Args:
            message: Warning message.
        """
        self.console.print(f"[yellow]![/yellow] {message}")

    def show_info(self, message: str) -> None:
        """Show info message.

        Args:
            message: Info message.
        """
        self.console.print(f"[blue]i[/blue] {message}")
