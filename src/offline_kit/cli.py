"""CLI commands using Typer."""

from __future__ import annotations

import logging
import threading
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

if TYPE_CHECKING:
    from offline_kit.context import AppContext
    from offline_kit.store import InstalledArtifact

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn

from offline_kit import __version__
from offline_kit.catalog import CatalogError
from offline_kit.config import ConfigError
from offline_kit.console import ConsoleUI
from offline_kit.context import create_context
from offline_kit.install import InstallRequest
from offline_kit.manifest import (
    MANIFEST_NAME,
    ManifestError,
    ManifestNotFoundError,
    build_manifest,
    load_manifest,
    write_manifest,
)
from offline_kit.platforms import (
    UnknownPlatformError,
    detect_host_platform,
    list_platforms,
    normalize_platform_id,
)
from offline_kit.types import (
    EXIT_CANCELLED,
    EXIT_FAILED,
    EXIT_NOT_FOUND,
    InstallPhase,
    InstallResult,
)
from offline_kit.verify import verify_manifest

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="offline-kit",
    help="Verify and install artifacts from an offline payload kit",
    no_args_is_help=True,
)

config_app = typer.Typer(help="Configuration commands")

app.add_typer(config_app, name="config")

console = Console()
tui = ConsoleUI(console)
err_tui = ConsoleUI(Console(stderr=True))

# Options given before the command name.
_global_options: dict[str, Path | None] = {"config_file": None}


class ShellKind(str, Enum):
    """Shells the env command can emit PATH lines for."""

    SH = "sh"
    POWERSHELL = "powershell"


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"offline-kit v{__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    """Route log records through Rich; DEBUG when verbose, else WARNING."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-V", help="Show debug logging")
    ] = False,
    config_file: Annotated[
        Path | None, typer.Option("--config", help="Kit config file (default: nearest config.yaml)")
    ] = None,
) -> None:
    """Verify and install artifacts from an offline payload kit."""
    _configure_logging(verbose)
    _global_options["config_file"] = config_file


def _create_context() -> AppContext:
    """Build the production context, mapping config errors to exit code 2."""
    try:
        return create_context(_global_options["config_file"])
    except (ConfigError, CatalogError) as e:
        err_tui.show_error(str(e))
        raise typer.Exit(EXIT_NOT_FOUND) from e


def _target_platform(ctx: AppContext, platform: str | None, ui: ConsoleUI = tui) -> str:
    """Pick the platform id from the option, the kit config or the host.

    Raises:
        typer.Exit: If no platform can be determined or it is unknown.
    """
    raw = platform or ctx.config.platform or detect_host_platform()
    if raw is None:
        ui.show_error("Cannot detect the host platform; pass --platform")
        raise typer.Exit(EXIT_NOT_FOUND)
    try:
        return normalize_platform_id(raw)
    except UnknownPlatformError as e:
        ui.show_error(str(e))
        raise typer.Exit(EXIT_NOT_FOUND) from e


# ============================================================================
# Install Commands
# ============================================================================


def _run_install(ctx: AppContext, request: InstallRequest) -> InstallResult:
    """Run an install on a worker thread so Ctrl-C becomes a cancel request.

    The installer checks the cancel event between phases and never inside
    the final rename, so an interrupt leaves the destination untouched or
    complete.
    """
    cancel = threading.Event()
    outcome: list[InstallResult] = []
    failure: list[BaseException] = []

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task(f"{request.kind} ({request.platform})...", total=None)

        def on_phase(phase: InstallPhase) -> None:
            progress.update(task, description=f"{request.kind} ({request.platform}): {phase.value}")

        def work() -> None:
            try:
                outcome.append(ctx.installer.install(request, cancel=cancel, on_phase=on_phase))
            except BaseException as e:
                failure.append(e)

        worker = threading.Thread(target=work, name="offline-kit-install", daemon=True)
        worker.start()
        try:
            while worker.is_alive():
                worker.join(0.1)
        except KeyboardInterrupt:
            cancel.set()
            progress.update(task, description="Cancelling...")
            worker.join()

    if failure:
        raise failure[0]
    return outcome[0]


def _finish(result: InstallResult) -> None:
    """Report a result and exit with its code."""
    tui.show_result(result)
    if result.exit_code:
        raise typer.Exit(result.exit_code)


@app.command()
def install(
    kind: Annotated[str, typer.Argument(help="Artifact kind (see 'offline-kit kinds')")],
    platform: Annotated[
        str | None, typer.Option("--platform", "-p", help="Target platform id (default: host)")
    ] = None,
    payload_root: Annotated[
        Path | None, typer.Option("--payload-root", help="Directory holding checksums.sha256")
    ] = None,
    prefix: Annotated[Path | None, typer.Option("--prefix", help="Install root")] = None,
    version: Annotated[
        str | None, typer.Option("--version", help="Version or commit id of the install")
    ] = None,
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Replace an existing install")
    ] = False,
    verify_only: Annotated[
        bool, typer.Option("--verify-only", help="Verify the payload without installing")
    ] = False,
    smoke_test: Annotated[
        bool, typer.Option("--smoke-test", help="Run the primary executable before committing")
    ] = False,
    run_scripts: Annotated[
        bool,
        typer.Option("--run-scripts", help="Allow package lifecycle scripts during tool installs"),
    ] = False,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not ask for confirmation")] = False,
    _context=None,
) -> None:
    """Verify and install an artifact for a platform."""
    ctx = _context or _create_context()
    platform_id = _target_platform(ctx, platform)
    request = InstallRequest(
        platform=platform_id,
        kind=kind,
        payload_root=payload_root or ctx.config.payload_root,
        prefix=prefix or ctx.config.prefix,
        version=version,
        force=force,
        verify_only=verify_only,
        smoke_test=smoke_test,
        run_scripts=run_scripts,
    )

    if force and not verify_only and not yes:
        existing = _find_installed(ctx, request.prefix, kind, platform_id, version)
        if existing and not tui.confirm(
            f"Replace existing install of {kind} ({platform_id}) at {existing[0].path}?"
        ):
            tui.show_warning("Aborted")
            raise typer.Exit(EXIT_FAILED)

    _finish(_run_install(ctx, request))


@app.command()
def verify(
    kind: Annotated[
        str | None, typer.Argument(help="Artifact kind to verify (omit with --all)")
    ] = None,
    platform: Annotated[
        str | None, typer.Option("--platform", "-p", help="Target platform id (default: host)")
    ] = None,
    payload_root: Annotated[
        Path | None, typer.Option("--payload-root", help="Directory holding checksums.sha256")
    ] = None,
    all_files: Annotated[
        bool, typer.Option("--all", help="Verify every file listed in the manifest")
    ] = False,
    _context=None,
) -> None:
    """Verify payload files against checksums.sha256."""
    ctx = _context or _create_context()
    root = payload_root or ctx.config.payload_root

    if all_files:
        _verify_all(ctx, root)
        return

    if not kind:
        tui.show_error("Specify an artifact kind or --all")
        raise typer.Exit(EXIT_NOT_FOUND)

    request = InstallRequest(
        platform=_target_platform(ctx, platform),
        kind=kind,
        payload_root=root,
        prefix=ctx.config.prefix,
        verify_only=True,
    )
    _finish(_run_install(ctx, request))


def _verify_all(ctx: AppContext, root: Path) -> None:
    """Check every manifest entry under a payload root."""
    try:
        manifest = load_manifest(root / MANIFEST_NAME)
    except ManifestNotFoundError as e:
        tui.show_error(str(e))
        raise typer.Exit(EXIT_NOT_FOUND) from e
    except ManifestError as e:
        tui.show_error(str(e))
        raise typer.Exit(EXIT_FAILED) from e

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task(f"Hashing {len(manifest)} file(s)...", total=None)
        report = verify_manifest(manifest, root, max_workers=ctx.config.max_workers)

    if report.ok:
        tui.show_success(f"All {len(report.checked)} file(s) match {MANIFEST_NAME}")
        return

    tui.show_mismatches(list(report.mismatches))
    tui.show_error(f"{len(report.mismatches)} of {len(report.checked)} file(s) failed verification")
    raise typer.Exit(EXIT_FAILED)


def _find_installed(
    ctx: AppContext, prefix: Path, kind: str, platform_id: str, version: str | None
) -> list[InstalledArtifact]:
    """Complete installs of a kind, newest first, optionally for one version."""
    items = [
        item
        for item in ctx.installer.list_installed(prefix, kind, platform_id)
        if version is None or item.marker.version == version
    ]
    return sorted(items, key=lambda item: item.marker.installed_at, reverse=True)


@app.command()
def uninstall(
    kind: Annotated[str, typer.Argument(help="Artifact kind")],
    version: Annotated[str, typer.Option("--version", help="Installed version to remove")],
    platform: Annotated[
        str | None, typer.Option("--platform", "-p", help="Target platform id (default: host)")
    ] = None,
    prefix: Annotated[Path | None, typer.Option("--prefix", help="Install root")] = None,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not ask for confirmation")] = False,
    _context=None,
) -> None:
    """Remove an installed artifact."""
    ctx = _context or _create_context()
    platform_id = _target_platform(ctx, platform)
    root = prefix or ctx.config.prefix

    existing = _find_installed(ctx, root, kind, platform_id, version)
    if not existing:
        tui.show_error(f"{kind} ({platform_id}) {version} is not installed under {root}")
        raise typer.Exit(EXIT_NOT_FOUND)

    if not yes and not tui.confirm(f"Remove {existing[0].path}?"):
        tui.show_warning("Aborted")
        raise typer.Exit(EXIT_FAILED)

    try:
        removed = ctx.installer.uninstall(root, kind, platform_id, version)
    except OSError as e:
        tui.show_error(f"Could not remove {existing[0].path}: {e}")
        raise typer.Exit(EXIT_FAILED) from e

    if removed:
        tui.show_success(f"Removed {kind} ({platform_id}) {version}")
    else:
        tui.show_error(f"{kind} ({platform_id}) {version} is not installed under {root}")
        raise typer.Exit(EXIT_NOT_FOUND)


@app.command()
def status(
    prefix: Annotated[Path | None, typer.Option("--prefix", help="Install root")] = None,
    kind: Annotated[str | None, typer.Option("--kind", "-k", help="Filter by kind")] = None,
    platform: Annotated[
        str | None, typer.Option("--platform", "-p", help="Filter by platform id")
    ] = None,
    _context=None,
) -> None:
    """Show complete installs under a prefix."""
    ctx = _context or _create_context()
    platform_id = _target_platform(ctx, platform) if platform else None
    items = ctx.installer.list_installed(prefix or ctx.config.prefix, kind, platform_id)
    tui.show_installed(items)


@app.command()
def env(
    kind: Annotated[str, typer.Argument(help="Artifact kind")],
    platform: Annotated[
        str | None, typer.Option("--platform", "-p", help="Target platform id (default: host)")
    ] = None,
    prefix: Annotated[Path | None, typer.Option("--prefix", help="Install root")] = None,
    version: Annotated[
        str | None, typer.Option("--version", help="Installed version (default: newest)")
    ] = None,
    shell: Annotated[
        ShellKind, typer.Option("--shell", "-s", help="Shell syntax to print")
    ] = ShellKind.SH,
    _context=None,
) -> None:
    """Print PATH lines that activate an install.

    Example: eval "$(offline-kit env runtime)"
    """
    ctx = _context or _create_context()
    platform_id = _target_platform(ctx, platform, ui=err_tui)
    root = prefix or ctx.config.prefix

    existing = _find_installed(ctx, root, kind, platform_id, version)
    if not existing:
        err_tui.show_error(f"{kind} ({platform_id}) is not installed under {root}")
        raise typer.Exit(EXIT_NOT_FOUND)

    bin_paths = existing[0].bin_paths
    if not bin_paths:
        err_tui.show_warning(f"{kind} declares no bin directories")
        return
    typer.echo(path_activation(bin_paths, shell))


def path_activation(bin_paths: list[Path], shell: ShellKind) -> str:
    """Render a PATH prepend line for a shell.

    Args:
        bin_paths: Directories to put first on PATH, in order.
        shell: Target shell syntax.

    Returns:
        Single line suitable for ``eval`` or dot-sourcing.
    """
    if shell is ShellKind.POWERSHELL:
        joined = ";".join(str(p) for p in bin_paths)
        return f'$env:PATH = "{joined};" + $env:PATH'
    joined = ":".join(str(p) for p in bin_paths)
    return f'export PATH="{joined}:$PATH"'


# ============================================================================
# Payload Commands
# ============================================================================


@app.command()
def platforms() -> None:
    """List supported platform ids."""
    tui.show_platforms(list_platforms())


@app.command()
def kinds(
    platform: Annotated[
        str | None, typer.Option("--platform", "-p", help="Only kinds offered for this platform")
    ] = None,
    _context=None,
) -> None:
    """List artifact kinds from the catalog."""
    ctx = _context or _create_context()
    catalog = ctx.catalog
    if platform:
        platform_id = _target_platform(ctx, platform)
        catalog = catalog.model_copy(
            update={
                "kinds": {n: k for n, k in catalog.kinds.items() if k.supports(platform_id)}
            }
        )
    tui.show_kinds(catalog)


@app.command()
def checksum(
    directory: Annotated[Path, typer.Argument(help="Payload root to checksum")],
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Manifest file (default: DIR/checksums.sha256)"),
    ] = None,
) -> None:
    """Write a checksums.sha256 manifest for a payload directory."""
    if not directory.is_dir():
        tui.show_error(f"Not a directory: {directory}")
        raise typer.Exit(EXIT_NOT_FOUND)

    target = output or directory / MANIFEST_NAME
    exclude = {MANIFEST_NAME}
    root = directory.resolve()
    if target.resolve().is_relative_to(root):
        exclude.add(target.resolve().relative_to(root).as_posix())

    try:
        manifest = build_manifest(directory, exclude=exclude)
    except ManifestError as e:
        tui.show_error(str(e))
        raise typer.Exit(EXIT_NOT_FOUND) from e

    try:
        write_manifest(target, manifest)
    except OSError as e:
        tui.show_error(f"Could not write {target}: {e}")
        raise typer.Exit(EXIT_FAILED) from e
    tui.show_success(f"Wrote {len(manifest)} checksum(s) to {target}")


# ============================================================================
# Config Commands
# ============================================================================


@config_app.command("show")
def config_show(
    _context=None,
) -> None:
    """Show the effective kit configuration."""
    ctx = _context or _create_context()
    tui.show_config(ctx.config)


if __name__ == "__main__":
    app()
