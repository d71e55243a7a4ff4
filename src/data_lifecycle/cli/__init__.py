"""CLI module for the data lifecycle manager.

Provides commands to inspect engine selection, export a snapshot archive,
verify an archive offline, restore an archive, and clean the store.

Usage:
    data-lifecycle engines
    data-lifecycle export --output backups/
    data-lifecycle verify backups/assetso-backup-2024-05-01T10-20-30-123Z.zip
    data-lifecycle import backups/assetso-backup-2024-05-01T10-20-30-123Z.zip --mode replace
    data-lifecycle clean --yes

Commands:
    engines  - Show configured engines in priority order
    export   - Write a backup archive (database dump, metadata, uploads)
    verify   - Validate an archive's structure and checksum
    import   - Restore an archive into the first working engine
    clean    - Delete operational data and reseed the admin account
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.prompt import Confirm
from rich.table import Table

from data_lifecycle.backup.archive import ArchiveReader
from data_lifecycle.backup.clean import clean
from data_lifecycle.backup.export import prepare_export
from data_lifecycle.backup.restore import restore_archive
from data_lifecycle.config.loader import LifecycleSettings, load_settings
from data_lifecycle.errors import AllEnginesFailedError, LifecycleError
from data_lifecycle.factory import EngineSelector
from data_lifecycle.storage.local import LocalFileStore

console = Console()


# ============================================================================
# Helpers
# ============================================================================


def _settings(args: argparse.Namespace) -> LifecycleSettings:
    config_path = getattr(args, "config", None)
    return load_settings(Path(config_path) if config_path else None)


def _store(args: argparse.Namespace, settings: LifecycleSettings) -> LocalFileStore:
    uploads = getattr(args, "uploads_dir", None)
    return LocalFileStore(Path(uploads) if uploads else settings.uploads_dir)


def _print_error(exc: LifecycleError) -> None:
    console.print(f"[bold red]x[/bold red] {exc.message}")
    if isinstance(exc, AllEnginesFailedError):
        for attempt in exc.attempts:
            console.print(
                f"  [dim]{attempt['engine']}[/dim] ({attempt['kind']}): {attempt['error']}"
            )
    if exc.summary:
        console.print(f"[dim]Partial summary:[/dim] {exc.summary}")


def _counts_table(title: str, counts: dict[str, int], skipped: list[str]) -> Table:
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Table", style="dim")
    table.add_column("Rows", justify="right")
    for name, count in counts.items():
        marker = " [yellow](missing)[/yellow]" if name in skipped else ""
        table.add_row(f"{name}{marker}", str(count))
    return table


def _confirm(args: argparse.Namespace, question: str) -> bool:
    if getattr(args, "yes", False):
        return True
    return Confirm.ask(question, console=console, default=False)


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_export(args: argparse.Namespace) -> int:
    """Async implementation for export command.

    ``--output`` may name a directory (the archive gets its generated
    name) or a ``.zip`` file path.
    """
    settings = _settings(args)
    selector = EngineSelector(settings.engine_config())

    console.print("Reading tables...", style="dim")
    prepared = await prepare_export(selector, _store(args, settings), settings)

    output = Path(args.output)
    target = output if output.suffix.lower() == ".zip" else output / prepared.name
    console.print(f"Writing archive to [cyan]{target}[/cyan]...", style="dim")
    await asyncio.to_thread(prepared.write_to, target)

    metadata = prepared.metadata
    console.print(_counts_table("Exported Tables", metadata.table_counts, []))
    if metadata.images:
        images = metadata.images
        console.print(
            f"  Files: {images.included} included, {images.missing} missing, "
            f"{images.skipped} external, {images.orphaned} orphaned"
        )
    console.print(
        f"[bold green]v[/bold green] Exported {metadata.total_records} records "
        f"from [bold cyan]{metadata.engine}[/bold cyan] to {target}"
    )
    return 0


async def _async_import(args: argparse.Namespace) -> int:
    """Async implementation for import command."""
    settings = _settings(args)
    archive = Path(args.archive)

    if not _confirm(args, f"Restore {archive.name} into the configured store?"):
        console.print("[yellow]Aborted.[/yellow]")
        return 1

    selector = EngineSelector(settings.engine_config())
    console.print("Restoring archive...", style="dim")
    summary = await restore_archive(
        archive, selector, _store(args, settings), settings, mode=args.mode
    )

    console.print(
        _counts_table("Restored Tables", summary.imported_tables, summary.skipped_tables)
    )
    console.print(
        f"  Files: {summary.images.restored} restored, {summary.images.failed} failed, "
        f"{summary.images.missing} missing"
    )
    if not summary.transactional:
        console.print(
            f"[yellow]Restore on {summary.engine} was best-effort "
            f"(no transaction support).[/yellow]"
        )
    console.print(
        f"[bold green]v[/bold green] Restored {summary.total_restored} records into "
        f"[bold cyan]{summary.engine}[/bold cyan] ({summary.mode})"
    )
    return 0


async def _async_clean(args: argparse.Namespace) -> int:
    """Async implementation for clean command."""
    settings = _settings(args)

    if not _confirm(
        args,
        "Delete all operational data (non-admin users included) and reseed the admin account?",
    ):
        console.print("[yellow]Aborted.[/yellow]")
        return 1

    selector = EngineSelector(settings.engine_config())
    console.print("Cleaning store...", style="dim")
    summary = await clean(selector, settings)

    console.print(_counts_table("Deleted Rows", summary.tables, summary.skipped_tables))
    console.print(
        f"[bold green]v[/bold green] Cleaned [bold cyan]{summary.engine}[/bold cyan]; "
        f"admin account {summary.admin_email} reseeded"
    )
    return 0


def _run(coro_fn, args: argparse.Namespace) -> int:
    try:
        return asyncio.run(coro_fn(args))
    except LifecycleError as exc:
        _print_error(exc)
        return 1
    except FileNotFoundError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        return 1


# ============================================================================
# Sync command wrappers (cmd_engines and cmd_verify make no database calls)
# ============================================================================


def cmd_engines(args: argparse.Namespace) -> int:
    """Show engines in priority order and whether each is configured.

    Returns:
        0 if at least one engine is configured, 1 otherwise.
    """
    try:
        settings = _settings(args)
    except FileNotFoundError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        return 1

    selector = EngineSelector(settings.engine_config())
    table = Table(title="Storage Engines", show_header=True, header_style="bold")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Engine")
    table.add_column("Configured")
    table.add_column("Reason", style="dim")

    candidates = selector.ranked()
    for candidate in candidates:
        table.add_row(
            str(candidate.rank),
            f"[bold cyan]{candidate.name}[/bold cyan]",
            "[green]yes[/green]" if candidate.configured else "[red]no[/red]",
            candidate.reason,
        )
    console.print(table)

    if not any(c.configured for c in candidates):
        console.print("[yellow]No storage engine is configured.[/yellow]")
        return 1
    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    """Validate an archive without touching any store."""
    try:
        with ArchiveReader(args.archive) as reader:
            verified = reader.verify()
    except LifecycleError as exc:
        _print_error(exc)
        return 1

    metadata = verified.metadata
    counts = {name: len(rows) for name, rows in verified.dump.items()}
    console.print(_counts_table("Archive Contents", counts, []))
    console.print(f"  Exported at: {metadata.exported_at} (app {metadata.app_version})")
    console.print(f"  Source engine: {metadata.engine}")
    if metadata.images:
        console.print(f"  Files in manifest: {len(metadata.images.manifest)}")
    console.print(f"[bold green]v[/bold green] Checksum OK ({verified.checksum[:12]}...)")
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    """Export a backup archive.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return _run(_async_export, args)


def cmd_import(args: argparse.Namespace) -> int:
    """Restore a backup archive.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return _run(_async_import, args)


def cmd_clean(args: argparse.Namespace) -> int:
    """Clean operational data.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return _run(_async_clean, args)


# ============================================================================
# Main entry point
# ============================================================================


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = argparse.ArgumentParser(
        prog="data-lifecycle",
        description="Export, import and clean the asset-tracking data store",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to lifecycle.toml (default: ./lifecycle.toml if present)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log engine attempts and per-table progress",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # engines command
    p_engines = subparsers.add_parser(
        "engines",
        help="Show configured engines in priority order",
    )
    p_engines.set_defaults(func=cmd_engines)

    # export command
    p_export = subparsers.add_parser(
        "export",
        help="Write a backup archive",
    )
    p_export.add_argument(
        "--output",
        "-o",
        default=".",
        help="Directory or .zip path for the archive (default: current directory)",
    )
    p_export.add_argument(
        "--uploads-dir",
        default=None,
        help="Uploaded files directory (overrides UPLOADS_DIR)",
    )
    p_export.set_defaults(func=cmd_export)

    # verify command
    p_verify = subparsers.add_parser(
        "verify",
        help="Validate an archive's structure and checksum",
    )
    p_verify.add_argument("archive", help="Path to the .zip archive")
    p_verify.set_defaults(func=cmd_verify)

    # import command
    p_import = subparsers.add_parser(
        "import",
        help="Restore an archive",
    )
    p_import.add_argument("archive", help="Path to the .zip archive")
    p_import.add_argument(
        "--mode",
        choices=["upsert", "replace"],
        default=None,
        help="upsert keeps rows absent from the archive; replace deletes them first",
    )
    p_import.add_argument(
        "--uploads-dir",
        default=None,
        help="Uploaded files directory (overrides UPLOADS_DIR)",
    )
    p_import.add_argument(
        "--yes",
        "-y",
        action="store_true",
        help="Skip the confirmation prompt",
    )
    p_import.set_defaults(func=cmd_import)

    # clean command
    p_clean = subparsers.add_parser(
        "clean",
        help="Delete operational data and reseed the admin account",
    )
    p_clean.add_argument(
        "--yes",
        "-y",
        action="store_true",
        help="Skip the confirmation prompt",
    )
    p_clean.set_defaults(func=cmd_clean)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
