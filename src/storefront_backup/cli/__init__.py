"""CLI for storefront database backup and restore.

Usage:
    storefront-backup backup --drive D: --folder nightly
    storefront-backup restore dumps/storefront_backup_2026-01-15T10-00-00-a1b2c3.sql --yes
    storefront-backup list
    storefront-backup download 7 --output ./latest.sql
    storefront-backup delete 7
    storefront-backup scan dumps/backup.sql
    storefront-backup drives
    storefront-backup schedule

Commands:
    backup    - Create a verified backup and record it
    restore   - Restore the database from a dump file (destructive)
    list      - List recorded backups
    download  - Copy a recorded backup file to a local path
    delete    - Delete a backup record (the file is kept)
    scan      - Report critical-table row counts found in a dump file
    drives    - Show candidate backup drives and their free space
    schedule  - Run the automated backup scheduler until interrupted
"""

import argparse
import asyncio
import logging
import shutil
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from storefront_backup.backup.backup import create_backup, inspect_dump, run_automated_backup
from storefront_backup.backup.catalog import delete_backup, list_backups, resolve_download
from storefront_backup.backup.drives import list_drives
from storefront_backup.backup.restore import restore_database, stage_upload
from storefront_backup.backup.scheduler import BackupScheduler
from storefront_backup.config.loader import load_backup_config
from storefront_backup.config.models import BackupConfig
from storefront_backup.errors import BackupError
from storefront_backup.factory import BackupServices, build_services

console = Console()


# ============================================================================
# Helpers
# ============================================================================


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _load_config(args: argparse.Namespace) -> BackupConfig:
    return load_backup_config(args.config)


def _print_error(error: BackupError) -> None:
    console.print(f"[bold red]x[/bold red] {error.message}")
    if error.details:
        console.print(f"  [dim]{error.details}[/dim]")


async def _with_services(args: argparse.Namespace, handler) -> int:
    """Run ``handler(services)`` and translate ``BackupError`` into exit 1."""
    try:
        config = _load_config(args)
    except FileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    services: BackupServices = build_services(config)
    try:
        return await handler(services)
    except BackupError as e:
        _print_error(e)
        return 1
    finally:
        await services.close()


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_backup(args: argparse.Namespace) -> int:
    async def handler(services: BackupServices) -> int:
        await services.store.ensure_table()
        console.print("Creating backup...", style="dim")
        result = await create_backup(
            services.client,
            services.runner,
            services.store,
            services.config,
            drive=args.drive,
            folder_path=args.folder,
            created_by=args.created_by,
        )

        table = Table(title="Backup Created", show_header=False)
        table.add_column("Key", style="dim")
        table.add_column("Value")
        table.add_row("File", result.backup.file_path)
        table.add_row("Size", f"{result.backup.file_size} bytes")
        snap = result.snapshot
        table.add_row("Users", f"{snap.users_rows_in_dump} ({snap.non_admin_users} non-admin)")
        table.add_row("Orders", str(snap.orders_rows_in_dump))
        table.add_row("Order items", str(snap.order_items_rows_in_dump))
        console.print(table)
        console.print("[bold green]v[/bold green] Backup completed")
        return 0

    return await _with_services(args, handler)


async def _async_restore(args: argparse.Namespace) -> int:
    async def handler(services: BackupServices) -> int:
        upload = stage_upload(args.file, services.config.max_upload_bytes)
        console.print(f"Restoring from {args.file}...", style="dim")
        report = await restore_database(
            services.client, services.runner, services.config, upload
        )
        v = report.verification

        table = Table(title="Restore Verification", show_header=True, header_style="bold")
        table.add_column("Table", style="dim")
        table.add_column("In backup", justify="right")
        table.add_column("Restored", justify="right")
        for name, expected, actual in (
            ("users", v.expected_users_from_backup, v.users_count),
            ("orders", v.expected_orders_from_backup, v.orders_count),
            ("order_items", v.expected_order_items_from_backup, v.order_items_count),
        ):
            table.add_row(name, "?" if expected is None else str(expected), str(actual))
        console.print(table)
        console.print(
            f"  Method: [cyan]{v.restore_method}[/cyan]  "
            f"Skipped statements: {v.skipped_statements}"
        )
        for warning in v.warnings:
            console.print(f"  [yellow]![/yellow] {warning}")
        console.print(f"[bold green]v[/bold green] {report.message}")
        return 0

    return await _with_services(args, handler)


async def _async_list(args: argparse.Namespace) -> int:
    async def handler(services: BackupServices) -> int:
        await services.store.ensure_table()
        listings = await list_backups(services.store)
        if not listings:
            console.print("[yellow]No backups recorded.[/yellow]")
            return 0

        table = Table(title="Backups", show_header=True, header_style="bold")
        table.add_column("ID", justify="right")
        table.add_column("Filename")
        table.add_column("Size", justify="right")
        table.add_column("Status")
        table.add_column("Created by")
        table.add_column("Created at")
        for item in listings:
            status = (
                "[green]completed[/green]"
                if item.can_download
                else f"[red]{item.status}[/red]"
            )
            table.add_row(
                str(item.id),
                item.filename,
                item.file_size,
                status,
                item.created_by or "",
                item.created_at.isoformat(sep=" ", timespec="seconds") if item.created_at else "",
            )
        console.print(table)
        return 0

    return await _with_services(args, handler)


async def _async_download(args: argparse.Namespace) -> int:
    async def handler(services: BackupServices) -> int:
        source, filename = await resolve_download(services.store, args.id)
        target = Path(args.output)
        if target.is_dir():
            target = target / filename
        shutil.copyfile(source, target)
        console.print(f"[bold green]v[/bold green] Saved {filename} to {target}")
        return 0

    return await _with_services(args, handler)


async def _async_delete(args: argparse.Namespace) -> int:
    async def handler(services: BackupServices) -> int:
        record = await delete_backup(services.store, args.id)
        console.print(
            f"[bold green]v[/bold green] Backup record {record.id} deleted "
            f"[dim](file kept at {record.file_path})[/dim]"
        )
        return 0

    return await _with_services(args, handler)


async def _async_schedule(args: argparse.Namespace) -> int:
    async def handler(services: BackupServices) -> int:
        if not services.config.scheduler.enabled:
            console.print("[yellow]Automated backups are disabled.[/yellow]")
            console.print("[dim]Set AUTO_BACKUP_ENABLED=true to enable them.[/dim]")
            return 1

        await services.store.ensure_table()
        scheduler = BackupScheduler.from_settings(
            services.config.scheduler,
            job=lambda: run_automated_backup(
                services.client, services.runner, services.store, services.config
            ),
        )
        await scheduler.start()
        try:
            await asyncio.Event().wait()
        finally:
            await scheduler.stop()
        return 0

    return await _with_services(args, handler)


# ============================================================================
# Sync command wrappers
# ============================================================================


def cmd_backup(args: argparse.Namespace) -> int:
    """Create a backup.  Wraps the async implementation with ``asyncio.run()``."""
    return asyncio.run(_async_backup(args))


def cmd_restore(args: argparse.Namespace) -> int:
    """Restore the database from a dump file after confirmation."""
    if not args.yes:
        console.print(f"[bold yellow]![/bold yellow] This will ERASE the current database and restore from: {args.file}")
        response = console.input("Continue? [y/N] ")
        if response.strip().lower() not in ["y", "yes"]:
            console.print("Cancelled.")
            return 0
    return asyncio.run(_async_restore(args))


def cmd_list(args: argparse.Namespace) -> int:
    """List recorded backups."""
    return asyncio.run(_async_list(args))


def cmd_download(args: argparse.Namespace) -> int:
    """Copy a recorded backup file to a local path."""
    return asyncio.run(_async_download(args))


def cmd_delete(args: argparse.Namespace) -> int:
    """Delete a backup record."""
    return asyncio.run(_async_delete(args))


def cmd_scan(args: argparse.Namespace) -> int:
    """Report critical-table row counts in a dump file.

    Reads only the local file -- no database calls.

    Returns:
        0 when every table is present and consistent, 1 otherwise.
    """
    try:
        config = _load_config(args)
        report = inspect_dump(args.file, list(config.critical_tables))
    except FileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1
    except BackupError as e:
        _print_error(e)
        return 1

    table = Table(title=f"Dump: {report.path}", show_header=True, header_style="bold")
    table.add_column("Table", style="dim")
    table.add_column("Count", justify="right")
    table.add_column("Marker", justify="right")
    table.add_column("Block rows", justify="right")
    for t in report.tables:
        table.add_row(
            t.table,
            "unknown" if t.count is None else str(t.count),
            "" if t.marker is None else str(t.marker),
            "" if t.block_rows is None else str(t.block_rows),
        )
    console.print(table)
    for warning in report.warnings:
        console.print(f"  [yellow]![/yellow] {warning}")
    return 1 if report.warnings else 0


def cmd_drives(args: argparse.Namespace) -> int:
    """Show candidate backup drives and their free space (no database calls)."""
    try:
        drives = list_drives()
    except BackupError as e:
        _print_error(e)
        return 1

    table = Table(title="Drives", show_header=True, header_style="bold")
    table.add_column("Drive")
    table.add_column("Free (GB)", justify="right")
    table.add_column("Used (GB)", justify="right")
    table.add_column("Total (GB)", justify="right")
    for drive in drives:
        table.add_row(drive.name, drive.free_space_gb, drive.used_space_gb, drive.total_space_gb)
    console.print(table)
    return 0


def cmd_schedule(args: argparse.Namespace) -> int:
    """Run the automated backup scheduler until interrupted."""
    try:
        return asyncio.run(_async_schedule(args))
    except KeyboardInterrupt:
        console.print("Scheduler stopped.")
        return 0


# ============================================================================
# Main entry point
# ============================================================================


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = argparse.ArgumentParser(
        prog="storefront-backup",
        description="Storefront database backup and restore",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to backup.toml (default: ./backup.toml if present)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # backup command
    p_backup = subparsers.add_parser("backup", help="Create a verified backup")
    p_backup.add_argument("--drive", default=None, help="Drive root (required on Windows without BACKUP_DIR)")
    p_backup.add_argument("--folder", default=None, help="Sub-folder under the backup root")
    p_backup.add_argument("--created-by", type=int, default=None, help="User id recorded as creator")
    p_backup.set_defaults(func=cmd_backup)

    # restore command
    p_restore = subparsers.add_parser("restore", help="Restore the database from a dump file")
    p_restore.add_argument("file", help="Path to a .sql dump")
    p_restore.add_argument("--yes", "-y", action="store_true", help="Skip confirmation prompt")
    p_restore.set_defaults(func=cmd_restore)

    # list command
    p_list = subparsers.add_parser("list", help="List recorded backups")
    p_list.set_defaults(func=cmd_list)

    # download command
    p_download = subparsers.add_parser("download", help="Copy a backup file to a local path")
    p_download.add_argument("id", type=int, help="Backup id")
    p_download.add_argument("--output", "-o", required=True, help="Destination file or directory")
    p_download.set_defaults(func=cmd_download)

    # delete command
    p_delete = subparsers.add_parser("delete", help="Delete a backup record (file is kept)")
    p_delete.add_argument("id", type=int, help="Backup id")
    p_delete.set_defaults(func=cmd_delete)

    # scan command
    p_scan = subparsers.add_parser("scan", help="Report row counts found in a dump file")
    p_scan.add_argument("file", help="Path to a .sql dump")
    p_scan.set_defaults(func=cmd_scan)

    # drives command
    p_drives = subparsers.add_parser("drives", help="Show backup drives and free space")
    p_drives.set_defaults(func=cmd_drives)

    # schedule command
    p_schedule = subparsers.add_parser("schedule", help="Run automated backups until interrupted")
    p_schedule.set_defaults(func=cmd_schedule)

    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
