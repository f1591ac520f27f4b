"""Backup catalog: listing, download resolution, and metadata deletion.

Usage:
    from storefront_backup.backup.catalog import list_backups, resolve_download

    for item in await list_backups(store):
        print(item.filename, item.file_size, item.can_download)

    path, filename = await resolve_download(store, 7)
"""

import logging
from pathlib import Path

from storefront_backup.backup.models import BackupListing, BackupRecord
from storefront_backup.backup.store import BackupRecordStore
from storefront_backup.errors import BackupFileMissingError, BackupNotFoundError

logger = logging.getLogger(__name__)

_UNITS = ["KB", "MB", "GB"]


def format_size(size_bytes: int) -> str:
    """Human-readable size: ``"512 B"``, ``"1.50 KB"``, ``"2.00 MB"``, ``"3.25 GB"``."""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    value = float(size_bytes)
    unit = "B"
    for unit in _UNITS:
        value /= 1024
        if value < 1024 or unit == _UNITS[-1]:
            break
    return f"{value:.2f} {unit}"


def to_listing(record: BackupRecord) -> BackupListing:
    return BackupListing(
        id=record.id,
        filename=record.filename,
        file_path=record.file_path,
        drive=record.drive,
        file_size=format_size(record.file_size),
        file_size_mb=f"{record.file_size / 1024 ** 2:.2f}",
        status=record.status,
        can_download=record.status == "completed",
        created_by=record.created_by_name,
        created_at=record.created_at,
        error_message=record.error_message,
    )


async def list_backups(store: BackupRecordStore) -> list[BackupListing]:
    """Return all backup records, newest first, formatted for display."""
    return [to_listing(r) for r in await store.list()]


async def resolve_download(store: BackupRecordStore, backup_id: int) -> tuple[Path, str]:
    """Return the on-disk path and download filename for a backup.

    Raises:
        BackupNotFoundError: No record with ``backup_id``.
        BackupFileMissingError: The recorded file no longer exists.
    """
    record = await store.get(backup_id)
    if record is None:
        raise BackupNotFoundError(f"Backup not found: {backup_id}")

    path = Path(record.file_path) if record.file_path else None
    if path is None or not path.is_file():
        raise BackupFileMissingError(
            "Backup file is not available on server storage.",
            details="Create a new backup and download it immediately.",
        )

    return path, record.filename or f"backup-{record.id}.sql"


async def delete_backup(store: BackupRecordStore, backup_id: int) -> BackupRecord:
    """Delete a backup's metadata record.  The dump file is left in place.

    Raises:
        BackupNotFoundError: No record with ``backup_id``.
    """
    record = await store.delete(backup_id)
    if record is None:
        raise BackupNotFoundError(f"Backup not found: {backup_id}")
    logger.info(f"Deleted backup record {backup_id} ({record.filename}); file kept")
    return record
