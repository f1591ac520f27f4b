"""Backup and restore orchestration.

Usage:
    from storefront_backup.backup import create_backup, restore_database
    from storefront_backup.backup import list_backups, resolve_download, delete_backup, list_drives
    from storefront_backup.backup import BackupRecordStore, BackupScheduler
"""

from storefront_backup.backup.backup import create_backup, inspect_dump, run_automated_backup
from storefront_backup.backup.catalog import (
    delete_backup,
    format_size,
    list_backups,
    resolve_download,
)
from storefront_backup.backup.drives import list_drives
from storefront_backup.backup.models import (
    BackupListing,
    BackupRecord,
    BackupResult,
    BackupSnapshot,
    DriveInfo,
    RestoreReport,
    RestoreVerification,
)
from storefront_backup.backup.restore import (
    classify_native_failure,
    restore_database,
    stage_upload,
)
from storefront_backup.backup.scheduler import BackupScheduler
from storefront_backup.backup.store import BackupRecordStore

__all__ = [
    # Orchestrators
    "create_backup",
    "run_automated_backup",
    "restore_database",
    "stage_upload",
    "classify_native_failure",
    "inspect_dump",
    # Catalog
    "list_backups",
    "resolve_download",
    "delete_backup",
    "format_size",
    "list_drives",
    # Store / scheduler
    "BackupRecordStore",
    "BackupScheduler",
    # Models
    "BackupRecord",
    "BackupListing",
    "BackupResult",
    "BackupSnapshot",
    "DriveInfo",
    "RestoreReport",
    "RestoreVerification",
]
