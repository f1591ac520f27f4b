"""storefront-backup: verifiable backup and resilient restore for the storefront database.

Creates plain-SQL dumps with redundant, marker-counted upsert blocks for
critical tables, and restores them with ``psql`` or, when that is missing or
fails, a statement-by-statement fallback executor.

Usage:
    from storefront_backup import load_backup_config, build_services
    from storefront_backup import create_backup, restore_database
    from storefront_backup import DumpScanner, split_statements
"""

__version__ = "0.1.0"

# Adapters
from storefront_backup.adapters.base import DatabaseClient, ProcessResult, ProcessRunner
from storefront_backup.adapters.postgres import AsyncPostgresAdapter
from storefront_backup.adapters.process import AsyncProcessRunner

# Config
from storefront_backup.config.loader import load_backup_config
from storefront_backup.config.models import BackupConfig

# Factory
from storefront_backup.factory import BackupServices, build_services, create_adapter

# Dump handling
from storefront_backup.dump import (
    DumpScanner,
    InsertStatement,
    decode_copy_field,
    encode_literal,
    generate_upsert_block,
    split_statements,
    transform_dump,
)

# Orchestration
from storefront_backup.backup import (
    BackupRecordStore,
    BackupScheduler,
    create_backup,
    delete_backup,
    list_backups,
    resolve_download,
    restore_database,
    run_automated_backup,
)

# Errors
from storefront_backup.errors import BackupError

__all__ = [
    # Adapters
    "DatabaseClient",
    "ProcessRunner",
    "ProcessResult",
    "AsyncPostgresAdapter",
    "AsyncProcessRunner",
    # Config
    "load_backup_config",
    "BackupConfig",
    # Factory
    "build_services",
    "create_adapter",
    "BackupServices",
    # Dump handling
    "DumpScanner",
    "InsertStatement",
    "encode_literal",
    "decode_copy_field",
    "generate_upsert_block",
    "split_statements",
    "transform_dump",
    # Orchestration
    "create_backup",
    "run_automated_backup",
    "restore_database",
    "list_backups",
    "resolve_download",
    "delete_backup",
    "BackupRecordStore",
    "BackupScheduler",
    # Errors
    "BackupError",
]
