"""Backup orchestration: dump the live database into a verified plain SQL file.

Each backup runs these steps in order:

1. Resolve (and create) the target directory.
2. Pick a timestamped, collision-resistant filename.
3. Snapshot live row counts for the critical tables.
4. Run ``pg_dump`` in plain format.
5. Re-read every critical table and append a marker comment plus an
   upsert block per table.
6. Verify the file against the fetched rows.
7. Persist a ``completed`` record, or a ``failed`` record with the error
   message before re-raising.

Usage:
    from storefront_backup.backup.backup import create_backup

    result = await create_backup(
        adapter, AsyncProcessRunner(), BackupRecordStore(adapter), config,
        drive="/", folder_path="nightly", created_by=1,
    )
    print(result.backup.filename, result.snapshot.users_rows_in_dump)
"""

import logging
import secrets
import sys
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from storefront_backup.adapters.base import DatabaseClient, ProcessRunner
from storefront_backup.adapters.process import resolve_tool
from storefront_backup.backup.models import (
    BackupResult,
    BackupSnapshot,
    DumpInspection,
    TableInspection,
)
from storefront_backup.backup.native import pg_dump_command, tool_env
from storefront_backup.backup.store import BackupRecordStore
from storefront_backup.config.models import BackupConfig
from storefront_backup.dump.scanner import DumpScanner
from storefront_backup.dump.statements import qualify_table
from storefront_backup.dump.upsert import generate_upsert_block
from storefront_backup.errors import (
    BackupIOError,
    ConfigurationError,
    ToolExecutionError,
    ToolNotFoundError,
    VerificationMismatch,
)

logger = logging.getLogger(__name__)

USERS_TABLE = "users"
FILENAME_PREFIX = "storefront_backup"

PG_DUMP_MISSING_MESSAGE = (
    "pg_dump executable not found. Set PG_DUMP_PATH to the full path of pg_dump "
    "(e.g., C:/Program Files/PostgreSQL/16/bin/pg_dump.exe or /usr/lib/postgresql/16/bin/pg_dump)."
)
PG_DUMP_MISSING_DETAILS = (
    "Install the PostgreSQL client tools and point PG_DUMP_PATH to pg_dump, "
    "or add the PostgreSQL bin directory to your system PATH."
)


# ------------------------------------------------------------------
# Target resolution
# ------------------------------------------------------------------


@dataclass
class BackupTarget:
    """Where a backup is written and the drive label recorded for it."""

    directory: Path
    drive_label: str


def resolve_backup_target(
    config: BackupConfig,
    drive: str | None = None,
    folder_path: str | None = None,
    platform: str = sys.platform,
) -> BackupTarget:
    """Resolve the backup directory without creating it.

    Root: ``config.backup_dir``, else ``<drive>\\`` on Windows (a drive is
    then required), else the system temp directory.  Sub-folder: the given
    ``folder_path`` or ``config.default_folder``.

    Raises:
        ConfigurationError: On Windows when neither a drive nor
            ``backup_dir`` is given.
    """
    drive_input = (drive or "").strip()
    env_root = (config.backup_dir or "").strip()
    folder = (folder_path or "").strip()
    is_windows = platform == "win32"

    if is_windows:
        if not drive_input and not env_root:
            raise ConfigurationError(
                "Drive is required on Windows",
                details="Pass a drive (e.g., D:) or set BACKUP_DIR.",
            )
        root = env_root or f"{drive_input}\\"
    else:
        root = env_root or tempfile.gettempdir()

    directory = Path(root) / (folder or config.default_folder)
    return BackupTarget(directory=directory, drive_label=drive_input or root)


def make_backup_filename(now: datetime | None = None) -> str:
    """Timestamped filename with a random suffix, e.g.
    ``storefront_backup_2026-01-15T10-00-00-a1b2c3.sql``.
    """
    now = now or datetime.now(timezone.utc)
    stamp = now.strftime("%Y-%m-%dT%H-%M-%S")
    return f"{FILENAME_PREFIX}_{stamp}-{secrets.token_hex(3)}.sql"


# ------------------------------------------------------------------
# Live counts
# ------------------------------------------------------------------


async def snapshot_user_counts(client: DatabaseClient) -> tuple[int, int]:
    """Return ``(users_total, non_admin_users)`` from the live database.

    A failing count query is logged and reported as zero.
    """
    try:
        rows = await client.fetch(
            "SELECT COUNT(*)::int AS users_total, "
            "COUNT(*) FILTER (WHERE role <> 'admin')::int AS non_admin_users "
            "FROM users"
        )
    except Exception as e:
        logger.warning(f"Backup user count failed: {e}")
        return 0, 0
    row = rows[0] if rows else {}
    return int(row.get("users_total") or 0), int(row.get("non_admin_users") or 0)


async def fetch_table_rows(
    client: DatabaseClient,
    table: str,
    schema: str = "public",
) -> list[dict]:
    """Fetch every row of ``table`` ordered by primary key."""
    return await client.select(qualify_table(table, schema), "*", order_by="id ASC")


def append_upsert_blocks(path: Path, rows_by_table: dict[str, list[dict]], schema: str) -> None:
    """Append a marker comment and upsert block per table to the dump."""
    with open(path, "a", encoding="utf-8", newline="\n") as f:
        for table, rows in rows_by_table.items():
            f.write(generate_upsert_block(table, rows, schema))


def verify_backup(
    path: Path,
    rows_by_table: dict[str, list[dict]],
    users_total: int,
) -> dict[str, int | None]:
    """Check the written file against the fetched rows.

    ``users`` is checked in memory against the pre-dump snapshot; every
    other table is scanned from the file.  A table the scanner cannot find
    is not checked.

    Returns:
        Row count per table as found in the dump.

    Raises:
        VerificationMismatch: If any table falls short.
    """
    dump_counts: dict[str, int | None] = {}
    scanned_tables = [t for t in rows_by_table if t != USERS_TABLE]
    scanned = DumpScanner(path).count_many(scanned_tables) if scanned_tables else {}

    for table, rows in rows_by_table.items():
        if table == USERS_TABLE:
            if len(rows) < users_total:
                raise VerificationMismatch(table, users_total, len(rows))
            dump_counts[table] = len(rows)
            continue

        in_dump = scanned.get(table)
        if in_dump is not None and in_dump < len(rows):
            raise VerificationMismatch(table, len(rows), in_dump)
        dump_counts[table] = in_dump

    return dump_counts


# ------------------------------------------------------------------
# Orchestrator
# ------------------------------------------------------------------


async def create_backup(
    client: DatabaseClient,
    runner: ProcessRunner,
    store: BackupRecordStore,
    config: BackupConfig,
    drive: str | None = None,
    folder_path: str | None = None,
    created_by: int | None = None,
) -> BackupResult:
    """Create a verified plain-SQL backup and record it.

    Args:
        client: Query interface against the live database.
        runner: External-process interface used to run ``pg_dump``.
        store: Backup metadata store.
        config: Backup configuration.
        drive: Drive label / Windows drive root (optional elsewhere).
        folder_path: Sub-folder under the backup root (default:
            ``config.default_folder``).
        created_by: Id of the user who triggered the backup, if any.

    Returns:
        ``BackupResult`` with the persisted record and the count snapshot.

    Raises:
        ConfigurationError: Backup root or tool path cannot be resolved.
        BackupIOError: Directory or file cannot be created or read.
        ToolNotFoundError: ``pg_dump`` is missing (``details`` carries the
            remediation hint).
        ToolExecutionError: ``pg_dump`` exits non-zero.
        VerificationMismatch: The written file holds fewer rows than the
            database.
    """
    filename = make_backup_filename()
    file_path = Path(filename)
    drive_label = (drive or "").strip() or None
    tables = list(config.critical_tables)
    schema = config.database.schema_name

    try:
        target = resolve_backup_target(config, drive, folder_path)
        file_path = target.directory / filename
        drive_label = target.drive_label

        try:
            target.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BackupIOError(f"Failed to create backup directory: {e}") from e

        users_total, non_admin_users = 0, 0
        if USERS_TABLE in tables:
            users_total, non_admin_users = await snapshot_user_counts(client)

        executable = resolve_tool("pg_dump", config.tools.pg_dump_path)
        logger.info(f"Starting database backup to {file_path}")
        result = await runner.run(
            pg_dump_command(executable, config.database, file_path),
            env=tool_env(config.database),
        )
        if result.exit_code != 0:
            raise ToolExecutionError(
                f"Database backup failed: {result.output.strip()}",
                details="Make sure the PostgreSQL bin directory is in your system PATH.",
                exit_code=result.exit_code,
                output=result.output,
            )

        rows_by_table = {t: await fetch_table_rows(client, t, schema) for t in tables}

        try:
            append_upsert_blocks(file_path, rows_by_table, schema)
            file_size = file_path.stat().st_size
        except OSError as e:
            raise BackupIOError(f"Failed to write backup file: {e}") from e

        dump_counts = verify_backup(file_path, rows_by_table, users_total)
    except Exception as e:
        logger.error(f"Backup {filename} failed: {e}")
        await _record_failure(store, filename, file_path, drive_label, created_by, e)
        if isinstance(e, ToolNotFoundError):
            raise ToolNotFoundError(
                PG_DUMP_MISSING_MESSAGE,
                details=PG_DUMP_MISSING_DETAILS,
                output=e.output,
            ) from e
        raise

    record = await store.create(
        filename=filename,
        file_path=str(file_path),
        drive=drive_label,
        file_size=file_size,
        status="completed",
        created_by=created_by,
    )

    snapshot = BackupSnapshot(
        users_total=users_total,
        non_admin_users=non_admin_users,
        users_rows_in_dump=dump_counts.get(USERS_TABLE) or 0,
        orders_total=len(rows_by_table.get("orders", [])),
        order_items_total=len(rows_by_table.get("order_items", [])),
        orders_rows_in_dump=dump_counts.get("orders") or 0,
        order_items_rows_in_dump=dump_counts.get("order_items") or 0,
    )
    logger.info(f"Backup completed: {filename} ({file_size} bytes)")
    return BackupResult(backup=record, snapshot=snapshot)


async def _record_failure(
    store: BackupRecordStore,
    filename: str,
    file_path: Path,
    drive_label: str | None,
    created_by: int | None,
    error: Exception,
) -> None:
    """Persist a ``failed`` record; a store error is logged, not raised."""
    try:
        await store.create(
            filename=filename,
            file_path=str(file_path),
            drive=drive_label,
            file_size=0,
            status="failed",
            created_by=created_by,
            error_message=str(error),
        )
    except Exception as store_error:
        logger.error(f"Could not record failed backup {filename}: {store_error}")


async def run_automated_backup(
    client: DatabaseClient,
    runner: ProcessRunner,
    store: BackupRecordStore,
    config: BackupConfig,
) -> BackupResult:
    """Run an unattended backup to the scheduler's default drive and folder."""
    return await create_backup(
        client,
        runner,
        store,
        config,
        drive=config.scheduler.drive,
        folder_path=config.scheduler.folder,
        created_by=None,
    )


# ------------------------------------------------------------------
# Inspection (sync -- local file read only)
# ------------------------------------------------------------------


def inspect_dump(path: str | Path, tables: list[str]) -> DumpInspection:
    """Report marker-aware and raw block counts for ``tables`` in a dump.

    Example:
        report = inspect_dump("backup.sql", ["users", "orders"])
        for t in report.tables:
            print(t.table, t.count, t.marker, t.block_rows)
    """
    path = Path(path)
    try:
        size = path.stat().st_size
    except OSError as e:
        raise BackupIOError(f"Cannot read dump file {path}: {e}") from e

    scans = DumpScanner(path).scan(tables)
    report = DumpInspection(path=str(path), size_bytes=size)

    for table, scan in scans.items():
        report.tables.append(
            TableInspection(
                table=table,
                count=scan.count,
                marker=scan.marker,
                block_rows=scan.block_rows if scan.block_found else None,
                block_terminated=scan.block_terminated,
            )
        )
        if scan.count is None:
            report.warnings.append(f"{table}: not present in dump")
            continue
        if scan.block_found and not scan.block_terminated:
            report.warnings.append(f"{table}: bulk-load block is not terminated")
        if scan.marker is not None and scan.block_found and scan.marker != scan.block_rows:
            report.warnings.append(
                f"{table}: marker reports {scan.marker} rows, bulk-load block has {scan.block_rows}"
            )

    return report
