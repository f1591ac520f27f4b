"""Restore orchestration: rebuild the live database from an uploaded dump.

The restore is an ordered pipeline of stages:

1. Validate the upload and pre-scan it for expected critical-table counts
   (before anything is mutated).
2. Destructively reset the target schema.
3. Restore with ``psql`` (``ON_ERROR_STOP=1``).  A failure is classified:

   - tool missing -> reset again, then fallback execution;
   - benign permission/role error -> reset again, then one tolerant ``psql``
     retry (``ON_ERROR_STOP=0``);
   - anything else -> reset again, then fallback execution.

4. Fallback execution: transform bulk-load blocks into INSERTs, split the
   script, and run statements one at a time (each commits on its own).
5. Post-restore repair (schema, sequences, admin accounts).
6. Verify live counts against the pre-scan; shortfalls are warnings.

The uploaded file is deleted on every exit path.

Usage:
    from storefront_backup.backup.restore import restore_database

    report = await restore_database(adapter, AsyncProcessRunner(), config, upload_path)
    print(report.verification.restore_method, report.verification.skipped_statements)
"""

import logging
import re
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from storefront_backup.adapters.base import DatabaseClient, ProcessRunner
from storefront_backup.adapters.process import resolve_tool
from storefront_backup.backup.models import RestoreMethod, RestoreReport, RestoreVerification
from storefront_backup.backup.native import psql_command, tool_env
from storefront_backup.backup.repair import run_post_restore_repair
from storefront_backup.config.models import BackupConfig
from storefront_backup.dump.scanner import DumpScanner
from storefront_backup.dump.splitter import split_statements
from storefront_backup.dump.statements import qualify_table, quote_identifier_if_needed
from storefront_backup.dump.transformer import transform_dump
from storefront_backup.errors import (
    BackupIOError,
    BenignPermissionError,
    ConfigurationError,
    InvalidUploadError,
    SchemaResetError,
    StatementExecutionError,
    ToolNotFoundError,
)

logger = logging.getLogger(__name__)

RecoveryAction = Literal["fallback_missing_tool", "tolerant_retry", "fallback"]

TOOL_MISSING_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"command not found",
        r"is not recognized as an internal or external command",
        r"\bENOENT\b",
    )
]

BENIGN_PERMISSION_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"must be owner of",
        r"permission denied",
        r'role "[^"]*" does not exist',
        r"must be member of role",
        r"must be superuser",
    )
]

INERT_STATEMENT_PATTERNS = [
    re.compile(r"^\s*ALTER\s+DEFAULT\s+PRIVILEGES\b", re.IGNORECASE),
    re.compile(r"^\s*COMMENT\s+ON\s+EXTENSION\b", re.IGNORECASE),
    re.compile(r"^\s*SELECT\s+pg_catalog\.set_config\(\s*'search_path'", re.IGNORECASE),
]

_ERROR_LINE_RE = re.compile(r"(^|:\s)ERROR:", re.MULTILINE)

USERS_TABLE = "users"
NO_NON_ADMIN_USERS_WARNING = "Backup file has no non-admin users to restore."


# ============================================================================
# Classification (pure)
# ============================================================================


def is_tool_missing_error(text: str) -> bool:
    """True if ``text`` reports a missing executable."""
    return any(p.search(text or "") for p in TOOL_MISSING_PATTERNS)


def is_benign_permission_error(text: str) -> bool:
    """True if ``text`` is a privilege/role error that is safe to skip."""
    return any(p.search(text or "") for p in BENIGN_PERMISSION_PATTERNS)


def is_inert_statement(statement: str) -> bool:
    """True for statements the fallback skips without executing."""
    return any(p.match(statement) for p in INERT_STATEMENT_PATTERNS)


def classify_native_failure(error_text: str, tool_missing: bool = False) -> RecoveryAction:
    """Map a native-restore failure to its recovery action.

    Example:
        classify_native_failure("psql: command not found")
        # 'fallback_missing_tool'
        classify_native_failure('ERROR:  must be owner of schema public')
        # 'tolerant_retry'
    """
    if tool_missing or is_tool_missing_error(error_text):
        return "fallback_missing_tool"
    if is_benign_permission_error(error_text):
        return "tolerant_retry"
    return "fallback"


def count_error_lines(output: str) -> int:
    """Number of ``ERROR:`` reports in ``psql`` output."""
    return len(_ERROR_LINE_RE.findall(output or ""))


# ============================================================================
# Stage results
# ============================================================================


@dataclass
class StageResult:
    """Outcome of one restore stage.

    Attributes:
        ok: Stage succeeded; later restore stages are not needed.
        method: Restore method to report when ``ok``.
        skipped: Statements skipped by this stage.
        action: Recovery action chosen when the stage failed.
        error: Failure output, if any.
    """

    ok: bool
    method: RestoreMethod | None = None
    skipped: int = 0
    action: RecoveryAction | None = None
    error: str | None = None


@dataclass
class RestoreContext:
    """State threaded through the restore pipeline."""

    path: Path
    expected: dict[str, int | None]
    method: RestoreMethod = "native"
    skipped: int = 0
    warnings: list[str] = field(default_factory=list)


# ============================================================================
# Upload handling
# ============================================================================


def validate_upload(path: Path, max_bytes: int) -> None:
    """Check that an uploaded dump exists, is ``.sql``, and is within the cap.

    Raises:
        InvalidUploadError: If any check fails.
    """
    if not path.is_file():
        raise InvalidUploadError(f"No file uploaded: {path}")
    if path.suffix.lower() != ".sql":
        raise InvalidUploadError(
            "Only .sql files are allowed", details=f"Received {path.name}"
        )
    size = path.stat().st_size
    if size > max_bytes:
        raise InvalidUploadError(
            f"Uploaded file is too large ({size} bytes)",
            details=f"The limit is {max_bytes} bytes.",
        )


def stage_upload(source: str | Path, max_bytes: int, upload_dir: str | Path | None = None) -> Path:
    """Copy a dump into a temporary upload file that a restore may delete.

    Returns:
        Path of the temporary copy.
    """
    source = Path(source)
    validate_upload(source, max_bytes)
    directory = Path(upload_dir) if upload_dir else Path(tempfile.gettempdir())
    try:
        directory.mkdir(parents=True, exist_ok=True)
        handle = tempfile.NamedTemporaryFile(
            prefix="restore_", suffix=".sql", dir=directory, delete=False
        )
        with handle, open(source, "rb") as src:
            shutil.copyfileobj(src, handle)
    except OSError as e:
        raise BackupIOError(f"Failed to stage upload {source}: {e}") from e
    return Path(handle.name)


def _discard_upload(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Could not delete uploaded file {path}: {e}")


# ============================================================================
# Stages
# ============================================================================


async def reset_schema(client: DatabaseClient, schema: str = "public") -> None:
    """Drop and recreate ``schema``.  Irreversible.

    Raises:
        SchemaResetError: If either statement fails.
    """
    name = quote_identifier_if_needed(schema)
    try:
        await client.execute_raw(f"DROP SCHEMA IF EXISTS {name} CASCADE")
        await client.execute_raw(f"CREATE SCHEMA {name}")
    except Exception as e:
        raise SchemaResetError(f"Schema reset failed: {e}") from e
    logger.info(f"Schema {schema} reset")


async def run_native_restore(
    runner: ProcessRunner,
    config: BackupConfig,
    path: Path,
    tolerant: bool = False,
) -> StageResult:
    """Run ``psql`` against the dump and classify any failure."""
    try:
        executable = resolve_tool("psql", config.tools.psql_path)
        result = await runner.run(
            psql_command(executable, config.database, path, stop_on_error=not tolerant),
            env=tool_env(config.database),
        )
    except (ToolNotFoundError, ConfigurationError) as e:
        logger.warning(f"psql unavailable: {e}")
        return StageResult(ok=False, action="fallback_missing_tool", error=str(e))

    if tolerant:
        if result.exit_code != 0:
            return StageResult(ok=False, action="fallback", error=result.output)
        return StageResult(
            ok=True,
            method="native_tolerant",
            skipped=count_error_lines(result.stderr),
            error=result.stderr or None,
        )

    if result.exit_code == 0:
        return StageResult(ok=True, method="native")
    return StageResult(
        ok=False,
        action=classify_native_failure(result.output),
        error=result.output,
    )


@dataclass
class FallbackResult:
    """Counts from a fallback execution."""

    executed: int = 0
    skipped_inert: int = 0
    skipped_benign: int = 0

    @property
    def skipped(self) -> int:
        return self.skipped_inert + self.skipped_benign


async def execute_statement(client: DatabaseClient, statement: str) -> None:
    """Execute one dump statement, classifying a failure.

    Raises:
        BenignPermissionError: For a privilege/role error that is safe to skip.
        StatementExecutionError: For any other failure.
    """
    try:
        await client.execute_raw(statement)
    except Exception as e:
        if is_benign_permission_error(str(e)):
            raise BenignPermissionError(str(e)) from e
        raise StatementExecutionError(f"Fallback restore failed: {e}", statement=statement) from e


async def execute_fallback(client: DatabaseClient, path: Path) -> FallbackResult:
    """Execute a dump statement by statement through the query interface.

    Each statement commits independently; a non-benign failure leaves the
    earlier statements applied.

    Raises:
        StatementExecutionError: On the first statement failing with an
            error that is not a benign permission/role error.
    """
    try:
        with open(path, "r", encoding="utf-8", newline="") as f:
            script = f.read()
    except OSError as e:
        raise BackupIOError(f"Cannot read dump file {path}: {e}") from e

    statements = split_statements(transform_dump(script))
    logger.info(f"Fallback restore: executing {len(statements)} statements")

    result = FallbackResult()
    for stmt in statements:
        if is_inert_statement(stmt):
            result.skipped_inert += 1
            continue
        try:
            await execute_statement(client, stmt)
        except BenignPermissionError as e:
            result.skipped_benign += 1
            logger.warning(f"Skipped statement after benign error: {e}")
            continue
        result.executed += 1

    logger.info(
        f"Fallback restore done: {result.executed} executed, {result.skipped} skipped"
    )
    return result


async def restore_data(
    client: DatabaseClient,
    runner: ProcessRunner,
    config: BackupConfig,
    ctx: RestoreContext,
) -> None:
    """Run the native restore with tiered fallback, updating ``ctx``."""
    schema = config.database.schema_name
    native = await run_native_restore(runner, config, ctx.path)
    if native.ok:
        ctx.method = "native"
        return

    action = native.action or "fallback"
    logger.warning(f"Native restore failed ({action}): {(native.error or '').strip()[:500]}")

    if action == "tolerant_retry":
        await reset_schema(client, schema)
        tolerant = await run_native_restore(runner, config, ctx.path, tolerant=True)
        if tolerant.ok:
            ctx.method = "native_tolerant"
            ctx.skipped = tolerant.skipped
            non_benign = [
                line
                for line in (tolerant.error or "").splitlines()
                if "ERROR:" in line and not is_benign_permission_error(line)
            ]
            if non_benign:
                ctx.warnings.append(
                    f"{len(non_benign)} non-permission errors were skipped in tolerant mode"
                )
            return
        action = tolerant.action or "fallback"
        logger.warning(f"Tolerant restore failed ({action}); using fallback execution")

    await reset_schema(client, schema)
    fallback = await execute_fallback(client, ctx.path)
    ctx.method = "fallback_missing_tool" if action == "fallback_missing_tool" else "fallback"
    ctx.skipped = fallback.skipped


async def count_live_rows(client: DatabaseClient, table: str, schema: str = "public") -> int:
    rows = await client.fetch(f"SELECT COUNT(*)::int AS count FROM {qualify_table(table, schema)}")
    return int(rows[0]["count"]) if rows else 0


async def verify_restore(
    client: DatabaseClient,
    config: BackupConfig,
    ctx: RestoreContext,
) -> RestoreVerification:
    """Compare live critical-table counts against the pre-scan."""
    schema = config.database.schema_name
    live: dict[str, int] = {}
    warnings = list(ctx.warnings)

    for table in config.critical_tables:
        try:
            live[table] = await count_live_rows(client, table, schema)
        except Exception as e:
            logger.warning(f"Post-restore count failed for {table}: {e}")
            warnings.append(f"Could not count {table} after restore")
            live[table] = 0

    headline: str | None = None
    for table in config.critical_tables:
        expected = ctx.expected.get(table)
        if expected is not None and live[table] < expected:
            message = (
                f"Restore completed with missing {table} data: "
                f"expected {expected}, found {live[table]}"
            )
            warnings.append(message)
            headline = headline or message

    expected_users = ctx.expected.get(USERS_TABLE)
    if expected_users is not None and expected_users <= max(1, len(config.admin_accounts)):
        warnings.append(NO_NON_ADMIN_USERS_WARNING)
        headline = headline or NO_NON_ADMIN_USERS_WARNING

    return RestoreVerification(
        users_count=live.get("users", 0),
        orders_count=live.get("orders", 0),
        order_items_count=live.get("order_items", 0),
        expected_users_from_backup=ctx.expected.get("users"),
        expected_orders_from_backup=ctx.expected.get("orders"),
        expected_order_items_from_backup=ctx.expected.get("order_items"),
        restore_method=ctx.method,
        skipped_statements=ctx.skipped,
        warning=headline,
        warnings=warnings,
    )


def _report_message(verification: RestoreVerification) -> str:
    if verification.warning == NO_NON_ADMIN_USERS_WARNING:
        return (
            "Database restored successfully, but the uploaded backup contains "
            "only admin/no additional users."
        )
    if verification.warning:
        return "Database restored with warnings; see verification."
    return "Database restored successfully."


# ============================================================================
# Orchestrator
# ============================================================================


async def restore_database(
    client: DatabaseClient,
    runner: ProcessRunner,
    config: BackupConfig,
    upload_path: str | Path,
) -> RestoreReport:
    """Restore the database from an uploaded dump file.

    The upload is deleted when this returns or raises.

    Args:
        client: Query interface against the target database.
        runner: External-process interface used to run ``psql``.
        config: Backup configuration.
        upload_path: Temporary dump file to restore from.

    Returns:
        ``RestoreReport`` with the method used, skipped statement count,
        live vs. expected counts, and warnings.

    Raises:
        InvalidUploadError: The upload is missing, not ``.sql``, or too large.
        SchemaResetError: The schema could not be reset (nothing restored).
        StatementExecutionError: A fallback statement failed fatally (the
            schema is left partially restored).
    """
    path = Path(upload_path)
    try:
        validate_upload(path, config.max_upload_bytes)

        expected = DumpScanner(path).count_many(list(config.critical_tables))
        logger.info(f"Restore pre-scan of {path.name}: {expected}")
        ctx = RestoreContext(path=path, expected=expected)

        await reset_schema(client, config.database.schema_name)
        await restore_data(client, runner, config, ctx)
        logger.info(f"Restore data loaded via {ctx.method} ({ctx.skipped} skipped)")

        ctx.warnings.extend(await run_post_restore_repair(client, config))
        verification = await verify_restore(client, config, ctx)
    except Exception as e:
        logger.error(f"Restore failed: {e}")
        raise
    finally:
        _discard_upload(path)

    return RestoreReport(message=_report_message(verification), verification=verification)
