"""Idempotent post-restore repair.

Runs after every restore, in this order:

1. Re-apply the application schema (``schema/app_schema.sql``).
2. Resynchronize each table's ``id`` sequence to ``max(id) + 1``.
3. Provision the built-in admin accounts that are missing.

Every step is safe to repeat.  Individual failures are logged and
returned as warnings; they never abort the restore.

Usage:
    from storefront_backup.backup.repair import run_post_restore_repair

    warnings = await run_post_restore_repair(adapter, config)
"""

import logging
from pathlib import Path

import bcrypt

from storefront_backup.adapters.base import DatabaseClient
from storefront_backup.config.models import AdminAccount, BackupConfig
from storefront_backup.dump.splitter import split_statements
from storefront_backup.dump.statements import InsertStatement, qualify_table

logger = logging.getLogger(__name__)

APP_SCHEMA_PATH = Path(__file__).resolve().parent.parent / "schema" / "app_schema.sql"


def load_app_schema(path: Path | None = None) -> list[str]:
    """Read the application schema and split it into statements."""
    schema_path = path or APP_SCHEMA_PATH
    return split_statements(schema_path.read_text(encoding="utf-8"))


async def apply_app_schema(
    client: DatabaseClient,
    statements: list[str] | None = None,
) -> list[str]:
    """Execute every application schema statement, collecting failures.

    Returns:
        Warning messages, one per failed statement.
    """
    if statements is None:
        statements = load_app_schema()

    warnings: list[str] = []
    for stmt in statements:
        try:
            await client.execute_raw(stmt)
        except Exception as e:
            summary = " ".join(stmt.split())[:80]
            logger.warning(f"Schema repair statement failed ({summary}): {e}")
            warnings.append(f"Schema repair failed for: {summary}")
    logger.info(f"Applied {len(statements) - len(warnings)}/{len(statements)} schema statements")
    return warnings


def sequence_resync_sql(table: str, schema: str = "public") -> str:
    """SQL that moves ``table``'s id sequence so the next id is ``max(id) + 1``.

    ``setval(..., false)`` makes the given value the next one returned, so an
    empty table restarts at 1.
    """
    qualified = qualify_table(table, schema)
    return (
        f"SELECT setval(pg_get_serial_sequence('{qualified}', 'id'), "
        f"COALESCE((SELECT MAX(id) FROM {qualified}), 0) + 1, false)"
    )


async def resync_sequences(
    client: DatabaseClient,
    tables: list[str],
    schema: str = "public",
) -> list[str]:
    """Resynchronize the id sequence of each table.

    Returns:
        Warning messages for tables whose sequence could not be reset.
    """
    warnings: list[str] = []
    for table in tables:
        try:
            await client.fetch(sequence_resync_sql(table, schema))
        except Exception as e:
            logger.warning(f"Sequence resync failed for {table}: {e}")
            warnings.append(f"Sequence resync failed for {table}")
    return warnings


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


async def provision_admin_accounts(
    client: DatabaseClient,
    accounts: list[AdminAccount],
    schema: str = "public",
) -> list[str]:
    """Insert each configured built-in account unless its email already exists.

    With no accounts configured, nothing is inserted and a warning is
    returned instead.
    """
    if not accounts:
        logger.warning("No admin credentials configured; skipping account provisioning")
        return ["No admin credentials configured; built-in accounts were not provisioned"]

    warnings: list[str] = []
    for account in accounts:
        stmt = InsertStatement.from_row(
            "users",
            {
                "email": account.email,
                "password": hash_password(account.password),
                "full_name": account.full_name,
                "role": account.role,
                "is_approved": True,
            },
            schema,
        )
        # Existing accounts keep their current password and profile
        stmt.conflict_target = "email"
        try:
            await client.execute_raw(stmt.to_sql())
        except Exception as e:
            logger.warning(f"Admin provisioning failed for {account.email}: {e}")
            warnings.append(f"Could not provision account {account.email}")
    return warnings


async def run_post_restore_repair(client: DatabaseClient, config: BackupConfig) -> list[str]:
    """Run schema repair, sequence resync, and account provisioning."""
    schema = config.database.schema_name
    warnings: list[str] = []
    warnings.extend(await apply_app_schema(client))
    warnings.extend(await resync_sequences(client, config.sequence_tables, schema))
    warnings.extend(await provision_admin_accounts(client, config.admin_accounts, schema))
    return warnings
