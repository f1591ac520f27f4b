"""Persisted backup metadata store.

Usage:
    from storefront_backup.backup.store import BackupRecordStore

    store = BackupRecordStore(adapter)
    await store.ensure_table()
    record = await store.create(
        filename="storefront_backup_2026-01-15T10-00-00-a1b2c3.sql",
        file_path="/tmp/storefront_backups/storefront_backup_2026-01-15T10-00-00-a1b2c3.sql",
        drive="/",
        file_size=2048,
        status="completed",
    )
    records = await store.list()
"""

import logging
from typing import Any

from storefront_backup.adapters.base import DatabaseClient
from storefront_backup.backup.models import BackupRecord, BackupStatus

logger = logging.getLogger(__name__)

BACKUPS_TABLE = "backups"

CREATE_BACKUPS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS backups (
    id SERIAL PRIMARY KEY,
    filename VARCHAR(255) NOT NULL,
    file_path TEXT NOT NULL,
    drive VARCHAR(255),
    file_size BIGINT,
    status VARCHAR(50) DEFAULT 'completed',
    created_by INTEGER REFERENCES users(id) ON DELETE SET NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    error_message TEXT
)
"""


class BackupRecordStore:
    """CRUD over the ``backups`` table through a ``DatabaseClient``.

    Records are write-once: there is no update operation.
    """

    def __init__(self, client: DatabaseClient) -> None:
        self._client = client

    async def ensure_table(self) -> None:
        """Create the ``backups`` table if it does not exist."""
        await self._client.execute(CREATE_BACKUPS_TABLE_SQL)

    async def create(
        self,
        filename: str,
        file_path: str,
        drive: str | None,
        file_size: int,
        status: BackupStatus,
        created_by: int | None = None,
        error_message: str | None = None,
    ) -> BackupRecord:
        """Insert a new record and return it."""
        row = await self._client.insert(
            BACKUPS_TABLE,
            {
                "filename": filename,
                "file_path": file_path,
                "drive": drive,
                "file_size": file_size,
                "created_by": created_by,
                "status": status,
                "error_message": error_message,
            },
        )
        logger.info(f"Recorded {status} backup {filename} (id={row.get('id')})")
        return self._to_record(row)

    async def list(self) -> list[BackupRecord]:
        """Return all records, newest first, with the creator's name."""
        rows = await self._client.fetch(
            "SELECT b.*, u.full_name AS created_by_name "
            "FROM backups b LEFT JOIN users u ON b.created_by = u.id "
            "ORDER BY b.created_at DESC, b.id DESC"
        )
        return [self._to_record(r) for r in rows]

    async def get(self, backup_id: int) -> BackupRecord | None:
        """Return one record, or ``None`` if no such id exists."""
        rows = await self._client.select(BACKUPS_TABLE, "*", filters={"id": backup_id})
        return self._to_record(rows[0]) if rows else None

    async def delete(self, backup_id: int) -> BackupRecord | None:
        """Delete one record (metadata only) and return it, or ``None``."""
        rows = await self._client.delete(BACKUPS_TABLE, {"id": backup_id})
        return self._to_record(rows[0]) if rows else None

    @staticmethod
    def _to_record(row: dict[str, Any]) -> BackupRecord:
        data = dict(row)
        data["file_size"] = int(data.get("file_size") or 0)
        return BackupRecord.model_validate(data)
