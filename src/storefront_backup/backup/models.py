"""Result and record models for backup and restore operations.

Response-facing models serialize with camelCase keys via ``to_response()``
(e.g., ``file_size`` -> ``fileSize``); Python code uses the snake_case
attribute names.

Usage:
    from storefront_backup.backup.models import BackupRecord, RestoreReport

    report.to_response()
    # {"message": "...", "verification": {"usersCount": 5, ...}}
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

BackupStatus = Literal["completed", "failed"]

RestoreMethod = Literal["native", "native_tolerant", "fallback_missing_tool", "fallback"]


class ResponseModel(BaseModel):
    """Base for models rendered as camelCase API responses."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_response(self) -> dict:
        """Dump with camelCase keys and JSON-safe values."""
        return self.model_dump(mode="json", by_alias=True)


# ============================================================================
# Persisted record
# ============================================================================


class BackupRecord(ResponseModel):
    """Persisted backup metadata row.

    Never mutated after creation; deleting it leaves the file in place.
    """

    id: int
    filename: str
    file_path: str
    drive: str | None = None
    file_size: int = 0
    status: BackupStatus
    created_by: int | None = None
    created_by_name: str | None = None      # joined from users.full_name on list
    created_at: datetime | None = None
    error_message: str | None = None


class BackupListing(ResponseModel):
    """One row of the backup listing with display-ready size."""

    id: int
    filename: str
    file_path: str
    drive: str | None = None
    file_size: str                          # human readable, e.g. "1.50 MB"
    file_size_mb: str
    status: BackupStatus
    can_download: bool
    created_by: str | None = None
    created_at: datetime | None = None
    error_message: str | None = None


# ============================================================================
# Backup results
# ============================================================================


class BackupSnapshot(ResponseModel):
    """Row counts captured during a backup.

    ``users_total``/``non_admin_users`` come from the live database before
    the dump runs; the ``*_rows_in_dump`` values are what the written file
    verifiably contains.
    """

    users_total: int = 0
    non_admin_users: int = 0
    users_rows_in_dump: int = 0
    orders_total: int = 0
    order_items_total: int = 0
    orders_rows_in_dump: int = 0
    order_items_rows_in_dump: int = 0


class BackupResult(ResponseModel):
    """Outcome of a successful backup."""

    message: str = "Backup created successfully"
    backup: BackupRecord
    snapshot: BackupSnapshot


# ============================================================================
# Restore results
# ============================================================================


class RestoreVerification(ResponseModel):
    """Post-restore count comparison, built fresh for each restore."""

    users_count: int = 0
    orders_count: int = 0
    order_items_count: int = 0
    expected_users_from_backup: int | None = None
    expected_orders_from_backup: int | None = None
    expected_order_items_from_backup: int | None = None
    restore_method: RestoreMethod = "native"
    skipped_statements: int = 0
    warning: str | None = None
    warnings: list[str] = Field(default_factory=list)


class RestoreReport(ResponseModel):
    """Outcome of a restore: a message plus its verification."""

    message: str = "Database restored successfully"
    verification: RestoreVerification


# ============================================================================
# Dump inspection
# ============================================================================


class TableInspection(ResponseModel):
    """Marker-aware and raw counts for one table in a dump file."""

    table: str
    count: int | None = None
    marker: int | None = None
    block_rows: int | None = None
    block_terminated: bool = False


class DumpInspection(ResponseModel):
    """Summary of a dump file's critical-table contents."""

    path: str
    size_bytes: int
    tables: list[TableInspection] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


# ============================================================================
# Backup targets
# ============================================================================


GIB = 1024**3


class DriveInfo(ResponseModel):
    """Free, used and total space of a candidate backup drive.

    The ``*_gb`` fields are fixed two-decimal strings.
    """

    name: str
    free_space_gb: str = Field(default="0.00", alias="freeSpaceGB")
    total_space_gb: str = Field(default="0.00", alias="totalSpaceGB")
    used_space_gb: str = Field(default="0.00", alias="usedSpaceGB")
    free_space_bytes: int = 0
    total_space_bytes: int = 0

    @classmethod
    def from_bytes(cls, name: str, total: int, free: int, used: int | None = None) -> "DriveInfo":
        used = total - free if used is None else used
        return cls(
            name=name,
            free_space_gb=f"{free / GIB:.2f}",
            total_space_gb=f"{total / GIB:.2f}",
            used_space_gb=f"{used / GIB:.2f}",
            free_space_bytes=free,
            total_space_bytes=total,
        )
