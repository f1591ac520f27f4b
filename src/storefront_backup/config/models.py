"""Pydantic models for backup/restore configuration."""

import sys
from urllib.parse import quote

from pydantic import BaseModel, Field


# ============================================================================
# Connection and Tools
# ============================================================================


class DatabaseSettings(BaseModel):
    """Connection settings for the storefront database."""

    host: str = "localhost"
    port: int = 5432
    name: str = "storefront"
    user: str = "postgres"
    password: str = ""
    schema_name: str = "public"

    @property
    def url(self) -> str:
        """SQLAlchemy-style connection URL with the password percent-encoded."""
        auth = quote(self.user, safe="")
        if self.password:
            auth += ":" + quote(self.password, safe="")
        return f"postgresql://{auth}@{self.host}:{self.port}/{self.name}"


class ToolSettings(BaseModel):
    """Optional explicit paths to the native dump/restore executables."""

    pg_dump_path: str | None = None
    psql_path: str | None = None


# ============================================================================
# Scheduler
# ============================================================================

MIN_INTERVAL_MINUTES = 5
DEFAULT_INTERVAL_HOURS = 24.0


class SchedulerSettings(BaseModel):
    """Automated backup settings.

    ``interval_minutes`` (when positive) takes precedence over
    ``interval_hours`` and is clamped to a 5-minute minimum.
    """

    enabled: bool = False
    interval_minutes: float = 0
    interval_hours: float = DEFAULT_INTERVAL_HOURS
    run_on_startup: bool = False
    drive: str = Field(default_factory=lambda: "C:" if sys.platform == "win32" else "/")
    folder: str = "storefront_backups"

    @property
    def interval_seconds(self) -> float:
        """Effective interval between automated runs, in seconds."""
        if self.interval_minutes > 0:
            return max(MIN_INTERVAL_MINUTES, self.interval_minutes) * 60
        hours = self.interval_hours if self.interval_hours > 0 else DEFAULT_INTERVAL_HOURS
        return hours * 3600


# ============================================================================
# Accounts and top-level config
# ============================================================================


class AdminAccount(BaseModel):
    """Built-in account re-provisioned after a restore."""

    email: str
    password: str
    full_name: str = "Administrator"
    role: str = "admin"


class BackupConfig(BaseModel):
    """Complete backup/restore configuration."""

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    tools: ToolSettings = Field(default_factory=ToolSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    backup_dir: str | None = None              # root directory override (BACKUP_DIR)
    default_folder: str = "storefront_backups"
    critical_tables: list[str] = Field(
        default_factory=lambda: ["users", "orders", "order_items"]
    )
    sequence_tables: list[str] = Field(
        default_factory=lambda: [
            "users",
            "categories",
            "homepage_sections",
            "site_settings",
            "products",
            "cart",
            "orders",
            "order_items",
            "addresses",
            "backups",
        ]
    )
    admin_accounts: list[AdminAccount] = Field(default_factory=list)
    max_upload_bytes: int = 100 * 1024 * 1024
