"""Configuration package: pydantic models and the TOML/env loader.

Usage:
    from storefront_backup.config import load_backup_config, BackupConfig

    config = load_backup_config()
    print(config.database.url, config.scheduler.interval_seconds)
"""

from storefront_backup.config.loader import load_backup_config
from storefront_backup.config.models import (
    AdminAccount,
    BackupConfig,
    DatabaseSettings,
    SchedulerSettings,
    ToolSettings,
)

__all__ = [
    "load_backup_config",
    "BackupConfig",
    "DatabaseSettings",
    "ToolSettings",
    "SchedulerSettings",
    "AdminAccount",
]
