"""Collaborator wiring for backup and restore.

Builds the database adapter, process runner, and record store from a
``BackupConfig`` so callers (the CLI, an HTTP layer, the scheduler) share one
connection pool.

Usage:
    from storefront_backup.factory import build_services

    services = build_services(load_backup_config())
    try:
        result = await create_backup(
            services.client, services.runner, services.store, services.config
        )
    finally:
        await services.close()
"""

import logging
from dataclasses import dataclass

from storefront_backup.adapters.base import DatabaseClient, ProcessRunner
from storefront_backup.adapters.postgres import AsyncPostgresAdapter
from storefront_backup.adapters.process import AsyncProcessRunner
from storefront_backup.backup.store import BackupRecordStore
from storefront_backup.config.models import BackupConfig

logger = logging.getLogger(__name__)


def create_adapter(config: BackupConfig) -> AsyncPostgresAdapter:
    """Create an async PostgreSQL adapter for the configured database."""
    db = config.database
    logger.debug(f"Creating adapter for {db.user}@{db.host}:{db.port}/{db.name}")
    return AsyncPostgresAdapter(database_url=db.url)


@dataclass
class BackupServices:
    """The collaborators every backup/restore operation needs."""

    config: BackupConfig
    client: DatabaseClient
    runner: ProcessRunner
    store: BackupRecordStore

    async def close(self) -> None:
        """Dispose of the database connection pool."""
        await self.client.close()


def build_services(
    config: BackupConfig,
    client: DatabaseClient | None = None,
    runner: ProcessRunner | None = None,
) -> BackupServices:
    """Wire collaborators, creating defaults for any not supplied.

    Example:
        services = build_services(config, client=fake_client, runner=fake_runner)
    """
    client = client or create_adapter(config)
    return BackupServices(
        config=config,
        client=client,
        runner=runner or AsyncProcessRunner(),
        store=BackupRecordStore(client),
    )
