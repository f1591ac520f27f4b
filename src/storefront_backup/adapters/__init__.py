"""Collaborator adapters: database queries and external processes.

Usage:
    from storefront_backup.adapters import AsyncPostgresAdapter, AsyncProcessRunner
    from storefront_backup.adapters import DatabaseClient, ProcessRunner
"""

from storefront_backup.adapters.base import DatabaseClient, ProcessResult, ProcessRunner
from storefront_backup.adapters.postgres import AsyncPostgresAdapter
from storefront_backup.adapters.process import AsyncProcessRunner, resolve_tool

__all__ = [
    "DatabaseClient",
    "ProcessRunner",
    "ProcessResult",
    "AsyncPostgresAdapter",
    "AsyncProcessRunner",
    "resolve_tool",
]
