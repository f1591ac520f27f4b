"""Collaborator protocols: database queries and external processes.

``DatabaseClient`` is the query interface the backup/restore core runs
against; ``ProcessRunner`` is the external-process interface used to invoke
``pg_dump`` and ``psql``.  All methods are ``async def``.

Usage:
    from storefront_backup.adapters.base import DatabaseClient, ProcessRunner

    async def count_users(client: DatabaseClient) -> int:
        rows = await client.fetch("SELECT COUNT(*)::int AS count FROM users")
        return rows[0]["count"]
"""

from dataclasses import dataclass
from typing import Any, Protocol


class DatabaseClient(Protocol):
    """Database client interface that all adapters must implement.

    All methods are async -- callers must ``await`` every operation.
    """

    async def select(
        self,
        table: str,
        columns: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
    ) -> list[dict]:
        """Select rows from table.

        Args:
            table: Table name.
            columns: Comma-separated column names (e.g., ``"id, filename"``).
            filters: Optional dict of field=value filters (all must match via AND).
            order_by: Optional ORDER BY expression.

        Returns:
            List of dicts, one per row.  Empty list if no matches.

        Example:
            rows = await client.select(
                "orders",
                "*",
                order_by="id ASC",
            )
        """
        ...

    async def insert(self, table: str, data: dict) -> dict:
        """Insert row into table and return the created row.

        Example:
            row = await client.insert("backups", {
                "filename": "backup.sql",
                "status": "completed",
            })
        """
        ...

    async def delete(self, table: str, filters: dict[str, Any]) -> list[dict]:
        """Delete rows from table and return the deleted rows.

        Example:
            deleted = await client.delete("backups", {"id": 7})
        """
        ...

    async def fetch(self, sql: str, params: dict | None = None) -> list[dict]:
        """Run a row-returning query with named parameters.

        Example:
            rows = await client.fetch(
                "SELECT COUNT(*)::int AS count FROM users WHERE role <> :role",
                {"role": "admin"},
            )
        """
        ...

    async def execute(self, sql: str, params: dict | None = None) -> None:
        """Execute a statement with named parameters (DDL or DML).

        Example:
            await client.execute(
                "ALTER TABLE users ADD COLUMN IF NOT EXISTS is_blocked BOOLEAN"
            )
        """
        ...

    async def execute_raw(self, sql: str) -> None:
        """Execute one statement verbatim, without bind-parameter parsing.

        Used for statements read from a dump, whose literals may contain
        text that looks like ``:name`` parameters.
        """
        ...

    async def close(self) -> None:
        """Close database connection and clean up resources."""
        ...


@dataclass
class ProcessResult:
    """Outcome of an external process invocation."""

    stdout: str
    stderr: str
    exit_code: int

    @property
    def output(self) -> str:
        """Error-relevant output: stderr if present, else stdout."""
        return self.stderr or self.stdout


class ProcessRunner(Protocol):
    """External-process invocation interface."""

    async def run(
        self,
        command: list[str],
        env: dict[str, str] | None = None,
    ) -> ProcessResult:
        """Run ``command`` to completion.

        Args:
            command: Executable followed by its arguments.
            env: Extra environment variables merged over the current environment.

        Returns:
            ``ProcessResult`` with decoded output and exit code.

        Raises:
            ToolNotFoundError: If the executable cannot be found.
        """
        ...
