"""Command builders for the native PostgreSQL dump and restore tools.

The password is never placed on the command line; it travels in the
``PGPASSWORD`` environment variable returned by ``tool_env``.

Usage:
    from storefront_backup.backup.native import pg_dump_command, tool_env

    command = pg_dump_command("pg_dump", config.database, "/tmp/backup.sql")
    result = await runner.run(command, env=tool_env(config.database))
"""

from pathlib import Path

from storefront_backup.config.models import DatabaseSettings


def tool_env(database: DatabaseSettings) -> dict[str, str]:
    """Environment variables passed to the native tools."""
    return {"PGPASSWORD": database.password}


def _connection_args(database: DatabaseSettings) -> list[str]:
    return [
        "-h", database.host,
        "-p", str(database.port),
        "-U", database.user,
        "-d", database.name,
    ]


def pg_dump_command(
    executable: str,
    database: DatabaseSettings,
    output_path: str | Path,
) -> list[str]:
    """Build a plain-format ``pg_dump`` invocation writing to ``output_path``."""
    return [executable, *_connection_args(database), "-F", "p", "-f", str(output_path)]


def psql_command(
    executable: str,
    database: DatabaseSettings,
    input_path: str | Path,
    stop_on_error: bool = True,
) -> list[str]:
    """Build a ``psql`` invocation that runs ``input_path``.

    Args:
        executable: ``psql`` path or bare name.
        database: Target connection settings.
        input_path: SQL file to execute.
        stop_on_error: ``True`` aborts on the first failing statement
            (``ON_ERROR_STOP=1``); ``False`` is tolerant mode, which keeps
            going and reports each failure on stderr.
    """
    return [
        executable,
        *_connection_args(database),
        "-v", f"ON_ERROR_STOP={1 if stop_on_error else 0}",
        "-f", str(input_path),
    ]
