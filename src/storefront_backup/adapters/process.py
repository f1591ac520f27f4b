"""Async external-process runner for ``pg_dump`` and ``psql``.

Usage:
    from storefront_backup.adapters.process import AsyncProcessRunner, resolve_tool

    runner = AsyncProcessRunner()
    pg_dump = resolve_tool("pg_dump", config.tools.pg_dump_path)
    result = await runner.run([pg_dump, "--version"])
    print(result.exit_code, result.stdout)
"""

import asyncio
import logging
import os
from pathlib import Path

from storefront_backup.adapters.base import ProcessResult
from storefront_backup.errors import ConfigurationError, ToolNotFoundError

logger = logging.getLogger(__name__)


def resolve_tool(name: str, configured_path: str | None = None) -> str:
    """Resolve the executable to invoke for an external tool.

    A configured path must exist; without one the bare ``name`` is returned
    and looked up on ``PATH`` when the process starts.

    Args:
        name: Tool name (e.g., ``"pg_dump"``).
        configured_path: Explicit executable path from configuration.

    Returns:
        Executable path or bare tool name.

    Raises:
        ConfigurationError: If ``configured_path`` is set but does not exist.
    """
    if configured_path:
        if not Path(configured_path).exists():
            raise ConfigurationError(
                f"{name} not found at configured path: {configured_path}",
                details=(
                    f"Fix the {name.upper()}_PATH setting or unset it to use "
                    f"{name} from PATH."
                ),
            )
        return configured_path
    return name


class AsyncProcessRunner:
    """``ProcessRunner`` implementation built on ``asyncio.create_subprocess_exec``.

    Extra environment variables are merged over ``os.environ``.  No timeout
    is applied: the call waits for the process to exit.
    """

    async def run(
        self,
        command: list[str],
        env: dict[str, str] | None = None,
    ) -> ProcessResult:
        """Run ``command`` and capture its decoded output.

        Raises:
            ToolNotFoundError: If the executable cannot be found or started.
        """
        merged_env = {**os.environ, **(env or {})}
        logger.debug(f"Running {command[0]} with {len(command) - 1} arguments")

        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=merged_env,
            )
        except FileNotFoundError as e:
            raise ToolNotFoundError(
                f"{command[0]}: command not found",
                output=str(e),
            ) from e
        except PermissionError as e:
            raise ToolNotFoundError(
                f"{command[0]}: command not found (not executable)",
                output=str(e),
            ) from e

        stdout, stderr = await proc.communicate()
        return ProcessResult(
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            exit_code=proc.returncode if proc.returncode is not None else -1,
        )
