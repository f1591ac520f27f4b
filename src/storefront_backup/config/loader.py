"""Configuration loading: TOML file plus environment overrides."""

import logging
import math
import os
import tomllib
from collections.abc import Mapping
from pathlib import Path

from storefront_backup.config.models import AdminAccount, BackupConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "backup.toml"

# env var -> (section, field); section None means top-level
_STRING_OVERRIDES: dict[str, tuple[str | None, str]] = {
    "DB_HOST": ("database", "host"),
    "DB_NAME": ("database", "name"),
    "DB_USER": ("database", "user"),
    "DB_PASSWORD": ("database", "password"),
    "PG_DUMP_PATH": ("tools", "pg_dump_path"),
    "PSQL_PATH": ("tools", "psql_path"),
    "BACKUP_DIR": (None, "backup_dir"),
    "AUTO_BACKUP_DRIVE": ("scheduler", "drive"),
    "AUTO_BACKUP_FOLDER": ("scheduler", "folder"),
}

_BOOL_OVERRIDES: dict[str, tuple[str, str]] = {
    "AUTO_BACKUP_ENABLED": ("scheduler", "enabled"),
    "AUTO_BACKUP_RUN_ON_STARTUP": ("scheduler", "run_on_startup"),
}

_ACCOUNT_OVERRIDES = [
    ("ADMIN_EMAIL", "ADMIN_PASSWORD", "Administrator", "admin"),
    ("SUPER_ADMIN_EMAIL", "SUPER_ADMIN_PASSWORD", "Super Administrator", "admin"),
]


def parse_bool(value: str | None) -> bool:
    """True only for the literal text ``true`` (case-insensitive, trimmed)."""
    return str(value or "").strip().lower() == "true"


def parse_positive_number(value: str | None) -> float | None:
    """Parse a positive number, returning ``None`` for anything else."""
    try:
        number = float(str(value).strip())
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number <= 0:
        return None
    return number


def apply_env_overrides(data: dict, environ: Mapping[str, str]) -> dict:
    """Merge recognized environment variables into raw config data.

    Args:
        data: Raw config dict (as read from TOML).  Not modified.
        environ: Environment mapping to read overrides from.

    Returns:
        New dict with overrides applied.
    """
    merged = {k: (dict(v) if isinstance(v, dict) else v) for k, v in data.items()}

    def _section(name: str | None) -> dict:
        if name is None:
            return merged
        return merged.setdefault(name, {})

    for var, (section, field) in _STRING_OVERRIDES.items():
        value = (environ.get(var) or "").strip()
        if value:
            _section(section)[field] = value

    port = parse_positive_number(environ.get("DB_PORT"))
    if port is not None:
        _section("database")["port"] = int(port)

    for var, (section, field) in _BOOL_OVERRIDES.items():
        if var in environ:
            _section(section)[field] = parse_bool(environ.get(var))

    # Invalid interval values fall back to the defaults rather than failing
    if "AUTO_BACKUP_INTERVAL_MINUTES" in environ:
        minutes = parse_positive_number(environ.get("AUTO_BACKUP_INTERVAL_MINUTES"))
        _section("scheduler")["interval_minutes"] = minutes or 0
    if "AUTO_BACKUP_INTERVAL_HOURS" in environ:
        hours = parse_positive_number(environ.get("AUTO_BACKUP_INTERVAL_HOURS"))
        if hours is None:
            logger.warning("Ignoring invalid AUTO_BACKUP_INTERVAL_HOURS; using default")
            _section("scheduler").pop("interval_hours", None)
        else:
            _section("scheduler")["interval_hours"] = hours

    accounts = list(merged.get("admin_accounts", []))
    known = {a.get("email") for a in accounts if isinstance(a, dict)}
    for email_var, password_var, full_name, role in _ACCOUNT_OVERRIDES:
        email = (environ.get(email_var) or "").strip()
        password = environ.get(password_var) or ""
        if email and password and email not in known:
            accounts.append(
                AdminAccount(
                    email=email, password=password, full_name=full_name, role=role
                ).model_dump()
            )
            known.add(email)
    if accounts:
        merged["admin_accounts"] = accounts

    return merged


def load_backup_config(
    config_path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> BackupConfig:
    """Load backup configuration from TOML and environment.

    Args:
        config_path: Path to a TOML config file.  When ``None``, reads
            ``backup.toml`` from the working directory if it exists.
        environ: Environment mapping (default: ``os.environ``).

    Returns:
        Validated ``BackupConfig``.

    Raises:
        FileNotFoundError: If an explicit ``config_path`` doesn't exist.
        pydantic.ValidationError: If the config content is invalid.

    Example:
        config = load_backup_config("backup.toml", environ={"DB_NAME": "shop"})
    """
    if environ is None:
        environ = os.environ

    data: dict = {}
    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Backup config not found: {path}")
    else:
        path = Path.cwd() / DEFAULT_CONFIG_FILE

    if path.exists():
        with open(path, "rb") as f:
            data = tomllib.load(f)
        logger.debug(f"Loaded backup config from {path}")

    return BackupConfig(**apply_env_overrides(data, environ))
