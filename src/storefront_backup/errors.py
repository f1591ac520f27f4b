"""Exception hierarchy for backup and restore operations.

Every error carries a human-readable message and an optional ``details``
string with remediation guidance for the operator.

Usage:
    from storefront_backup.errors import BackupError, ToolNotFoundError

    try:
        await create_backup(...)
    except BackupError as e:
        print(e, e.details)
"""


class BackupError(Exception):
    """Base class for all backup/restore failures."""

    def __init__(self, message: str, details: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ConfigurationError(BackupError):
    """Raised when a required executable or credential path cannot be resolved."""

    pass


class BackupIOError(BackupError):
    """Raised when a backup directory or file cannot be created or accessed."""

    pass


class ToolExecutionError(BackupError):
    """Raised when an external dump/restore tool exits non-zero."""

    def __init__(
        self,
        message: str,
        details: str | None = None,
        exit_code: int | None = None,
        output: str = "",
    ) -> None:
        super().__init__(message, details)
        self.exit_code = exit_code
        self.output = output


class ToolNotFoundError(ToolExecutionError):
    """Raised when an external tool executable is missing."""

    pass


class StatementExecutionError(ToolExecutionError):
    """Raised when a fallback restore statement fails with a non-benign error."""

    def __init__(self, message: str, statement: str) -> None:
        super().__init__(message)
        self.statement = statement


class VerificationMismatch(BackupError):
    """Raised when a row count falls below its expected value."""

    def __init__(self, table: str, expected: int, actual: int) -> None:
        super().__init__(
            f"Backup verification failed: {table} in database={expected}, "
            f"{table} in backup={actual}"
        )
        self.table = table
        self.expected = expected
        self.actual = actual


class BenignPermissionError(BackupError):
    """A privilege/role error during restore that is skipped, never surfaced."""

    pass


class SchemaResetError(BackupError):
    """Raised when the destructive schema reset itself fails."""

    pass


class InvalidUploadError(BackupError):
    """Raised when an uploaded dump file is missing, oversized, or not SQL."""

    pass


class BackupNotFoundError(BackupError):
    """Raised when no backup record exists for an id."""

    pass


class BackupFileMissingError(BackupError):
    """Raised when a backup record's file is no longer on storage."""

    pass
