"""Tests for restore orchestration.

Covers failure classification, upload handling, the native restore with
tolerant retry and fallback execution, verification warnings, and upload
cleanup on every exit path.
"""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from storefront_backup.adapters.base import ProcessResult
from storefront_backup.backup.restore import (
    NO_NON_ADMIN_USERS_WARNING,
    RestoreContext,
    classify_native_failure,
    count_error_lines,
    execute_fallback,
    execute_statement,
    is_benign_permission_error,
    is_inert_statement,
    is_tool_missing_error,
    reset_schema,
    restore_database,
    stage_upload,
    validate_upload,
    verify_restore,
)
from storefront_backup.config.models import AdminAccount, BackupConfig
from storefront_backup.errors import (
    BenignPermissionError,
    InvalidUploadError,
    SchemaResetError,
    StatementExecutionError,
    ToolNotFoundError,
)

DUMP = (
    "SET statement_timeout = 0;\n"
    "SELECT pg_catalog.set_config('search_path', '', false);\n"
    "COMMENT ON EXTENSION plpgsql IS 'PL/pgSQL procedural language';\n"
    "CREATE TABLE public.users (id integer NOT NULL, email text);\n"
    "ALTER TABLE public.users OWNER TO storefront_owner;\n"
    "COPY public.users (id, email) FROM stdin;\n"
    "1\tadmin@example.com\n"
    "2\tjane@example.com\n"
    "\\.\n"
    "ALTER DEFAULT PRIVILEGES FOR ROLE postgres IN SCHEMA public GRANT ALL ON TABLES TO storefront;\n"
    "\n\n-- APP_USERS_TOTAL:3\n"
    "-- App-level users backup (ensures all users rows are restorable)\n"
    'INSERT INTO public.users ("id", "email") VALUES (1, \'admin@example.com\') '
    'ON CONFLICT ("id") DO UPDATE SET "email" = EXCLUDED."email";\n'
    'INSERT INTO public.users ("id", "email") VALUES (2, \'jane@example.com\') '
    'ON CONFLICT ("id") DO UPDATE SET "email" = EXCLUDED."email";\n'
    'INSERT INTO public.users ("id", "email") VALUES (3, \'sam@example.com\') '
    'ON CONFLICT ("id") DO UPDATE SET "email" = EXCLUDED."email";\n'
)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _write_upload(tmp_path: Path, text: str = DUMP, name: str = "restore_upload.sql") -> Path:
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


def _make_mock_client(
    counts: dict[str, int] | None = None,
    failing: dict[str, str] | None = None,
) -> AsyncMock:
    """AsyncMock client recording raw statements.

    Args:
        counts: Live row count returned per table.
        failing: Substring -> error message; a raw statement containing the
            substring raises ``Exception(message)``.
    """
    counts = counts if counts is not None else {"users": 3, "orders": 0, "order_items": 0}
    client = AsyncMock()
    client.executed = []

    async def _execute_raw(sql):
        for pattern, message in (failing or {}).items():
            if pattern in sql:
                raise Exception(message)
        client.executed.append(sql)

    async def _fetch(sql, params=None):
        if "setval" in sql:
            return [{"setval": 1}]
        for table, n in counts.items():
            if sql.endswith(f"public.{table}"):
                return [{"count": n}]
        return []

    client.execute_raw = AsyncMock(side_effect=_execute_raw)
    client.fetch = AsyncMock(side_effect=_fetch)
    return client


def _make_mock_runner(*results) -> AsyncMock:
    """Runner returning each ``ProcessResult`` (or raising each exception) in turn."""
    runner = AsyncMock()
    runner.run = AsyncMock(side_effect=list(results))
    return runner


def _resets(client: AsyncMock) -> int:
    return sum(1 for sql in client.executed if sql.startswith("DROP SCHEMA"))


# ------------------------------------------------------------------
# Classification
# ------------------------------------------------------------------


class TestClassification:
    """Test failure text classification."""

    @pytest.mark.parametrize(
        "text",
        [
            "psql: command not found",
            "'psql' is not recognized as an internal or external command",
            "spawn psql ENOENT",
        ],
    )
    def test_tool_missing(self, text):
        assert is_tool_missing_error(text)
        assert classify_native_failure(text) == "fallback_missing_tool"

    def test_socket_error_is_not_missing_tool(self):
        text = (
            'psql: error: connection to server on socket "/var/run/postgresql/.s.PGSQL.5432" '
            "failed: No such file or directory"
        )
        assert not is_tool_missing_error(text)
        assert classify_native_failure(text) == "fallback"

    @pytest.mark.parametrize(
        "text",
        [
            "ERROR:  must be owner of extension plpgsql",
            "ERROR:  permission denied for schema public",
            'ERROR:  role "storefront_owner" does not exist',
            "ERROR:  must be member of role \"postgres\"",
            "ERROR:  must be superuser to create event triggers",
        ],
    )
    def test_benign_permission(self, text):
        assert is_benign_permission_error(text)
        assert classify_native_failure(text) == "tolerant_retry"

    def test_other_failure(self):
        assert classify_native_failure('ERROR:  syntax error at or near "FOO"') == "fallback"

    def test_explicit_missing_flag(self):
        assert classify_native_failure("", tool_missing=True) == "fallback_missing_tool"

    def test_inert_statements(self):
        assert is_inert_statement("ALTER DEFAULT PRIVILEGES FOR ROLE x GRANT ALL ON TABLES TO y")
        assert is_inert_statement("COMMENT ON EXTENSION plpgsql IS 'x'")
        assert is_inert_statement("SELECT pg_catalog.set_config('search_path', '', false)")
        assert not is_inert_statement("ALTER TABLE public.users OWNER TO x")
        assert not is_inert_statement("SELECT pg_catalog.set_config('lock_timeout', '0', false)")

    def test_count_error_lines(self):
        output = (
            "psql:/tmp/a.sql:10: ERROR:  must be owner of extension plpgsql\n"
            "psql:/tmp/a.sql:12: ERROR:  permission denied for schema public\n"
            "NOTICE:  relation exists, skipping\n"
        )
        assert count_error_lines(output) == 2
        assert count_error_lines("ERROR:  boom") == 1
        assert count_error_lines("") == 0


# ------------------------------------------------------------------
# Upload handling
# ------------------------------------------------------------------


class TestUploads:
    """Test upload validation and staging."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(InvalidUploadError, match="No file uploaded"):
            validate_upload(tmp_path / "none.sql", 100)

    def test_wrong_extension(self, tmp_path):
        path = _write_upload(tmp_path, name="dump.txt")
        with pytest.raises(InvalidUploadError, match="Only .sql files"):
            validate_upload(path, 10 ** 6)

    def test_uppercase_extension_accepted(self, tmp_path):
        validate_upload(_write_upload(tmp_path, name="DUMP.SQL"), 10 ** 6)

    def test_too_large(self, tmp_path):
        path = _write_upload(tmp_path)
        with pytest.raises(InvalidUploadError, match="too large"):
            validate_upload(path, 10)

    def test_stage_upload_copies(self, tmp_path):
        source = _write_upload(tmp_path, name="mine.sql")
        staged = stage_upload(source, 10 ** 6, upload_dir=tmp_path / "uploads")
        assert staged != source
        assert staged.parent == tmp_path / "uploads"
        assert staged.name.startswith("restore_")
        assert staged.read_text(encoding="utf-8") == DUMP
        assert source.exists()


# ------------------------------------------------------------------
# Stages
# ------------------------------------------------------------------


class TestResetSchema:
    """Test the destructive schema reset."""

    async def test_drop_and_create(self):
        client = _make_mock_client()
        await reset_schema(client, "public")
        assert client.executed == ["DROP SCHEMA IF EXISTS public CASCADE", "CREATE SCHEMA public"]

    async def test_failure_raises(self):
        client = _make_mock_client(failing={"DROP SCHEMA": "permission denied"})
        with pytest.raises(SchemaResetError, match="Schema reset failed"):
            await reset_schema(client)


class TestExecuteStatement:
    """Test per-statement failure classification."""

    async def test_benign_error(self):
        client = _make_mock_client(failing={"OWNER TO": "must be owner of table users"})
        with pytest.raises(BenignPermissionError, match="must be owner"):
            await execute_statement(client, "ALTER TABLE public.users OWNER TO shop")

    async def test_other_error_carries_statement(self):
        client = _make_mock_client(failing={"CREATE": "syntax error at or near"})
        with pytest.raises(StatementExecutionError) as exc_info:
            await execute_statement(client, "CREATE TABL x")
        assert exc_info.value.statement == "CREATE TABL x"
        assert not isinstance(exc_info.value, BenignPermissionError)

    async def test_success(self):
        client = _make_mock_client()
        await execute_statement(client, "SELECT 1")
        assert client.executed == ["SELECT 1"]


class TestExecuteFallback:
    """Test statement-by-statement fallback execution."""

    async def test_skips_inert_and_benign(self, tmp_path):
        client = _make_mock_client(failing={"OWNER TO": "must be owner of table users"})
        result = await execute_fallback(client, _write_upload(tmp_path))

        assert result.skipped_inert == 3
        assert result.skipped_benign == 1
        assert result.skipped == 4
        assert result.executed == 7
        assert not any("set_config" in sql for sql in client.executed)
        assert 'INSERT INTO public.users ("id", "email") VALUES (\'1\', \'admin@example.com\')' in client.executed

    async def test_fatal_error_stops(self, tmp_path):
        client = _make_mock_client(failing={"CREATE TABLE": 'relation "users" already exists'})
        with pytest.raises(StatementExecutionError) as exc_info:
            await execute_fallback(client, _write_upload(tmp_path))
        assert exc_info.value.statement.startswith("CREATE TABLE public.users")
        assert client.executed == ["SET statement_timeout = 0"]

    async def test_literal_with_colon_runs_raw(self, tmp_path):
        client = _make_mock_client()
        await execute_fallback(
            client,
            _write_upload(tmp_path, "INSERT INTO public.site_settings VALUES ('open', '10:30');\n"),
        )
        assert client.executed == ["INSERT INTO public.site_settings VALUES ('open', '10:30')"]

    async def test_multi_line_literal_with_backslash_line(self, tmp_path):
        text = (
            "\\connect storefront\n"
            "INSERT INTO public.users (\"id\", \"bio\") VALUES (1, 'first\n"
            "\\o/ second') ON CONFLICT (\"id\") DO UPDATE SET \"bio\" = EXCLUDED.\"bio\";\n"
            "INSERT INTO public.users (\"id\", \"bio\") VALUES (2, 'plain') "
            "ON CONFLICT (\"id\") DO UPDATE SET \"bio\" = EXCLUDED.\"bio\";\n"
        )
        client = _make_mock_client()
        result = await execute_fallback(client, _write_upload(tmp_path, text))

        assert result.executed == 2
        assert client.executed[0].startswith(
            "INSERT INTO public.users (\"id\", \"bio\") VALUES (1, 'first\n\\o/ second')"
        )
        assert "VALUES (2, 'plain')" in client.executed[1]


# ------------------------------------------------------------------
# restore_database
# ------------------------------------------------------------------


class TestRestoreDatabase:
    """Test the full restore pipeline with mocked collaborators."""

    async def test_native_success(self, tmp_path):
        upload = _write_upload(tmp_path)
        client = _make_mock_client()
        runner = _make_mock_runner(ProcessResult(stdout="", stderr="", exit_code=0))

        report = await restore_database(client, runner, BackupConfig(), upload)

        v = report.verification
        assert v.restore_method == "native"
        assert v.skipped_statements == 0
        assert v.users_count == 3
        assert v.expected_users_from_backup == 3
        assert v.expected_orders_from_backup is None
        assert v.warning is None
        assert report.message == "Database restored successfully."
        assert _resets(client) == 1
        assert not upload.exists()

        command = runner.run.call_args.args[0]
        assert "ON_ERROR_STOP=1" in command
        assert command[command.index("-f") + 1] == str(upload)

    async def test_missing_psql_uses_fallback(self, tmp_path):
        upload = _write_upload(tmp_path)
        client = _make_mock_client(failing={"OWNER TO": "must be owner of table users"})
        runner = _make_mock_runner(ToolNotFoundError("psql: command not found"))

        report = await restore_database(client, runner, BackupConfig(), upload)

        v = report.verification
        assert v.restore_method == "fallback_missing_tool"
        assert v.skipped_statements == 4
        assert _resets(client) == 2
        assert runner.run.await_count == 1
        assert not upload.exists()

    async def test_configured_psql_path_missing_uses_fallback(self, tmp_path):
        upload = _write_upload(tmp_path)
        client = _make_mock_client(failing={"OWNER TO": "must be owner of table users"})
        runner = _make_mock_runner()
        config = BackupConfig()
        config.tools.psql_path = str(tmp_path / "bin" / "psql")

        report = await restore_database(client, runner, config, upload)

        assert report.verification.restore_method == "fallback_missing_tool"
        runner.run.assert_not_called()

    async def test_benign_failure_retries_tolerant(self, tmp_path):
        upload = _write_upload(tmp_path)
        client = _make_mock_client()
        error = "psql:/tmp/x.sql:5: ERROR:  must be owner of table users\n"
        runner = _make_mock_runner(
            ProcessResult(stdout="", stderr=error, exit_code=3),
            ProcessResult(stdout="", stderr=error, exit_code=0),
        )

        report = await restore_database(client, runner, BackupConfig(), upload)

        v = report.verification
        assert v.restore_method == "native_tolerant"
        assert v.skipped_statements == 1
        assert _resets(client) == 2
        second_command = runner.run.call_args_list[1].args[0]
        assert "ON_ERROR_STOP=0" in second_command
        assert not any("non-permission" in w for w in v.warnings)

    async def test_tolerant_reports_non_permission_errors(self, tmp_path):
        upload = _write_upload(tmp_path)
        client = _make_mock_client()
        runner = _make_mock_runner(
            ProcessResult(stdout="", stderr="ERROR:  permission denied for schema public", exit_code=3),
            ProcessResult(
                stdout="",
                stderr=(
                    "psql:x.sql:5: ERROR:  permission denied for schema public\n"
                    'psql:x.sql:9: ERROR:  relation "users" already exists\n'
                ),
                exit_code=0,
            ),
        )

        report = await restore_database(client, runner, BackupConfig(), upload)

        v = report.verification
        assert v.skipped_statements == 2
        assert "1 non-permission errors were skipped in tolerant mode" in v.warnings

    async def test_tolerant_failure_falls_back(self, tmp_path):
        upload = _write_upload(tmp_path)
        client = _make_mock_client(failing={"OWNER TO": "must be owner of table users"})
        runner = _make_mock_runner(
            ProcessResult(stdout="", stderr="ERROR:  must be owner of schema public", exit_code=3),
            ProcessResult(stdout="", stderr="fatal", exit_code=2),
        )

        report = await restore_database(client, runner, BackupConfig(), upload)

        assert report.verification.restore_method == "fallback"
        assert _resets(client) == 3

    async def test_other_failure_uses_fallback(self, tmp_path):
        upload = _write_upload(tmp_path)
        client = _make_mock_client(failing={"OWNER TO": "must be owner of table users"})
        runner = _make_mock_runner(
            ProcessResult(stdout="", stderr='ERROR:  syntax error at or near "FOO"', exit_code=3)
        )

        report = await restore_database(client, runner, BackupConfig(), upload)

        assert report.verification.restore_method == "fallback"
        assert report.verification.skipped_statements == 4
        assert runner.run.await_count == 1

    async def test_fatal_fallback_error_propagates(self, tmp_path):
        upload = _write_upload(tmp_path)
        client = _make_mock_client(failing={"CREATE TABLE public.users": "syntax error"})
        runner = _make_mock_runner(ToolNotFoundError("psql: command not found"))

        with pytest.raises(StatementExecutionError):
            await restore_database(client, runner, BackupConfig(), upload)
        assert not upload.exists()

    async def test_schema_reset_failure_aborts(self, tmp_path):
        upload = _write_upload(tmp_path)
        client = _make_mock_client(failing={"DROP SCHEMA": "must be owner of schema public"})
        runner = _make_mock_runner()

        with pytest.raises(SchemaResetError):
            await restore_database(client, runner, BackupConfig(), upload)
        runner.run.assert_not_called()
        assert not upload.exists()

    async def test_invalid_upload_deleted(self, tmp_path):
        upload = _write_upload(tmp_path, name="dump.txt")
        client = _make_mock_client()

        with pytest.raises(InvalidUploadError):
            await restore_database(client, _make_mock_runner(), BackupConfig(), upload)
        assert not upload.exists()
        client.execute_raw.assert_not_called()

    async def test_marker_sets_expected_count(self, tmp_path):
        """Marker 5 wins over a 2-line block; a live count of 2 is a shortfall."""
        dump = (
            "-- APP_USERS_TOTAL:5\n"
            "COPY public.users (id, email) FROM stdin;\n1\ta@x.com\n2\tb@x.com\n\\.\n"
        )
        upload = _write_upload(tmp_path, dump)
        client = _make_mock_client(counts={"users": 2, "orders": 0, "order_items": 0})
        runner = _make_mock_runner(ProcessResult(stdout="", stderr="", exit_code=0))

        report = await restore_database(client, runner, BackupConfig(), upload)

        v = report.verification
        assert v.expected_users_from_backup == 5
        assert v.users_count == 2
        assert v.warning == "Restore completed with missing users data: expected 5, found 2"
        assert report.message == "Database restored with warnings; see verification."

    async def test_admin_only_backup(self, tmp_path):
        dump = "COPY public.users (id, email) FROM stdin;\n1\tadmin@example.com\n\\.\n"
        upload = _write_upload(tmp_path, dump)
        client = _make_mock_client(counts={"users": 1, "orders": 0, "order_items": 0})
        runner = _make_mock_runner(ProcessResult(stdout="", stderr="", exit_code=0))

        report = await restore_database(client, runner, BackupConfig(), upload)

        assert report.verification.warning == NO_NON_ADMIN_USERS_WARNING
        assert report.message.startswith("Database restored successfully, but")

    async def test_repair_runs_after_data(self, tmp_path):
        upload = _write_upload(tmp_path)
        client = _make_mock_client()
        runner = _make_mock_runner(ProcessResult(stdout="", stderr="", exit_code=0))
        config = BackupConfig(admin_accounts=[AdminAccount(email="admin@example.com", password="pw")])

        await restore_database(client, runner, config, upload)

        assert any(sql.startswith("CREATE TABLE IF NOT EXISTS backups") for sql in client.executed)
        assert any('ON CONFLICT ("email") DO NOTHING' in sql for sql in client.executed)
        setval_calls = [c for c in client.fetch.call_args_list if "setval" in c.args[0]]
        assert len(setval_calls) == len(config.sequence_tables)

    async def test_response_shape(self, tmp_path):
        upload = _write_upload(tmp_path)
        runner = _make_mock_runner(ProcessResult(stdout="", stderr="", exit_code=0))
        report = await restore_database(_make_mock_client(), runner, BackupConfig(), upload)

        response = report.to_response()
        assert response["verification"]["restoreMethod"] == "native"
        assert response["verification"]["expectedUsersFromBackup"] == 3
        assert "skippedStatements" in response["verification"]


# ------------------------------------------------------------------
# verify_restore
# ------------------------------------------------------------------


class TestVerifyRestore:
    """Test post-restore verification directly."""

    async def test_count_failure_becomes_warning(self, tmp_path):
        client = AsyncMock()
        client.fetch = AsyncMock(side_effect=RuntimeError("relation does not exist"))
        ctx = RestoreContext(path=tmp_path / "x.sql", expected={"users": 4, "orders": None, "order_items": None})

        v = await verify_restore(client, BackupConfig(), ctx)

        assert v.users_count == 0
        assert "Could not count users after restore" in v.warnings
        assert v.warning == "Restore completed with missing users data: expected 4, found 0"

    async def test_admin_threshold_follows_configured_accounts(self, tmp_path):
        config = BackupConfig(
            admin_accounts=[
                AdminAccount(email="a@x.com", password="pw"),
                AdminAccount(email="b@x.com", password="pw"),
            ]
        )
        ctx = RestoreContext(path=tmp_path / "x.sql", expected={"users": 2})
        client = _make_mock_client(counts={"users": 2, "orders": 0, "order_items": 0})

        v = await verify_restore(client, config, ctx)

        assert v.warning == NO_NON_ADMIN_USERS_WARNING

    async def test_carries_context_warnings(self, tmp_path):
        ctx = RestoreContext(
            path=tmp_path / "x.sql",
            expected={"users": 3},
            method="fallback",
            skipped=2,
            warnings=["Sequence resync failed for cart"],
        )
        v = await verify_restore(_make_mock_client(), BackupConfig(), ctx)

        assert v.restore_method == "fallback"
        assert v.skipped_statements == 2
        assert v.warnings == ["Sequence resync failed for cart"]
        assert v.warning is None
