"""End-to-end tests for dump text: generate, scan, transform, split.

Row values here carry embedded newlines, lines starting with a backslash,
and lines that look like markers, block headers or terminators.
"""

from pathlib import Path

import pytest

from storefront_backup.dump.literals import encode_copy_field, encode_literal
from storefront_backup.dump.scanner import DumpScanner
from storefront_backup.dump.splitter import split_statements
from storefront_backup.dump.transformer import transform_dump
from storefront_backup.dump.upsert import generate_upsert_block

TRICKY_TEXT = [
    "first\n\\o/ second",
    "Eve\n-- APP_ORDERS_TOTAL:0\n",
    "x\nCOPY public.orders (id) FROM stdin;\ny",
    "\\.\nafter terminator",
    "semi; colon 'quote' \"ident\"",
    "$$ dollar $tag$",
]

DUMP_HEAD = (
    "--\n-- PostgreSQL database dump\n--\n\n"
    "SET standard_conforming_strings = on;\n"
    "\\connect storefront\n"
    "COPY public.orders (id, note) FROM stdin;\n"
    "1\tfirst\n"
    "2\tsecond\n"
    "\\.\n"
)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _user_rows() -> list[dict]:
    return [
        {"id": i, "full_name": text, "role": "customer"}
        for i, text in enumerate(TRICKY_TEXT, start=1)
    ]


def _write_backup(tmp_path: Path, rows: list[dict]) -> Path:
    path = tmp_path / "backup.sql"
    path.write_text(
        DUMP_HEAD + generate_upsert_block("users", rows), encoding="utf-8"
    )
    return path


# ------------------------------------------------------------------
# Upsert blocks
# ------------------------------------------------------------------


class TestUpsertBlockPipeline:
    """Appended upsert blocks survive scanning and fallback splitting."""

    def test_scanner_counts(self, tmp_path):
        path = _write_backup(tmp_path, _user_rows())
        counts = DumpScanner(path).count_many(["users", "orders", "order_items"])
        assert counts == {"users": len(TRICKY_TEXT), "orders": 2, "order_items": None}

    def test_one_statement_per_row(self, tmp_path):
        rows = _user_rows()
        path = _write_backup(tmp_path, rows)

        statements = split_statements(transform_dump(path.read_text(encoding="utf-8")))
        user_statements = [s for s in statements if s.startswith("INSERT INTO public.users")]

        assert len(user_statements) == len(rows)
        for statement, row in zip(user_statements, rows):
            assert encode_literal(row["full_name"]) in statement
            assert statement.endswith('"role" = EXCLUDED."role"')

    def test_block_rows_and_settings_preserved(self, tmp_path):
        path = _write_backup(tmp_path, _user_rows())
        statements = split_statements(transform_dump(path.read_text(encoding="utf-8")))

        assert statements[0] == "SET standard_conforming_strings = on"
        assert statements[1:3] == [
            'INSERT INTO public.orders ("id", "note") VALUES (\'1\', \'first\')',
            'INSERT INTO public.orders ("id", "note") VALUES (\'2\', \'second\')',
        ]
        assert not any(s.startswith("\\connect") for s in statements)


# ------------------------------------------------------------------
# Bulk-load blocks
# ------------------------------------------------------------------


class TestCopyBlockPipeline:
    """Escaped bulk-load fields decode into the original text."""

    @pytest.mark.parametrize("text", TRICKY_TEXT)
    def test_field_becomes_literal(self, text):
        dump = (
            "COPY public.users (id, full_name) FROM stdin;\n"
            f"7\t{encode_copy_field(text)}\n"
            "\\.\n"
            "SELECT 1;\n"
        )
        statements = split_statements(transform_dump(dump))
        assert statements == [
            'INSERT INTO public.users ("id", "full_name") VALUES '
            f"('7', {encode_literal(text)})",
            "SELECT 1",
        ]

    def test_escaped_fields_keep_block_count(self, tmp_path):
        lines = "".join(
            f"{i}\t{encode_copy_field(text)}\n" for i, text in enumerate(TRICKY_TEXT)
        )
        path = tmp_path / "b.sql"
        path.write_text(
            f"COPY public.users (id, full_name) FROM stdin;\n{lines}\\.\n",
            encoding="utf-8",
        )
        assert DumpScanner(path).count("users") == len(TRICKY_TEXT)
