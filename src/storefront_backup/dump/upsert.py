"""Redundant upsert blocks for critical tables.

A backup appends, for each critical table, a marker comment recording the
exact row count followed by one idempotent ``INSERT ... ON CONFLICT DO
UPDATE`` per row.  Replaying a block over identical rows is a no-op;
replaying it over an empty table repopulates it exactly.

Usage:
    from storefront_backup.dump.upsert import generate_upsert_block, marker_line

    block = generate_upsert_block("users", rows)
    with open(dump_path, "a", encoding="utf-8") as f:
        f.write(block)
"""

from typing import Any

from storefront_backup.dump.statements import InsertStatement

MARKER_TEMPLATE = "-- APP_{table}_TOTAL:{count}"


def marker_line(table: str, count: int) -> str:
    """Render the authoritative row-count marker comment for a table."""
    return MARKER_TEMPLATE.format(table=table.upper(), count=count)


def build_upsert_statements(
    table: str,
    rows: list[dict[str, Any]],
    schema: str | None = "public",
) -> list[InsertStatement]:
    """Build one upsert statement per row.

    All rows must share the field set of the first row; the insert column
    list is every field of that row.
    """
    if not rows:
        return []

    columns = list(rows[0].keys())
    statements: list[InsertStatement] = []
    for row in rows:
        ordered = {c: row.get(c) for c in columns}
        statements.append(InsertStatement.from_row(table, ordered, schema).upsert())
    return statements


def generate_upsert_block(
    table: str,
    rows: list[dict[str, Any]],
    schema: str | None = "public",
) -> str:
    """Render the marker comment and upsert statements for a table.

    Returns an empty string for empty input.
    """
    statements = build_upsert_statements(table, rows, schema)
    if not statements:
        return ""

    lines = [
        "",
        "",
        marker_line(table, len(rows)),
        f"-- App-level {table} backup (ensures all {table} rows are restorable)",
    ]
    lines.extend(stmt.to_sql() for stmt in statements)
    return "\n".join(lines) + "\n"
