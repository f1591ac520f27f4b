"""Structured INSERT statement builder.

Pairs column names with literal values encoded through
``encode_literal`` so every generated statement shares one escaping path.

Usage:
    from storefront_backup.dump.statements import InsertStatement

    stmt = InsertStatement.from_row("users", {"id": 1, "email": "a@b.c"})
    stmt.to_sql()
    # 'INSERT INTO public.users ("id", "email") VALUES (1, \\'a@b.c\\');'

    stmt.upsert().to_sql()
    # '... ON CONFLICT ("id") DO UPDATE SET "email" = EXCLUDED."email";'
"""

import re
from dataclasses import dataclass, field, replace
from typing import Any

from storefront_backup.dump.literals import encode_literal

_PLAIN_IDENTIFIER_RE = re.compile(r"^[a-z_][a-z0-9_$]*$")


def quote_identifier(name: str) -> str:
    """Double-quote a SQL identifier, doubling embedded quotes."""
    return '"' + name.replace('"', '""') + '"'


def quote_identifier_if_needed(name: str) -> str:
    """Quote an identifier only when it is not a plain lower-case name."""
    if _PLAIN_IDENTIFIER_RE.match(name):
        return name
    return quote_identifier(name)


def qualify_table(table: str, schema: str | None = "public") -> str:
    """Return ``schema.table`` unless the table is already qualified."""
    if not schema or "." in table:
        return table
    return f"{schema}.{table}"


@dataclass
class InsertStatement:
    """One INSERT with pre-encoded literal values and optional upsert clause.

    Attributes:
        table: Qualified or bare table name (emitted verbatim).
        columns: Column names, in value order (empty: no column list).
        values: Literal SQL text for each column (already encoded).
        conflict_target: Column for ``ON CONFLICT``; ``None`` for a plain insert.
        update_columns: Columns set from ``EXCLUDED`` on conflict.
    """

    table: str
    columns: list[str]
    values: list[str]
    conflict_target: str | None = None
    update_columns: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.columns and len(self.columns) != len(self.values):
            raise ValueError(
                f"Column/value count mismatch for {self.table}: "
                f"{len(self.columns)} columns, {len(self.values)} values"
            )

    @classmethod
    def from_row(
        cls,
        table: str,
        row: dict[str, Any],
        schema: str | None = "public",
    ) -> "InsertStatement":
        """Build a plain INSERT from a field -> value mapping."""
        columns = list(row.keys())
        return cls(
            table=qualify_table(table, schema),
            columns=columns,
            values=[encode_literal(row[c]) for c in columns],
        )

    def upsert(self, conflict_target: str | None = None) -> "InsertStatement":
        """Return a copy resolving conflicts by updating every non-target column.

        The conflict target defaults to ``id`` when present, else the first column.
        """
        if conflict_target is None:
            conflict_target = "id" if "id" in self.columns else self.columns[0]
        return replace(
            self,
            conflict_target=conflict_target,
            update_columns=[c for c in self.columns if c != conflict_target],
        )

    def to_sql(self) -> str:
        """Render the statement with a trailing semicolon."""
        vals = ", ".join(self.values)
        if self.columns:
            cols = ", ".join(quote_identifier(c) for c in self.columns)
            sql = f"INSERT INTO {self.table} ({cols}) VALUES ({vals})"
        else:
            sql = f"INSERT INTO {self.table} VALUES ({vals})"

        if self.conflict_target is not None:
            target = quote_identifier(self.conflict_target)
            if self.update_columns:
                assignments = ", ".join(
                    f"{quote_identifier(c)} = EXCLUDED.{quote_identifier(c)}"
                    for c in self.update_columns
                )
                sql += f" ON CONFLICT ({target}) DO UPDATE SET {assignments}"
            else:
                sql += f" ON CONFLICT ({target}) DO NOTHING"

        return sql + ";"
