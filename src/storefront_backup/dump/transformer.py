"""Rewrite ``COPY ... FROM stdin`` blocks as individual INSERT statements.

Only the fallback restore path uses this: without ``psql`` there is nothing
that can consume bulk-load blocks, so each data line becomes a plain INSERT
using the column list from the block header.  Backslash meta-command lines
outside blocks are dropped unless they continue a multi-line string literal;
every other line passes through unchanged.

Usage:
    from storefront_backup.dump.transformer import transform_dump

    script = transform_dump(Path("backup.sql").read_text())
"""

from collections.abc import Iterable, Iterator

from storefront_backup.dump.literals import decode_copy_field, encode_literal
from storefront_backup.dump.scanner import BLOCK_TERMINATOR, copy_start_pattern
from storefront_backup.dump.splitter import QuoteTracker
from storefront_backup.dump.statements import InsertStatement, quote_identifier_if_needed

_ANY_COPY_START = copy_start_pattern()


def parse_column_list(text: str) -> list[str]:
    """Split a COPY header column list into bare column names.

    Handles double-quoted names containing commas or doubled quotes.

    Example:
        parse_column_list('id, "full name", "a""b"')
        # ['id', 'full name', 'a"b']
    """
    columns: list[str] = []
    current: list[str] = []
    in_quotes = False
    i = 0
    while i < len(text):
        ch = text[i]
        if in_quotes:
            if ch == '"':
                if text.startswith('""', i):
                    current.append('"')
                    i += 2
                    continue
                in_quotes = False
            else:
                current.append(ch)
        elif ch == '"':
            in_quotes = True
        elif ch == ",":
            columns.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
        i += 1

    last = "".join(current).strip()
    if last:
        columns.append(last)
    return columns


def copy_line_to_insert(table: str, columns: list[str], line: str) -> str:
    """Convert one tab-delimited COPY data line into an INSERT statement."""
    fields = [decode_copy_field(f) for f in line.split("\t")]
    return InsertStatement(
        table=table,
        columns=columns,
        values=[encode_literal(v) for v in fields],
    ).to_sql()


def iter_transformed_lines(lines: Iterable[str]) -> Iterator[str]:
    """Yield the transformed dump, one output line at a time (no newlines).

    Block headers and meta-commands are only recognized at statement level;
    a line continuing an open string literal passes through as text.
    """
    table: str | None = None
    columns: list[str] = []
    tracker = QuoteTracker()

    for raw in lines:
        line = raw.rstrip("\r\n")

        if table is not None:
            if line.strip() == BLOCK_TERMINATOR:
                table = None
            elif line:
                yield copy_line_to_insert(table, columns, line)
            continue

        if not tracker.in_quote:
            match = _ANY_COPY_START.match(line)
            if match:
                schema = match.group("schema")
                name = match.group("table")
                table = quote_identifier_if_needed(name)
                if schema:
                    table = f"{quote_identifier_if_needed(schema)}.{table}"
                columns = parse_column_list(match.group("columns") or "")
                continue

            if line.startswith("\\"):
                continue

        tracker.feed(line)
        yield raw


def transform_dump(text: str) -> str:
    """Rewrite every bulk-load block in ``text`` into INSERT statements."""
    return "\n".join(iter_transformed_lines(text.split("\n")))
