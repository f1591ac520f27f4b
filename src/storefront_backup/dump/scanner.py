"""Streaming row counter for plain-text dumps.

Reads a dump line by line (constant memory) and, for each requested table,
counts the data lines of its ``COPY ... FROM stdin;`` block.  A marker
comment ``-- APP_<TABLE>_TOTAL:<N>`` overrides the raw count: markers are
written from a full in-memory fetch and stay correct even when the dump tool
produced a truncated block.

A table with neither a block nor a marker yields ``None`` (unknown), which is
distinct from ``0`` (present but empty).  Lines that continue a multi-line
string literal (a row value containing newlines) are never read as markers
or block headers.

Usage:
    from storefront_backup.dump.scanner import DumpScanner

    scanner = DumpScanner("backup.sql")
    scanner.count("users")                      # 5, or None if absent
    scanner.count_many(["users", "orders"])     # {"users": 5, "orders": None}
"""

import re
from dataclasses import dataclass
from pathlib import Path

from storefront_backup.dump.splitter import QuoteTracker

BLOCK_TERMINATOR = "\\."


def copy_start_pattern(table: str | None = None) -> re.Pattern[str]:
    """Regex matching the start-of-block line for ``table`` (any table if None).

    Group ``table`` is the bare table name and group ``columns`` is the raw
    column list text (may be absent).
    """
    name = re.escape(table) if table else r"[^\s(\".]+"
    return re.compile(
        r'^COPY\s+(?:"?(?P<schema>\w+)"?\.)?"?(?P<table>' + name + r')"?'
        r"\s*(?:\((?P<columns>.*)\))?\s+FROM\s+stdin;\s*$"
    )


_ANY_COPY_START = copy_start_pattern()


def marker_pattern(table: str) -> re.Pattern[str]:
    """Regex matching the authoritative row-count marker for ``table``."""
    return re.compile(
        r"^--\s*APP_" + re.escape(table.upper()) + r"_TOTAL\s*:\s*(\d+)\s*$"
    )


@dataclass
class TableScan:
    """Raw scan findings for one table.

    Attributes:
        block_found: A start-of-block line was seen.
        block_rows: Non-empty data lines inside the block.
        block_terminated: The block's terminator line was seen.
        marker: Value of the first marker comment, if any.
    """

    block_found: bool = False
    block_rows: int = 0
    block_terminated: bool = False
    marker: int | None = None

    @property
    def count(self) -> int | None:
        """Marker value if present, else the block count, else ``None``."""
        if self.marker is not None:
            return self.marker
        if self.block_found:
            return self.block_rows
        return None


class DumpScanner:
    """Marker-aware, line-oriented row counter for a dump file."""

    def __init__(self, path: str | Path, encoding: str = "utf-8") -> None:
        self._path = Path(path)
        self._encoding = encoding

    @property
    def path(self) -> Path:
        return self._path

    def scan(self, tables: list[str]) -> dict[str, TableScan]:
        """Scan the file once and collect block and marker findings per table.

        Marker comments and block headers only count at statement level: a
        line continuing an open string literal or quoted body is text.
        """
        results = {t: TableScan() for t in tables}
        markers = {t: marker_pattern(t) for t in tables}
        tracker = QuoteTracker()
        in_block = False
        current: TableScan | None = None

        with open(self._path, "r", encoding=self._encoding, errors="replace") as f:
            for raw in f:
                line = raw.rstrip("\r\n")

                if in_block:
                    if line.strip() == BLOCK_TERMINATOR:
                        if current is not None:
                            current.block_terminated = True
                        in_block = False
                        current = None
                    elif line.strip() and current is not None:
                        current.block_rows += 1
                    continue

                if not tracker.in_quote:
                    if line.startswith("--"):
                        for table, pattern in markers.items():
                            if results[table].marker is None:
                                match = pattern.match(line)
                                if match:
                                    results[table].marker = int(match.group(1))
                        continue

                    match = _ANY_COPY_START.match(line)
                    if match:
                        in_block = True
                        # Only the first block per table is counted
                        scan = results.get(match.group("table"))
                        if scan is not None and not scan.block_found:
                            scan.block_found = True
                            current = scan
                        continue

                tracker.feed(line)

        return results

    def count_many(self, tables: list[str]) -> dict[str, int | None]:
        """Return the authoritative row count per table in a single pass."""
        return {t: s.count for t, s in self.scan(tables).items()}

    def count(self, table: str) -> int | None:
        """Return the authoritative row count for one table, or ``None``."""
        return self.count_many([table])[table]
