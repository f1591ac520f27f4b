"""Plain-text dump handling: literals, statements, scanning, splitting, transforming.

Everything in this package is synchronous, file- or string-only work with no
database I/O.

Usage:
    from storefront_backup.dump import DumpScanner, split_statements, transform_dump
    from storefront_backup.dump import encode_literal, decode_copy_field
    from storefront_backup.dump import generate_upsert_block
"""

from storefront_backup.dump.literals import decode_copy_field, encode_literal
from storefront_backup.dump.scanner import DumpScanner, TableScan
from storefront_backup.dump.splitter import QuoteTracker, iter_statements, split_statements
from storefront_backup.dump.statements import InsertStatement
from storefront_backup.dump.transformer import transform_dump
from storefront_backup.dump.upsert import generate_upsert_block, marker_line

__all__ = [
    "encode_literal",
    "decode_copy_field",
    "DumpScanner",
    "TableScan",
    "split_statements",
    "iter_statements",
    "QuoteTracker",
    "InsertStatement",
    "transform_dump",
    "generate_upsert_block",
    "marker_line",
]
