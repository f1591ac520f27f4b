"""Scalar literal encoding and bulk-load field decoding.

``encode_literal`` turns a Python value into SQL literal text that is safe to
embed in a generated INSERT statement.  ``decode_copy_field`` reverses the
text-format escaping used by ``COPY ... FROM stdin`` data lines.

Neither function raises: unsupported types fall back to string encoding.

Usage:
    from storefront_backup.dump.literals import decode_copy_field, encode_literal

    encode_literal("O'Brien")        # "'O''Brien'"
    encode_literal(None)             # 'NULL'
    decode_copy_field("\\N")         # None
    decode_copy_field("a\\tb")       # 'a\tb'
"""

import json
import math
import re
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

# Field value pg_dump writes for SQL NULL
COPY_NULL = "\\N"

_COPY_ESCAPES = {
    "t": "\t",
    "n": "\n",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "\\": "\\",
}

_COPY_ESCAPE_RE = re.compile(r"\\(.)", re.DOTALL)


def _quote(text: str) -> str:
    return "'" + text.replace("'", "''") + "'"


def _format_timestamp(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.strftime("%Y-%m-%d %H:%M:%S.%f")


def encode_literal(value: Any) -> str:
    """Encode a scalar as dump-safe SQL literal text.

    - ``None`` and non-finite numbers -> ``NULL``
    - ``bool`` -> ``TRUE`` / ``FALSE``
    - finite numbers -> decimal text
    - ``datetime``/``date`` -> ``'YYYY-MM-DD HH:MM:SS.ffffff'`` (UTC, no zone)
    - ``dict``/``list`` -> quoted JSON text
    - ``bytes`` -> quoted ``\\x`` hex text
    - anything else -> ``str(value)`` single-quoted with quotes doubled
    """
    if value is None:
        return "NULL"
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return repr(value) if math.isfinite(value) else "NULL"
    if isinstance(value, Decimal):
        return str(value) if value.is_finite() else "NULL"
    if isinstance(value, datetime):
        return _quote(_format_timestamp(value))
    if isinstance(value, date):
        return _quote(_format_timestamp(datetime(value.year, value.month, value.day)))
    if isinstance(value, (dict, list)):
        try:
            return _quote(json.dumps(value, default=str))
        except (TypeError, ValueError):
            return _quote(str(value))
    if isinstance(value, (bytes, bytearray, memoryview)):
        return _quote("\\x" + bytes(value).hex())
    return _quote(str(value))


def decode_copy_field(field: str) -> str | None:
    """Decode one tab-separated field of a ``COPY`` data line.

    The two-character null marker decodes to ``None``.  Backslash escapes for
    tab, newline, carriage return, backspace, form feed, vertical tab and
    backslash decode in a single pass; a backslash before any other character
    yields that character.
    """
    if field == COPY_NULL:
        return None
    if "\\" not in field:
        return field
    return _COPY_ESCAPE_RE.sub(
        lambda m: _COPY_ESCAPES.get(m.group(1), m.group(1)), field
    )


def encode_copy_field(value: str | None) -> str:
    """Encode text as a ``COPY`` data field (inverse of ``decode_copy_field``)."""
    if value is None:
        return COPY_NULL
    reverse = {v: k for k, v in _COPY_ESCAPES.items()}
    return "".join(
        "\\" + reverse[ch] if ch in reverse else ch for ch in value
    )
