"""Quote-aware SQL script splitter.

Splits a multi-statement script into individual statements so the fallback
restore path can execute them one at a time.  Semicolons only terminate a
statement in the default scanner state; inside single-quoted literals,
double-quoted identifiers and dollar-quoted bodies they are inert.

Scanner states:

- default: ``;`` ends a statement; ``'``, ``"`` or ``$tag$`` open a quote;
  ``--`` and ``/* */`` comments are dropped.
- single quote: ``''`` is an escaped quote, any other ``'`` closes.
- double quote: ``""`` is an escaped quote, any other ``"`` closes.
- dollar quote: only the exact opening tag closes.

``QuoteTracker`` runs the same state machine one line at a time so that
line-oriented readers (the scanner and the transformer) can tell a
statement-level line from the continuation of a multi-line literal.

Usage:
    from storefront_backup.dump.splitter import split_statements

    split_statements("INSERT INTO t VALUES ('a;b'); SELECT 1")
    # ["INSERT INTO t VALUES ('a;b')", 'SELECT 1']
"""

import re
from collections.abc import Iterator

_DEFAULT = 0
_SINGLE = 1
_DOUBLE = 2
_DOLLAR = 3
_BLOCK_COMMENT = 4

# Characters that can change state (or end a statement) in the default state
_DEFAULT_SPECIAL_RE = re.compile(r"[;'\"$/-]")
_DOLLAR_TAG_RE = re.compile(r"\$(\w*)\$")


def _is_identifier_char(ch: str) -> bool:
    return ch.isalnum() or ch == "_"


def iter_statements(script: str) -> Iterator[str]:
    """Yield trimmed, non-empty statements from ``script`` in order.

    Statements are yielded without their terminating semicolon.  Trailing
    text after the last semicolon is yielded as a final statement.
    """
    buf: list[str] = []
    state = _DEFAULT
    dollar_tag = ""
    i = 0
    n = len(script)

    def flush() -> str | None:
        text = "".join(buf).strip()
        buf.clear()
        return text or None

    while i < n:
        if state == _DEFAULT:
            match = _DEFAULT_SPECIAL_RE.search(script, i)
            if match is None:
                buf.append(script[i:])
                break

            j = match.start()
            buf.append(script[i:j])
            ch = script[j]

            if ch == ";":
                statement = flush()
                if statement:
                    yield statement
                i = j + 1
            elif ch == "'":
                buf.append(ch)
                state = _SINGLE
                i = j + 1
            elif ch == '"':
                buf.append(ch)
                state = _DOUBLE
                i = j + 1
            elif ch == "-":
                if script.startswith("--", j):
                    # Keep the newline so surrounding tokens stay separated
                    end = script.find("\n", j)
                    i = n if end == -1 else end
                else:
                    buf.append(ch)
                    i = j + 1
            elif ch == "/":
                if script.startswith("/*", j):
                    end = script.find("*/", j + 2)
                    buf.append(" ")
                    i = n if end == -1 else end + 2
                else:
                    buf.append(ch)
                    i = j + 1
            else:
                tag_match = _DOLLAR_TAG_RE.match(script, j)
                preceded_by_identifier = j > 0 and _is_identifier_char(script[j - 1])
                if tag_match and not preceded_by_identifier:
                    dollar_tag = tag_match.group(0)
                    buf.append(dollar_tag)
                    state = _DOLLAR
                    i = tag_match.end()
                else:
                    buf.append(ch)
                    i = j + 1

        elif state in (_SINGLE, _DOUBLE):
            quote = "'" if state == _SINGLE else '"'
            end = script.find(quote, i)
            if end == -1:
                buf.append(script[i:])
                break

            buf.append(script[i:end + 1])
            if script.startswith(quote, end + 1):
                # Doubled quote is an escaped literal quote
                buf.append(quote)
                i = end + 2
            else:
                state = _DEFAULT
                i = end + 1

        else:
            end = script.find(dollar_tag, i)
            if end == -1:
                buf.append(script[i:])
                break

            close = end + len(dollar_tag)
            buf.append(script[i:close])
            state = _DEFAULT
            i = close

    statement = flush()
    if statement:
        yield statement


def split_statements(script: str) -> list[str]:
    """Split ``script`` into an ordered list of executable statements."""
    return list(iter_statements(script))


class QuoteTracker:
    """Line-at-a-time view of the splitter's quoting state.

    Feed script lines in order (without their newline).  ``in_quote`` is
    true while the text fed so far ends inside a single-quoted literal, a
    double-quoted identifier, a dollar-quoted body or a block comment.  A
    line that starts in that state is a continuation, not a meta-command,
    marker comment or block header.

    Example:
        tracker = QuoteTracker()
        tracker.feed("INSERT INTO t VALUES ('first")
        tracker.in_quote    # True
        tracker.feed("second');")
        tracker.in_quote    # False
    """

    def __init__(self) -> None:
        self._state = _DEFAULT
        self._dollar_tag = ""

    @property
    def in_quote(self) -> bool:
        return self._state != _DEFAULT

    def feed(self, line: str) -> None:
        i = 0
        n = len(line)
        while i < n:
            if self._state == _DEFAULT:
                match = _DEFAULT_SPECIAL_RE.search(line, i)
                if match is None:
                    return

                j = match.start()
                ch = line[j]
                i = j + 1
                if ch == "'":
                    self._state = _SINGLE
                elif ch == '"':
                    self._state = _DOUBLE
                elif ch == "-":
                    if line.startswith("--", j):
                        return
                elif ch == "/":
                    if line.startswith("/*", j):
                        self._state = _BLOCK_COMMENT
                        i = j + 2
                elif ch == "$":
                    tag_match = _DOLLAR_TAG_RE.match(line, j)
                    preceded_by_identifier = j > 0 and _is_identifier_char(line[j - 1])
                    if tag_match and not preceded_by_identifier:
                        self._dollar_tag = tag_match.group(0)
                        self._state = _DOLLAR
                        i = tag_match.end()

            elif self._state in (_SINGLE, _DOUBLE):
                quote = "'" if self._state == _SINGLE else '"'
                end = line.find(quote, i)
                if end == -1:
                    return
                if line.startswith(quote, end + 1):
                    i = end + 2
                else:
                    self._state = _DEFAULT
                    i = end + 1

            else:
                closer = self._dollar_tag if self._state == _DOLLAR else "*/"
                end = line.find(closer, i)
                if end == -1:
                    return
                self._state = _DEFAULT
                i = end + len(closer)
