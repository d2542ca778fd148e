"""Split raw SQL migration text into individual statements.

Semicolons only terminate a statement outside quoted strings, quoted
identifiers and comments, and only once SQLite considers the text a
complete statement. The `;` inside a `CREATE TRIGGER ... BEGIN ... END`
body therefore stays part of the trigger. Comments are kept as part of
the statement text they precede; statements that contain nothing but
comments are dropped.
"""

from __future__ import annotations

import re
import sqlite3

from schemaledger.exceptions import UnparsableDefinition

_QUOTES = ("'", '"', "`")
_SCHEMA_VERBS = re.compile(
    r"^\s*(CREATE|ALTER|DROP|RENAME|TRUNCATE|REINDEX)\b", re.IGNORECASE
)


def split_statements(sql: str, source: str = "<memory>") -> list[str]:
    """Return the non-empty statements of *sql* in order."""
    statements: list[str] = []
    buf: list[str] = []
    i = 0
    n = len(sql)

    while i < n:
        ch = sql[i]
        nxt = sql[i + 1] if i + 1 < n else ""

        if ch in _QUOTES:
            end = _scan_quoted(sql, i, ch)
            if end < 0:
                raise UnparsableDefinition(source, f"unterminated {ch} quote at offset {i}")
            buf.append(sql[i:end])
            i = end
        elif ch == "-" and nxt == "-":
            end = sql.find("\n", i)
            end = n if end < 0 else end + 1
            buf.append(sql[i:end])
            i = end
        elif ch == "/" and nxt == "*":
            end = sql.find("*/", i + 2)
            if end < 0:
                raise UnparsableDefinition(source, f"unterminated block comment at offset {i}")
            buf.append(sql[i:end + 2])
            i = end + 2
        elif ch == ";":
            buf.append(ch)
            i += 1
            if sqlite3.complete_statement("".join(buf)):
                buf.pop()
                _flush(buf, statements)
        else:
            buf.append(ch)
            i += 1

    tail = "".join(buf)
    if strip_comments(tail) and not sqlite3.complete_statement(tail + "\n;"):
        raise UnparsableDefinition(source, "incomplete statement at end of input")
    _flush(buf, statements)
    return statements


def is_schema_statement(sql: str) -> bool:
    """True if any statement in *sql* mutates the schema."""
    try:
        statements = split_statements(sql)
    except UnparsableDefinition:
        # Unparsable text is classified conservatively by its first token.
        statements = [sql]
    return any(_SCHEMA_VERBS.match(strip_comments(s)) for s in statements)


def strip_comments(statement: str) -> str:
    """Statement text with leading comments removed."""
    text = statement.lstrip()
    while True:
        if text.startswith("--"):
            nl = text.find("\n")
            text = "" if nl < 0 else text[nl + 1:].lstrip()
        elif text.startswith("/*"):
            end = text.find("*/")
            text = "" if end < 0 else text[end + 2:].lstrip()
        else:
            return text


def _scan_quoted(sql: str, start: int, quote: str) -> int:
    """Index just past the closing quote, or -1. Doubled quotes escape."""
    i = start + 1
    n = len(sql)
    while i < n:
        if sql[i] == quote:
            if i + 1 < n and sql[i + 1] == quote:
                i += 2
                continue
            return i + 1
        i += 1
    return -1


def _flush(buf: list[str], statements: list[str]) -> None:
    text = "".join(buf).strip()
    buf.clear()
    if text and strip_comments(text):
        statements.append(text)
