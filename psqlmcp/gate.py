"""Read-only admission check for query text.

This is a lexical keyword screen, not a SQL parser. A query is admitted when,
after comments are stripped, it starts with ``SELECT`` and none of the
forbidden keywords appear anywhere in it as a substring. The substring test
errs towards rejection: ``SELECT update_log FROM audit`` is refused because
``UPDATE`` occurs inside the column name, and a forbidden word inside a string
literal is refused too. Statement boundaries are not understood either;
``SELECT 1; DROP TABLE t`` is only refused because ``DROP`` shows up.

Known blind spot: a ``SELECT`` that calls a server-side function with side
effects (``SELECT pg_terminate_backend(42)``, ``SELECT setval('s', 1)``) uses
none of the forbidden keywords and is admitted. Restricting that is the job of
database grants on the configured role.
"""

from __future__ import annotations

import re

from .errors import QueryRejected

FORBIDDEN_KEYWORDS: tuple[str, ...] = (
    "INSERT",
    "UPDATE",
    "DELETE",
    "DROP",
    "CREATE",
    "ALTER",
    "TRUNCATE",
    "GRANT",
    "REVOKE",
    "EXECUTE",
    "CALL",
)

_LINE_COMMENT = re.compile(r"^[ \t]*--.*$", re.MULTILINE)
_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)


def strip_comments(text: str) -> str:
    """Remove ``--`` line comments and non-nesting ``/* */`` block comments.

    A ``--`` only starts a comment at the beginning of a line, so a marker
    after code or inside a string literal is kept and scanned:
    ``SELECT 1 -- DROP`` is rejected.

    Block comments match shortest-first, so an unterminated ``/*`` is left in
    place and whatever follows it still takes part in the keyword scan.
    """

    without_lines = _LINE_COMMENT.sub("", text)
    return _BLOCK_COMMENT.sub("", without_lines).strip()


def is_admissible(text: str) -> bool:
    """Return True when ``text`` passes the read-only policy."""

    cleaned = strip_comments(text)
    if not cleaned:
        return False
    upper = cleaned.upper()
    if not upper.startswith("SELECT"):
        return False
    return not any(keyword in upper for keyword in FORBIDDEN_KEYWORDS)


def ensure_admissible(text: str) -> str:
    """Return ``text`` unchanged or raise :class:`QueryRejected`."""

    if not is_admissible(text):
        raise QueryRejected(text)
    return text


__all__ = ["FORBIDDEN_KEYWORDS", "ensure_admissible", "is_admissible", "strip_comments"]
