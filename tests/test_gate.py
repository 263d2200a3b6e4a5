"""Tests for the read-only admission check."""

from __future__ import annotations

import pytest

from psqlmcp.errors import QueryRejected
from psqlmcp.gate import FORBIDDEN_KEYWORDS, ensure_admissible, is_admissible, strip_comments


@pytest.mark.parametrize(
    "query",
    [
        "SELECT * FROM t;",
        "select 1",
        "  SELECT id FROM accounts WHERE id = $1  ",
        "/* header */ SELECT 1",
        "SELECT 1 -- trailing note",
        "-- leading note\nSELECT now()",
        "  -- indented note\nSELECT 1",
        "SELECT email, last_login FROM accounts",
    ],
)
def test_accepts_plain_selects(query: str) -> None:
    assert is_admissible(query) is True


@pytest.mark.parametrize("query", ["", "   ", "\n\t", "-- SELECT 1", "/* SELECT 1 */"])
def test_rejects_empty_after_stripping(query: str) -> None:
    assert is_admissible(query) is False


@pytest.mark.parametrize(
    "query",
    [
        "WITH x AS (SELECT 1) SELECT * FROM x",
        "SHOW search_path",
        "VALUES (1)",
        "EXPLAIN SELECT 1",
        "(SELECT 1)",
    ],
)
def test_rejects_queries_not_starting_with_select(query: str) -> None:
    assert is_admissible(query) is False


@pytest.mark.parametrize("keyword", FORBIDDEN_KEYWORDS)
def test_rejects_every_forbidden_keyword_case_insensitively(keyword: str) -> None:
    assert is_admissible(f"SELECT 1 FROM t WHERE note = '{keyword.lower()}'") is False
    assert is_admissible(f"SELECT {keyword} FROM t") is False


def test_rejects_multi_statement_with_drop() -> None:
    assert is_admissible("SELECT * FROM t; DROP TABLE t;") is False


def test_rejects_keyword_inside_identifier() -> None:
    assert is_admissible("SELECT update_log FROM audit") is False
    assert is_admissible("SELECT created_at FROM accounts") is False


def test_unterminated_block_comment_still_scanned() -> None:
    assert is_admissible("SELECT 1 /* DROP TABLE t") is False


def test_keyword_inside_stripped_comment_is_ignored() -> None:
    assert is_admissible("SELECT 1 /* no DELETE here */") is True


def test_mutating_function_call_is_not_caught() -> None:
    assert is_admissible("SELECT pg_terminate_backend(42)") is True


@pytest.mark.parametrize(
    "query",
    [
        "SELECT '--'; DROP TABLE accounts;",
        "SELECT 1 -- DROP TABLE t",
        "SELECT 1 -- ; DROP TABLE accounts",
        "SELECT 'a--b' AS x; DELETE FROM t",
    ],
)
def test_mid_line_dashes_do_not_hide_keywords(query: str) -> None:
    assert is_admissible(query) is False


def test_strip_comments_removes_line_and_block_comments() -> None:
    text = "-- intro\nSELECT a, /* first */ b /* second */\nFROM t -- tail"

    assert strip_comments(text) == "SELECT a,  b \nFROM t -- tail"


def test_ensure_admissible_returns_original_text() -> None:
    query = "select * from Accounts"

    assert ensure_admissible(query) is query


def test_ensure_admissible_raises_rejection() -> None:
    with pytest.raises(QueryRejected) as excinfo:
        ensure_admissible("DELETE FROM accounts")

    assert excinfo.value.query == "DELETE FROM accounts"
    assert "SELECT" in str(excinfo.value)
