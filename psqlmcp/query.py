"""Single-use asyncpg sessions that run one query each."""

from __future__ import annotations

import logging
import ssl
from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol, Sequence

import asyncpg

from .config import ServerSettings
from .errors import ExecutionError
from .gate import ensure_admissible

LOG = logging.getLogger(__name__)

PREVIEW_LENGTH = 100


@dataclass(frozen=True, slots=True)
class ColumnInfo:
    """Column name plus the engine's type identifier (a PostgreSQL OID)."""

    name: str
    data_type_id: int | None = None

    def as_dict(self) -> dict[str, object]:
        return {"name": self.name, "dataTypeID": self.data_type_id}


@dataclass(frozen=True, slots=True)
class QueryResult:
    """Rows returned by one query execution."""

    rows: tuple[dict[str, Any], ...]
    row_count: int
    columns: tuple[ColumnInfo, ...] = field(default_factory=tuple)


class QuerySession(Protocol):
    """Interface implemented by query sessions."""

    async def execute(
        self, settings: ServerSettings, query: str, params: Sequence[Any] = ()
    ) -> QueryResult: ...


class ConnectionSession:
    """Opens one connection per call, runs one query, always closes it.

    Nothing is pooled or reused between calls, so a failed call cannot leave
    a transaction or prepared statement behind for the next one.
    """

    def __init__(self, *, connect_timeout: float | None = None) -> None:
        self._connect_timeout = connect_timeout

    async def execute(
        self, settings: ServerSettings, query: str, params: Sequence[Any] = ()
    ) -> QueryResult:
        ensure_admissible(query)
        try:
            conn = await asyncpg.connect(**self._connect_kwargs(settings))
        except Exception as exc:
            LOG.error("Database connection failed: %s", exc)
            raise ExecutionError(f"Database error: {exc}") from exc
        try:
            LOG.info("Executing query: %s", preview(query))
            statement = await conn.prepare(query)
            records = await statement.fetch(*params)
            columns = _columns(statement.get_attributes())
        except Exception as exc:
            LOG.error("Query failed: %s", exc)
            raise ExecutionError(f"Database error: {exc}") from exc
        finally:
            try:
                await conn.close()
            except Exception:  # pragma: no cover - best effort cleanup
                LOG.debug("Ignoring error while closing connection", exc_info=True)
        rows = tuple(dict(record.items()) for record in records)
        return QueryResult(rows=rows, row_count=len(rows), columns=columns)

    def _connect_kwargs(self, settings: ServerSettings) -> dict[str, object]:
        kwargs: dict[str, object] = {
            "dsn": settings.connection_string,
            "ssl": _ssl_context() if settings.use_ssl else False,
        }
        if self._connect_timeout is not None:
            kwargs["timeout"] = self._connect_timeout
        return kwargs


def preview(query: str, limit: int = PREVIEW_LENGTH) -> str:
    """Return the first ``limit`` characters of ``query`` for log lines."""

    if len(query) > limit:
        return f"{query[:limit]}..."
    return query


def _ssl_context() -> ssl.SSLContext:
    # Encrypted but unverified: the peer certificate is not checked.
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


def _columns(attributes: Iterable[Any]) -> tuple[ColumnInfo, ...]:
    columns: list[ColumnInfo] = []
    for attribute in attributes:
        type_info = getattr(attribute, "type", None)
        oid = getattr(type_info, "oid", None)
        columns.append(ColumnInfo(name=str(attribute.name), data_type_id=oid))
    return tuple(columns)


__all__ = [
    "ColumnInfo",
    "ConnectionSession",
    "PREVIEW_LENGTH",
    "QueryResult",
    "QuerySession",
    "preview",
]
