"""Named read-only operations and the dispatcher that runs them."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Mapping

from anyio import to_thread
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import ConfigResolver
from .errors import PsqlMcpError, UnsupportedOperation
from .gate import ensure_admissible
from .query import ConnectionSession, QueryResult, QuerySession

LOG = logging.getLogger(__name__)

Envelope = dict[str, Any]

LIST_TABLES_QUERY = """
    SELECT
        schemaname,
        tablename,
        tableowner
    FROM pg_tables
    WHERE schemaname NOT IN ('information_schema', 'pg_catalog')
    ORDER BY schemaname, tablename;
"""

DESCRIBE_TABLE_QUERY = """
    SELECT
        column_name,
        data_type,
        is_nullable,
        column_default,
        character_maximum_length,
        numeric_precision,
        numeric_scale
    FROM information_schema.columns
    WHERE table_schema = $1 AND table_name = $2
    ORDER BY ordinal_position;
"""

TABLE_SIZES_QUERY = """
    SELECT
        schemaname,
        tablename,
        pg_size_pretty(pg_total_relation_size(schemaname||'.'||tablename)) as size
    FROM pg_tables
    WHERE schemaname NOT IN ('information_schema', 'pg_catalog')
    ORDER BY pg_total_relation_size(schemaname||'.'||tablename) DESC;
"""


class CommonQuery(str, Enum):
    """Predefined exploration queries."""

    DATABASE_VERSION = "database_version"
    CURRENT_USER = "current_user"
    CURRENT_DATABASE = "current_database"
    TABLE_SIZES = "table_sizes"


COMMON_QUERIES: Mapping[CommonQuery, str] = {
    CommonQuery.DATABASE_VERSION: "SELECT version() as version;",
    CommonQuery.CURRENT_USER: "SELECT current_user as username;",
    CommonQuery.CURRENT_DATABASE: "SELECT current_database() as database_name;",
    CommonQuery.TABLE_SIZES: TABLE_SIZES_QUERY,
}


class _Arguments(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class SelectQueryArgs(_Arguments):
    query: str = Field(description="The SELECT query to run (only SELECT statements are allowed)")
    params: list[Any] = Field(
        default_factory=list,
        description="Optional positional parameters for $1, $2, ... placeholders",
    )


class NoArgs(_Arguments):
    pass


class DescribeTableArgs(_Arguments):
    table_name: str = Field(description="Name of the table to describe")
    schema_name: str = Field(default="public", description="Schema name (default: public)")


class CommonQueryArgs(_Arguments):
    # Unknown values are reported by the planner as UnsupportedOperation.
    query_type: str = Field(
        description="Which predefined query to run",
        json_schema_extra={"enum": [item.value for item in CommonQuery]},
    )


@dataclass(frozen=True, slots=True)
class PlannedQuery:
    """Query text, bind parameters and extra envelope fields for one call."""

    text: str
    params: tuple[Any, ...] = ()
    echo: Mapping[str, Any] | None = None
    shape: Callable[[QueryResult], Envelope] | None = None


@dataclass(frozen=True, slots=True)
class OperationSpec:
    """Static description of one named operation."""

    name: str
    description: str
    arguments: type[_Arguments]
    plan: Callable[[Any], PlannedQuery]

    def input_schema(self) -> dict[str, Any]:
        return self.arguments.model_json_schema()


def _plan_select(args: SelectQueryArgs) -> PlannedQuery:
    return PlannedQuery(
        text=args.query,
        params=tuple(args.params),
        echo={"query": args.query},
        shape=lambda result: {"fields": [column.as_dict() for column in result.columns]},
    )


def _plan_list_tables(_: NoArgs) -> PlannedQuery:
    return PlannedQuery(
        text=LIST_TABLES_QUERY,
        shape=lambda result: {"tableCount": result.row_count, "tables": list(result.rows)},
    )


def _plan_describe_table(args: DescribeTableArgs) -> PlannedQuery:
    return PlannedQuery(
        text=DESCRIBE_TABLE_QUERY,
        params=(args.schema_name, args.table_name),
        echo={"table": f"{args.schema_name}.{args.table_name}"},
        shape=lambda result: {"columnCount": result.row_count, "columns": list(result.rows)},
    )


def _plan_common_query(args: CommonQueryArgs) -> PlannedQuery:
    try:
        query_type = CommonQuery(args.query_type)
    except ValueError as exc:
        raise UnsupportedOperation(
            f"Unsupported query type: {args.query_type}",
            operation="execute_common_queries",
        ) from exc
    return PlannedQuery(text=COMMON_QUERIES[query_type], echo={"query_type": query_type.value})


OPERATIONS: tuple[OperationSpec, ...] = (
    OperationSpec(
        name="execute_select_query",
        description="Run a custom SELECT query against the PostgreSQL database",
        arguments=SelectQueryArgs,
        plan=_plan_select,
    ),
    OperationSpec(
        name="list_tables",
        description="List every table available in the database",
        arguments=NoArgs,
        plan=_plan_list_tables,
    ),
    OperationSpec(
        name="describe_table",
        description="Show detailed column information for a table",
        arguments=DescribeTableArgs,
        plan=_plan_describe_table,
    ),
    OperationSpec(
        name="execute_common_queries",
        description="Run a predefined query that helps explore the database",
        arguments=CommonQueryArgs,
        plan=_plan_common_query,
    ),
)


class OperationDispatcher:
    """Maps operation names onto gated queries and wraps every outcome."""

    def __init__(
        self,
        *,
        directory: str | os.PathLike[str] | None = None,
        resolver: ConfigResolver | None = None,
        session: QuerySession | None = None,
        operations: tuple[OperationSpec, ...] = OPERATIONS,
    ) -> None:
        self._directory = Path(directory) if directory is not None else None
        self._resolver = resolver or ConfigResolver()
        self._session = session or ConnectionSession()
        self._operations = {spec.name: spec for spec in operations}

    @property
    def operations(self) -> tuple[OperationSpec, ...]:
        return tuple(self._operations.values())

    @property
    def directory(self) -> Path:
        """Directory whose `.env` supplies the connection; defaults to the cwd."""

        return self._directory or Path.cwd()

    def describe_operations(self) -> list[dict[str, Any]]:
        """Return name, description and input schema for every operation."""

        return [
            {"name": spec.name, "description": spec.description, "inputSchema": spec.input_schema()}
            for spec in self._operations.values()
        ]

    async def invoke(self, name: str, arguments: Mapping[str, Any] | None = None) -> Envelope:
        """Run ``name`` with ``arguments``; never raises."""

        try:
            return await self._invoke(name, dict(arguments or {}))
        except PsqlMcpError as exc:
            LOG.warning("Operation failed", extra={"operation": name, "error": str(exc)})
            return _failure(name, str(exc))
        except ValidationError as exc:
            LOG.warning("Invalid arguments", extra={"operation": name, "error": str(exc)})
            return _failure(name, f"Invalid arguments for {name}: {_summarize(exc)}")
        except Exception as exc:
            LOG.exception("Unexpected failure", extra={"operation": name})
            return _failure(name, str(exc) or exc.__class__.__name__)

    async def _invoke(self, name: str, arguments: dict[str, Any]) -> Envelope:
        spec = self._operations.get(name)
        if spec is None:
            raise UnsupportedOperation(f"Unknown tool: {name}", operation=name)
        args = spec.arguments.model_validate(arguments)
        planned = spec.plan(args)
        ensure_admissible(planned.text)
        settings = await to_thread.run_sync(self._resolver.settings, self.directory)
        result = await self._session.execute(settings, planned.text, planned.params)
        envelope: Envelope = {"success": True, "operation": name}
        envelope.update(planned.echo or {})
        envelope["rowCount"] = result.row_count
        envelope["rows"] = list(result.rows)
        if planned.shape is not None:
            envelope.update(planned.shape(result))
        return envelope


def _failure(name: str, message: str) -> Envelope:
    return {"success": False, "error": message, "operation": name}


def _summarize(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "arguments"
        parts.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "; ".join(parts)


__all__ = [
    "COMMON_QUERIES",
    "CommonQuery",
    "DESCRIBE_TABLE_QUERY",
    "Envelope",
    "LIST_TABLES_QUERY",
    "OPERATIONS",
    "OperationDispatcher",
    "OperationSpec",
    "TABLE_SIZES_QUERY",
]
