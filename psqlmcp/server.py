"""stdio MCP server exposing the read-only PostgreSQL operations."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

from . import __version__
from .config import ConfigResolver
from .errors import ConfigNotFound
from .operations import CommonQuery, Envelope, OperationDispatcher
from .query import ConnectionSession

LOG = logging.getLogger(__name__)

SERVER_NAME = "postgresql-mcp-server"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str | int | None = None) -> None:
    """Send log lines to stderr; stdout carries the MCP protocol."""

    resolved = level or os.environ.get("MCP_PG_LOG_LEVEL", "INFO")
    if isinstance(resolved, str):
        resolved = resolved.upper()
    logging.basicConfig(
        level=resolved,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )


def render(envelope: Envelope) -> str:
    """Serialize an envelope the way tool results are returned."""

    return json.dumps(envelope, indent=2, default=str)


def build_server(dispatcher: OperationDispatcher) -> FastMCP:
    """Register one tool per operation, each delegating to ``dispatcher``."""

    server = FastMCP(SERVER_NAME)
    descriptions = {spec.name: spec.description for spec in dispatcher.operations}

    @server.tool(name="execute_select_query", description=descriptions["execute_select_query"])
    async def execute_select_query(query: str, params: list[Any] | None = None) -> str:
        return render(
            await dispatcher.invoke("execute_select_query", {"query": query, "params": params or []})
        )

    @server.tool(name="list_tables", description=descriptions["list_tables"])
    async def list_tables() -> str:
        return render(await dispatcher.invoke("list_tables", {}))

    @server.tool(name="describe_table", description=descriptions["describe_table"])
    async def describe_table(table_name: str, schema_name: str = "public") -> str:
        return render(
            await dispatcher.invoke(
                "describe_table", {"table_name": table_name, "schema_name": schema_name}
            )
        )

    common_choices = ", ".join(item.value for item in CommonQuery)

    @server.tool(
        name="execute_common_queries",
        description=f"{descriptions['execute_common_queries']} (query_type: {common_choices})",
    )
    async def execute_common_queries(query_type: str) -> str:
        return render(await dispatcher.invoke("execute_common_queries", {"query_type": query_type}))

    return server


class ServerRuntime:
    """Owns the dispatcher and transport for one working directory."""

    def __init__(
        self,
        directory: str | os.PathLike[str] | None = None,
        *,
        resolver: ConfigResolver | None = None,
        dispatcher: OperationDispatcher | None = None,
    ) -> None:
        self.directory = Path(directory) if directory is not None else Path.cwd()
        self.resolver = resolver or ConfigResolver()
        self.dispatcher = dispatcher or OperationDispatcher(
            directory=self.directory,
            resolver=self.resolver,
            session=ConnectionSession(),
        )
        self.server = build_server(self.dispatcher)

    def validate(self) -> None:
        """Resolve configuration eagerly so a bad setup fails at startup."""

        self.resolver.settings(self.directory)

    def run(self) -> None:
        LOG.info("%s %s running on stdio", SERVER_NAME, __version__)
        self.server.run(transport="stdio")

    def shutdown(self) -> int:
        """Hook the host calls on interrupt; returns the exit status."""

        LOG.info("Shutting down %s", SERVER_NAME)
        self.resolver.invalidate()
        return 0


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="psql-mcp", description=__doc__)
    parser.add_argument(
        "--directory",
        default=None,
        help="Project directory containing the .env file (default: current directory)",
    )
    parser.add_argument("--log-level", default=None, help="Logging level (default: INFO)")
    parser.add_argument(
        "--no-validate",
        action="store_true",
        help="Skip the startup configuration check",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Run the stdio server until the client disconnects or an interrupt arrives."""

    args = parse_args(sys.argv[1:] if argv is None else argv)
    configure_logging(args.log_level)
    runtime = ServerRuntime(args.directory)
    if not args.no_validate:
        try:
            runtime.validate()
        except ConfigNotFound as exc:
            LOG.error("%s", exc)
            LOG.error("Looked in: %s", exc.path)
            return 1
    try:
        runtime.run()
    except KeyboardInterrupt:
        return runtime.shutdown()
    except Exception:
        LOG.exception("Failed to start server")
        return 1
    return 0


__all__ = [
    "SERVER_NAME",
    "ServerRuntime",
    "build_server",
    "configure_logging",
    "main",
    "render",
]
