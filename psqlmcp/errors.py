"""Failure taxonomy shared by the resolver, gate, session and dispatcher."""

from __future__ import annotations

from pathlib import Path


class PsqlMcpError(RuntimeError):
    """Base class for failures that end a single operation call."""


class ConfigNotFound(PsqlMcpError):
    """Raised when the `.env` file or its connection-string key is missing."""

    def __init__(self, message: str, *, path: Path) -> None:
        super().__init__(message)
        self.path = path


class QueryRejected(PsqlMcpError):
    """Raised when a query fails the read-only admission check."""

    def __init__(self, query: str) -> None:
        super().__init__("Only read queries (SELECT) are permitted.")
        self.query = query


class ExecutionError(PsqlMcpError):
    """Raised when connecting or running a query fails."""


class UnsupportedOperation(PsqlMcpError):
    """Raised for unknown operation names or unrecognized enum arguments."""

    def __init__(self, message: str, *, operation: str) -> None:
        super().__init__(message)
        self.operation = operation


__all__ = [
    "ConfigNotFound",
    "ExecutionError",
    "PsqlMcpError",
    "QueryRejected",
    "UnsupportedOperation",
]
