"""Typed, resource-safe statement access over the SQLite C API."""

from sqlstep.command import Command, ParameterBinder
from sqlstep.connection import Connection
from sqlstep.engine.codes import (
    AuthorizerAction,
    AuthorizerResult,
    ColumnType,
    OpenFlag,
    ResultCode,
    UpdateKind,
)
from sqlstep.errors import (
    BatchError,
    BindError,
    ColumnRangeError,
    CompileError,
    ConnectionError,
    DatabaseError,
    LibraryNotFoundError,
    StepError,
)
from sqlstep.models.column import ColumnInfo
from sqlstep.query import ColumnReader, Query, Row
from sqlstep.statement import StatementCore, StatementState
from sqlstep.transaction import Transaction

__all__ = [
    "AuthorizerAction",
    "AuthorizerResult",
    "BatchError",
    "BindError",
    "ColumnInfo",
    "ColumnRangeError",
    "ColumnReader",
    "ColumnType",
    "Command",
    "CompileError",
    "Connection",
    "ConnectionError",
    "DatabaseError",
    "LibraryNotFoundError",
    "OpenFlag",
    "ParameterBinder",
    "Query",
    "ResultCode",
    "Row",
    "StatementCore",
    "StatementState",
    "StepError",
    "Transaction",
    "UpdateKind",
]
