"""Tests for the exception hierarchy."""

import pytest

from sqlstep.engine.codes import ResultCode
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


def test_hierarchy():
    for cls in (CompileError, BindError, StepError, ConnectionError, ColumnRangeError):
        assert issubclass(cls, DatabaseError)
    assert issubclass(BatchError, StepError)
    assert issubclass(ColumnRangeError, IndexError)
    assert issubclass(LibraryNotFoundError, OSError)


def test_str_includes_code_name():
    err = StepError("database is locked", ResultCode.BUSY)
    assert str(err) == "database is locked (code 5: SQLITE_BUSY)"
    assert err.extended_code == ResultCode.BUSY


def test_extended_code_kept():
    err = StepError("UNIQUE constraint failed: u.a", ResultCode.CONSTRAINT, 2067)
    assert err.code == ResultCode.CONSTRAINT
    assert err.extended_code == 2067
    assert "SQLITE_CONSTRAINT_8" in str(err)


def test_from_code_uses_engine_text():
    err = BindError.from_code(ResultCode.RANGE)
    assert isinstance(err, BindError)
    assert err.code == ResultCode.RANGE
    assert err.message == "column index out of range"


def test_from_connection(conn):
    assert conn.execute("SELECT * FROM nope") == ResultCode.ERROR
    err = CompileError.from_connection(conn)
    assert isinstance(err, CompileError)
    assert err.code == ResultCode.ERROR
    assert err.message == "no such table: nope"


def test_from_connection_extended_code(conn):
    conn.execute("CREATE TABLE u(a UNIQUE)")
    conn.execute("INSERT INTO u VALUES (1)")
    rc = conn.execute("INSERT INTO u VALUES (1)")
    err = StepError.from_connection(conn, rc)
    assert err.code == ResultCode.CONSTRAINT
    assert err.extended_code & 0xFF == ResultCode.CONSTRAINT


def test_batch_error_summarizes():
    errors = [
        StepError("first failure", ResultCode.CONSTRAINT),
        StepError("second failure", ResultCode.BUSY),
    ]
    err = BatchError(errors)
    assert err.code == ResultCode.CONSTRAINT
    assert err.errors == errors
    assert "2 statement(s) failed" in err.message
    assert "first failure" in err.message


def test_column_range_error():
    err = ColumnRangeError(4, 2)
    assert err.code == ResultCode.RANGE
    assert err.index == 4
    assert "out of range" in str(err)
    with pytest.raises(IndexError):
        raise err
