"""Tests for typed binding and extraction."""

import pytest

from sqlstep.engine.codes import ColumnType, ResultCode
from sqlstep.query import Query
from sqlstep.values import INT64_MAX, INT64_MIN, NoneType, natural_type


def _echo(conn, value, type_=None):
    """Bind ``value`` to ``SELECT ?`` and read it back as ``type_``."""
    with Query(conn, "SELECT ?") as q:
        assert q.bind(1, value) == ResultCode.OK
        return q.fetchone().get(0, type_)


@pytest.mark.parametrize(
    "value",
    [0, -1, 2**31, -(2**31) - 1, INT64_MAX, INT64_MIN, 1.25, -0.5, "", "héllo ✓", b"\x00\xff"],
)
def test_values_survive_binding(conn, value):
    assert _echo(conn, value, type(value)) == value


def test_natural_types(conn):
    assert _echo(conn, 7) == 7
    assert _echo(conn, 7.5) == 7.5
    assert _echo(conn, "x") == "x"
    assert _echo(conn, b"x") == b"x"
    assert _echo(conn, None) is None


def test_bool_binds_as_integer(conn):
    assert _echo(conn, True) == 1
    assert _echo(conn, False) == 0


def test_bytes_like_values(conn):
    assert _echo(conn, bytearray(b"ab")) == b"ab"
    assert _echo(conn, memoryview(b"cd")) == b"cd"


def test_empty_blob(conn):
    assert _echo(conn, b"", bytes) == b""


def test_embedded_nul_in_text(conn):
    assert _echo(conn, "a\x00b", str) == "a\x00b"


class TestNull:
    """NULL read through each requested type."""

    def test_int(self, conn):
        assert _echo(conn, None, int) == 0

    def test_float(self, conn):
        assert _echo(conn, None, float) == 0.0

    def test_str(self, conn):
        assert _echo(conn, None, str) is None

    def test_bytes(self, conn):
        assert _echo(conn, None, bytes) is None

    def test_none(self, conn):
        assert _echo(conn, 5, NoneType) is None


class TestCoercion:
    """The engine converts across storage classes on extraction."""

    def test_int_as_text(self, conn):
        assert _echo(conn, 42, str) == "42"

    def test_text_as_int(self, conn):
        assert _echo(conn, "42", int) == 42
        assert _echo(conn, "abc", int) == 0

    def test_float_as_int_truncates(self, conn):
        assert _echo(conn, 3.9, int) == 3

    def test_int_as_float(self, conn):
        assert _echo(conn, 3, float) == 3.0

    def test_text_as_blob(self, conn):
        assert _echo(conn, "hé", bytes) == "hé".encode()


def test_column_type_reflects_storage(conn):
    with Query(conn, "SELECT 1, 1.0, 'a', x'00', NULL") as q:
        row = q.fetchone()
        assert [row.column_type(i) for i in range(5)] == [
            ColumnType.INTEGER,
            ColumnType.FLOAT,
            ColumnType.TEXT,
            ColumnType.BLOB,
            ColumnType.NULL,
        ]


def test_natural_type_mapping():
    assert natural_type(ColumnType.INTEGER) is int
    assert natural_type(ColumnType.FLOAT) is float
    assert natural_type(ColumnType.TEXT) is str
    assert natural_type(ColumnType.BLOB) is bytes
    assert natural_type(ColumnType.NULL) is NoneType


def test_unsupported_extract_type(conn):
    with Query(conn, "SELECT 1") as q:
        row = q.fetchone()
        with pytest.raises(TypeError, match="unsupported column type"):
            row.get(0, list)


def test_surrogate_text_is_mismatch(conn):
    with Query(conn, "SELECT ?") as q:
        assert q.bind(1, "\ud800") == ResultCode.MISMATCH
