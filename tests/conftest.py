"""Shared test fixtures."""

import pytest

from sqlstep.connection import Connection


@pytest.fixture
def conn():
    """In-memory connection."""
    c = Connection(":memory:")
    yield c
    c.close()


@pytest.fixture
def table(conn):
    """In-memory connection with an empty ``t(a INTEGER, b TEXT)`` table."""
    assert conn.execute("CREATE TABLE t(a INTEGER, b TEXT)") == 0
    return conn


@pytest.fixture
def db_path(tmp_path):
    """Path for an on-disk database with the ``t`` table created."""
    path = tmp_path / "test.db"
    with Connection(path) as c:
        assert c.execute("CREATE TABLE t(a INTEGER, b TEXT)") == 0
    return path


def count_rows(conn, table_name: str = "t") -> int:
    """Return the number of rows in ``table_name``."""
    from sqlstep.query import Query

    with Query(conn, f"SELECT count(*) FROM {table_name}") as q:
        return q.fetchone().get(0, int)
