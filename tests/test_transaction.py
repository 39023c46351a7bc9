"""Tests for the scoped transaction guard."""

import pytest

from sqlstep.connection import Connection
from sqlstep.engine.codes import ResultCode
from sqlstep.errors import StepError
from sqlstep.transaction import Transaction
from tests.conftest import count_rows


@pytest.fixture
def writer(db_path):
    c = Connection(db_path)
    yield c
    c.close()


@pytest.fixture
def reader(db_path):
    c = Connection(db_path)
    yield c
    c.close()


def test_commit_on_clean_exit(writer, reader):
    with Transaction(writer, commit=True) as tx:
        assert writer.in_transaction
        writer.execute("INSERT INTO t VALUES (1, 'x')")
        assert count_rows(reader) == 0
    assert tx.completed
    assert not writer.in_transaction
    assert count_rows(reader) == 1


def test_rollback_by_default(writer, reader):
    with Transaction(writer) as tx:
        writer.execute("INSERT INTO t VALUES (1, 'x')")
        assert count_rows(writer) == 1
    assert tx.completed
    assert not tx.commit_on_exit
    assert count_rows(writer) == 0
    assert count_rows(reader) == 0


def test_rollback_on_exception(writer):
    with pytest.raises(RuntimeError, match="boom"):
        with Transaction(writer, commit=True):
            writer.execute("INSERT INTO t VALUES (1, 'x')")
            raise RuntimeError("boom")
    assert not writer.in_transaction
    assert count_rows(writer) == 0


def test_explicit_commit_completes_guard(writer, reader):
    with Transaction(writer) as tx:
        writer.execute("INSERT INTO t VALUES (1, 'x')")
        assert tx.commit() == ResultCode.OK
        assert tx.completed
        # Further calls are no-ops
        assert tx.commit() == ResultCode.OK
        assert tx.rollback() == ResultCode.OK
    assert count_rows(reader) == 1


def test_explicit_rollback_completes_guard(writer):
    with Transaction(writer, commit=True) as tx:
        writer.execute("INSERT INTO t VALUES (1, 'x')")
        assert tx.rollback() == ResultCode.OK
        assert tx.completed
    assert count_rows(writer) == 0


def test_exception_after_commit_keeps_data(writer):
    with pytest.raises(RuntimeError):
        with Transaction(writer) as tx:
            writer.execute("INSERT INTO t VALUES (1, 'x')")
            tx.commit()
            raise RuntimeError("late")
    assert count_rows(writer) == 1


def test_nested_begin_raises(conn):
    with Transaction(conn):
        with pytest.raises(StepError, match="within a transaction"):
            Transaction(conn)
        assert conn.in_transaction
    assert not conn.in_transaction


def test_reserve_takes_write_lock(writer, reader):
    with Transaction(writer, reserve=True):
        with pytest.raises(StepError) as exc_info:
            Transaction(reader, reserve=True)
        assert exc_info.value.code == ResultCode.BUSY
    with Transaction(reader, reserve=True, commit=True):
        reader.execute("INSERT INTO t VALUES (2, 'y')")
    assert count_rows(writer) == 1


def test_vetoed_commit_raises_on_exit(conn):
    conn.execute("CREATE TABLE t(a)")
    conn.set_commit_handler(lambda: 1)
    with pytest.raises(StepError) as exc_info:
        with Transaction(conn, commit=True) as tx:
            conn.execute("INSERT INTO t VALUES (1)")
    assert exc_info.value.code == ResultCode.CONSTRAINT
    assert tx.completed
    assert not conn.in_transaction
    conn.set_commit_handler(None)
    assert count_rows(conn) == 0


def test_failed_commit_keeps_guard_active(writer, reader):
    # A reader mid-statement holds a SHARED lock, so COMMIT gets BUSY
    from sqlstep.query import Query

    reader.execute("INSERT INTO t VALUES (0, 'seed')")
    with Query(reader, "SELECT a FROM t") as q:
        q.fetchone()
        tx = Transaction(writer)
        writer.execute("INSERT INTO t VALUES (1, 'x')")
        assert tx.commit() == ResultCode.BUSY
        assert not tx.completed
        assert writer.in_transaction
    assert tx.commit() == ResultCode.OK
    assert tx.completed
    assert count_rows(reader) == 2
