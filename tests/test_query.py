"""Tests for queries, row iteration and row views."""

import pytest

from sqlstep.engine.codes import ColumnType, ResultCode
from sqlstep.engine.native import has_decltype
from sqlstep.errors import ColumnRangeError, CompileError, StepError
from sqlstep.models.column import ColumnInfo
from sqlstep.query import Query
from sqlstep.statement import StatementState


@pytest.fixture
def rows(table):
    """The ``t`` table holding three rows."""
    table.execute_raw(
        "INSERT INTO t VALUES (1, 'one');"
        "INSERT INTO t VALUES (2, 'two');"
        "INSERT INTO t VALUES (3, NULL);"
    )
    return table


def test_prepare_rejects_bad_sql(conn):
    with pytest.raises(CompileError, match="syntax error"):
        Query(conn, "SELEC 1")


def test_iterates_rows_in_order(rows):
    with Query(rows, "SELECT a, b FROM t ORDER BY a") as q:
        assert [row.get(0) for row in q] == [1, 2, 3]


def test_step_protocol(conn):
    with Query(conn, "SELECT ? + ?") as q:
        q.binder() << 2 << 3
        assert q.step() == ResultCode.ROW
        assert q.get(0) == 5
        assert q.step() == ResultCode.DONE
        assert q.step() == ResultCode.DONE


def test_exhausted_query_yields_nothing(rows):
    with Query(rows, "SELECT a FROM t") as q:
        assert len(list(q)) == 3
        assert list(q) == []
        assert q.fetchone() is None


def test_reset_allows_second_pass(rows):
    with Query(rows, "SELECT a FROM t WHERE a >= ? ORDER BY a") as q:
        q.bind(1, 2)
        assert [r.get(0) for r in q] == [2, 3]
        assert q.reset() == ResultCode.OK
        assert [r.get(0) for r in q] == [2, 3]
        q.reset()
        q.bind(1, 3)
        assert [r.get(0) for r in q] == [3]


def test_empty_result(table):
    with Query(table, "SELECT * FROM t") as q:
        assert q.fetchone() is None
        assert q.state is StatementState.DONE


def test_fetchall_returns_tuples(rows):
    with Query(rows, "SELECT a, b FROM t ORDER BY a") as q:
        assert q.fetchall() == [(1, "one"), (2, "two"), (3, None)]


def test_named_parameters(rows):
    with Query(rows, "SELECT b FROM t WHERE a = :id") as q:
        assert q.bind("id", 2) == ResultCode.OK
        assert q.fetchone().get(0) == "two"


def test_step_error_raises(conn):
    with Query(conn, "SELECT abs(-9223372036854775808)") as q:
        with pytest.raises(StepError, match="integer overflow") as exc_info:
            q.step()
        assert exc_info.value.code == ResultCode.ERROR
        # The failure is replayed, not re-run
        with pytest.raises(StepError, match="integer overflow"):
            q.step()


def test_query_on_unprepared_is_misuse(conn):
    q = Query(conn)
    with pytest.raises(StepError) as exc_info:
        q.fetchone()
    assert exc_info.value.code == ResultCode.MISUSE


def test_write_statement_through_query(table):
    with Query(table, "INSERT INTO t VALUES (1, 'x')") as q:
        assert q.fetchone() is None
    assert table.changes == 1


class TestRow:
    """Borrowed views of the current row."""

    def test_typed_get(self, rows):
        with Query(rows, "SELECT a, b FROM t WHERE a = 1") as q:
            row = q.fetchone()
            assert row.get(0, int) == 1
            assert row.get(1, str) == "one"
            assert row.get(0, str) == "1"
            assert row.get(1, bytes) == b"one"
            assert row.get(0, float) == 1.0

    def test_get_columns(self, rows):
        with Query(rows, "SELECT a, b FROM t WHERE a = 2") as q:
            row = q.fetchone()
            assert row.get_columns(0, 1) == (2, "two")
            assert row.get_columns((0, str), (1, None)) == ("2", "two")

    def test_getter(self, rows):
        with Query(rows, "SELECT a, b FROM t WHERE a = 3") as q:
            row = q.fetchone()
            reader = row.getter() >> int >> str
            assert reader.values == (3, None)
            assert reader.index == 2
            reader = row.getter()
            assert reader.skip().read(str) is None

    def test_mapping_access(self, rows):
        with Query(rows, "SELECT a, b AS label FROM t WHERE a = 1") as q:
            row = q.fetchone()
            assert row.keys() == ["a", "label"]
            assert row["label"] == "one"
            assert row[0] == 1
            assert list(row) == [1, "one"]
            assert len(row) == 2
            with pytest.raises(KeyError):
                row["missing"]

    def test_column_type_and_bytes(self, rows):
        with Query(rows, "SELECT a, b FROM t WHERE a = 3") as q:
            row = q.fetchone()
            assert row.column_type(0) is ColumnType.INTEGER
            assert row.column_type(1) is ColumnType.NULL
            assert row.column_bytes(1) == 0
            assert row.column_name(0) == "a"

    def test_out_of_range(self, rows):
        with Query(rows, "SELECT a FROM t") as q:
            row = q.fetchone()
            with pytest.raises(ColumnRangeError) as exc_info:
                row.get(1)
            assert exc_info.value.code == ResultCode.RANGE
            assert exc_info.value.count == 1
            with pytest.raises(IndexError):
                row.get(-1)

    def test_stale_after_step(self, rows):
        with Query(rows, "SELECT a FROM t ORDER BY a") as q:
            first = q.fetchone()
            assert first.is_current
            second = q.fetchone()
            assert not first.is_current
            with pytest.raises(StepError, match="no longer current"):
                first.get(0)
            assert second.get(0) == 2
            assert repr(first) == "<Row (stale)>"

    def test_stale_after_reset_and_finish(self, rows):
        q = Query(rows, "SELECT a FROM t")
        row = q.fetchone()
        q.reset()
        with pytest.raises(StepError):
            row.get(0)
        row = q.fetchone()
        q.finish()
        assert not row.is_current
        with pytest.raises(StepError) as exc_info:
            row.get(0)
        assert exc_info.value.code == ResultCode.MISUSE

    def test_stale_after_exhaustion(self, rows):
        with Query(rows, "SELECT a FROM t WHERE a = 1") as q:
            row = q.fetchone()
            assert q.fetchone() is None
            with pytest.raises(StepError):
                row.get(0)


class TestColumnMetadata:
    """Column descriptions while positioned on a row."""

    def test_names_and_count(self, rows):
        with Query(rows, "SELECT a, b AS label FROM t") as q:
            q.step()
            assert q.column_count == 2
            assert q.column_name(0) == "a"
            assert q.column_name(1) == "label"

    def test_requires_row(self, rows):
        with Query(rows, "SELECT a FROM t") as q:
            with pytest.raises(StepError) as exc_info:
                q.column_count  # noqa: B018
            assert exc_info.value.code == ResultCode.MISUSE
            with pytest.raises(StepError):
                q.row  # noqa: B018

    def test_columns(self, rows):
        with Query(rows, "SELECT a, b, 1.5 AS f FROM t WHERE a = 2") as q:
            q.step()
            columns = q.columns()
        assert [c.name for c in columns] == ["a", "b", "f"]
        assert all(isinstance(c, ColumnInfo) for c in columns)
        assert columns[0].storage_class is ColumnType.INTEGER
        assert columns[1].storage_class is ColumnType.TEXT
        assert columns[1].size == 3
        assert columns[2].storage_class is ColumnType.FLOAT
        assert columns[2].declared_type is None
        if has_decltype():
            assert columns[0].declared_type == "INTEGER"
            assert columns[1].declared_type == "TEXT"

    def test_declared_type_out_of_range(self, rows):
        with Query(rows, "SELECT a FROM t") as q:
            q.step()
            with pytest.raises(ColumnRangeError):
                q.declared_type(3)
