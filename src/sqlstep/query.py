"""Read-intent statements, the row iteration protocol and row views.

A Query is its own iterator: each ``next()`` steps the statement once.
There is exactly one live cursor, so a Query cannot be iterated twice
without ``reset()``; iterating an exhausted query simply yields nothing.

Row views are borrowed from the query's current position. Stepping,
resetting or finishing the query invalidates them, and any later access
raises StepError with ``SQLITE_MISUSE``.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

from sqlstep.command import ParameterBinder
from sqlstep.engine.codes import ColumnType, ResultCode
from sqlstep.errors import ColumnRangeError, CompileError, StepError
from sqlstep.models.column import ColumnInfo
from sqlstep.statement import StatementCore, StatementState
from sqlstep.values import BindParams, BindValue, ColumnValue, column_value

if TYPE_CHECKING:
    from sqlstep.connection import Connection


def _decode(raw: bytes | None) -> str | None:
    return raw.decode("utf-8", errors="replace") if raw is not None else None


class ColumnReader:
    """Fluent positional extraction from one row.

    ``reader.read(int)`` returns the value and advances;
    ``reader >> int >> str`` collects into ``reader.values``.
    """

    def __init__(self, row: Row, index: int = 0) -> None:
        """Initialize at 0-based column ``index``."""
        self._row = row
        self._index = index
        self._values: list[ColumnValue] = []

    @property
    def index(self) -> int:
        """Column the next read comes from."""
        return self._index

    @property
    def values(self) -> tuple[ColumnValue, ...]:
        """Values collected with ``>>`` so far."""
        return tuple(self._values)

    def read(self, type_: type | None = None) -> ColumnValue:
        """Extract the current column as ``type_`` and advance."""
        value = self._row.get(self._index, type_)
        self._index += 1
        return value

    def skip(self, count: int = 1) -> ColumnReader:
        """Advance past ``count`` columns without reading them."""
        self._index += count
        return self

    def __rshift__(self, type_: type | None) -> ColumnReader:
        self._values.append(self.read(type_))
        return self


class Row:
    """Non-owning view of the query's current result row."""

    def __init__(self, core: StatementCore) -> None:
        """Bind the view to the row ``core`` is positioned on now."""
        self._core = core
        self._lib = core.connection._lib
        self._generation = core.generation

    def __repr__(self) -> str:
        if not self.is_current:
            return "<Row (stale)>"
        return f"<Row {self.as_tuple()!r}>"

    @property
    def is_current(self) -> bool:
        """True while the query is still positioned on this row."""
        return (
            self._core.state is StatementState.ROW and self._core.generation == self._generation
        )

    def _handle(self, index: int | None = None) -> int:
        stmt = self._core.require_row(self._generation)
        if index is not None:
            count = self._lib.sqlite3_data_count(stmt)
            if not 0 <= index < count:
                raise ColumnRangeError(index, count)
        return stmt

    # -- Metadata --

    @property
    def data_count(self) -> int:
        """Number of columns in this row."""
        return self._lib.sqlite3_data_count(self._handle())

    def __len__(self) -> int:
        return self.data_count

    def column_type(self, index: int) -> ColumnType:
        """Storage class of column ``index`` as stored, before any coercion."""
        return ColumnType(self._lib.sqlite3_column_type(self._handle(index), index))

    def column_bytes(self, index: int) -> int:
        """Size in bytes of column ``index`` in its text/blob form."""
        return self._lib.sqlite3_column_bytes(self._handle(index), index)

    def column_name(self, index: int) -> str:
        """Name of column ``index``."""
        return _decode(self._lib.sqlite3_column_name(self._handle(index), index)) or ""

    def keys(self) -> list[str]:
        """Column names, in order."""
        return [self.column_name(i) for i in range(self.data_count)]

    # -- Extraction --

    def get(self, index: int, type_: type | None = None) -> ColumnValue:
        """Extract column ``index`` as ``type_`` (int, float, str, bytes, NoneType).

        ``type_=None`` extracts by storage class. The engine coerces across
        storage classes; NULL reads as 0, 0.0, None and None for int,
        float, str and bytes. Only an out-of-range index raises.
        """
        return column_value(self._lib, self._handle(index), index, type_)

    def getter(self, start: int = 0) -> ColumnReader:
        """Return a fluent reader starting at column ``start``."""
        return ColumnReader(self, start)

    def get_columns(self, *columns: int | tuple[int, type | None]) -> tuple[ColumnValue, ...]:
        """Extract several columns at once.

        Each item is an index (natural type) or an ``(index, type)`` pair.
        """
        values = []
        for column in columns:
            if isinstance(column, tuple):
                index, type_ = column
            else:
                index, type_ = column, None
            values.append(self.get(index, type_))
        return tuple(values)

    def as_tuple(self) -> tuple[ColumnValue, ...]:
        """All columns by storage class."""
        return tuple(self.get(i) for i in range(self.data_count))

    def __iter__(self) -> Iterator[ColumnValue]:
        return iter(self.as_tuple())

    def __getitem__(self, key: int | str) -> ColumnValue:
        """Get a column value by position or by name."""
        if isinstance(key, str):
            try:
                key = self.keys().index(key)
            except ValueError:
                raise KeyError(key) from None
        return self.get(key)


class Query:
    """A statement run for its result rows.

    ``Query(conn, sql)`` prepares immediately and raises CompileError if
    the engine rejects the text.
    """

    def __init__(self, conn: Connection, sql: str | None = None) -> None:
        """Initialize, preparing ``sql`` when given."""
        self._conn = conn
        self._core = StatementCore(conn)
        if sql is not None:
            self.prepare_checked(sql)

    def __repr__(self) -> str:
        return f"<Query {self._core.state.value} {self._core.sql!r}>"

    def __enter__(self) -> Query:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self._core.finish()

    @property
    def core(self) -> StatementCore:
        """The underlying lifecycle engine."""
        return self._core

    @property
    def state(self) -> StatementState:
        """Current lifecycle state."""
        return self._core.state

    @property
    def sql(self) -> str:
        """Text of the prepared statement."""
        return self._core.sql

    @property
    def parameter_count(self) -> int:
        """Largest parameter index used by the statement."""
        return self._core.parameter_count

    # -- Primitives (return engine codes) --

    def prepare(self, sql: str) -> int:
        """Prepare ``sql``, returning the engine code."""
        return self._core.prepare(sql)

    def bind(self, key: int | str, value: BindValue = None) -> int:
        """Bind one parameter, returning the engine code."""
        return self._core.bind(key, value)

    def bind_all(self, params: BindParams) -> int:
        """Bind a sequence positionally or a mapping by name."""
        return self._core.bind_all(params)

    def clear_bindings(self) -> int:
        """Reset every parameter to NULL."""
        return self._core.clear_bindings()

    def reset(self) -> int:
        """Rewind to before the first row, keeping bindings."""
        return self._core.reset()

    def finish(self) -> int:
        """Finalize the statement."""
        return self._core.finish()

    # -- Checked conveniences --

    def prepare_checked(self, sql: str) -> None:
        """Prepare ``sql``, raising CompileError on failure."""
        rc = self._core.prepare(sql)
        if rc != ResultCode.OK:
            raise self._core.error(CompileError, rc)

    def binder(self, start: int = 1) -> ParameterBinder:
        """Return a fluent binder starting at 1-based index ``start``."""
        return ParameterBinder(self._core, start)

    def step(self) -> int:
        """Advance one row: returns ``SQLITE_ROW`` or ``SQLITE_DONE``.

        Any other engine code raises StepError. After ``SQLITE_DONE``
        further calls keep returning it until ``reset()``.
        """
        rc = self._core.step()
        if rc in (ResultCode.ROW, ResultCode.DONE):
            return rc
        raise self._core.error(StepError, rc)

    def __iter__(self) -> Query:
        return self

    def __next__(self) -> Row:
        if self.step() == ResultCode.ROW:
            return Row(self._core)
        raise StopIteration

    @property
    def row(self) -> Row:
        """View of the current row. Raises StepError when not positioned."""
        self._core.require_row()
        return Row(self._core)

    def fetchone(self) -> Row | None:
        """Step once and return the row, or None when exhausted."""
        return next(self, None)

    def fetchall(self) -> list[tuple[ColumnValue, ...]]:
        """Materialize every remaining row as a tuple of natural values."""
        return [row.as_tuple() for row in self]

    # -- Column metadata (valid only while positioned on a row) --

    def _handle(self, index: int | None = None) -> int:
        stmt = self._core.require_row()
        if index is not None:
            count = self._column_count(stmt)
            if not 0 <= index < count:
                raise ColumnRangeError(index, count)
        return stmt

    def _column_count(self, stmt: int) -> int:
        return self._conn._lib.sqlite3_column_count(stmt)

    @property
    def column_count(self) -> int:
        """Number of result columns."""
        return self._column_count(self._handle())

    def column_name(self, index: int) -> str:
        """Name of result column ``index``."""
        raw = self._conn._lib.sqlite3_column_name(self._handle(index), index)
        return _decode(raw) or ""

    def declared_type(self, index: int) -> str | None:
        """Declared type of the table column behind ``index``, if any."""
        stmt = self._handle(index)
        decltype = getattr(self._conn._lib, "sqlite3_column_decltype", None)
        if decltype is None:
            return None
        return _decode(decltype(stmt, index))

    def columns(self) -> list[ColumnInfo]:
        """Describe every column of the current row."""
        row = self.row
        return [
            ColumnInfo(
                index=i,
                name=self.column_name(i),
                declared_type=self.declared_type(i),
                storage_class=row.column_type(i),
                size=row.column_bytes(i),
            )
            for i in range(self.column_count)
        ]

    def get(self, index: int, type_: type | None = None) -> Any:
        """Shortcut for ``query.row.get(index, type_)``."""
        return self.row.get(index, type_)
