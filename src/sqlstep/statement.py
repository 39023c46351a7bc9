"""The prepared-statement lifecycle engine shared by Command and Query.

States::

    UNPREPARED --prepare--> PREPARED --step--> ROW --step--> DONE
                               ^                |             |
                               +-----reset------+-------------+
    any state --finish--> FINALIZED --prepare--> PREPARED

Every primitive here returns a raw engine result code and never raises
for engine failures. Illegal transitions (binding after a step, stepping
a finalized statement) return ``SQLITE_MISUSE`` without reaching the
engine. The checked conveniences built on top turn those codes into
exceptions via ``StatementCore.error``.
"""

from __future__ import annotations

import ctypes
import logging
from ctypes import byref, c_void_p
from enum import Enum
from typing import TYPE_CHECKING

from sqlstep.engine.codes import ResultCode
from sqlstep.errors import DatabaseError, StepError
from sqlstep.values import BindParams, BindValue, bind_value

if TYPE_CHECKING:
    from sqlstep.connection import Connection

logger = logging.getLogger(__name__)

_NAME_PREFIXES = (":", "@", "$")


class StatementState(Enum):
    """Position of a statement in its lifecycle."""

    UNPREPARED = "unprepared"
    PREPARED = "prepared"
    ROW = "row"
    DONE = "done"
    FINALIZED = "finalized"


class StatementCore:
    """Owns one prepared-statement handle and its lifecycle state.

    Use as a context manager to guarantee ``finish()`` on every exit path.
    """

    def __init__(self, conn: Connection) -> None:
        """Initialize unprepared, borrowing ``conn``."""
        self._conn = conn
        self._lib = conn._lib
        self._stmt: int | None = None
        self._state = StatementState.UNPREPARED
        self._sql = ""
        self._tail = ""
        self._last_rc: int = ResultCode.OK
        # Bumped on every step/reset/finish so stale Row views can be detected
        self._generation = 0
        self._bound: dict[int | str, BindValue] = {}
        self._note: tuple[int, str] | None = None
        self._failure: tuple[int, str] | None = None

    def __repr__(self) -> str:
        return f"<StatementCore {self._state.value} {self._sql!r}>"

    def __enter__(self) -> StatementCore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.finish()

    # -- Introspection --

    @property
    def connection(self) -> Connection:
        """The borrowed connection."""
        return self._conn

    @property
    def state(self) -> StatementState:
        """Current lifecycle state."""
        return self._state

    @property
    def handle(self) -> int | None:
        """The raw statement handle, or None when not prepared."""
        return self._stmt

    @property
    def generation(self) -> int:
        """Counter identifying the current row position."""
        return self._generation

    @property
    def sql(self) -> str:
        """Text of the prepared statement (without the unparsed tail)."""
        if self._stmt is None:
            return self._sql
        raw = self._lib.sqlite3_sql(self._stmt)
        return raw.decode("utf-8") if raw else self._sql

    @property
    def tail(self) -> str:
        """Input text after the first statement, left for batch execution."""
        return self._tail

    @property
    def readonly(self) -> bool:
        """True if the statement makes no direct changes to the database."""
        return self._stmt is None or bool(self._lib.sqlite3_stmt_readonly(self._stmt))

    @property
    def parameter_count(self) -> int:
        """Largest parameter index used by the statement."""
        if self._stmt is None:
            return 0
        return self._lib.sqlite3_bind_parameter_count(self._stmt)

    def parameter_name(self, index: int) -> str | None:
        """Name of the 1-based parameter ``index`` (``:name`` form), or None."""
        if self._stmt is None:
            return None
        raw = self._lib.sqlite3_bind_parameter_name(self._stmt, index)
        return raw.decode("utf-8") if raw else None

    def parameter_index(self, name: str) -> int:
        """Index of the parameter called ``name``, or 0 if there is none.

        A bare name without its ``:``/``@``/``$`` prefix matches any prefix.
        """
        if self._stmt is None or not name:
            return 0
        index = self._lib.sqlite3_bind_parameter_index(self._stmt, name.encode("utf-8"))
        if index or name[0] in _NAME_PREFIXES or name[0] == "?":
            return index
        for prefix in _NAME_PREFIXES:
            index = self._lib.sqlite3_bind_parameter_index(
                self._stmt, (prefix + name).encode("utf-8")
            )
            if index:
                return index
        return 0

    @property
    def bindings(self) -> dict[int | str, BindValue]:
        """Values bound in the current cycle, keyed by name or index."""
        return dict(self._bound)

    # -- Lifecycle --

    def prepare(self, sql: str) -> int:
        """Compile the first statement of ``sql``; any previous handle is finalized.

        On failure the statement is left UNPREPARED and the engine code is
        returned. The rest of the text is kept as ``tail``.
        """
        self.finish()
        self._note = None
        encoded = sql.encode("utf-8")
        buf = ctypes.create_string_buffer(encoded)
        handle = c_void_p()
        tail = c_void_p()
        rc = self._lib.sqlite3_prepare_v2(
            self._conn.handle, ctypes.addressof(buf), -1, byref(handle), byref(tail)
        )
        try:
            self._conn._reraise_hook_error()
        except Exception:
            if handle.value:
                self._lib.sqlite3_finalize(handle)
            self._state = StatementState.UNPREPARED
            raise

        self._bound.clear()
        self._generation += 1
        # The engine reports the tail even when compilation fails
        offset = tail.value - ctypes.addressof(buf) if tail.value else len(encoded)
        self._sql = encoded[:offset].decode("utf-8", errors="replace").strip()
        self._tail = encoded[offset:].decode("utf-8", errors="replace")
        if rc != ResultCode.OK:
            self._state = StatementState.UNPREPARED
            logger.debug("Prepare failed with %d: %s", rc, self._conn.error_message)
            return rc

        # A null handle means the text held only whitespace or comments
        self._stmt = handle.value
        self._state = StatementState.PREPARED
        self._last_rc = ResultCode.OK
        self._failure = None
        logger.debug("Prepared %r", self._sql)
        return rc

    def bind(self, key: int | str, value: BindValue = None) -> int:
        """Bind ``value`` to a 1-based index or a parameter name.

        Legal only before the first step of a cycle or after ``reset()``.
        Binding with no value binds NULL.
        """
        self._note = None
        if self._state is not StatementState.PREPARED:
            return self._misuse(f"cannot bind while statement is {self._state.value}")
        if isinstance(key, str):
            index = self.parameter_index(key)
            if index == 0:
                self._note = (ResultCode.RANGE, f"no parameter named {key!r}")
                return ResultCode.RANGE
        elif isinstance(key, int) and not isinstance(key, bool):
            index = key
        else:
            self._note = (ResultCode.RANGE, f"parameter key must be an int or str, not {key!r}")
            return ResultCode.RANGE
        if self._stmt is None:
            self._note = (ResultCode.RANGE, "statement has no parameters")
            return ResultCode.RANGE

        rc = bind_value(self._lib, self._stmt, index, value)
        if rc == ResultCode.MISMATCH:
            # Rejected before reaching the engine
            self._note = (rc, f"cannot bind value of type {type(value).__name__}")
        if rc == ResultCode.OK:
            name = self.parameter_name(index)
            self._bound[name if name and name[0] != "?" else index] = value
        return rc

    def bind_all(self, params: BindParams) -> int:
        """Bind a sequence positionally (from index 1) or a mapping by name.

        Stops at and returns the first non-OK code.
        """
        items = params.items() if isinstance(params, dict) else enumerate(params, start=1)
        for key, value in items:
            rc = self.bind(key, value)
            if rc != ResultCode.OK:
                return rc
        return ResultCode.OK

    def rebind(self, bindings: dict[int | str, BindValue]) -> int:
        """Re-apply values recorded from another statement where they fit.

        Named values go to the parameter of the same name; positional
        values go to the same index if this statement has it.
        """
        count = self.parameter_count
        for key, value in bindings.items():
            if isinstance(key, str):
                if not self.parameter_index(key):
                    continue
            elif key > count:
                continue
            rc = self.bind(key, value)
            if rc != ResultCode.OK:
                return rc
        return ResultCode.OK

    def clear_bindings(self) -> int:
        """Reset every parameter to NULL."""
        self._note = None
        self._bound.clear()
        if self._stmt is None:
            return ResultCode.OK
        return self._lib.sqlite3_clear_bindings(self._stmt)

    def step(self) -> int:
        """Advance execution by one step.

        Returns ``SQLITE_ROW`` when a result row is available,
        ``SQLITE_DONE`` when execution completed, or the engine error code.
        Once execution has ended, repeated calls return the same terminal
        code without re-running the statement until ``reset()``.
        """
        self._note = None
        if self._state in (StatementState.UNPREPARED, StatementState.FINALIZED):
            return self._misuse(f"cannot step while statement is {self._state.value}")
        if self._state is StatementState.DONE:
            self._note = self._failure
            return self._last_rc

        self._generation += 1
        if self._stmt is None:
            rc = ResultCode.DONE
        else:
            rc = self._lib.sqlite3_step(self._stmt)

        if rc == ResultCode.ROW:
            self._state = StatementState.ROW
        else:
            self._state = StatementState.DONE
            self._last_rc = rc
            if rc != ResultCode.DONE:
                # Keep the failure text; later steps replay this code
                self._failure = self._note = (rc, self._conn.error_message)
                logger.debug("Step failed with %d: %s", rc, self._failure[1])
        self._conn._reraise_hook_error()
        return rc

    def reset(self) -> int:
        """Return to PREPARED with bindings retained. Never raises.

        The engine code is returned as reported: after a failed step the
        engine repeats that step's error here.
        """
        if self._state not in (StatementState.ROW, StatementState.DONE, StatementState.PREPARED):
            return ResultCode.OK
        self._generation += 1
        self._state = StatementState.PREPARED
        self._last_rc = ResultCode.OK
        self._failure = None
        if self._stmt is None:
            return ResultCode.OK
        rc = self._lib.sqlite3_reset(self._stmt)
        if rc != ResultCode.OK:
            logger.debug("Reset reported %d for %r", rc, self._sql)
        return rc

    def finish(self) -> int:
        """Finalize the handle. Safe to call any number of times."""
        self._generation += 1
        self._state = StatementState.FINALIZED
        if self._stmt is None:
            return ResultCode.OK
        stmt, self._stmt = self._stmt, None
        rc = self._lib.sqlite3_finalize(stmt)
        logger.debug("Finalized %r (%d)", self._sql, rc)
        return rc

    # -- Row access support --

    def require_row(self, generation: int | None = None) -> int:
        """Return the handle if positioned on a row (of ``generation``).

        Raises StepError with ``SQLITE_MISUSE`` otherwise.
        """
        if self._state is not StatementState.ROW or self._stmt is None:
            raise StepError(
                f"statement is not positioned on a row ({self._state.value})", ResultCode.MISUSE
            )
        if generation is not None and generation != self._generation:
            raise StepError("row is no longer current", ResultCode.MISUSE)
        return self._stmt

    # -- Errors --

    def _misuse(self, message: str) -> int:
        self._note = (ResultCode.MISUSE, message)
        return ResultCode.MISUSE

    def error(self, cls: type[DatabaseError], rc: int) -> DatabaseError:
        """Build an exception for ``rc`` returned by the latest primitive call."""
        if self._note is not None and self._note[0] == rc:
            return cls(self._note[1], rc & 0xFF, rc)
        return cls.from_connection(self._conn, rc)
