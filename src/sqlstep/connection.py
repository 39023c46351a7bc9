"""Engine session ownership and the callback hook bridge.

A Connection owns exactly one engine handle. Statements and transactions
borrow it and must not outlive it; nothing here is thread-safe.

Hooks are plain Python callables. The engine invokes them synchronously
from inside the call that triggered them (step, prepare, COMMIT). An
exception raised by a hook cannot cross the C boundary, so it is held
and re-raised as soon as the triggering engine call returns.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from ctypes import byref, c_void_p
from typing import Any

from sqlstep.config import get_busy_timeout_ms
from sqlstep.engine.codes import (
    DEFAULT_OPEN_FLAGS,
    AuthorizerAction,
    AuthorizerResult,
    ResultCode,
    UpdateKind,
)
from sqlstep.engine.native import (
    AUTHORIZER,
    BUSY_HANDLER,
    COMMIT_HOOK,
    ROLLBACK_HOOK,
    UPDATE_HOOK,
    errstr,
    load_library,
)
from sqlstep.errors import ConnectionError
from sqlstep.formatting import format_sql, quote_literal
from sqlstep.statement import StatementCore

logger = logging.getLogger(__name__)

BusyHandler = Callable[[int], bool]
CommitHandler = Callable[[], int]
RollbackHandler = Callable[[], None]
UpdateHandler = Callable[[UpdateKind, str, str, int], None]
AuthorizeHandler = Callable[[int, str | None, str | None, str | None, str | None], int]

# kind -> (callback prototype, registration function, trampoline method)
_HOOKS: dict[str, tuple[Any, str, str]] = {
    "busy": (BUSY_HANDLER, "sqlite3_busy_handler", "_on_busy"),
    "commit": (COMMIT_HOOK, "sqlite3_commit_hook", "_on_commit"),
    "rollback": (ROLLBACK_HOOK, "sqlite3_rollback_hook", "_on_rollback"),
    "update": (UPDATE_HOOK, "sqlite3_update_hook", "_on_update"),
    "authorize": (AUTHORIZER, "sqlite3_set_authorizer", "_on_authorize"),
}


def _decode(raw: bytes | None) -> str | None:
    return raw.decode("utf-8", errors="replace") if raw is not None else None


class Connection:
    """One open engine session.

    ``Connection(":memory:")`` opens immediately and raises
    ConnectionError on failure; ``Connection()`` defers to ``open()``,
    which returns the engine result code instead.
    """

    def __init__(
        self,
        source: str | os.PathLike[str] | None = None,
        *,
        flags: int | None = None,
        vfs: str | None = None,
    ) -> None:
        """Initialize, opening ``source`` when given."""
        self._lib = load_library()
        self._db: int | None = None
        self._source: str | None = None
        self._closed_error: tuple[int, str] = (ResultCode.MISUSE, "database is not open")
        self._handlers: dict[str, Callable[..., Any] | None] = {}
        # ctypes trampolines must stay referenced while the engine holds them
        self._trampolines: dict[str, Any] = {}
        self._hook_error: Exception | None = None

        if source is not None:
            rc = self.open(source, flags=flags, vfs=vfs)
            if rc != ResultCode.OK:
                raise ConnectionError.from_connection(self, rc)

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"<Connection {self._source!r} {state}>"

    def __enter__(self) -> Connection:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -- Session --

    def open(
        self,
        source: str | os.PathLike[str],
        *,
        flags: int | None = None,
        vfs: str | None = None,
    ) -> int:
        """Open ``source`` (a path, URI or ``:memory:``), closing any current session.

        Returns the engine result code. Previously registered hooks are
        re-installed on the new session.
        """
        self.close()
        path = os.fspath(source)
        handle = c_void_p()
        rc = self._lib.sqlite3_open_v2(
            path.encode("utf-8"),
            byref(handle),
            int(DEFAULT_OPEN_FLAGS if flags is None else flags),
            vfs.encode("utf-8") if vfs else None,
        )
        if rc != ResultCode.OK:
            message = _decode(self._lib.sqlite3_errmsg(handle)) if handle.value else None
            self._closed_error = (rc, message or errstr(rc))
            if handle.value:
                self._lib.sqlite3_close_v2(handle)
            logger.debug("Failed to open %s: %s", path, self._closed_error[1])
            return rc

        self._db = handle.value
        self._source = path
        logger.info("Opened database %s", path)

        timeout = get_busy_timeout_ms()
        if timeout > 0:
            self.set_busy_timeout(timeout)
        for kind in list(self._handlers):
            self._install(kind)
        return rc

    def close(self) -> int:
        """Close the session. Safe to call repeatedly.

        Uses the engine's deferred close: statements still holding the
        handle keep it alive until they are finished.
        """
        if self._db is None:
            return ResultCode.OK
        rc = self._lib.sqlite3_close_v2(self._db)
        self._db = None
        self._closed_error = (ResultCode.MISUSE, "database is not open")
        logger.info("Closed database %s", self._source)
        return rc

    @property
    def is_open(self) -> bool:
        """True while an engine session is held."""
        return self._db is not None

    @property
    def source(self) -> str | None:
        """The path or URI this connection was last opened with."""
        return self._source

    @property
    def handle(self) -> int:
        """The raw engine handle. Raises ConnectionError when closed."""
        if self._db is None:
            raise ConnectionError(self._closed_error[1], self._closed_error[0])
        return self._db

    def attach(self, path: str | os.PathLike[str], name: str) -> int:
        """Attach another database file under schema ``name``."""
        return self.executef("ATTACH %Q AS %Q", os.fspath(path), name)

    def detach(self, name: str) -> int:
        """Detach the schema ``name``."""
        return self.executef("DETACH %Q", name)

    # -- Error and status accessors --

    @property
    def error_code(self) -> int:
        """Primary result code of the most recent failed engine call."""
        if self._db is None:
            return self._closed_error[0] & 0xFF
        return self._lib.sqlite3_errcode(self._db)

    @property
    def extended_error_code(self) -> int:
        """Extended result code of the most recent failed engine call."""
        if self._db is None:
            return self._closed_error[0]
        return self._lib.sqlite3_extended_errcode(self._db)

    @property
    def error_message(self) -> str:
        """English text describing the most recent failed engine call."""
        if self._db is None:
            return self._closed_error[1]
        return _decode(self._lib.sqlite3_errmsg(self._db)) or ""

    @property
    def last_insert_rowid(self) -> int:
        """Rowid of the most recent successful INSERT on this connection."""
        return self._lib.sqlite3_last_insert_rowid(self.handle)

    @property
    def changes(self) -> int:
        """Rows changed by the most recent INSERT/UPDATE/DELETE."""
        return self._lib.sqlite3_changes(self.handle)

    @property
    def total_changes(self) -> int:
        """Rows changed since the connection was opened."""
        return self._lib.sqlite3_total_changes(self.handle)

    @property
    def in_transaction(self) -> bool:
        """True while an explicit transaction is open (autocommit is off)."""
        return self._lib.sqlite3_get_autocommit(self.handle) == 0

    # -- Execution --

    def execute(self, sql: str) -> int:
        """Run every statement in ``sql`` in turn and return the result code.

        Statements take no parameters. Result rows are stepped through and
        discarded. Execution stops at the first failing statement and its
        code is returned; ``SQLITE_OK`` means every statement ran.
        """
        with StatementCore(self) as stmt:
            remaining = sql
            while remaining.strip():
                rc = stmt.prepare(remaining)
                if rc != ResultCode.OK:
                    return rc
                rc = stmt.step()
                while rc == ResultCode.ROW:
                    rc = stmt.step()
                if rc != ResultCode.DONE:
                    return rc
                remaining = stmt.tail
            return ResultCode.OK

    def execute_raw(self, sql: str) -> int:
        """Run a semicolon-separated batch of statements through the engine."""
        rc = self._lib.sqlite3_exec(self.handle, sql.encode("utf-8"), None, None, None)
        self._reraise_hook_error()
        if rc != ResultCode.OK:
            logger.debug("Batch failed with %d: %s", rc, self.error_message)
        return rc

    def executef(self, template: str, *args: Any) -> int:
        """Format ``template`` with safe value substitution, then execute it.

        See ``sqlstep.formatting`` for the supported directives.
        """
        return self.execute(format_sql(template, *args))

    def pragma(self, name: str, value: Any = None) -> Any:
        """Read (or set, when ``value`` is given) a pragma.

        Returns the first column of the first result row, or None when the
        pragma produces no rows.
        """
        from sqlstep.query import Query

        if value is None:
            sql = f"PRAGMA {name}"
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            sql = f"PRAGMA {name} = {value}"
        else:
            sql = f"PRAGMA {name} = {quote_literal(value)}"
        with Query(self, sql) as query:
            row = query.fetchone()
            return None if row is None else row.get(0)

    def set_busy_timeout(self, ms: int) -> int:
        """Install the engine's sleeping busy handler; replaces any busy hook."""
        self._handlers.pop("busy", None)
        self._trampolines.pop("busy", None)
        return self._lib.sqlite3_busy_timeout(self.handle, ms)

    # -- Hook registration --

    def set_busy_handler(self, handler: BusyHandler | None) -> None:
        """Register ``handler(count) -> bool``; truthy asks the engine to retry.

        ``count`` is the number of times the handler has already been
        invoked for the current lock. None removes the handler.
        """
        self._register("busy", handler)

    def set_commit_handler(self, handler: CommitHandler | None) -> None:
        """Register ``handler()`` run just before COMMIT; non-zero turns it into ROLLBACK."""
        self._register("commit", handler)

    def set_rollback_handler(self, handler: RollbackHandler | None) -> None:
        """Register ``handler()`` run after a transaction rolls back."""
        self._register("rollback", handler)

    def set_update_handler(self, handler: UpdateHandler | None) -> None:
        """Register ``handler(kind, database, table, rowid)`` run after each row change."""
        self._register("update", handler)

    def set_authorize_handler(self, handler: AuthorizeHandler | None) -> None:
        """Register ``handler(action, arg1, arg2, database, source) -> int``.

        Runs during statement preparation for every access-controlled
        action. Returning ``AuthorizerResult.DENY`` makes preparation fail;
        ``IGNORE`` reads NULL instead of the column.
        """
        self._register("authorize", handler)

    def _register(self, kind: str, handler: Callable[..., Any] | None) -> None:
        if handler is None:
            self._handlers.pop(kind, None)
        else:
            self._handlers[kind] = handler
        if self._db is not None:
            self._install(kind)

    def _install(self, kind: str) -> None:
        """Point the engine at the trampoline for ``kind`` (or clear it)."""
        try:
            prototype, register, trampoline = _HOOKS[kind]
        except KeyError:
            raise ValueError(f"unknown hook kind {kind!r}") from None
        active = self._handlers.get(kind) is not None
        # Calling a prototype with no arguments gives a NULL function pointer
        fn = prototype(getattr(self, trampoline)) if active else prototype()
        getattr(self._lib, register)(self.handle, fn, None)
        if active:
            self._trampolines[kind] = fn
        else:
            self._trampolines.pop(kind, None)
        logger.debug("%s %s hook", "Installed" if active else "Cleared", kind)

    # -- Trampolines (called by the engine) --

    def _capture(self, kind: str, exc: Exception) -> None:
        logger.debug("%s hook raised %r", kind, exc)
        if self._hook_error is None:
            self._hook_error = exc

    def _reraise_hook_error(self) -> None:
        """Raise the first exception a hook raised during the last engine call."""
        exc, self._hook_error = self._hook_error, None
        if exc is not None:
            raise exc

    def _on_busy(self, _arg: int | None, count: int) -> int:
        handler = self._handlers.get("busy")
        try:
            return 1 if handler is not None and handler(count) else 0
        except Exception as exc:
            self._capture("busy", exc)
            return 0

    def _on_commit(self, _arg: int | None) -> int:
        handler = self._handlers.get("commit")
        try:
            return 1 if handler is not None and handler() else 0
        except Exception as exc:
            self._capture("commit", exc)
            return 1

    def _on_rollback(self, _arg: int | None) -> None:
        handler = self._handlers.get("rollback")
        try:
            if handler is not None:
                handler()
        except Exception as exc:
            self._capture("rollback", exc)

    def _on_update(
        self, _arg: int | None, op: int, database: bytes, table: bytes, rowid: int
    ) -> None:
        handler = self._handlers.get("update")
        try:
            if handler is not None:
                handler(UpdateKind(op), _decode(database), _decode(table), rowid)
        except Exception as exc:
            self._capture("update", exc)

    def _on_authorize(
        self,
        _arg: int | None,
        action: int,
        arg1: bytes | None,
        arg2: bytes | None,
        database: bytes | None,
        source: bytes | None,
    ) -> int:
        handler = self._handlers.get("authorize")
        if handler is None:
            return AuthorizerResult.OK
        try:
            kind = AuthorizerAction(action)
        except ValueError:
            kind = action
        try:
            args = (_decode(arg1), _decode(arg2), _decode(database), _decode(source))
            return int(handler(kind, *args))
        except Exception as exc:
            self._capture("authorize", exc)
            return AuthorizerResult.DENY
