"""Exception hierarchy carrying engine result codes."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlstep.engine.codes import ResultCode, code_name

if TYPE_CHECKING:
    from sqlstep.connection import Connection


class DatabaseError(Exception):
    """A failure reported by the engine.

    ``code`` is the primary result code, ``extended_code`` the extended
    one when the engine reported it, and ``message`` the engine's text.
    """

    def __init__(
        self, message: str, code: int = ResultCode.ERROR, extended_code: int | None = None
    ):
        """Initialize with the engine message and result code."""
        super().__init__(message)
        self.message = message
        self.code = int(code)
        self.extended_code = self.code if extended_code is None else int(extended_code)

    def __str__(self) -> str:
        return f"{self.message} (code {self.code}: {code_name(self.extended_code)})"

    @classmethod
    def from_connection(cls, conn: Connection, code: int | None = None) -> DatabaseError:
        """Build an error from the connection's last error state.

        ``code`` overrides the connection's primary code, for calls such as
        ``sqlite3_step`` that return the authoritative code directly.
        """
        primary = conn.error_code if code is None else code
        extended = conn.extended_error_code
        if extended & 0xFF != primary & 0xFF:
            extended = primary
        return cls(conn.error_message, primary & 0xFF, extended)

    @classmethod
    def from_code(cls, code: int, message: str | None = None) -> DatabaseError:
        """Build an error from a bare result code."""
        from sqlstep.engine.native import errstr

        return cls(message or errstr(code), code & 0xFF, code)


class CompileError(DatabaseError):
    """The engine rejected statement text at prepare time."""


class BindError(DatabaseError):
    """A parameter index or name was invalid, or its value was rejected."""


class StepError(DatabaseError):
    """Statement execution failed or the statement was misused."""


class BatchError(StepError):
    """One or more statements of a batch failed.

    ``errors`` lists every failure in execution order; the primary code
    and message are those of the first.
    """

    def __init__(self, errors: list[DatabaseError]):
        """Initialize from the collected failures."""
        first = errors[0]
        super().__init__(
            f"{len(errors)} statement(s) failed; first: {first.message}",
            first.code,
            first.extended_code,
        )
        self.errors = errors


class ConnectionError(DatabaseError):  # noqa: A001
    """Opening, attaching or detaching a database failed."""


class ColumnRangeError(DatabaseError, IndexError):
    """A column index lies outside the current row."""

    def __init__(self, index: int, count: int):
        """Initialize with the offending index and the row width."""
        super().__init__(f"column index {index} out of range (0..{count - 1})", ResultCode.RANGE)
        self.index = index
        self.count = count


class LibraryNotFoundError(OSError):
    """The SQLite shared library could not be loaded."""
