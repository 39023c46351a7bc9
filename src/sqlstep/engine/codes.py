"""Numeric constants of the SQLite C API."""

from enum import IntEnum, IntFlag


class ResultCode(IntEnum):
    """Primary result codes returned by engine calls."""

    OK = 0
    ERROR = 1
    INTERNAL = 2
    PERM = 3
    ABORT = 4
    BUSY = 5
    LOCKED = 6
    NOMEM = 7
    READONLY = 8
    INTERRUPT = 9
    IOERR = 10
    CORRUPT = 11
    NOTFOUND = 12
    FULL = 13
    CANTOPEN = 14
    PROTOCOL = 15
    EMPTY = 16
    SCHEMA = 17
    TOOBIG = 18
    CONSTRAINT = 19
    MISMATCH = 20
    MISUSE = 21
    NOLFS = 22
    AUTH = 23
    FORMAT = 24
    RANGE = 25
    NOTADB = 26
    NOTICE = 27
    WARNING = 28
    ROW = 100
    DONE = 101


class ColumnType(IntEnum):
    """Storage classes reported by ``sqlite3_column_type``."""

    INTEGER = 1
    FLOAT = 2
    TEXT = 3
    BLOB = 4
    NULL = 5


class OpenFlag(IntFlag):
    """Subset of ``sqlite3_open_v2`` flags."""

    READONLY = 0x00000001
    READWRITE = 0x00000002
    CREATE = 0x00000004
    URI = 0x00000040
    MEMORY = 0x00000080
    NOMUTEX = 0x00008000
    FULLMUTEX = 0x00010000
    SHAREDCACHE = 0x00020000
    PRIVATECACHE = 0x00040000


DEFAULT_OPEN_FLAGS = OpenFlag.READWRITE | OpenFlag.CREATE | OpenFlag.URI


class UpdateKind(IntEnum):
    """Row operations reported to the update hook."""

    DELETE = 9
    INSERT = 18
    UPDATE = 23


class AuthorizerAction(IntEnum):
    """Action codes passed to the authorizer hook."""

    CREATE_INDEX = 1
    CREATE_TABLE = 2
    CREATE_TEMP_INDEX = 3
    CREATE_TEMP_TABLE = 4
    CREATE_TEMP_TRIGGER = 5
    CREATE_TEMP_VIEW = 6
    CREATE_TRIGGER = 7
    CREATE_VIEW = 8
    DELETE = 9
    DROP_INDEX = 10
    DROP_TABLE = 11
    DROP_TEMP_INDEX = 12
    DROP_TEMP_TABLE = 13
    DROP_TEMP_TRIGGER = 14
    DROP_TEMP_VIEW = 15
    DROP_TRIGGER = 16
    DROP_VIEW = 17
    INSERT = 18
    PRAGMA = 19
    READ = 20
    SELECT = 21
    TRANSACTION = 22
    UPDATE = 23
    ATTACH = 24
    DETACH = 25
    ALTER_TABLE = 26
    REINDEX = 27
    ANALYZE = 28
    CREATE_VTABLE = 29
    DROP_VTABLE = 30
    FUNCTION = 31
    SAVEPOINT = 32
    RECURSIVE = 33


class AuthorizerResult(IntEnum):
    """Values an authorizer hook may return."""

    OK = 0
    DENY = 1
    IGNORE = 2


def code_name(code: int) -> str:
    """Return the symbolic name of a (possibly extended) result code."""
    try:
        return f"SQLITE_{ResultCode(code).name}"
    except ValueError:
        pass
    # Extended codes carry the primary code in the low byte
    try:
        return f"SQLITE_{ResultCode(code & 0xFF).name}_{code >> 8}"
    except ValueError:
        return f"SQLITE_UNKNOWN_{code}"
