"""ctypes binding to the SQLite C library.

Only the calls the statement lifecycle and the hook bridge need are
declared. Every declaration sets ``argtypes`` and ``restype`` so that
handles survive the round trip on 64-bit platforms.
"""

from __future__ import annotations

import ctypes
import ctypes.util
import logging
from collections.abc import Iterator
from ctypes import CFUNCTYPE, POINTER, c_char_p, c_double, c_int, c_int64, c_void_p
from functools import lru_cache

from sqlstep.config import get_library_path
from sqlstep.errors import LibraryNotFoundError

logger = logging.getLogger(__name__)

# Destructor sentinel telling the engine to copy bound text/blob buffers
SQLITE_TRANSIENT = c_void_p(-1)

BUSY_HANDLER = CFUNCTYPE(c_int, c_void_p, c_int)
COMMIT_HOOK = CFUNCTYPE(c_int, c_void_p)
ROLLBACK_HOOK = CFUNCTYPE(None, c_void_p)
UPDATE_HOOK = CFUNCTYPE(None, c_void_p, c_int, c_char_p, c_char_p, c_int64)
AUTHORIZER = CFUNCTYPE(c_int, c_void_p, c_int, c_char_p, c_char_p, c_char_p, c_char_p)

_SONAMES = (
    "libsqlite3.so.0",
    "libsqlite3.so",
    "libsqlite3.dylib",
    "sqlite3.dll",
    "winsqlite3.dll",
)

# name -> (restype, argtypes)
_SIGNATURES: dict[str, tuple[object, list[object]]] = {
    "sqlite3_libversion": (c_char_p, []),
    "sqlite3_errstr": (c_char_p, [c_int]),
    # connection
    "sqlite3_open_v2": (c_int, [c_char_p, POINTER(c_void_p), c_int, c_char_p]),
    "sqlite3_close_v2": (c_int, [c_void_p]),
    "sqlite3_errcode": (c_int, [c_void_p]),
    "sqlite3_extended_errcode": (c_int, [c_void_p]),
    "sqlite3_errmsg": (c_char_p, [c_void_p]),
    "sqlite3_last_insert_rowid": (c_int64, [c_void_p]),
    "sqlite3_changes": (c_int, [c_void_p]),
    "sqlite3_total_changes": (c_int, [c_void_p]),
    "sqlite3_get_autocommit": (c_int, [c_void_p]),
    "sqlite3_exec": (c_int, [c_void_p, c_char_p, c_void_p, c_void_p, c_void_p]),
    "sqlite3_busy_timeout": (c_int, [c_void_p, c_int]),
    # hooks
    "sqlite3_busy_handler": (c_int, [c_void_p, BUSY_HANDLER, c_void_p]),
    "sqlite3_commit_hook": (c_void_p, [c_void_p, COMMIT_HOOK, c_void_p]),
    "sqlite3_rollback_hook": (c_void_p, [c_void_p, ROLLBACK_HOOK, c_void_p]),
    "sqlite3_update_hook": (c_void_p, [c_void_p, UPDATE_HOOK, c_void_p]),
    "sqlite3_set_authorizer": (c_int, [c_void_p, AUTHORIZER, c_void_p]),
    # statements
    "sqlite3_prepare_v2": (
        c_int,
        [c_void_p, c_void_p, c_int, POINTER(c_void_p), POINTER(c_void_p)],
    ),
    "sqlite3_finalize": (c_int, [c_void_p]),
    "sqlite3_reset": (c_int, [c_void_p]),
    "sqlite3_step": (c_int, [c_void_p]),
    "sqlite3_clear_bindings": (c_int, [c_void_p]),
    "sqlite3_sql": (c_char_p, [c_void_p]),
    "sqlite3_stmt_readonly": (c_int, [c_void_p]),
    "sqlite3_bind_parameter_count": (c_int, [c_void_p]),
    "sqlite3_bind_parameter_index": (c_int, [c_void_p, c_char_p]),
    "sqlite3_bind_parameter_name": (c_char_p, [c_void_p, c_int]),
    "sqlite3_bind_int": (c_int, [c_void_p, c_int, c_int]),
    "sqlite3_bind_int64": (c_int, [c_void_p, c_int, c_int64]),
    "sqlite3_bind_double": (c_int, [c_void_p, c_int, c_double]),
    "sqlite3_bind_text": (c_int, [c_void_p, c_int, c_char_p, c_int, c_void_p]),
    "sqlite3_bind_blob": (c_int, [c_void_p, c_int, c_char_p, c_int, c_void_p]),
    "sqlite3_bind_null": (c_int, [c_void_p, c_int]),
    # result rows
    "sqlite3_column_count": (c_int, [c_void_p]),
    "sqlite3_data_count": (c_int, [c_void_p]),
    "sqlite3_column_name": (c_char_p, [c_void_p, c_int]),
    "sqlite3_column_type": (c_int, [c_void_p, c_int]),
    "sqlite3_column_bytes": (c_int, [c_void_p, c_int]),
    "sqlite3_column_int": (c_int, [c_void_p, c_int]),
    "sqlite3_column_int64": (c_int64, [c_void_p, c_int]),
    "sqlite3_column_double": (c_double, [c_void_p, c_int]),
    "sqlite3_column_text": (c_void_p, [c_void_p, c_int]),
    "sqlite3_column_blob": (c_void_p, [c_void_p, c_int]),
}

# Absent when the library is built with SQLITE_OMIT_DECLTYPE
_OPTIONAL = {
    "sqlite3_column_decltype": (c_char_p, [c_void_p, c_int]),
}


def _candidates() -> Iterator[str]:
    """Yield library names/paths to try, most specific first."""
    explicit = get_library_path()
    if explicit:
        yield explicit
        return
    found = ctypes.util.find_library("sqlite3")
    if found:
        yield found
    # The interpreter's own sqlite3 module links the library; dlsym on its
    # handle resolves symbols through that dependency.
    try:
        import _sqlite3
    except ImportError:
        pass
    else:
        if getattr(_sqlite3, "__file__", None):
            yield _sqlite3.__file__
    yield from _SONAMES


def _declare(lib: ctypes.CDLL) -> None:
    """Attach argtypes/restype to every function the package calls."""
    for name, (restype, argtypes) in _SIGNATURES.items():
        func = getattr(lib, name)
        func.restype = restype
        func.argtypes = argtypes
    for name, (restype, argtypes) in _OPTIONAL.items():
        func = getattr(lib, name, None)
        if func is not None:
            func.restype = restype
            func.argtypes = argtypes


@lru_cache(maxsize=1)
def load_library() -> ctypes.CDLL:
    """Load and declare the SQLite library, caching the handle.

    Raises LibraryNotFoundError if no candidate loads or a candidate
    lacks the required entry points.
    """
    tried: list[str] = []
    for candidate in _candidates():
        tried.append(candidate)
        try:
            lib = ctypes.CDLL(candidate)
            _declare(lib)
        except (OSError, AttributeError) as exc:
            logger.debug("Skipping SQLite candidate %s: %s", candidate, exc)
            continue
        logger.debug(
            "Loaded SQLite %s from %s", lib.sqlite3_libversion().decode(), candidate
        )
        return lib
    raise LibraryNotFoundError(f"could not load the SQLite library (tried: {', '.join(tried)})")


def library_version() -> str:
    """Return the engine version string, e.g. ``3.45.1``."""
    return load_library().sqlite3_libversion().decode()


def errstr(code: int) -> str:
    """Return the engine's English description of a result code."""
    raw = load_library().sqlite3_errstr(code)
    return raw.decode() if raw else f"unknown error ({code})"


def has_decltype() -> bool:
    """Return True if the library exports ``sqlite3_column_decltype``."""
    return hasattr(load_library(), "sqlite3_column_decltype")
