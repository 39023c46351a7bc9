"""Typed bind and extract dispatch over a closed set of value types.

Binding maps each Python value onto exactly one engine bind call.
Extraction maps a requested Python type onto exactly one engine column
accessor and lets the engine apply its storage-class coercion.

| Python type | bind call | extract call |
|---|---|---|
| ``int`` / ``bool`` | ``bind_int`` (32-bit) or ``bind_int64`` | ``column_int64`` |
| ``float`` | ``bind_double`` | ``column_double`` |
| ``str`` | ``bind_text`` | ``column_text`` |
| ``bytes``-like | ``bind_blob`` | ``column_blob`` |
| ``None`` | ``bind_null`` | (always ``None``) |
"""

from __future__ import annotations

import ctypes
from collections.abc import Callable
from typing import Any

from sqlstep.engine.codes import ColumnType, ResultCode
from sqlstep.engine.native import SQLITE_TRANSIENT

INT32_MIN, INT32_MAX = -(2**31), 2**31 - 1
INT64_MIN, INT64_MAX = -(2**63), 2**63 - 1

BindValue = int | float | str | bytes | bytearray | memoryview | None
ColumnValue = int | float | str | bytes | None
BindParams = dict[str, BindValue] | list[BindValue] | tuple[BindValue, ...]

NoneType = type(None)
SUPPORTED_TYPES: tuple[type, ...] = (int, float, str, bytes, NoneType)


def bind_value(lib: ctypes.CDLL, stmt: int, index: int, value: BindValue) -> int:
    """Bind one value at a 1-based parameter index and return the engine code.

    Values outside the closed type set, integers wider than 64 bits and
    text that cannot be encoded as UTF-8 return ``SQLITE_MISMATCH``
    without calling the engine.
    """
    if value is None:
        return lib.sqlite3_bind_null(stmt, index)
    if isinstance(value, bool):
        return lib.sqlite3_bind_int(stmt, index, int(value))
    if isinstance(value, int):
        if INT32_MIN <= value <= INT32_MAX:
            return lib.sqlite3_bind_int(stmt, index, value)
        if INT64_MIN <= value <= INT64_MAX:
            return lib.sqlite3_bind_int64(stmt, index, value)
        return ResultCode.MISMATCH
    if isinstance(value, float):
        return lib.sqlite3_bind_double(stmt, index, value)
    if isinstance(value, str):
        try:
            data = value.encode("utf-8")
        except UnicodeEncodeError:
            return ResultCode.MISMATCH
        return lib.sqlite3_bind_text(stmt, index, data, len(data), SQLITE_TRANSIENT)
    if isinstance(value, (bytes, bytearray, memoryview)):
        data = bytes(value)
        return lib.sqlite3_bind_blob(stmt, index, data, len(data), SQLITE_TRANSIENT)
    return ResultCode.MISMATCH


def _extract_int(lib: ctypes.CDLL, stmt: int, index: int) -> int:
    return lib.sqlite3_column_int64(stmt, index)


def _extract_float(lib: ctypes.CDLL, stmt: int, index: int) -> float:
    return lib.sqlite3_column_double(stmt, index)


def _extract_text(lib: ctypes.CDLL, stmt: int, index: int) -> str | None:
    if lib.sqlite3_column_type(stmt, index) == ColumnType.NULL:
        return None
    # Pointer first, then length: the text conversion may change the byte count
    ptr = lib.sqlite3_column_text(stmt, index)
    size = lib.sqlite3_column_bytes(stmt, index)
    if not ptr:
        return ""
    return ctypes.string_at(ptr, size).decode("utf-8", errors="replace")


def _extract_blob(lib: ctypes.CDLL, stmt: int, index: int) -> bytes | None:
    if lib.sqlite3_column_type(stmt, index) == ColumnType.NULL:
        return None
    ptr = lib.sqlite3_column_blob(stmt, index)
    size = lib.sqlite3_column_bytes(stmt, index)
    if not ptr:
        # Zero-length blobs come back as a null pointer
        return b""
    return ctypes.string_at(ptr, size)


def _extract_null(lib: ctypes.CDLL, stmt: int, index: int) -> None:
    return None


_EXTRACTORS: dict[type, Callable[[ctypes.CDLL, int, int], Any]] = {
    int: _extract_int,
    float: _extract_float,
    str: _extract_text,
    bytes: _extract_blob,
    NoneType: _extract_null,
}

_NATURAL: dict[ColumnType, type] = {
    ColumnType.INTEGER: int,
    ColumnType.FLOAT: float,
    ColumnType.TEXT: str,
    ColumnType.BLOB: bytes,
    ColumnType.NULL: NoneType,
}


def natural_type(storage: int) -> type:
    """Return the Python type a storage class extracts to by default."""
    return _NATURAL[ColumnType(storage)]


def column_value(lib: ctypes.CDLL, stmt: int, index: int, type_: type | None = None) -> ColumnValue:
    """Extract one column of the current row as ``type_``.

    ``type_=None`` extracts by the column's storage class. The caller is
    responsible for range-checking ``index``.
    """
    if type_ is None:
        type_ = natural_type(lib.sqlite3_column_type(stmt, index))
    extractor = _EXTRACTORS.get(type_)
    if extractor is None:
        names = ", ".join(t.__name__ for t in SUPPORTED_TYPES)
        raise TypeError(f"unsupported column type {type_!r}; expected one of {names}")
    return extractor(lib, stmt, index)
