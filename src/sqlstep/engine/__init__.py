"""Engine constants and the native library binding."""

from sqlstep.engine.codes import (
    DEFAULT_OPEN_FLAGS,
    AuthorizerAction,
    AuthorizerResult,
    ColumnType,
    OpenFlag,
    ResultCode,
    UpdateKind,
    code_name,
)

__all__ = [
    "DEFAULT_OPEN_FLAGS",
    "AuthorizerAction",
    "AuthorizerResult",
    "ColumnType",
    "OpenFlag",
    "ResultCode",
    "UpdateKind",
    "code_name",
]
