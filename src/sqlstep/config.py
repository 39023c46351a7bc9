"""Environment-variable-based configuration."""

import os


def get_library_path() -> str | None:
    """Return an explicit SQLite library path from SQLSTEP_LIBRARY."""
    return os.environ.get("SQLSTEP_LIBRARY") or None


def get_busy_timeout_ms() -> int:
    """Return the busy timeout installed on open, from SQLSTEP_BUSY_TIMEOUT_MS.

    Zero leaves the engine default in place (fail immediately on a lock).
    """
    return int(os.environ.get("SQLSTEP_BUSY_TIMEOUT_MS", "0"))


def get_default_db() -> str:
    """Return the database opened by the CLI when none is given, from SQLSTEP_DB."""
    return os.environ.get("SQLSTEP_DB", ":memory:")


def get_log_level() -> str:
    """Return the logging level from SQLSTEP_LOG_LEVEL."""
    return os.environ.get("SQLSTEP_LOG_LEVEL", "WARNING")
