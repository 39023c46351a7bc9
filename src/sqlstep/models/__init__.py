"""Data models."""

from sqlstep.models.column import ColumnInfo

__all__ = ["ColumnInfo"]
