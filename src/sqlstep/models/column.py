"""Result column metadata models."""

from pydantic import BaseModel

from sqlstep.engine.codes import ColumnType


class ColumnInfo(BaseModel):
    """Description of one column of the current result row."""

    index: int
    name: str
    declared_type: str | None = None
    storage_class: ColumnType
    size: int = 0
