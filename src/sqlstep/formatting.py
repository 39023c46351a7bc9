"""printf-style SQL formatting with the engine's safe quoting directives.

Mirrors the subset of ``sqlite3_mprintf`` that matters for building
statement text:

- ``%d`` / ``%i``: integer
- ``%f`` / ``%g``: float
- ``%s``: text, inserted verbatim
- ``%q``: text with single quotes doubled
- ``%Q``: like ``%q`` but wrapped in single quotes; ``None`` becomes ``NULL``
- ``%w``: text with double quotes doubled, for identifiers
- ``%%``: a literal percent sign
"""

from __future__ import annotations

import re
from typing import Any

_DIRECTIVE_RE = re.compile(r"%([diqQswfg%])")


def _as_int(value: Any) -> str:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"%d expects an int, got {type(value).__name__}")
    return str(value)


def _as_float(value: Any, spec: str) -> str:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"%{spec} expects a number, got {type(value).__name__}")
    if spec == "f":
        return f"{float(value):f}"
    return repr(float(value))


def _as_text(value: Any) -> str:
    return "(NULL)" if value is None else str(value)


def quote_literal(value: Any) -> str:
    """Return ``value`` as a SQL literal (the ``%Q`` directive)."""
    if value is None:
        return "NULL"
    return "'" + str(value).replace("'", "''") + "'"


def quote_identifier(name: str) -> str:
    """Return ``name`` as a double-quoted SQL identifier."""
    return '"' + str(name).replace('"', '""') + '"'


def format_sql(template: str, *args: Any) -> str:
    """Substitute ``args`` into ``template`` following the directives above.

    Raises ValueError when the number of arguments does not match the
    number of directives.
    """
    remaining = list(args)

    def _replace(match: re.Match[str]) -> str:
        spec = match.group(1)
        if spec == "%":
            return "%"
        if not remaining:
            raise ValueError(f"not enough arguments for SQL template {template!r}")
        value = remaining.pop(0)
        if spec in "di":
            return _as_int(value)
        if spec in "fg":
            return _as_float(value, spec)
        if spec == "s":
            return _as_text(value)
        if spec == "q":
            return _as_text(value).replace("'", "''")
        if spec == "Q":
            return quote_literal(value)
        # %w
        return _as_text(value).replace('"', '""')

    result = _DIRECTIVE_RE.sub(_replace, template)
    if remaining:
        raise ValueError(f"{len(remaining)} unused argument(s) for SQL template {template!r}")
    return result
