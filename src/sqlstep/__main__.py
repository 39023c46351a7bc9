"""Command-line entry point: run SQL statements against a database."""

import argparse
import logging
import sys
from contextlib import AbstractContextManager, nullcontext
from typing import Any, TextIO

from sqlstep.config import get_default_db, get_log_level
from sqlstep.connection import Connection
from sqlstep.errors import DatabaseError
from sqlstep.query import Query
from sqlstep.transaction import Transaction


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sqlstep",
        description="Run SQL statements one by one, printing result rows as TSV.",
    )
    parser.add_argument(
        "--db",
        default=None,
        help="database path or URI (default: $SQLSTEP_DB, else :memory:)",
    )
    parser.add_argument(
        "--transaction",
        action="store_true",
        help="run every statement inside one transaction, committed on success",
    )
    parser.add_argument("sql", nargs="+", help="SQL statements, one per argument")
    return parser


def _format_value(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bytes):
        return f"X'{value.hex().upper()}'"
    return str(value)


def _run_one(conn: Connection, sql: str, out: TextIO) -> str:
    """Run the first statement of ``sql`` and return the unparsed rest."""
    before = conn.total_changes
    with Query(conn, sql) as query:
        tail = query.core.tail
        first = query.fetchone()
        if first is None:
            if not query.core.readonly:
                print(f"{conn.total_changes - before} row(s) changed", file=out)
            return tail
        print("\t".join(first.keys()), file=out)
        print("\t".join(_format_value(v) for v in first.as_tuple()), file=out)
        for row in query:
            print("\t".join(_format_value(v) for v in row.as_tuple()), file=out)
    return tail


def _run(conn: Connection, sql: str, out: TextIO) -> None:
    """Run each statement of ``sql``, printing its rows or its changed-row count."""
    while sql.strip():
        sql = _run_one(conn, sql, out)


def main(argv: list[str] | None = None) -> int:
    """Run the CLI and return the process exit status."""
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, get_log_level()),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )
    logger = logging.getLogger(__name__)

    db = args.db or get_default_db()
    logger.info("Running %d statement(s) against %s", len(args.sql), db)
    try:
        with Connection(db) as conn:
            guard: AbstractContextManager[Any] = (
                Transaction(conn, commit=True) if args.transaction else nullcontext()
            )
            with guard:
                for sql in args.sql:
                    _run(conn, sql, sys.stdout)
    except DatabaseError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
