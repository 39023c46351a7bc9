"""Scoped transaction guard."""

from __future__ import annotations

import logging
from types import TracebackType
from typing import TYPE_CHECKING

from sqlstep.engine.codes import ResultCode
from sqlstep.errors import StepError

if TYPE_CHECKING:
    from sqlstep.connection import Connection

logger = logging.getLogger(__name__)


class Transaction:
    """Begins a transaction on construction and ends it exactly once.

    Used as a context manager. On exit, a guard that was not completed
    explicitly commits when built with ``commit=True`` and the block
    raised nothing; in every other case it rolls back::

        with Transaction(conn, commit=True):
            conn.execute("INSERT INTO t VALUES (1, 'x')")

    ``reserve=True`` issues ``BEGIN IMMEDIATE``, taking the write lock up
    front.
    """

    def __init__(self, conn: Connection, commit: bool = False, reserve: bool = False) -> None:
        """Begin the transaction; raises StepError if the engine refuses."""
        self._conn = conn
        self._commit = commit
        self._completed = False
        sql = "BEGIN IMMEDIATE" if reserve else "BEGIN"
        rc = conn.execute(sql)
        if rc != ResultCode.OK:
            raise StepError.from_connection(conn, rc)
        logger.debug("%s on %s", sql, conn.source)

    def __repr__(self) -> str:
        state = "completed" if self._completed else "active"
        return f"<Transaction {state} commit={self._commit}>"

    def __enter__(self) -> Transaction:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._completed:
            return
        if self._commit and exc_type is None:
            rc = self.commit()
            if rc == ResultCode.OK:
                return
            error = StepError.from_connection(self._conn, rc)
            self.rollback()
            raise error

        rc = self.rollback()
        if rc != ResultCode.OK:
            if exc_type is None:
                raise StepError.from_connection(self._conn, rc)
            # Don't mask the exception that triggered the rollback
            logger.warning(
                "Rollback failed while handling %s: %s",
                exc_type.__name__,
                self._conn.error_message,
            )

    @property
    def completed(self) -> bool:
        """True once COMMIT or ROLLBACK has taken effect."""
        return self._completed

    @property
    def commit_on_exit(self) -> bool:
        """Whether a clean exit commits."""
        return self._commit

    def commit(self) -> int:
        """Issue COMMIT and return the engine code; a no-op once completed.

        A COMMIT that fails while the transaction is still open (for
        example ``SQLITE_BUSY``) leaves the guard active so that exit
        still rolls back.
        """
        if self._completed:
            return ResultCode.OK
        rc = self._conn.execute("COMMIT")
        if rc == ResultCode.OK or not self._conn.in_transaction:
            self._completed = True
        logger.debug("COMMIT -> %d", rc)
        return rc

    def rollback(self) -> int:
        """Issue ROLLBACK and return the engine code; a no-op once completed."""
        if self._completed:
            return ResultCode.OK
        if not self._conn.in_transaction:
            # The engine already rolled back (e.g. a commit hook vetoed COMMIT)
            self._completed = True
            return ResultCode.OK
        rc = self._conn.execute("ROLLBACK")
        if rc == ResultCode.OK or not self._conn.in_transaction:
            self._completed = True
        logger.debug("ROLLBACK -> %d", rc)
        return rc
