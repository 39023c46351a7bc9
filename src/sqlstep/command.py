"""Write-intent statements driven to completion."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlstep.engine.codes import ResultCode
from sqlstep.errors import BatchError, BindError, CompileError, DatabaseError, StepError
from sqlstep.statement import StatementCore, StatementState
from sqlstep.values import BindParams, BindValue

if TYPE_CHECKING:
    from sqlstep.connection import Connection

logger = logging.getLogger(__name__)


class ParameterBinder:
    """Fluent positional binder: ``cmd.binder() << 1 << "x"``.

    Each bind goes to the next index; the first failure raises BindError.
    """

    def __init__(self, core: StatementCore, index: int = 1) -> None:
        """Initialize at 1-based parameter ``index``."""
        self._core = core
        self._index = index

    @property
    def index(self) -> int:
        """Index the next value will be bound to."""
        return self._index

    def bind(self, value: BindValue = None) -> ParameterBinder:
        """Bind ``value`` at the current index and advance."""
        rc = self._core.bind(self._index, value)
        if rc != ResultCode.OK:
            raise self._core.error(BindError, rc)
        self._index += 1
        return self

    def __lshift__(self, value: BindValue) -> ParameterBinder:
        return self.bind(value)


class Command:
    """A statement run for its effect (DML/DDL), never for rows.

    ``Command(conn, sql)`` prepares immediately and raises CompileError if
    the engine rejects the text.
    """

    def __init__(self, conn: Connection, sql: str | None = None) -> None:
        """Initialize, preparing ``sql`` when given."""
        self._conn = conn
        self._core = StatementCore(conn)
        if sql is not None:
            self.prepare_checked(sql)

    def __repr__(self) -> str:
        return f"<Command {self._core.state.value} {self._core.sql!r}>"

    def __enter__(self) -> Command:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self._core.finish()

    @property
    def core(self) -> StatementCore:
        """The underlying lifecycle engine."""
        return self._core

    @property
    def state(self) -> StatementState:
        """Current lifecycle state."""
        return self._core.state

    @property
    def sql(self) -> str:
        """Text of the prepared statement."""
        return self._core.sql

    @property
    def parameter_count(self) -> int:
        """Largest parameter index used by the statement."""
        return self._core.parameter_count

    # -- Primitives (return engine codes) --

    def prepare(self, sql: str) -> int:
        """Prepare ``sql``, returning the engine code."""
        return self._core.prepare(sql)

    def bind(self, key: int | str, value: BindValue = None) -> int:
        """Bind one parameter, returning the engine code."""
        return self._core.bind(key, value)

    def bind_all(self, params: BindParams) -> int:
        """Bind a sequence positionally or a mapping by name."""
        return self._core.bind_all(params)

    def clear_bindings(self) -> int:
        """Reset every parameter to NULL."""
        return self._core.clear_bindings()

    def reset(self) -> int:
        """Return to the prepared state, keeping bindings."""
        return self._core.reset()

    def finish(self) -> int:
        """Finalize the statement."""
        return self._core.finish()

    # -- Checked conveniences --

    def prepare_checked(self, sql: str) -> None:
        """Prepare ``sql``, raising CompileError on failure."""
        rc = self._core.prepare(sql)
        if rc != ResultCode.OK:
            raise self._core.error(CompileError, rc)

    def binder(self, start: int = 1) -> ParameterBinder:
        """Return a fluent binder starting at 1-based index ``start``."""
        return ParameterBinder(self._core, start)

    def execute(self) -> int:
        """Run the statement to completion and return the changed-row count.

        A result row is treated as misuse. On success and on failure the
        statement is reset afterwards (bindings kept) so it can be re-run.
        """
        if self._core.state is StatementState.PREPARED and self._core.handle is None:
            # Whitespace or comments only
            return 0
        # The engine only updates its last-change count for INSERT, UPDATE and DELETE
        before = self._conn.total_changes
        try:
            rc = self._core.step()
        except Exception:
            # A hook raised during the step
            self._core.reset()
            raise
        if rc == ResultCode.DONE:
            changes = self._conn.changes if self._conn.total_changes != before else 0
            self._core.reset()
            return changes
        if rc == ResultCode.ROW:
            error: DatabaseError = StepError(
                f"statement returned a row; use Query for {self._core.sql!r}",
                ResultCode.MISUSE,
            )
        else:
            error = self._core.error(StepError, rc)
        self._core.reset()
        raise error

    def execute_all(self, *, stop_on_error: bool = True) -> int:
        """Execute the prepared statement and every statement in its tail.

        Values bound before the call are re-applied to each following
        statement where a parameter of the same name (or index) exists.
        Returns the total changed-row count.

        With ``stop_on_error`` the first failure is raised and the rest of
        the batch is skipped. Otherwise execution failures are collected
        and raised together as a BatchError once the batch ends. A compile
        error always ends the batch, because the remaining text can no
        longer be split reliably.
        """
        errors: list[DatabaseError] = []
        bindings = self._core.bindings
        total = 0
        try:
            total += self.execute()
        except StepError as exc:
            if stop_on_error:
                raise
            errors.append(exc)

        sql = self._core.tail
        while sql.strip():
            rc = self._core.prepare(sql)
            if rc != ResultCode.OK:
                error = self._core.error(CompileError, rc)
                if stop_on_error:
                    raise error
                errors.append(error)
                break
            rc = self._core.rebind(bindings)
            if rc != ResultCode.OK:
                error = self._core.error(BindError, rc)
                if stop_on_error:
                    raise error
                errors.append(error)
            else:
                try:
                    total += self.execute()
                except StepError as exc:
                    if stop_on_error:
                        raise
                    errors.append(exc)
            sql = self._core.tail

        if errors:
            logger.debug("Batch finished with %d failure(s)", len(errors))
            raise BatchError(errors)
        return total
