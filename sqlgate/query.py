"""Query execution: run one approved SELECT on a fresh handle."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Sequence

from .connections import ConnectionFactory
from .errors import ClassifiedError, RawDatabaseError, SqlGateError, classify
from .guard import GuardedStatement, approve
from .models import ConnectionParameters, ExecutionResult, Row

LOG = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class QueryExecutionError(SqlGateError):
    """Raised when an approved statement fails on the database."""

    def __init__(self, error: ClassifiedError) -> None:
        super().__init__(error.user_message)
        self.error = error


class UnapprovedStatementError(ValueError):
    """Programming error: the executor was handed SQL the guard refused."""


class QueryExecutor:
    """Runs guarded statements; every call opens and closes its own handle."""

    def __init__(self, factory: ConnectionFactory | None = None, *, clock: Clock | None = None) -> None:
        self._factory = factory or ConnectionFactory()
        self._clock = clock or _utcnow

    async def execute(self, params: ConnectionParameters, statement: str | GuardedStatement) -> ExecutionResult:
        # Always re-check the text; a GuardedStatement can be built by hand.
        guarded = approve(statement.sql if isinstance(statement, GuardedStatement) else statement)
        if not guarded.approved:
            raise UnapprovedStatementError(f"Refusing to execute unapproved SQL ({guarded.reason}).")
        async with self._factory.connection(params) as handle:
            try:
                rows, columns = await handle.fetch(guarded.sql)
            except RawDatabaseError as exc:
                error = classify(exc)
                LOG.warning(
                    "Query failed on %s (%s): %s",
                    params.describe(),
                    error.raw_code,
                    error.raw_message,
                )
                raise QueryExecutionError(error) from exc
        return _build_result(rows, columns, self._clock())


def _build_result(rows: Sequence[Row], columns: Sequence[str], executed_at: datetime) -> ExecutionResult:
    normalized = tuple(dict(row) for row in rows)
    names = tuple(str(column) for column in columns)
    if normalized:
        keys = tuple(str(key) for key in normalized[0].keys())
        # Metadata can disagree with row keys (e.g. MySQL prefixes duplicate names).
        if not names or not set(keys) <= set(names):
            names = keys
    return ExecutionResult(
        rows=normalized,
        columns=names,
        row_count=len(normalized),
        executed_at=executed_at,
    )


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


__all__ = [
    "QueryExecutionError",
    "QueryExecutor",
    "UnapprovedStatementError",
]
