"""Read-only policy applied to every SQL string before it reaches a database.

The check is deliberately lexical. A statement must start with ``select`` and
must not contain any write/DDL keyword *as a substring*, so an identifier such
as ``updated_at`` is refused as well. That conservative behaviour is kept on
purpose; generated SQL is treated exactly like user-typed SQL.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from .errors import SqlGateError

LOG = logging.getLogger(__name__)

BANNED_SUBSTRINGS: tuple[str, ...] = (
    "drop",
    "delete",
    "update",
    "insert",
    "alter",
    "create",
    "truncate",
)


class RejectionReason(str, Enum):
    """Why a statement was refused."""

    NOT_SELECT = "not_select"
    BANNED_KEYWORD = "banned_keyword"

    @property
    def message(self) -> str:
        if self is RejectionReason.NOT_SELECT:
            return "Only SELECT queries are allowed for security reasons."
        return "Query contains potentially dangerous operations."


@dataclass(frozen=True, slots=True)
class GuardedStatement:
    """SQL text together with the guard's verdict."""

    sql: str
    approved: bool
    reason: RejectionReason | None = None
    matched: str | None = None

    @property
    def message(self) -> str | None:
        return self.reason.message if self.reason else None


class StatementRejected(SqlGateError):
    """Raised when a caller insists on running a statement the guard refused."""

    def __init__(self, statement: GuardedStatement) -> None:
        super().__init__(statement.message or "Statement rejected.")
        self.statement = statement


def approve(sql_text: str) -> GuardedStatement:
    """Classify ``sql_text`` as approved or rejected."""

    lowered = sql_text.strip().lower()
    if not lowered.startswith("select"):
        LOG.info("Rejected statement: does not start with SELECT")
        return GuardedStatement(sql=sql_text, approved=False, reason=RejectionReason.NOT_SELECT)
    for keyword in BANNED_SUBSTRINGS:
        if keyword in lowered:
            LOG.info("Rejected statement: contains banned keyword %r", keyword)
            return GuardedStatement(
                sql=sql_text,
                approved=False,
                reason=RejectionReason.BANNED_KEYWORD,
                matched=keyword,
            )
    return GuardedStatement(sql=sql_text, approved=True)


def require_approved(sql_text: str) -> GuardedStatement:
    """Return the approved statement or raise :class:`StatementRejected`."""

    statement = approve(sql_text)
    if not statement.approved:
        raise StatementRejected(statement)
    return statement


__all__ = [
    "BANNED_SUBSTRINGS",
    "GuardedStatement",
    "RejectionReason",
    "StatementRejected",
    "approve",
    "require_approved",
]
