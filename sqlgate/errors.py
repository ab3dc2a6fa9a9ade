"""Error taxonomy shared by the connection, query and service layers.

Driver exceptions are converted into :class:`RawDatabaseError` at the point
where they are caught, so the rest of the package only deals with a single
engine-neutral shape. :func:`classify` then maps that shape onto a small set
of categories that each carry a fixed, user-safe sentence.
"""

from __future__ import annotations

import errno
import socket
from dataclasses import dataclass
from enum import Enum

import pymysql

from .models import Engine


class SqlGateError(RuntimeError):
    """Base class for errors raised by sqlgate."""


class InputValidationError(SqlGateError):
    """Raised when a request is malformed before any database work starts."""


class ErrorCategory(str, Enum):
    """Engine-independent failure categories."""

    HOST_UNREACHABLE = "HostUnreachable"
    TIMEOUT = "Timeout"
    AUTH_FAILED = "AuthFailed"
    DATABASE_MISSING = "DatabaseMissing"
    CONNECTION_LOST = "ConnectionLost"
    SYNTAX_ERROR = "SyntaxError"
    TABLE_MISSING = "TableMissing"
    COLUMN_MISSING = "ColumnMissing"
    UNKNOWN = "Unknown"

    @property
    def user_message(self) -> str:
        return _USER_MESSAGES[self]


_USER_MESSAGES: dict[ErrorCategory, str] = {
    ErrorCategory.HOST_UNREACHABLE: "Unable to reach the database server. Please check host and port.",
    ErrorCategory.TIMEOUT: "Connection timeout. Please check your network connection and database server.",
    ErrorCategory.AUTH_FAILED: "Access denied. Please check username and password.",
    ErrorCategory.DATABASE_MISSING: "Database not found. Please check database name.",
    ErrorCategory.CONNECTION_LOST: "Database connection lost. Please try again.",
    ErrorCategory.SYNTAX_ERROR: "SQL syntax error. Please check your query.",
    ErrorCategory.TABLE_MISSING: "Table not found. Please check table names.",
    ErrorCategory.COLUMN_MISSING: "Column not found. Please check column names.",
    ErrorCategory.UNKNOWN: "The database request failed.",
}

# MySQL codes use the client library's symbolic names, PostgreSQL codes are SQLSTATEs.
_CODE_CATEGORIES: dict[str, ErrorCategory] = {
    "ECONNREFUSED": ErrorCategory.HOST_UNREACHABLE,
    "ENOTFOUND": ErrorCategory.HOST_UNREACHABLE,
    "EHOSTUNREACH": ErrorCategory.HOST_UNREACHABLE,
    "ETIMEDOUT": ErrorCategory.TIMEOUT,
    "ER_QUERY_TIMEOUT": ErrorCategory.TIMEOUT,
    "57014": ErrorCategory.TIMEOUT,
    "ER_ACCESS_DENIED_ERROR": ErrorCategory.AUTH_FAILED,
    "ER_DBACCESS_DENIED_ERROR": ErrorCategory.AUTH_FAILED,
    "28P01": ErrorCategory.AUTH_FAILED,
    "28000": ErrorCategory.AUTH_FAILED,
    "ER_BAD_DB_ERROR": ErrorCategory.DATABASE_MISSING,
    "3D000": ErrorCategory.DATABASE_MISSING,
    "ECONNRESET": ErrorCategory.CONNECTION_LOST,
    "PROTOCOL_CONNECTION_LOST": ErrorCategory.CONNECTION_LOST,
    "08003": ErrorCategory.CONNECTION_LOST,
    "08006": ErrorCategory.CONNECTION_LOST,
    "ER_PARSE_ERROR": ErrorCategory.SYNTAX_ERROR,
    "42601": ErrorCategory.SYNTAX_ERROR,
    "ER_NO_SUCH_TABLE": ErrorCategory.TABLE_MISSING,
    "42P01": ErrorCategory.TABLE_MISSING,
    "ER_BAD_FIELD_ERROR": ErrorCategory.COLUMN_MISSING,
    "42703": ErrorCategory.COLUMN_MISSING,
}

_MYSQL_ERRNO_NAMES: dict[int, str] = {
    1044: "ER_DBACCESS_DENIED_ERROR",
    1045: "ER_ACCESS_DENIED_ERROR",
    1049: "ER_BAD_DB_ERROR",
    1054: "ER_BAD_FIELD_ERROR",
    1064: "ER_PARSE_ERROR",
    1146: "ER_NO_SUCH_TABLE",
    2003: "ECONNREFUSED",
    2005: "ENOTFOUND",
    2006: "PROTOCOL_CONNECTION_LOST",
    2013: "PROTOCOL_CONNECTION_LOST",
    3024: "ER_QUERY_TIMEOUT",
}


class RawDatabaseError(SqlGateError):
    """A driver failure reduced to engine, code and message."""

    def __init__(self, message: str, *, code: str | None = None, engine: Engine | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.engine = engine

    def __repr__(self) -> str:
        return f"RawDatabaseError(code={self.code!r}, engine={self.engine!r}, message={self.message!r})"


@dataclass(frozen=True, slots=True)
class ClassifiedError:
    """Normalized description of a failure, safe to hand to callers."""

    category: ErrorCategory
    user_message: str
    raw_code: str | None = None
    raw_message: str | None = None

    def to_dict(self, *, expose_details: bool = False) -> dict[str, object]:
        """Render the failure; the raw message is only included on request."""

        payload: dict[str, object] = {
            "success": False,
            "error": self.user_message,
            "category": self.category.value,
            "code": self.raw_code,
        }
        if expose_details and self.raw_message:
            payload["details"] = self.raw_message
        return payload


def normalize_exception(exc: BaseException, engine: Engine | None = None) -> RawDatabaseError:
    """Reduce any driver or socket exception to a :class:`RawDatabaseError`."""

    if isinstance(exc, RawDatabaseError):
        return exc
    message = str(exc) or exc.__class__.__name__
    return RawDatabaseError(message, code=_extract_code(exc), engine=engine)


def classify(error: BaseException) -> ClassifiedError:
    """Map a failure onto its category. Pure and total: never raises."""

    raw = normalize_exception(error)
    category = _CODE_CATEGORIES.get(raw.code or "")
    if category is None:
        lowered = raw.message.lower()
        if "timeout" in lowered or "timed out" in lowered:
            category = ErrorCategory.TIMEOUT
        else:
            category = ErrorCategory.UNKNOWN
    return ClassifiedError(
        category=category,
        user_message=category.user_message,
        raw_code=raw.code,
        raw_message=raw.message,
    )


def _extract_code(exc: BaseException) -> str | None:
    sqlstate = getattr(exc, "sqlstate", None)
    if isinstance(sqlstate, str) and sqlstate:
        return sqlstate
    if isinstance(exc, pymysql.err.MySQLError):
        return _mysql_code(exc)
    if isinstance(exc, OSError):
        return _os_code(exc)
    return None


def _mysql_code(exc: pymysql.err.MySQLError) -> str | None:
    if not exc.args or not isinstance(exc.args[0], int):
        return None
    number = exc.args[0]
    if number == 2003:
        # aiomysql raises 2003 for every socket failure; the cause tells them apart.
        cause = exc.__cause__
        if isinstance(cause, OSError):
            return _os_code(cause) or "ECONNREFUSED"
        text = " ".join(str(arg) for arg in exc.args[1:]).lower()
        if "timed out" in text or "timeout" in text:
            return "ETIMEDOUT"
    return _MYSQL_ERRNO_NAMES.get(number, f"MYSQL_{number}")


def _os_code(exc: OSError) -> str | None:
    if isinstance(exc, TimeoutError):
        return "ETIMEDOUT"
    if isinstance(exc, socket.gaierror):
        return "ENOTFOUND"
    if isinstance(exc, ConnectionRefusedError):
        return "ECONNREFUSED"
    if isinstance(exc, ConnectionResetError):
        return "ECONNRESET"
    if exc.errno is not None:
        return errno.errorcode.get(exc.errno)
    return None


__all__ = [
    "ClassifiedError",
    "ErrorCategory",
    "InputValidationError",
    "RawDatabaseError",
    "SqlGateError",
    "classify",
    "normalize_exception",
]
