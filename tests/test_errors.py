"""Tests for error normalization and classification."""

from __future__ import annotations

import asyncio
import socket

import pymysql
import pytest

from sqlgate.errors import ErrorCategory, RawDatabaseError, classify, normalize_exception
from sqlgate.models import Engine


class _PostgresLikeError(Exception):
    def __init__(self, message: str, sqlstate: str) -> None:
        super().__init__(message)
        self.sqlstate = sqlstate


@pytest.mark.parametrize(
    ("code", "category"),
    [
        ("ECONNREFUSED", ErrorCategory.HOST_UNREACHABLE),
        ("ENOTFOUND", ErrorCategory.HOST_UNREACHABLE),
        ("ETIMEDOUT", ErrorCategory.TIMEOUT),
        ("ER_ACCESS_DENIED_ERROR", ErrorCategory.AUTH_FAILED),
        ("28P01", ErrorCategory.AUTH_FAILED),
        ("ER_BAD_DB_ERROR", ErrorCategory.DATABASE_MISSING),
        ("3D000", ErrorCategory.DATABASE_MISSING),
        ("ECONNRESET", ErrorCategory.CONNECTION_LOST),
        ("PROTOCOL_CONNECTION_LOST", ErrorCategory.CONNECTION_LOST),
        ("ER_PARSE_ERROR", ErrorCategory.SYNTAX_ERROR),
        ("42601", ErrorCategory.SYNTAX_ERROR),
        ("ER_NO_SUCH_TABLE", ErrorCategory.TABLE_MISSING),
        ("42P01", ErrorCategory.TABLE_MISSING),
        ("ER_BAD_FIELD_ERROR", ErrorCategory.COLUMN_MISSING),
        ("42703", ErrorCategory.COLUMN_MISSING),
    ],
)
def test_known_codes_map_to_categories(code: str, category: ErrorCategory) -> None:
    error = classify(RawDatabaseError("boom", code=code))

    assert error.category is category
    assert error.user_message == category.user_message
    assert error.raw_code == code
    assert error.raw_message == "boom"


def test_unknown_codes_fall_back_to_unknown() -> None:
    error = classify(RawDatabaseError("weird failure", code="XX999"))

    assert error.category is ErrorCategory.UNKNOWN
    assert classify(ValueError("no code at all")).category is ErrorCategory.UNKNOWN


def test_timeout_detected_from_message() -> None:
    error = classify(RawDatabaseError("Query read timeout", code=None))

    assert error.category is ErrorCategory.TIMEOUT


def test_classify_is_deterministic() -> None:
    raw = RawDatabaseError("relation \"nope\" does not exist", code="42P01", engine=Engine.POSTGRESQL)

    assert classify(raw) == classify(raw)


def test_user_messages_do_not_depend_on_engine() -> None:
    mysql = classify(RawDatabaseError("a", code="ER_NO_SUCH_TABLE", engine=Engine.MYSQL))
    postgres = classify(RawDatabaseError("b", code="42P01", engine=Engine.POSTGRESQL))

    assert mysql.user_message == postgres.user_message


def test_postgres_sqlstate_is_used_as_code() -> None:
    raw = normalize_exception(_PostgresLikeError("password authentication failed", "28P01"), Engine.POSTGRESQL)

    assert raw.code == "28P01"
    assert raw.engine is Engine.POSTGRESQL
    assert classify(raw).category is ErrorCategory.AUTH_FAILED


@pytest.mark.parametrize(
    ("errno_value", "code", "category"),
    [
        (1045, "ER_ACCESS_DENIED_ERROR", ErrorCategory.AUTH_FAILED),
        (1049, "ER_BAD_DB_ERROR", ErrorCategory.DATABASE_MISSING),
        (1064, "ER_PARSE_ERROR", ErrorCategory.SYNTAX_ERROR),
        (1146, "ER_NO_SUCH_TABLE", ErrorCategory.TABLE_MISSING),
        (1054, "ER_BAD_FIELD_ERROR", ErrorCategory.COLUMN_MISSING),
        (2013, "PROTOCOL_CONNECTION_LOST", ErrorCategory.CONNECTION_LOST),
        (1290, "MYSQL_1290", ErrorCategory.UNKNOWN),
    ],
)
def test_mysql_errno_is_mapped_to_symbolic_code(errno_value: int, code: str, category: ErrorCategory) -> None:
    exc = pymysql.err.OperationalError(errno_value, "server said no")

    raw = normalize_exception(exc, Engine.MYSQL)

    assert raw.code == code
    assert classify(raw).category is category


def test_mysql_connect_failure_uses_socket_cause() -> None:
    exc = pymysql.err.OperationalError(2003, "Can't connect to MySQL server on 'nowhere'")
    exc.__cause__ = socket.gaierror(-2, "Name or service not known")

    assert normalize_exception(exc).code == "ENOTFOUND"

    exc.__cause__ = ConnectionRefusedError(111, "Connection refused")
    assert classify(exc).category is ErrorCategory.HOST_UNREACHABLE


@pytest.mark.parametrize(
    ("exc", "code"),
    [
        (ConnectionRefusedError(111, "Connection refused"), "ECONNREFUSED"),
        (ConnectionResetError(104, "Connection reset by peer"), "ECONNRESET"),
        (socket.gaierror(-2, "Name or service not known"), "ENOTFOUND"),
        (asyncio.TimeoutError(), "ETIMEDOUT"),
    ],
)
def test_socket_errors_are_normalized(exc: BaseException, code: str) -> None:
    assert normalize_exception(exc).code == code


def test_details_only_exposed_on_request() -> None:
    error = classify(RawDatabaseError("Unknown column 'x'", code="ER_BAD_FIELD_ERROR"))

    hidden = error.to_dict()
    shown = error.to_dict(expose_details=True)

    assert "details" not in hidden
    assert hidden["success"] is False
    assert hidden["category"] == "ColumnMissing"
    assert hidden["code"] == "ER_BAD_FIELD_ERROR"
    assert shown["details"] == "Unknown column 'x'"
