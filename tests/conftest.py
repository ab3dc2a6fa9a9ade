"""Shared fakes for the sqlgate test-suite."""

from __future__ import annotations

from typing import Any

import pytest

from sqlgate.errors import RawDatabaseError
from sqlgate.models import ConnectionParameters, Engine, SchemaColumn, SchemaTable


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def mysql_params() -> ConnectionParameters:
    return ConnectionParameters(
        host="db.example.com",
        port=3306,
        username="demo_user",
        password="s3cret",
        database="classicmodels",
        engine=Engine.MYSQL,
    )


@pytest.fixture
def postgres_params() -> ConnectionParameters:
    return ConnectionParameters(
        host="localhost",
        port=5432,
        username="postgres",
        password="",
        database="postgres",
        engine=Engine.POSTGRESQL,
    )


class FakeDriver:
    """Driver double that records every open/close and replays scripted outcomes."""

    def __init__(
        self,
        engine: Engine = Engine.MYSQL,
        *,
        open_errors: list[BaseException] | None = None,
        probe_errors: list[BaseException] | None = None,
        rows: list[dict[str, object]] | None = None,
        columns: tuple[str, ...] = (),
        fetch_error: BaseException | None = None,
        tables: tuple[SchemaTable, ...] = (),
    ) -> None:
        self.engine = engine
        self.open_errors = list(open_errors or [])
        self.probe_errors = list(probe_errors or [])
        self.rows = rows or []
        self.columns = columns
        self.fetch_error = fetch_error
        self.tables = tables
        self.opened = 0
        self.closed = 0
        self.open_attempts = 0
        self.statements: list[str] = []

    async def open(self, params: ConnectionParameters) -> Any:
        self.open_attempts += 1
        if self.open_errors:
            raise self.open_errors.pop(0)
        self.opened += 1
        return object()

    async def probe(self, conn: Any) -> None:
        if self.probe_errors:
            raise self.probe_errors.pop(0)

    async def fetch(self, conn: Any, sql: str) -> tuple[list[dict[str, object]], tuple[str, ...]]:
        self.statements.append(sql)
        if self.fetch_error is not None:
            raise self.fetch_error
        return [dict(row) for row in self.rows], self.columns

    async def fetch_schema(self, conn: Any, params: ConnectionParameters) -> tuple[SchemaTable, ...]:
        if self.fetch_error is not None:
            raise self.fetch_error
        return self.tables

    async def close(self, conn: Any) -> None:
        self.closed += 1


class SleepRecorder:
    """Stands in for asyncio.sleep so retries run instantly."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)


def refused(engine: Engine = Engine.MYSQL) -> RawDatabaseError:
    return RawDatabaseError("connect ECONNREFUSED 127.0.0.1:3306", code="ECONNREFUSED", engine=engine)


CUSTOMER_TABLE = SchemaTable(
    name="customers",
    type="BASE TABLE",
    columns=(
        SchemaColumn(name="customerNumber", data_type="int", nullable=False, key="PRI"),
        SchemaColumn(name="customerName", data_type="varchar", nullable=False),
        SchemaColumn(name="country", data_type="varchar", nullable=True),
    ),
)


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()
