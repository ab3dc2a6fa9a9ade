"""Tests for schema introspection."""

from __future__ import annotations

import pytest
from conftest import CUSTOMER_TABLE, FakeDriver, SleepRecorder

from sqlgate.connections import ConnectionFactory
from sqlgate.errors import ErrorCategory, RawDatabaseError
from sqlgate.models import ConnectionParameters, Engine
from sqlgate.query import QueryExecutionError
from sqlgate.schema import DatabaseSchema, SchemaInspector


def test_prompt_hint_lists_columns() -> None:
    schema = DatabaseSchema(database="classicmodels", engine=Engine.MYSQL, tables=(CUSTOMER_TABLE,))

    hint = schema.prompt_hint()

    assert hint.startswith("Table: customers\n")
    assert "  - customerNumber (int, NOT NULL)" in hint
    assert "  - country (varchar)" in hint
    assert schema.table_names() == ("customers",)


@pytest.mark.anyio
async def test_inspector_reads_tables(mysql_params: ConnectionParameters, sleep: SleepRecorder) -> None:
    driver = FakeDriver(tables=(CUSTOMER_TABLE,))
    inspector = SchemaInspector(ConnectionFactory(drivers={Engine.MYSQL: driver}, sleep=sleep))

    schema = await inspector.inspect(mysql_params)

    assert schema.database == "classicmodels"
    assert schema.tables == (CUSTOMER_TABLE,)
    assert driver.opened == driver.closed == 1


@pytest.mark.anyio
async def test_inspector_classifies_failures(mysql_params: ConnectionParameters, sleep: SleepRecorder) -> None:
    driver = FakeDriver(fetch_error=RawDatabaseError("SELECT command denied", code="ER_DBACCESS_DENIED_ERROR"))
    inspector = SchemaInspector(ConnectionFactory(drivers={Engine.MYSQL: driver}, sleep=sleep))

    with pytest.raises(QueryExecutionError) as excinfo:
        await inspector.inspect(mysql_params)

    assert excinfo.value.error.category is ErrorCategory.AUTH_FAILED
    assert driver.closed == 1
