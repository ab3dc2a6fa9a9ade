"""Engine drivers: one small adapter per supported database engine.

Each driver knows how to open, probe, query and close a native connection for
its engine. Every exception raised by the native client is converted into a
:class:`~sqlgate.errors.RawDatabaseError` before it leaves the driver.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Protocol, Sequence, runtime_checkable

import aiomysql
import asyncpg
from pymysql.constants import CLIENT, FIELD_TYPE
from pymysql.converters import conversions

from .errors import normalize_exception
from .models import ConnectionParameters, Engine, Row, SchemaColumn, SchemaTable

LOG = logging.getLogger(__name__)

FetchResult = tuple[list[Row], tuple[str, ...]]


@runtime_checkable
class EngineDriver(Protocol):
    """Operations every engine variant implements."""

    engine: Engine

    async def open(self, params: ConnectionParameters) -> Any:
        """Create a native connection."""

    async def probe(self, conn: Any) -> None:
        """Issue a liveness check on a freshly opened connection."""

    async def fetch(self, conn: Any, sql: str) -> FetchResult:
        """Run ``sql`` and return rows plus engine-reported column names."""

    async def fetch_schema(self, conn: Any, params: ConnectionParameters) -> tuple[SchemaTable, ...]:
        """Describe the tables visible to the connection."""

    async def close(self, conn: Any) -> None:
        """Release the native connection."""


class PostgresDriver:
    """PostgreSQL via asyncpg."""

    engine = Engine.POSTGRESQL

    _TEXT_TYPES: tuple[str, ...] = ("date", "time", "timetz", "timestamp", "timestamptz", "interval")

    _TABLES_QUERY = """
        SELECT table_name, table_type
        FROM information_schema.tables
        WHERE table_schema = 'public'
        ORDER BY table_name
    """

    _COLUMNS_QUERY = """
        SELECT table_name, column_name, data_type, is_nullable, column_default
        FROM information_schema.columns
        WHERE table_schema = 'public'
        ORDER BY table_name, ordinal_position
    """

    def __init__(self, *, connect_timeout: float = 15.0, query_timeout: float = 30.0) -> None:
        self._connect_timeout = connect_timeout
        self._query_timeout = query_timeout

    async def open(self, params: ConnectionParameters) -> Any:
        conn = None
        try:
            conn = await asyncpg.connect(**self._connect_kwargs(params))
            # Dates come back as text so results serialize the same way everywhere.
            for type_name in self._TEXT_TYPES:
                await conn.set_type_codec(
                    type_name,
                    schema="pg_catalog",
                    encoder=str,
                    decoder=str,
                    format="text",
                )
        except Exception as exc:
            if conn is not None:
                await self._close_quietly(conn)
            raise normalize_exception(exc, self.engine) from exc
        return conn

    async def probe(self, conn: Any) -> None:
        try:
            await conn.fetchval("SELECT 1")
        except Exception as exc:
            raise normalize_exception(exc, self.engine) from exc

    async def fetch(self, conn: Any, sql: str) -> FetchResult:
        try:
            statement = await conn.prepare(sql)
            records = await statement.fetch()
            columns = tuple(attribute.name for attribute in statement.get_attributes())
        except Exception as exc:
            raise normalize_exception(exc, self.engine) from exc
        return [dict(record) for record in records], columns

    async def fetch_schema(self, conn: Any, params: ConnectionParameters) -> tuple[SchemaTable, ...]:
        try:
            table_rows = await conn.fetch(self._TABLES_QUERY)
            column_rows = await conn.fetch(self._COLUMNS_QUERY)
        except Exception as exc:
            raise normalize_exception(exc, self.engine) from exc
        columns: dict[str, list[SchemaColumn]] = {}
        for row in column_rows:
            columns.setdefault(str(row["table_name"]), []).append(
                SchemaColumn(
                    name=str(row["column_name"]),
                    data_type=str(row["data_type"]),
                    nullable=row["is_nullable"] == "YES",
                    default=_optional_str(row["column_default"]),
                )
            )
        return tuple(
            SchemaTable(
                name=str(row["table_name"]),
                type=str(row["table_type"]),
                columns=tuple(columns.get(str(row["table_name"]), ())),
            )
            for row in table_rows
        )

    async def close(self, conn: Any) -> None:
        await conn.close()

    def _connect_kwargs(self, params: ConnectionParameters) -> dict[str, object]:
        return {
            "host": params.host,
            "port": params.port,
            "user": params.username,
            "password": params.password,
            "database": params.database,
            "timeout": self._connect_timeout,
            "command_timeout": self._query_timeout,
            "ssl": "disable",
        }

    @staticmethod
    async def _close_quietly(conn: Any) -> None:
        try:
            await conn.close()
        except Exception:  # pragma: no cover - best effort cleanup
            LOG.debug("Ignoring error while closing a half-open connection", exc_info=True)


def _mysql_conversions() -> dict[int, Any]:
    """Decoder table that keeps big numbers and temporal values as strings."""

    table = dict(conversions)
    for field_type in (
        FIELD_TYPE.DECIMAL,
        FIELD_TYPE.NEWDECIMAL,
        FIELD_TYPE.LONGLONG,
        FIELD_TYPE.DATE,
        FIELD_TYPE.DATETIME,
        FIELD_TYPE.TIMESTAMP,
        FIELD_TYPE.TIME,
    ):
        table[field_type] = str
    return table


class MySQLDriver:
    """MySQL via aiomysql."""

    engine = Engine.MYSQL

    _TABLES_QUERY = """
        SELECT TABLE_NAME, TABLE_TYPE, TABLE_COMMENT
        FROM INFORMATION_SCHEMA.TABLES
        WHERE TABLE_SCHEMA = %s
        AND TABLE_TYPE = 'BASE TABLE'
        ORDER BY TABLE_NAME
    """

    _COLUMNS_QUERY = """
        SELECT TABLE_NAME, COLUMN_NAME, DATA_TYPE, IS_NULLABLE,
               COLUMN_KEY, COLUMN_DEFAULT, COLUMN_COMMENT
        FROM INFORMATION_SCHEMA.COLUMNS
        WHERE TABLE_SCHEMA = %s
        ORDER BY TABLE_NAME, ORDINAL_POSITION
    """

    def __init__(self, *, connect_timeout: float = 15.0, query_timeout: float = 30.0) -> None:
        self._connect_timeout = connect_timeout
        self._query_timeout = query_timeout

    async def open(self, params: ConnectionParameters) -> Any:
        try:
            conn = self._new_connection(params)
            await conn._connect()
        except Exception as exc:
            raise normalize_exception(exc, self.engine) from exc
        return conn

    async def probe(self, conn: Any) -> None:
        try:
            await conn.ping(reconnect=False)
        except Exception as exc:
            raise normalize_exception(exc, self.engine) from exc

    async def fetch(self, conn: Any, sql: str) -> FetchResult:
        try:
            rows, description = await asyncio.wait_for(self._run(conn, sql), timeout=self._query_timeout)
        except Exception as exc:
            raise normalize_exception(exc, self.engine) from exc
        columns = tuple(str(entry[0]) for entry in description or ())
        return [dict(row) for row in rows], columns

    async def fetch_schema(self, conn: Any, params: ConnectionParameters) -> tuple[SchemaTable, ...]:
        try:
            table_rows, _ = await self._run(conn, self._TABLES_QUERY, (params.database,))
            column_rows, _ = await self._run(conn, self._COLUMNS_QUERY, (params.database,))
        except Exception as exc:
            raise normalize_exception(exc, self.engine) from exc
        columns: dict[str, list[SchemaColumn]] = {}
        for row in column_rows:
            columns.setdefault(str(row["TABLE_NAME"]), []).append(
                SchemaColumn(
                    name=str(row["COLUMN_NAME"]),
                    data_type=str(row["DATA_TYPE"]),
                    nullable=row["IS_NULLABLE"] == "YES",
                    key=_optional_str(row.get("COLUMN_KEY")),
                    default=_optional_str(row.get("COLUMN_DEFAULT")),
                    comment=_optional_str(row.get("COLUMN_COMMENT")),
                )
            )
        return tuple(
            SchemaTable(
                name=str(row["TABLE_NAME"]),
                type=str(row["TABLE_TYPE"]),
                columns=tuple(columns.get(str(row["TABLE_NAME"]), ())),
                comment=_optional_str(row.get("TABLE_COMMENT")),
            )
            for row in table_rows
        )

    async def close(self, conn: Any) -> None:
        conn.close()

    async def _run(
        self,
        conn: Any,
        sql: str,
        args: Sequence[object] | None = None,
    ) -> tuple[Sequence[Mapping[str, object]], Sequence[Sequence[object]] | None]:
        async with conn.cursor(aiomysql.DictCursor) as cursor:
            await cursor.execute(sql, args)
            rows = await cursor.fetchall()
            return rows, cursor.description

    def _new_connection(self, params: ConnectionParameters) -> aiomysql.Connection:
        """Build an unconnected client with multi-statement support switched off."""

        conn = aiomysql.Connection(**self._connect_kwargs(params))
        # aiomysql always requests MULTI_STATEMENTS; clear it before the handshake.
        conn.client_flag &= ~CLIENT.MULTI_STATEMENTS
        return conn

    def _connect_kwargs(self, params: ConnectionParameters) -> dict[str, object]:
        return {
            "host": params.host,
            "port": params.port,
            "user": params.username,
            "password": params.password,
            "db": params.database,
            "connect_timeout": self._connect_timeout,
            "charset": "utf8mb4",
            "conv": _mysql_conversions(),
            "autocommit": True,
        }


_DRIVERS: dict[Engine, type[PostgresDriver] | type[MySQLDriver]] = {
    Engine.POSTGRESQL: PostgresDriver,
    Engine.MYSQL: MySQLDriver,
}


def driver_for(engine: Engine, *, connect_timeout: float = 15.0, query_timeout: float = 30.0) -> EngineDriver:
    """Build the driver for ``engine``."""

    try:
        driver_cls = _DRIVERS[Engine(engine)]
    except (KeyError, ValueError) as exc:
        raise ValueError(f"Unsupported database engine: {engine!r}") from exc
    return driver_cls(connect_timeout=connect_timeout, query_timeout=query_timeout)


def _optional_str(value: object) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


__all__ = [
    "EngineDriver",
    "FetchResult",
    "MySQLDriver",
    "PostgresDriver",
    "driver_for",
]
