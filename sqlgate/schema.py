"""Schema introspection over a short-lived handle."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .connections import ConnectionFactory
from .errors import RawDatabaseError, classify
from .models import ConnectionParameters, Engine, SchemaTable
from .query import QueryExecutionError

LOG = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DatabaseSchema:
    """Tables visible to one connection."""

    database: str
    engine: Engine
    tables: tuple[SchemaTable, ...]

    def to_dict(self) -> dict[str, object]:
        return {
            "success": True,
            "database": self.database,
            "dbType": self.engine.value,
            "tables": [table.to_dict() for table in self.tables],
            "description": f"Connected to {self.database} database",
        }

    def table_names(self) -> tuple[str, ...]:
        return tuple(table.name for table in self.tables)

    def prompt_hint(self) -> str:
        """Plain-text table listing suitable as context for a SQL generator."""

        lines: list[str] = []
        for table in self.tables:
            lines.append(f"Table: {table.name}")
            for column in table.columns:
                suffix = "" if column.nullable else ", NOT NULL"
                lines.append(f"  - {column.name} ({column.data_type}{suffix})")
            lines.append("")
        return "\n".join(lines)


class SchemaInspector:
    """Reads information_schema for a connection's database."""

    def __init__(self, factory: ConnectionFactory | None = None) -> None:
        self._factory = factory or ConnectionFactory()

    async def inspect(self, params: ConnectionParameters) -> DatabaseSchema:
        async with self._factory.connection(params) as handle:
            try:
                tables = await handle.fetch_schema()
            except RawDatabaseError as exc:
                error = classify(exc)
                LOG.warning("Schema read failed on %s (%s): %s", params.describe(), error.raw_code, error.raw_message)
                raise QueryExecutionError(error) from exc
        return DatabaseSchema(database=params.database, engine=params.engine, tables=tables)


__all__ = ["DatabaseSchema", "SchemaInspector"]
