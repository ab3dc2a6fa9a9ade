"""Shared value types used across the connection, query and session modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class Engine(str, Enum):
    """Database engines the gateway knows how to reach."""

    POSTGRESQL = "postgresql"
    MYSQL = "mysql"


class ConnectionParameters(BaseModel):
    """Everything needed to reach one database.

    Bounds are enforced on construction so nothing downstream ever sees an
    out-of-range port or an empty host. The password is required but may be
    the empty string.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    host: str = Field(min_length=1, max_length=255)
    port: int = Field(ge=1, le=65535)
    username: str = Field(min_length=1, max_length=255)
    password: str = Field(max_length=255, repr=False)
    database: str = Field(min_length=1, max_length=255)
    engine: Engine = Field(validation_alias=AliasChoices("engine", "dbType"))

    def metadata(self) -> dict[str, Any]:
        """Return every field except the password."""

        return self.model_dump(mode="json", exclude={"password"})

    @classmethod
    def from_parts(cls, metadata: Mapping[str, Any], password: str) -> ConnectionParameters:
        """Rebuild parameters from the metadata/password split used by sessions."""

        return cls.model_validate({**metadata, "password": password})

    def describe(self) -> str:
        """Short label for log lines; never includes the password."""

        return f"{self.engine.value}://{self.username}@{self.host}:{self.port}/{self.database}"


Row = Mapping[str, object]


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """Canonical result of one executed SELECT, independent of engine."""

    rows: tuple[Row, ...]
    columns: tuple[str, ...]
    row_count: int
    executed_at: datetime

    def to_dict(self) -> dict[str, object]:
        return {
            "success": True,
            "data": [dict(row) for row in self.rows],
            "columns": list(self.columns),
            "rowCount": self.row_count,
            "executedAt": self.executed_at.isoformat(),
        }


@dataclass(frozen=True, slots=True)
class SchemaColumn:
    """Column description read from information_schema."""

    name: str
    data_type: str
    nullable: bool
    key: str | None = None
    default: str | None = None
    comment: str | None = None

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "name": self.name,
            "data_type": self.data_type,
            "nullable": self.nullable,
        }
        for name in ("key", "default", "comment"):
            value = getattr(self, name)
            if value:
                payload[name] = value
        return payload


@dataclass(frozen=True, slots=True)
class SchemaTable:
    """Table description with its ordered columns."""

    name: str
    type: str
    columns: tuple[SchemaColumn, ...] = field(default_factory=tuple)
    comment: str | None = None

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "name": self.name,
            "type": self.type,
            "columns": [column.to_dict() for column in self.columns],
        }
        if self.comment:
            payload["comment"] = self.comment
        return payload


__all__ = [
    "ConnectionParameters",
    "Engine",
    "ExecutionResult",
    "Row",
    "SchemaColumn",
    "SchemaTable",
]
