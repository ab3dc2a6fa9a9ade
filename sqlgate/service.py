"""Request-level orchestration used by whatever front end hosts sqlgate.

:class:`QueryService` covers a user's own database (connect, execute,
schema, status, disconnect keyed by session id, plus guarded SQL
generation). :class:`DemoService` answers questions against the fixed demo
database. Both return :class:`Response` objects whose ``body`` is ready for
JSON encoding; failures never escape as exceptions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping

from pydantic import ValidationError

from .config import AppConfig
from .connections import ConnectionFactory, DatabaseConnectionError
from .errors import ClassifiedError, InputValidationError, classify
from .generator import KeywordSqlGenerator, SqlGenerator, clean_generated_sql
from .guard import GuardedStatement, approve
from .models import ConnectionParameters, Engine
from .query import QueryExecutionError, QueryExecutor
from .schema import SchemaInspector
from .sessions import MemoryKeyValueStore, NotConnected, SessionCredentialStore

LOG = logging.getLogger(__name__)

MAX_USER_SQL_LENGTH = 10_000
MIN_QUESTION_LENGTH = 3
MAX_QUESTION_LENGTH = 1_000


@dataclass(frozen=True, slots=True)
class Response:
    """Outcome of one service call: a status hint plus a JSON-ready body."""

    status: int
    body: dict[str, Any]

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def factory_from_config(config: AppConfig) -> ConnectionFactory:
    """Build a connection factory with the configured timeouts and retries."""

    return ConnectionFactory(
        connect_timeout=config.connect_timeout,
        query_timeout=config.query_timeout,
        max_attempts=config.max_attempts,
        retry_delay=config.retry_delay,
    )


class QueryService:
    """Connect/execute/schema/status/disconnect against a user's database."""

    def __init__(
        self,
        sessions: SessionCredentialStore | None = None,
        *,
        config: AppConfig | None = None,
        factory: ConnectionFactory | None = None,
        executor: QueryExecutor | None = None,
        inspector: SchemaInspector | None = None,
        generator: SqlGenerator | None = None,
    ) -> None:
        self._config = config or AppConfig()
        self._factory = factory or factory_from_config(self._config)
        self._executor = executor or QueryExecutor(self._factory)
        self._inspector = inspector or SchemaInspector(self._factory)
        self._sessions = sessions or SessionCredentialStore(MemoryKeyValueStore(ttl=self._config.session_ttl))
        self._generator = generator

    @property
    def sessions(self) -> SessionCredentialStore:
        return self._sessions

    async def connect(self, session_id: str, payload: ConnectionParameters | Mapping[str, Any]) -> Response:
        """Validate, open and probe a connection, then remember it for the session."""

        try:
            params = _coerce_parameters(payload)
        except InputValidationError as exc:
            return _validation_failure(str(exc))
        try:
            handle = await self._factory.open(params)
        except DatabaseConnectionError as exc:
            return self._failure(exc.error, status=400)
        except Exception as exc:
            LOG.exception("Unexpected failure connecting to %s", params.describe())
            return self._failure(classify(exc), status=500)
        await handle.close()
        self._sessions.save(session_id, params)
        return Response(
            status=200,
            body={
                "success": True,
                "message": "Database connection successful",
                "dbType": params.engine.value,
                "database": params.database,
                "host": params.host,
                "sessionId": session_id,
            },
        )

    async def execute(self, session_id: str, sql: str) -> Response:
        """Guard and run one SQL statement for a connected session."""

        try:
            params = self._sessions.load(session_id)
        except NotConnected as exc:
            return Response(status=401, body={"success": False, "error": str(exc)})
        try:
            _check_sql_text(sql)
        except InputValidationError as exc:
            return _validation_failure(str(exc))
        statement = approve(sql)
        if not statement.approved:
            return _rejection(statement)
        return await self._run(params, statement)

    async def schema(self, session_id: str) -> Response:
        """Describe the tables of the session's database."""

        try:
            params = self._sessions.load(session_id)
        except NotConnected as exc:
            return Response(status=401, body={"success": False, "error": str(exc)})
        try:
            schema = await self._inspector.inspect(params)
        except (DatabaseConnectionError, QueryExecutionError) as exc:
            return self._failure(exc.error, status=500)
        except Exception as exc:
            LOG.exception("Unexpected failure reading schema from %s", params.describe())
            return self._failure(classify(exc), status=500)
        return Response(status=200, body=schema.to_dict())

    def status(self, session_id: str) -> Response:
        """Report connection state from session metadata alone."""

        metadata = self._sessions.metadata(session_id)
        if metadata is None:
            return Response(status=200, body={"connected": False, "sessionId": session_id})
        return Response(
            status=200,
            body={
                "connected": True,
                "dbType": metadata.get("engine"),
                "database": metadata.get("database"),
                "host": metadata.get("host"),
                "sessionId": session_id,
            },
        )

    async def generate_sql(
        self,
        question: str,
        *,
        dialect: str,
        schema_hint: str | None = None,
    ) -> Response:
        """Ask the configured generator for SQL and guard its output without running it."""

        text = question.strip() if isinstance(question, str) else ""
        if not MIN_QUESTION_LENGTH <= len(text) <= MAX_QUESTION_LENGTH:
            return _validation_failure(
                f"Question must be between {MIN_QUESTION_LENGTH} and {MAX_QUESTION_LENGTH} characters."
            )
        try:
            dialect = Engine(dialect).value
        except ValueError:
            return _validation_failure(f"dbType: must be one of {', '.join(e.value for e in Engine)}.")
        if self._generator is None:
            return Response(status=503, body={"success": False, "error": "No SQL generator is configured."})
        try:
            raw = await self._generator.generate(text, dialect=dialect, schema_hint=schema_hint)
        except Exception as exc:
            LOG.warning("SQL generation failed: %s", exc)
            body: dict[str, Any] = {"success": False, "error": "Failed to generate SQL query"}
            if self._config.expose_error_details:
                body["details"] = str(exc)
            return Response(status=502, body=body)
        sql = clean_generated_sql(raw or "")
        if not sql:
            return Response(status=502, body={"success": False, "error": "The SQL generator returned no SQL."})
        statement = approve(sql)
        if not statement.approved:
            response = _rejection(statement)
            response.body["sql"] = sql
            return response
        return Response(
            status=200,
            body={
                "success": True,
                "sql": sql,
                "originalQuery": text,
                "dbType": dialect,
                "generatedAt": datetime.now(tz=timezone.utc).isoformat(),
            },
        )

    def disconnect(self, session_id: str) -> Response:
        self._sessions.clear(session_id)
        return Response(status=200, body={"success": True, "message": "Disconnected from database"})

    async def _run(self, params: ConnectionParameters, statement: GuardedStatement) -> Response:
        try:
            result = await self._executor.execute(params, statement)
        except (DatabaseConnectionError, QueryExecutionError) as exc:
            return self._failure(exc.error, status=400)
        except Exception as exc:
            LOG.exception("Unexpected failure executing query on %s", params.describe())
            return self._failure(classify(exc), status=500)
        return Response(status=200, body=result.to_dict())

    def _failure(self, error: ClassifiedError, *, status: int) -> Response:
        return Response(status=status, body=error.to_dict(expose_details=self._config.expose_error_details))


class DemoService:
    """Natural-language questions against the fixed demo database."""

    def __init__(
        self,
        generator: SqlGenerator | None = None,
        *,
        config: AppConfig | None = None,
        factory: ConnectionFactory | None = None,
        fallback: KeywordSqlGenerator | None = None,
    ) -> None:
        self._config = config or AppConfig()
        self._factory = factory or factory_from_config(self._config)
        self._executor = QueryExecutor(self._factory)
        self._inspector = SchemaInspector(self._factory)
        self._generator = generator
        self._fallback = fallback or KeywordSqlGenerator()

    async def ask(self, question: str) -> Response:
        """Generate SQL for ``question``, guard it and run it on the demo database."""

        text = question.strip() if isinstance(question, str) else ""
        if not MIN_QUESTION_LENGTH <= len(text) <= MAX_QUESTION_LENGTH:
            return _validation_failure(
                f"Question must be between {MIN_QUESTION_LENGTH} and {MAX_QUESTION_LENGTH} characters."
            )
        sql, using_fallback = await self._generate(text)
        statement = approve(sql)
        if not statement.approved:
            response = _rejection(statement)
            response.body["sql"] = sql
            return response
        params = self._config.demo.parameters()
        try:
            result = await self._executor.execute(params, statement)
        except (DatabaseConnectionError, QueryExecutionError) as exc:
            body = exc.error.to_dict(expose_details=self._config.expose_error_details)
            body["sql"] = sql
            return Response(status=400, body=body)
        except Exception as exc:
            LOG.exception("Unexpected failure executing demo query")
            body = classify(exc).to_dict(expose_details=self._config.expose_error_details)
            body["sql"] = sql
            return Response(status=500, body=body)
        body = result.to_dict()
        body.update(
            {
                "sql": sql,
                "originalQuery": text,
                "usingFallback": using_fallback,
                "message": (
                    "Using demo fallback queries (SQL generator not available)"
                    if using_fallback
                    else "Generated by the configured SQL generator"
                ),
            }
        )
        return Response(status=200, body=body)

    async def schema(self) -> Response:
        """Describe the demo database."""

        try:
            schema = await self._inspector.inspect(self._config.demo.parameters())
        except (DatabaseConnectionError, QueryExecutionError) as exc:
            return Response(status=500, body=exc.error.to_dict(expose_details=self._config.expose_error_details))
        except Exception as exc:
            LOG.exception("Unexpected failure reading the demo schema")
            return Response(status=500, body=classify(exc).to_dict(expose_details=self._config.expose_error_details))
        return Response(status=200, body=schema.to_dict())

    async def _generate(self, question: str) -> tuple[str, bool]:
        if self._generator is not None:
            try:
                sql = clean_generated_sql(await self._generator.generate(question, dialect=Engine.MYSQL.value))
            except Exception as exc:
                LOG.warning("SQL generator failed, using fallback: %s", exc)
            else:
                if sql:
                    return sql, False
                LOG.warning("SQL generator returned nothing, using fallback")
        return await self._fallback.generate(question), True


def _coerce_parameters(payload: ConnectionParameters | Mapping[str, Any]) -> ConnectionParameters:
    if isinstance(payload, ConnectionParameters):
        return payload
    try:
        return ConnectionParameters.model_validate(dict(payload))
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise InputValidationError(f"{location}: {first.get('msg', 'invalid value')}") from exc


def _check_sql_text(sql: object) -> None:
    if not isinstance(sql, str) or not sql.strip():
        raise InputValidationError("sql: SQL text is required.")
    if len(sql) > MAX_USER_SQL_LENGTH:
        raise InputValidationError(f"sql: SQL text must be at most {MAX_USER_SQL_LENGTH} characters.")


def _validation_failure(details: str) -> Response:
    return Response(status=400, body={"success": False, "error": "Validation failed", "details": details})


def _rejection(statement: GuardedStatement) -> Response:
    body: dict[str, Any] = {
        "success": False,
        "error": statement.message,
        "category": "Rejected",
        "reason": statement.reason.value if statement.reason else None,
    }
    return Response(status=400, body=body)


__all__ = [
    "DemoService",
    "MAX_USER_SQL_LENGTH",
    "QueryService",
    "Response",
    "factory_from_config",
]
