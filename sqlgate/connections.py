"""Connection factory: opens, probes and hands out short-lived handles."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping

from .engines import EngineDriver, FetchResult, driver_for
from .errors import ClassifiedError, RawDatabaseError, SqlGateError, classify, normalize_exception
from .models import ConnectionParameters, Engine, SchemaTable

LOG = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class DatabaseConnectionError(SqlGateError):
    """Raised when every connection attempt failed."""

    def __init__(self, error: ClassifiedError, attempts: tuple[ConnectionAttempt, ...] = ()) -> None:
        super().__init__(error.user_message)
        self.error = error
        self.attempts = attempts


@dataclass(frozen=True, slots=True)
class ConnectionAttempt:
    """Record of one failed attempt, kept for diagnostics."""

    number: int
    code: str | None
    message: str


@dataclass(slots=True)
class DatabaseHandle:
    """A live connection owned by exactly one caller, closed exactly once."""

    driver: EngineDriver
    raw: Any
    params: ConnectionParameters
    closed: bool = field(default=False)

    @property
    def engine(self) -> Engine:
        return self.driver.engine

    async def fetch(self, sql: str) -> FetchResult:
        if self.closed:
            raise RuntimeError("Handle is already closed.")
        return await self.driver.fetch(self.raw, sql)

    async def fetch_schema(self) -> tuple[SchemaTable, ...]:
        if self.closed:
            raise RuntimeError("Handle is already closed.")
        return await self.driver.fetch_schema(self.raw, self.params)

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            await self.driver.close(self.raw)
        except Exception:
            LOG.exception("Error closing connection to %s", self.params.describe())


class ConnectionFactory:
    """Builds handles for either engine with bounded retries."""

    def __init__(
        self,
        *,
        connect_timeout: float = 15.0,
        query_timeout: float = 30.0,
        max_attempts: int = 2,
        retry_delay: float = 1.0,
        sleep: Sleep | None = None,
        drivers: Mapping[Engine, EngineDriver] | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._connect_timeout = connect_timeout
        self._query_timeout = query_timeout
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay
        self._sleep = sleep or asyncio.sleep
        self._drivers: dict[Engine, EngineDriver] = dict(drivers or {})

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def driver(self, engine: Engine) -> EngineDriver:
        """Return (and cache) the driver for ``engine``."""

        driver = self._drivers.get(engine)
        if driver is None:
            driver = driver_for(
                engine,
                connect_timeout=self._connect_timeout,
                query_timeout=self._query_timeout,
            )
            self._drivers[engine] = driver
        return driver

    async def open(self, params: ConnectionParameters, max_attempts: int | None = None) -> DatabaseHandle:
        """Open and probe a handle, retrying on failure.

        The caller owns the returned handle and must close it.
        """

        attempts = self._max_attempts if max_attempts is None else max_attempts
        if attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        driver = self.driver(params.engine)
        failures: list[ConnectionAttempt] = []
        last_error: RawDatabaseError | None = None
        for attempt in range(1, attempts + 1):
            try:
                raw = await driver.open(params)
            except Exception as exc:
                last_error = normalize_exception(exc, params.engine)
            else:
                handle = DatabaseHandle(driver=driver, raw=raw, params=params)
                try:
                    await driver.probe(raw)
                except Exception as exc:
                    last_error = normalize_exception(exc, params.engine)
                    await handle.close()
                else:
                    LOG.debug("Connected to %s on attempt %d", params.describe(), attempt)
                    return handle
            failures.append(ConnectionAttempt(number=attempt, code=last_error.code, message=last_error.message))
            LOG.warning(
                "Connection attempt %d/%d to %s failed (%s): %s",
                attempt,
                attempts,
                params.describe(),
                last_error.code,
                last_error.message,
            )
            if attempt < attempts:
                await self._sleep(self._retry_delay)
        assert last_error is not None
        raise DatabaseConnectionError(classify(last_error), tuple(failures)) from last_error

    @asynccontextmanager
    async def connection(self, params: ConnectionParameters) -> AsyncIterator[DatabaseHandle]:
        """Scoped handle: opened on entry, closed on every exit path."""

        handle = await self.open(params)
        try:
            yield handle
        finally:
            await handle.close()


__all__ = [
    "ConnectionAttempt",
    "ConnectionFactory",
    "DatabaseConnectionError",
    "DatabaseHandle",
]
