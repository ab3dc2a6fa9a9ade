"""App configuration loading helpers."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping

import tomllib

from pydantic import BaseModel, Field, ValidationError, field_validator

from .models import ConnectionParameters, Engine

LOG = logging.getLogger(__name__)

CONFIG_FILE = Path.home() / ".config" / "sqlgate" / "config.toml"

PRODUCTION = "production"

LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")

_ENV_FIELDS: Mapping[str, str] = {
    "SQLGATE_ENV": "environment",
    "SQLGATE_LOG_LEVEL": "log_level",
    "SQLGATE_CONNECT_TIMEOUT": "connect_timeout",
    "SQLGATE_QUERY_TIMEOUT": "query_timeout",
    "SQLGATE_MAX_ATTEMPTS": "max_attempts",
    "SQLGATE_RETRY_DELAY": "retry_delay",
    "SQLGATE_SESSION_TTL": "session_ttl",
}

_DEMO_ENV_FIELDS: Mapping[str, str] = {
    "DEMO_DB_HOST": "host",
    "DEMO_DB_PORT": "port",
    "DEMO_DB_USER": "user",
    "DEMO_DB_PASSWORD": "password",
    "DEMO_DB_NAME": "database",
}


class DemoDatabaseConfig(BaseModel):
    """Where the fixed demo database lives."""

    host: str = "localhost"
    port: int = Field(default=3306, ge=1, le=65535)
    user: str = "demo_user"
    password: str = Field(default="demo_password", repr=False)
    database: str = "classicmodels"

    def parameters(self) -> ConnectionParameters:
        return ConnectionParameters(
            host=self.host,
            port=self.port,
            username=self.user,
            password=self.password,
            database=self.database,
            engine=Engine.MYSQL,
        )


class AppConfig(BaseModel):
    """Shape of the configuration file plus environment overrides."""

    environment: str = "development"
    log_level: str = "INFO"
    connect_timeout: float = Field(default=15.0, gt=0)
    query_timeout: float = Field(default=30.0, gt=0)
    max_attempts: int = Field(default=2, ge=1)
    retry_delay: float = Field(default=1.0, ge=0)
    session_ttl: float = Field(default=24 * 60 * 60, gt=0)
    demo: DemoDatabaseConfig = Field(default_factory=DemoDatabaseConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {value}")
        return level

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == PRODUCTION

    @property
    def expose_error_details(self) -> bool:
        """Raw driver messages are only surfaced outside production."""

        return not self.is_production

    def with_environment(self, environment: str) -> AppConfig:
        """Return a copy with the deployment environment updated."""

        return self.model_copy(update={"environment": environment})


def load_config(environ: Mapping[str, str] | None = None) -> AppConfig:
    """Load configuration from disk and the environment; fall back to defaults."""

    try:
        data = _read_config_file()
    except FileNotFoundError:
        data = {}
    except (tomllib.TOMLDecodeError, OSError) as exc:
        LOG.warning("Ignoring unreadable config file %s: %s", CONFIG_FILE, exc)
        data = {}

    env = os.environ if environ is None else environ
    for variable, name in _ENV_FIELDS.items():
        if env.get(variable):
            data[name] = env[variable]
    demo = dict(data.get("demo") or {})  # type: ignore[call-overload]
    for variable, name in _DEMO_ENV_FIELDS.items():
        if variable in env:
            demo[name] = env[variable]
    if demo:
        data["demo"] = demo

    try:
        return AppConfig.model_validate(data)
    except ValidationError as exc:
        LOG.warning("Invalid configuration, using defaults: %s", exc)
        return AppConfig()


def save_config(config: AppConfig) -> None:
    """Persist configuration to disk. Passwords are never written."""

    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    lines: list[str] = [
        f'environment = "{config.environment}"',
        f'log_level = "{config.log_level}"',
        f"connect_timeout = {config.connect_timeout}",
        f"query_timeout = {config.query_timeout}",
        f"max_attempts = {config.max_attempts}",
        f"retry_delay = {config.retry_delay}",
        f"session_ttl = {config.session_ttl}",
        "",
        "[demo]",
        f'host = "{config.demo.host}"',
        f"port = {config.demo.port}",
        f'user = "{config.demo.user}"',
        f'database = "{config.demo.database}"',
    ]
    CONFIG_FILE.write_text("\n".join(lines) + "\n")


def _read_config_file() -> dict[str, object]:
    with CONFIG_FILE.open("rb") as handle:
        raw = tomllib.load(handle)
    data: dict[str, object] = {}
    for key in ("environment", "log_level"):
        value = raw.get(key)
        if isinstance(value, str):
            data[key] = value
    for key in ("connect_timeout", "query_timeout", "retry_delay", "session_ttl"):
        value = raw.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            data[key] = float(value)
    max_attempts = raw.get("max_attempts")
    if isinstance(max_attempts, int) and not isinstance(max_attempts, bool):
        data["max_attempts"] = max_attempts
    demo = raw.get("demo")
    if isinstance(demo, dict):
        parsed: dict[str, object] = {}
        for key in ("host", "user", "password", "database"):
            value = demo.get(key)
            if isinstance(value, str):
                parsed[key] = value
        port = demo.get("port")
        if isinstance(port, int):
            parsed["port"] = port
        data["demo"] = parsed
    return data


__all__ = [
    "AppConfig",
    "CONFIG_FILE",
    "DemoDatabaseConfig",
    "load_config",
    "save_config",
]
