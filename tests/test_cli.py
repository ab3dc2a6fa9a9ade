"""Tests for the command line entry point."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from conftest import FakeDriver, SleepRecorder

from sqlgate import cli
from sqlgate import config as config_module
from sqlgate.config import AppConfig
from sqlgate.connections import ConnectionFactory
from sqlgate.models import Engine
from sqlgate.service import QueryService


@pytest.fixture(autouse=True)
def _no_config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config_module, "CONFIG_FILE", tmp_path / "config.toml")


@pytest.fixture
def driver(monkeypatch: pytest.MonkeyPatch) -> FakeDriver:
    fake = FakeDriver(Engine.POSTGRESQL, rows=[{"answer": 42}], columns=("answer",))
    factory = ConnectionFactory(drivers={Engine.POSTGRESQL: fake}, sleep=SleepRecorder())

    def _service(*, config: AppConfig) -> QueryService:
        return QueryService(config=config, factory=factory)

    monkeypatch.setattr(cli, "QueryService", _service)
    return fake


def test_check_reports_verdict(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["check", "SELECT 1"]) == cli.EXIT_OK
    assert json.loads(capsys.readouterr().out)["approved"] is True

    assert cli.main(["check", "DROP TABLE t"]) == cli.EXIT_REJECTED
    verdict = json.loads(capsys.readouterr().out)
    assert verdict["approved"] is False
    assert verdict["reason"] == "Only SELECT queries are allowed for security reasons."


def test_run_prints_result(driver: FakeDriver, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(
        ["run", "--engine", "postgresql", "--user", "postgres", "--password", "pw", "--database", "app", "SELECT 42"]
    )

    body = json.loads(capsys.readouterr().out)
    assert code == cli.EXIT_OK
    assert body["data"] == [{"answer": 42}]
    assert driver.statements == ["SELECT 42"]
    assert driver.opened == driver.closed == 2


def test_run_rejected_sql_exits_with_rejection_code(driver: FakeDriver, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(
        ["run", "--engine", "postgresql", "--user", "postgres", "--database", "app", "UPDATE t SET x = 1"]
    )

    assert code == cli.EXIT_REJECTED
    assert json.loads(capsys.readouterr().out)["category"] == "Rejected"
    assert driver.statements == []


def test_connection_payload_defaults_port(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SQLGATE_PASSWORD", "from-env")
    args = cli.build_parser().parse_args(["schema", "--engine", "mysql", "--user", "root", "--database", "shop"])

    payload = cli._connection_payload(args)

    assert payload["port"] == 3306
    assert payload["password"] == "from-env"
    assert payload["host"] == "localhost"


def test_bad_log_level_does_not_break_the_cli(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv("SQLGATE_LOG_LEVEL", "chatty")

    assert cli.main(["check", "SELECT 1"]) == cli.EXIT_OK
    assert json.loads(capsys.readouterr().out)["approved"] is True
