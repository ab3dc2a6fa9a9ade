"""Command line entry point: guard, run or inspect from a terminal."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Sequence

from .config import AppConfig, load_config
from .guard import approve
from .models import Engine
from .service import DemoService, QueryService, Response

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_REJECTED = 2

_CLI_SESSION = "cli"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sqlgate", description="Read-only SQL gateway.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    check = sub.add_parser("check", help="Show the guard verdict for a SQL statement.")
    check.add_argument("sql")

    run = sub.add_parser("run", help="Connect, guard and execute one SELECT statement.")
    _add_connection_arguments(run)
    run.add_argument("sql")

    schema = sub.add_parser("schema", help="Describe the tables of a database.")
    _add_connection_arguments(schema)

    demo = sub.add_parser("demo", help="Ask the demo database a question.")
    demo.add_argument("question")
    return parser


def _add_connection_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--engine", choices=[engine.value for engine in Engine], required=True)
    parser.add_argument("--host", default="localhost")
    parser.add_argument("--port", type=int)
    parser.add_argument("--user", required=True)
    parser.add_argument(
        "--password",
        default=None,
        help="Defaults to the SQLGATE_PASSWORD environment variable.",
    )
    parser.add_argument("--database", required=True)


def _connection_payload(args: argparse.Namespace) -> dict[str, object]:
    port = args.port or (5432 if args.engine == Engine.POSTGRESQL.value else 3306)
    password = args.password if args.password is not None else os.environ.get("SQLGATE_PASSWORD", "")
    return {
        "host": args.host,
        "port": port,
        "username": args.user,
        "password": password,
        "database": args.database,
        "engine": args.engine,
    }


async def _dispatch(args: argparse.Namespace, config: AppConfig) -> Response:
    if args.command == "demo":
        return await DemoService(config=config).ask(args.question)
    service = QueryService(config=config)
    connected = await service.connect(_CLI_SESSION, _connection_payload(args))
    if not connected.ok:
        return connected
    try:
        if args.command == "schema":
            return await service.schema(_CLI_SESSION)
        return await service.execute(_CLI_SESSION, args.sql)
    finally:
        service.disconnect(_CLI_SESSION)


def _exit_code(response: Response) -> int:
    if response.ok:
        return EXIT_OK
    if response.body.get("category") == "Rejected":
        return EXIT_REJECTED
    return EXIT_FAILED


def main(argv: Sequence[str] | None = None) -> int:
    """Run the CLI and return its exit status."""

    args = build_parser().parse_args(argv)
    config = load_config()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    if args.command == "check":
        statement = approve(args.sql)
        print(json.dumps({"approved": statement.approved, "reason": statement.message}, indent=2))
        return EXIT_OK if statement.approved else EXIT_REJECTED
    response = asyncio.run(_dispatch(args, config))
    print(json.dumps(response.body, indent=2, default=str))
    return _exit_code(response)


__all__ = ["build_parser", "main"]
