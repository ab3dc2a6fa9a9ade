"""Read-only SQL execution gateway for natural-language query front ends."""

from __future__ import annotations

__version__ = "0.1.0"

from .connections import ConnectionFactory, DatabaseConnectionError
from .errors import ClassifiedError, ErrorCategory, RawDatabaseError, classify
from .guard import GuardedStatement, approve
from .models import ConnectionParameters, Engine, ExecutionResult
from .query import QueryExecutionError, QueryExecutor
from .sessions import MemoryKeyValueStore, NotConnected, SessionCredentialStore

__all__ = [
    "ClassifiedError",
    "ConnectionFactory",
    "ConnectionParameters",
    "DatabaseConnectionError",
    "Engine",
    "ErrorCategory",
    "ExecutionResult",
    "GuardedStatement",
    "MemoryKeyValueStore",
    "NotConnected",
    "QueryExecutionError",
    "QueryExecutor",
    "RawDatabaseError",
    "SessionCredentialStore",
    "__version__",
    "approve",
    "classify",
]
