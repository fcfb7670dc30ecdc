"""
db/executor.py
--------------
Statement executors and the resolver that picks one for a context.

Two executors exist:
    - PooledExecutor: the shared default. Borrows a pooled connection for
      each statement and commits it on its own.
    - TransactionExecutor: wraps the single connection of an active
      transaction. Owned by one ExecutionContext, not thread-safe.

Every statement checks the context first, applies the remaining request
time as ``statement_timeout`` and registers ``connection.cancel`` so a
cancelled context aborts the in-flight query.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Protocol

import psycopg2
from psycopg2 import extras

from db import connection
from db.context import ExecutionContext
from db.errors import AppError, ErrorKind
from utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class QueryResult:
    """Rows (as dicts) returned by a statement plus its affected-row count."""
    rows: list[dict] = field(default_factory=list)
    rowcount: int = 0


class Executor(Protocol):
    def execute(self, ctx: ExecutionContext, sql: str,
                params: Optional[Mapping[str, Any]] = None) -> QueryResult:
        ...


def run_statement(conn, ctx: ExecutionContext, sql: str,
                  params: Optional[Mapping[str, Any]] = None) -> QueryResult:
    """Run one statement on ``conn`` inside its current transaction block."""
    ctx.check("execute")
    timeout_ms = ctx.remaining_ms()
    with ctx.on_cancel(conn.cancel):
        with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
            if timeout_ms is not None:
                cur.execute("SET LOCAL statement_timeout = %s", (max(timeout_ms, 1),))
            cur.execute(sql, params)
            rows = [dict(r) for r in cur.fetchall()] if cur.description is not None else []
            return QueryResult(rows=rows, rowcount=cur.rowcount)


class PooledExecutor:
    """Default executor: one pooled connection and one commit per statement."""

    def __init__(self, acquire: Optional[Callable[[], Any]] = None,
                 release: Optional[Callable[..., None]] = None):
        self._acquire = acquire or connection.get_connection
        self._release = release or connection.release_connection

    def execute(self, ctx: ExecutionContext, sql: str,
                params: Optional[Mapping[str, Any]] = None) -> QueryResult:
        conn = self._acquire()
        broken = False
        try:
            result = run_statement(conn, ctx, sql, params)
            conn.commit()
            return result
        except BaseException:
            try:
                conn.rollback()
            except psycopg2.Error as e:
                broken = True
                logger.error(f"[{ctx.request_id}] Rollback of pooled statement failed: {e}")
            raise
        finally:
            self._release(conn, close=broken or bool(conn.closed))


class TxState(str, Enum):
    ACTIVE = "active"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled back"


class TransactionExecutor:
    """Executor bound to the connection of one open transaction."""

    def __init__(self, conn):
        self.conn = conn
        self.state = TxState.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.state is TxState.ACTIVE

    def execute(self, ctx: ExecutionContext, sql: str,
                params: Optional[Mapping[str, Any]] = None) -> QueryResult:
        if not self.is_active:
            raise AppError(ErrorKind.STORAGE_FAULT,
                           f"transaction already {self.state.value}",
                           "TransactionExecutor.execute")
        return run_statement(self.conn, ctx, sql, params)

    def commit(self) -> None:
        try:
            self.conn.commit()
        except BaseException:
            # PostgreSQL discards a transaction whose COMMIT fails.
            self.state = TxState.ROLLED_BACK
            raise
        self.state = TxState.COMMITTED

    def rollback(self) -> None:
        try:
            self.conn.rollback()
        finally:
            self.state = TxState.ROLLED_BACK


class ConnectionResolver:
    """Picks the executor for a context: its transaction, else the shared default."""

    def __init__(self, default: Optional[Executor] = None):
        self.default = default or PooledExecutor()

    def resolve(self, ctx: ExecutionContext) -> Executor:
        if ctx.tx is not None:
            return ctx.tx
        return self.default
