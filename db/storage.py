"""
db/storage.py
-------------
Generic storage façade shared by every domain repository.

A GenericStorage is parameterized only by a table binding. All statements
run on the executor the resolver returns for the context, so they join an
enclosing transaction when one is active.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Optional

import psycopg2
from psycopg2 import errors as pg_errors
from psycopg2.extensions import QueryCanceledError

from db.context import ExecutionContext
from db.errors import AppError
from db.executor import ConnectionResolver
from db.mapper import (
    CREATED_AT,
    UPDATED_AT,
    QueryFilter,
    Table,
    build_insert,
    build_select,
    build_soft_delete,
    build_update,
    scan,
)
from utils.logger import get_logger

logger = get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class GenericStorage:
    """CRUD over one table: where / insert / update / soft delete."""

    def __init__(self, table: Table, resolver: Optional[ConnectionResolver] = None,
                 clock: Callable[[], datetime] = utc_now):
        self.table = table
        self.resolver = resolver or ConnectionResolver()
        self.clock = clock

    def _path(self, op: str) -> str:
        return f"GenericStorage({self.table.name}).{op}"

    def _run(self, ctx: ExecutionContext, op: str, sql: str, params: dict):
        executor = self.resolver.resolve(ctx)
        try:
            return executor.execute(ctx, sql, params)
        except psycopg2.Error as e:
            raise self._translate(ctx, op, e) from e

    def _translate(self, ctx: ExecutionContext, op: str, exc: psycopg2.Error) -> AppError:
        path = self._path(op)
        if isinstance(exc, pg_errors.UniqueViolation):
            return AppError.already_exists(path, str(exc).strip() or "already exists")
        if isinstance(exc, QueryCanceledError) and (ctx.cancelled or ctx.expired):
            return AppError.cancelled(path, ctx.signal.reason or "context deadline exceeded")
        logger.error(f"[{ctx.request_id}] {path} failed: {exc}")
        return AppError.storage_fault(path, exc)

    # ── Public API ────────────────────────────────────────

    def where(self, ctx: ExecutionContext, flt: Optional[QueryFilter] = None) -> list:
        """
        Return the records matching ``flt``, newest id first.

        Soft-deleted rows are excluded unless the filter includes them.
        """
        sql, params = build_select(self.table, flt)
        result = self._run(ctx, "where", sql, params)
        return scan(self.table, result.rows)

    def insert(self, ctx: ExecutionContext, record: Any) -> Any:
        """
        Insert ``record``. On success sets its timestamps and generated primary
        key; on failure the record is left as it was.

        Returns:
            The same record, now carrying its id.
        """
        now = self.clock()
        sql, params = build_insert(self.table, record, now)
        result = self._run(ctx, "insert", sql, params)
        if not result.rows:
            raise AppError.storage_fault(self._path("insert"),
                                         RuntimeError("insert returned no primary key"))
        meta = self.table.meta
        pk = meta.primary_key
        setattr(record, pk.field, result.rows[0][pk.name])
        setattr(record, meta.role(CREATED_AT).field, now)
        setattr(record, meta.role(UPDATED_AT).field, now)
        logger.info(f"[{ctx.request_id}] Inserted {self.table.name} #{getattr(record, pk.field)}")
        return record

    def update(self, ctx: ExecutionContext, record: Any) -> Any:
        """
        Update every column of a live row by primary key.

        Raises:
            AppError: NOT_FOUND if no live row has that key.
        """
        now = self.clock()
        sql, params = build_update(self.table, record, now)
        result = self._run(ctx, "update", sql, params)
        if result.rowcount == 0:
            pk = self.table.meta.primary_key
            raise AppError.not_found(self._path("update"),
                                     f"{self.table.name} #{getattr(record, pk.field)} not found")
        setattr(record, self.table.meta.role(UPDATED_AT).field, now)
        return record

    def delete(self, ctx: ExecutionContext, record_id: int) -> None:
        """
        Soft delete a row by setting its deleted_at timestamp.

        Raises:
            AppError: NOT_FOUND if no live row has that key.
        """
        sql, params = build_soft_delete(self.table, record_id, self.clock())
        result = self._run(ctx, "delete", sql, params)
        if result.rowcount == 0:
            raise AppError.not_found(self._path("delete"),
                                     f"{self.table.name} #{record_id} not found")
        logger.info(f"[{ctx.request_id}] Soft-deleted {self.table.name} #{record_id}")
