"""
db/transaction.py
-----------------
Binds one database transaction to an execution context.

    tx = TransactionManager()
    order = tx.run_in_transaction(ctx, lambda tx_ctx: service.create_order(tx_ctx, params))

Nested calls on a context that already carries an active transaction run
directly inside it; only the outermost call commits or rolls back.
"""

from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional, TypeVar

import psycopg2

from db import connection
from db.context import ExecutionContext
from db.errors import AppError
from db.executor import TransactionExecutor
from utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class TransactionManager:
    """Opens, commits and rolls back request-scoped transactions."""

    def __init__(self, acquire: Optional[Callable[[], Any]] = None,
                 release: Optional[Callable[..., None]] = None):
        self._acquire = acquire or connection.get_connection
        self._release = release or connection.release_connection

    def run_in_transaction(self, ctx: ExecutionContext,
                           unit_of_work: Callable[[ExecutionContext], T]) -> T:
        """
        Run ``unit_of_work`` inside a transaction bound to ``ctx``.

        Args:
            ctx: The request context. If it already carries an active
                transaction the unit of work joins it.
            unit_of_work: Called with the context that carries the transaction.

        Returns:
            Whatever ``unit_of_work`` returns.

        Raises:
            The unit of work's own exception after rolling back, or
            AppError (STORAGE_FAULT) if the transaction cannot begin or commit.
        """
        with self.transaction(ctx) as tx_ctx:
            return unit_of_work(tx_ctx)

    @contextmanager
    def transaction(self, ctx: ExecutionContext) -> Iterator[ExecutionContext]:
        """Context-manager form of ``run_in_transaction``."""
        if ctx.in_transaction:
            yield ctx
            return

        ctx.check("TransactionManager.begin")
        try:
            conn = self._acquire()
        except psycopg2.Error as e:
            logger.error(f"[{ctx.request_id}] Failed to acquire connection: {e}")
            raise AppError.storage_fault("TransactionManager.begin", e) from e

        try:
            conn.autocommit = False
        except psycopg2.Error as e:
            # Pooled connection the server already dropped.
            logger.error(f"[{ctx.request_id}] Failed to begin transaction: {e}")
            self._release(conn, close=True)
            raise AppError.storage_fault("TransactionManager.begin", e) from e

        tx = TransactionExecutor(conn)
        broken = False
        logger.debug(f"[{ctx.request_id}] Transaction started.")
        try:
            try:
                yield ctx.with_transaction(tx)
            except BaseException:
                broken = not self._rollback(ctx, tx)
                raise

            try:
                tx.commit()
            except psycopg2.Error as e:
                logger.error(f"[{ctx.request_id}] Commit failed: {e}")
                broken = not self._rollback(ctx, tx)
                raise AppError.storage_fault("TransactionManager.commit", e) from e
            logger.debug(f"[{ctx.request_id}] Transaction committed.")
        finally:
            self._release(conn, close=broken or bool(conn.closed))

    @staticmethod
    def _rollback(ctx: ExecutionContext, tx: TransactionExecutor) -> bool:
        """Roll back, logging failures so they never mask the original error."""
        try:
            tx.rollback()
        except Exception as e:
            logger.error(f"[{ctx.request_id}] Rollback failed: {e}")
            return False
        logger.debug(f"[{ctx.request_id}] Transaction rolled back.")
        return True
