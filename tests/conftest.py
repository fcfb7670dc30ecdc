import re
import sys
from collections import deque
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Ensure project root on sys.path
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from db.context import ExecutionContext  # noqa: E402
from db.errors import AppError  # noqa: E402
from db.executor import ConnectionResolver, PooledExecutor  # noqa: E402
from db.mapper import DELETED_AT, QueryFilter  # noqa: E402
from db.transaction import TransactionManager  # noqa: E402


class FakeCursor:
    """Records statements and replays results queued on its connection."""

    def __init__(self, conn):
        self.conn = conn
        self.description = None
        self.rowcount = -1
        self._rows = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql, params=None):
        self.conn.statements.append((sql, params))
        if sql.startswith("SET LOCAL"):
            self.description, self.rowcount, self._rows = None, -1, []
            return
        if not self.conn.results:
            self.description, self.rowcount, self._rows = None, 0, []
            return
        result = self.conn.results.popleft()
        if isinstance(result, BaseException):
            raise result
        rows, rowcount = result
        self._rows = list(rows) if rows is not None else []
        self.description = [("col",)] if rows is not None else None
        self.rowcount = rowcount if rowcount is not None else len(self._rows)

    def fetchall(self):
        return list(self._rows)


class FakeConnection:
    """Stand-in for a psycopg2 connection."""

    def __init__(self):
        self.autocommit = True
        self.closed = 0
        self.statements = []
        self.results = deque()
        self.commits = 0
        self.rollbacks = 0
        self.cancels = 0
        self.commit_error = None
        self.rollback_error = None

    def queue(self, rows=None, rowcount=None):
        """Queue the result of the next non-SET statement."""
        self.results.append((rows, rowcount))
        return self

    def fail(self, exc):
        self.results.append(exc)
        return self

    def cursor(self, cursor_factory=None):
        return FakeCursor(self)

    def commit(self):
        if self.commit_error is not None:
            raise self.commit_error
        self.commits += 1

    def rollback(self):
        if self.rollback_error is not None:
            raise self.rollback_error
        self.rollbacks += 1

    def cancel(self):
        self.cancels += 1

    @property
    def sql(self):
        """Statements other than the per-statement timeout."""
        return [s for s, _ in self.statements if not s.startswith("SET LOCAL")]


class FakePool:
    """acquire/release pair handing out one shared FakeConnection."""

    def __init__(self, conn=None):
        self.conn = conn or FakeConnection()
        self.acquired = 0
        self.released = []

    def acquire(self):
        self.acquired += 1
        return self.conn

    def release(self, conn, close=False):
        self.released.append((conn, close))


@pytest.fixture()
def pool():
    return FakePool()


@pytest.fixture()
def conn(pool):
    return pool.conn


@pytest.fixture()
def resolver(pool):
    return ConnectionResolver(PooledExecutor(acquire=pool.acquire, release=pool.release))


@pytest.fixture()
def tx_manager(pool):
    return TransactionManager(acquire=pool.acquire, release=pool.release)


@pytest.fixture()
def ctx():
    return ExecutionContext(user_id=7)


def _like_to_regex(pattern):
    out = []
    chars = iter(pattern)
    for ch in chars:
        if ch == "\\":
            out.append(re.escape(next(chars, "\\")))
        elif ch == "%":
            out.append(".*")
        elif ch == "_":
            out.append(".")
        else:
            out.append(re.escape(ch))
    return re.compile("".join(out), re.IGNORECASE | re.DOTALL)


_COMPARE = {
    "=": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
    "<": lambda a, b: a < b,
    "<=": lambda a, b: a <= b,
    ">": lambda a, b: a > b,
    ">=": lambda a, b: a >= b,
    "LIKE": lambda a, b: a is not None and re.fullmatch(_like_to_regex(b).pattern, a, re.DOTALL) is not None,
    "ILIKE": lambda a, b: a is not None and _like_to_regex(b).fullmatch(a) is not None,
}


class MemoryStorage:
    """GenericStorage double keeping rows in memory with the same visibility rules."""

    def __init__(self, table, clock=None):
        self.table = table
        self.rows = {}
        self.next_id = 1
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def where(self, ctx, flt=None):
        flt = flt or QueryFilter()
        meta = self.table.meta
        specs = [(self.table.column_for(c.field), c) for c in flt.conditions]
        found = []
        for row in sorted(self.rows.values(), key=lambda r: r.id, reverse=True):
            if not flt.include_deleted and getattr(row, meta.role(DELETED_AT).field) is not None:
                continue
            if all(_COMPARE[c.op](getattr(row, spec.field), c.value) for spec, c in specs):
                found.append(replace(row))
        if flt.paginated:
            start = (flt.page - 1) * flt.limit
            found = found[start:start + flt.limit]
        return found

    def insert(self, ctx, record):
        self.table.check_record(record)
        now = self.clock()
        record.created_at = now
        record.updated_at = now
        record.id = self.next_id
        self.next_id += 1
        self.rows[record.id] = replace(record)
        return record

    def update(self, ctx, record):
        current = self.rows.get(record.id)
        if current is None or current.deleted_at is not None:
            raise AppError.not_found("MemoryStorage.update")
        record.updated_at = self.clock()
        self.rows[record.id] = replace(record)
        return record

    def delete(self, ctx, record_id):
        current = self.rows.get(record_id)
        if current is None or current.deleted_at is not None:
            raise AppError.not_found("MemoryStorage.delete")
        current.deleted_at = self.clock()


@pytest.fixture()
def memory_storage():
    """Factory: ``memory_storage(TABLE)`` returns an empty in-memory storage."""
    return MemoryStorage
