"""
db/context.py
-------------
Per-request execution context.

An ExecutionContext is created once per inbound request and passed as the
first argument of every storage call. It carries the request deadline, a
cancellation signal and, while a unit of work runs, the active transaction.
Contexts are immutable: ``with_*`` methods derive a child that shares the
parent's cancellation signal.
"""

import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Callable, Iterator, Optional

from config import DB_STATEMENT_TIMEOUT_MS
from db.errors import AppError
from utils.logger import get_logger

if TYPE_CHECKING:
    from db.executor import TransactionExecutor

logger = get_logger(__name__)


class _Registration:
    """One registered hook. Runs at most once, and never after removal."""

    def __init__(self, hook: Callable[[], None]):
        self.hook = hook
        self.lock = threading.Lock()
        self.active = True

    def fire(self) -> None:
        with self.lock:
            if not self.active:
                return
            self.active = False
            try:
                self.hook()
            except Exception as e:
                logger.warning(f"Cancel hook failed: {e}")

    def deactivate(self) -> None:
        # Waits for a hook that is already running.
        with self.lock:
            self.active = False


class CancelSignal:
    """Cancellation flag plus the hooks to fire when it is raised."""

    def __init__(self):
        self._lock = threading.Lock()
        self._reason: Optional[str] = None
        self._registrations: list[_Registration] = []

    @property
    def is_set(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def set(self, reason: str) -> None:
        with self._lock:
            if self._reason is not None:
                return
            self._reason = reason
            registrations = list(self._registrations)
        for registration in registrations:
            registration.fire()

    def add_hook(self, hook: Callable[[], None]) -> None:
        with self._lock:
            self._registrations.append(_Registration(hook))

    def remove_hook(self, hook: Callable[[], None]) -> None:
        """
        Unregister ``hook``. Once this returns the hook is not running and
        will not run, even if ``set`` is in progress on another thread.
        """
        with self._lock:
            found = next((r for r in self._registrations if r.hook == hook), None)
            if found is None:
                return
            self._registrations.remove(found)
        found.deactivate()


@dataclass(frozen=True)
class ExecutionContext:
    """
    Scoped carrier for one inbound request.

    Attributes:
        request_id: Identifier used in log lines.
        user_id: Authenticated user, if any.
        deadline: ``time.monotonic()`` value after which statements are refused.
        tx: The active transaction, or None outside a unit of work.
    """
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    user_id: Optional[int] = None
    deadline: Optional[float] = None
    tx: Optional["TransactionExecutor"] = None
    signal: CancelSignal = field(default_factory=CancelSignal, repr=False, compare=False)

    @classmethod
    def new(cls, user_id: Optional[int] = None,
            timeout_ms: int = DB_STATEMENT_TIMEOUT_MS) -> "ExecutionContext":
        """Create a request context with the configured default timeout."""
        ctx = cls(user_id=user_id)
        if timeout_ms > 0:
            ctx = ctx.with_timeout(timeout_ms / 1000)
        return ctx

    # ── Derivation ────────────────────────────────────────

    def with_timeout(self, seconds: float) -> "ExecutionContext":
        deadline = time.monotonic() + seconds
        if self.deadline is not None:
            deadline = min(deadline, self.deadline)
        return replace(self, deadline=deadline)

    def with_user(self, user_id: int) -> "ExecutionContext":
        return replace(self, user_id=user_id)

    def with_transaction(self, tx: "TransactionExecutor") -> "ExecutionContext":
        return replace(self, tx=tx)

    # ── Transaction state ─────────────────────────────────

    @property
    def in_transaction(self) -> bool:
        return self.tx is not None and self.tx.is_active

    # ── Cancellation ──────────────────────────────────────

    def cancel(self, reason: str = "context cancelled") -> None:
        """Cancel this context and every context derived from it."""
        self.signal.set(reason)

    @property
    def cancelled(self) -> bool:
        return self.signal.is_set

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def remaining_ms(self) -> Optional[int]:
        """Milliseconds left before the deadline, or None without a deadline."""
        if self.deadline is None:
            return None
        return max(0, int((self.deadline - time.monotonic()) * 1000))

    def check(self, path: str = "") -> None:
        """
        Raise if the context can no longer run statements.

        Raises:
            AppError: kind CANCELLED when cancelled or past the deadline.
        """
        if self.cancelled:
            raise AppError.cancelled(path, self.signal.reason or "context cancelled")
        if self.expired:
            raise AppError.cancelled(path, "context deadline exceeded")

    @contextmanager
    def on_cancel(self, hook: Callable[[], None]) -> Iterator[None]:
        """Fire ``hook`` if the context is cancelled while the block runs."""
        self.signal.add_hook(hook)
        try:
            yield
        finally:
            self.signal.remove_hook(hook)
