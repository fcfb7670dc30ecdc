"""
Execution context tests: derivation, deadlines and cancellation.
"""

import threading
import time

import pytest

from db.context import CancelSignal, ExecutionContext
from db.errors import AppError, ErrorKind
from db.executor import TransactionExecutor


def test_new_context_applies_default_timeout():
    ctx = ExecutionContext.new(user_id=3, timeout_ms=5000)
    assert ctx.user_id == 3
    assert 0 < ctx.remaining_ms() <= 5000


def test_zero_timeout_means_no_deadline():
    ctx = ExecutionContext.new(timeout_ms=0)
    assert ctx.deadline is None
    assert ctx.remaining_ms() is None


def test_with_timeout_never_extends_parent_deadline():
    parent = ExecutionContext().with_timeout(1)
    child = parent.with_timeout(60)
    assert child.deadline == parent.deadline


def test_derived_contexts_share_cancellation():
    parent = ExecutionContext()
    child = parent.with_user(1).with_timeout(10)
    parent.cancel("client went away")
    assert child.cancelled
    with pytest.raises(AppError) as exc:
        child.check("probe")
    assert exc.value.kind is ErrorKind.CANCELLED
    assert "client went away" in str(exc.value)


def test_expired_deadline_fails_check():
    ctx = ExecutionContext(deadline=time.monotonic() - 1)
    assert ctx.expired
    with pytest.raises(AppError) as exc:
        ctx.check()
    assert exc.value.kind is ErrorKind.CANCELLED


def test_cancel_fires_registered_hooks_only_while_registered():
    ctx = ExecutionContext()
    fired = []
    with ctx.on_cancel(lambda: fired.append("in-flight")):
        pass
    ctx.cancel()
    assert fired == []

    other = ExecutionContext()
    with other.on_cancel(lambda: fired.append("in-flight")):
        other.cancel()
        other.cancel()
    assert fired == ["in-flight"]


def test_failing_hook_does_not_stop_cancellation():
    ctx = ExecutionContext()

    def boom():
        raise RuntimeError("hook failed")

    with ctx.on_cancel(boom):
        ctx.cancel()
    assert ctx.cancelled


def test_removed_hook_never_fires_during_concurrent_cancel():
    signal = CancelSignal()
    first_running = threading.Event()
    release_first = threading.Event()
    fired = []

    def slow_hook():
        first_running.set()
        release_first.wait(5)

    def conn_cancel():
        fired.append("cancel")

    signal.add_hook(slow_hook)
    signal.add_hook(conn_cancel)
    canceller = threading.Thread(target=signal.set, args=("client gone",))
    canceller.start()
    assert first_running.wait(5)

    # The statement finished; its connection is about to go back to the pool.
    signal.remove_hook(conn_cancel)
    release_first.set()
    canceller.join(5)

    assert not canceller.is_alive()
    assert fired == []


def test_remove_hook_waits_for_running_hook():
    signal = CancelSignal()
    running = threading.Event()
    release = threading.Event()
    events = []

    def conn_cancel():
        running.set()
        release.wait(5)
        events.append("cancelled")

    signal.add_hook(conn_cancel)
    canceller = threading.Thread(target=signal.set, args=("timeout",))
    canceller.start()
    assert running.wait(5)

    remover = threading.Thread(target=lambda: (signal.remove_hook(conn_cancel), events.append("removed")))
    remover.start()
    time.sleep(0.05)
    assert events == []
    release.set()
    remover.join(5)
    canceller.join(5)
    assert events == ["cancelled", "removed"]


def test_in_transaction_tracks_transaction_state(conn):
    ctx = ExecutionContext()
    assert not ctx.in_transaction
    tx = TransactionExecutor(conn)
    tx_ctx = ctx.with_transaction(tx)
    assert tx_ctx.in_transaction
    assert not ctx.in_transaction
    tx.commit()
    assert not tx_ctx.in_transaction
