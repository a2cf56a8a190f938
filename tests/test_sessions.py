"""Tests for session bookkeeping."""

from __future__ import annotations

import time

from taskgate.sessions import SessionStore, SessionSweeper


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_create_returns_unique_session_ids():
    store = SessionStore()
    first = store.create()
    second = store.create()

    assert first != second
    assert first.startswith("session-")
    assert first in store and second in store
    assert len(store) == 2


def test_touch_refreshes_known_sessions_only():
    clock = FakeClock()
    store = SessionStore(clock=clock)
    session_id = store.create()

    clock.now += 30
    assert store.touch(session_id)
    assert store.get(session_id).last_access_at == clock.now
    assert not store.touch("session-unknown")
    assert not store.touch(None)


def test_terminate_is_idempotent():
    store = SessionStore()
    session_id = store.create()

    assert store.terminate(session_id) is True
    assert store.terminate(session_id) is False
    assert session_id not in store


def test_sweep_expires_idle_sessions():
    clock = FakeClock()
    store = SessionStore(idle_timeout=3600, clock=clock)
    stale = store.create()
    clock.now += 1800
    fresh = store.create()

    clock.now += 1801
    removed = store.sweep()

    assert removed == 1
    assert stale not in store
    assert fresh in store
    assert not store.touch(stale)


def test_touch_keeps_session_alive_across_the_idle_window():
    clock = FakeClock()
    store = SessionStore(idle_timeout=3600, clock=clock)
    session_id = store.create()

    for _ in range(3):
        clock.now += 3000
        assert store.touch(session_id)
        store.sweep()

    assert session_id in store


def test_sweeper_runs_in_background():
    clock = FakeClock()
    store = SessionStore(idle_timeout=10, clock=clock)
    session_id = store.create()
    clock.now += 11

    sweeper = SessionSweeper(store, interval=0.01)
    sweeper.start()
    try:
        deadline = time.time() + 2
        while session_id in store and time.time() < deadline:
            time.sleep(0.01)
    finally:
        sweeper.stop(timeout=1)

    assert session_id not in store
    assert not sweeper.running
