"""Tests for the single-slot debounce timer."""

import threading

from vex_laser_mcp.engine.debounce import DebounceTimer


def test_burst_runs_once_with_last_args(timers):
    calls = []
    debounce = DebounceTimer(0.3, timer_factory=timers)

    for value in (10, 20, 30):
        debounce.arm(calls.append, value)

    assert len(timers.active) == 1
    assert debounce.pending
    timers.fire_all()
    assert calls == [30]
    assert not debounce.pending


def test_cancel_drops_pending_call(timers):
    calls = []
    debounce = DebounceTimer(0.3, timer_factory=timers)
    debounce.arm(calls.append, 1)
    debounce.cancel()
    timers.fire_all()
    assert calls == []
    assert not debounce.pending


def test_stale_timer_firing_late_is_ignored(timers):
    """An expired timer that fires after a re-arm must not run."""
    calls = []
    debounce = DebounceTimer(0.3, timer_factory=timers)
    debounce.arm(calls.append, 1)
    stale = timers.timers[0]
    debounce.arm(calls.append, 2)

    # Simulate the old timer having already expired before cancel() landed
    stale.function(*stale.args)
    assert calls == []
    timers.timers[1].fire()
    assert calls == [2]


def test_timers_are_daemon(timers):
    debounce = DebounceTimer(0.3, timer_factory=timers)
    debounce.arm(lambda: None)
    assert timers.timers[0].daemon is True
    assert timers.timers[0].interval == 0.3


def test_failing_callback_does_not_raise(timers):
    def boom():
        raise RuntimeError("boom")

    debounce = DebounceTimer(0.1, timer_factory=timers)
    debounce.arm(boom)
    timers.fire_all()
    assert not debounce.pending


def test_real_timer_fires():
    done = threading.Event()
    received = []

    def record(value):
        received.append(value)
        done.set()

    debounce = DebounceTimer(0.05)
    debounce.arm(record, "a")
    debounce.arm(record, "b")
    assert done.wait(2.0)
    assert received == ["b"]
