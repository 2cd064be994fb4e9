"""Tests for the deferred task scheduler."""

from pathlib import Path
import os
import signal
import sys
import threading
import time

import pytest

sys.path.append(str(Path(__file__).resolve().parent.parent))

import scheduler  # noqa: E402
from scheduler import DeferredScheduler, ResumeSource, SweepSource, TickerSource  # noqa: E402


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


# keeps the real wake-up timer out of the way of fake-clock tests
FAR_MARGIN_MS = 60_000


@pytest.fixture
def sched(clock):
    s = DeferredScheduler(sources=[], clock=clock, margin_ms=FAR_MARGIN_MS)
    yield s
    s.destroy()


def test_due_tasks_fire_in_fire_time_order(sched, clock):
    fired = []
    for delay in (50, 10, 30):
        sched.schedule(lambda d=delay: fired.append(d), delay)
    clock.advance(100)
    assert sched.check_due() == 3
    assert fired == [10, 30, 50]


def test_ties_fire_in_insertion_order(sched, clock):
    fired = []
    for name in ("a", "b", "c"):
        sched.schedule(lambda n=name: fired.append(n), 20)
    clock.advance(20)
    sched.check_due()
    assert fired == ["a", "b", "c"]


def test_nothing_fires_early(sched, clock):
    fired = []
    sched.schedule(lambda: fired.append(1), 100)
    clock.advance(99)
    assert sched.check_due() == 0
    assert fired == []
    assert sched.pending == 1


def test_task_fires_exactly_once(sched, clock):
    fired = []
    sched.schedule(lambda: fired.append(1), 5)
    clock.advance(10)
    sched.check_due()
    sched.check_due()
    assert fired == [1]
    assert sched.pending == 0


def test_redundant_check_with_nothing_due_is_noop(sched):
    assert sched.check_due() == 0
    assert sched.check_due() == 0


def test_negative_delay_is_clamped(sched, clock):
    fired = []
    sched.schedule(lambda: fired.append(1), -500)
    assert sched.check_due() == 1
    assert fired == [1]


def test_cleared_task_never_runs(sched, clock):
    fired = []
    task_id = sched.schedule(lambda: fired.append("cleared"), 10)
    sched.schedule(lambda: fired.append("kept"), 10)
    sched.clear(task_id)
    clock.advance(50)
    sched.check_due()
    assert fired == ["kept"]


def test_clear_unknown_or_fired_id_is_noop(sched, clock):
    task_id = sched.schedule(lambda: None, 0)
    sched.check_due()
    sched.clear(task_id)
    sched.clear("not-a-task")
    assert sched.pending == 0


def test_ids_are_unique(sched):
    ids = {sched.schedule(lambda: None, 1000) for _ in range(100)}
    assert len(ids) == 100


def test_failing_callback_does_not_stop_others(sched, clock):
    fired = []

    def _boom():
        raise RuntimeError("callback failed")

    sched.schedule(lambda: fired.append("before"), 1)
    sched.schedule(_boom, 2)
    sched.schedule(lambda: fired.append("after"), 3)
    clock.advance(10)
    assert sched.check_due() == 3
    assert fired == ["before", "after"]

    sched.schedule(lambda: fired.append("later"), 1)
    clock.advance(1)
    sched.check_due()
    assert fired[-1] == "later"


def test_callback_may_schedule_more_work(sched, clock):
    fired = []
    sched.schedule(lambda: sched.schedule(lambda: fired.append("child"), 10), 5)
    clock.advance(5)
    sched.check_due()
    assert fired == []
    clock.advance(10)
    sched.check_due()
    assert fired == ["child"]


def test_monotonic_clock_moves_forward():
    first = scheduler.monotonic_ms()
    time.sleep(0.01)
    assert scheduler.monotonic_ms() > first


def test_destroy_drops_pending_tasks(clock):
    s = DeferredScheduler(sources=[], clock=clock, margin_ms=FAR_MARGIN_MS)
    fired = []
    s.schedule(lambda: fired.append(1), 10)
    s.destroy()
    clock.advance(100)
    assert s.check_due() == 0
    assert s.pending == 0
    s.schedule(lambda: fired.append(2), 0)
    assert s.check_due() == 0
    assert fired == []


def test_destroy_stops_sources():
    stopped = []

    class Source:
        def start(self, trigger):
            self.trigger = trigger

        def stop(self):
            stopped.append(self)

    source = Source()
    s = DeferredScheduler(sources=[source])
    assert source.trigger == s.check_due
    s.destroy()
    assert stopped == [source]


def test_internal_timer_fires_with_real_clock():
    s = DeferredScheduler(sources=[])
    done = threading.Event()
    try:
        s.schedule(done.set, 20)
        assert done.wait(2.0)
    finally:
        s.destroy()


def test_cleared_task_does_not_fire_with_real_clock():
    s = DeferredScheduler(sources=[])
    fired = []
    try:
        task_id = s.schedule(lambda: fired.append(1), 30)
        s.clear(task_id)
        time.sleep(0.2)
        assert fired == []
    finally:
        s.destroy()


def test_default_scheduler_fires_and_shuts_down():
    s = DeferredScheduler()
    done = threading.Event()
    try:
        s.schedule(done.set, 10)
        assert done.wait(2.0)
    finally:
        s.destroy()


def test_ticker_source_emits_ticks():
    ticks = threading.Semaphore(0)
    source = TickerSource(interval_ms=5)
    source.start(ticks.release)
    try:
        for _ in range(3):
            assert ticks.acquire(timeout=2.0)
    finally:
        source.stop()


def test_sweep_source_rearms():
    sweeps = threading.Semaphore(0)
    source = SweepSource(interval_ms=10)
    source.start(sweeps.release)
    try:
        for _ in range(3):
            assert sweeps.acquire(timeout=2.0)
    finally:
        source.stop()


@pytest.mark.skipif(not hasattr(signal, "SIGCONT"), reason="no SIGCONT on this platform")
def test_resume_source_triggers_on_sigcont():
    calls = []
    source = ResumeSource()
    source.start(lambda: calls.append(1))
    try:
        os.kill(os.getpid(), signal.SIGCONT)
        deadline = time.time() + 2.0
        while not calls and time.time() < deadline:
            time.sleep(0.01)
        assert calls
    finally:
        source.stop()


def _wait_for(predicate, timeout=2.0):
    deadline = time.time() + timeout
    while not predicate() and time.time() < deadline:
        time.sleep(0.01)
    return predicate()


@pytest.mark.skipif(not hasattr(signal, "SIGCONT"), reason="no SIGCONT on this platform")
def test_destroying_one_scheduler_keeps_the_other_resumable():
    clock = FakeClock()
    fired = []
    a = DeferredScheduler(sources=[ResumeSource()], clock=clock, margin_ms=FAR_MARGIN_MS)
    b = DeferredScheduler(sources=[ResumeSource()], clock=clock, margin_ms=FAR_MARGIN_MS)
    try:
        b.schedule(lambda: fired.append("b"), 10)
        clock.advance(50)
        a.destroy()
        os.kill(os.getpid(), signal.SIGCONT)
        assert _wait_for(lambda: fired)
        assert fired == ["b"]
    finally:
        a.destroy()
        b.destroy()


@pytest.mark.skipif(not hasattr(signal, "SIGCONT"), reason="no SIGCONT on this platform")
def test_previous_handler_restored_after_last_resume_source():
    before = signal.getsignal(signal.SIGCONT)
    first, second = ResumeSource(), ResumeSource()
    first.start(lambda: None)
    second.start(lambda: None)
    first.stop()
    assert signal.getsignal(signal.SIGCONT) != before
    second.stop()
    assert signal.getsignal(signal.SIGCONT) == before
    assert not scheduler._RESUME.installed


def test_ticker_source_alone_fires_tasks():
    s = DeferredScheduler(sources=[TickerSource(interval_ms=5)], margin_ms=FAR_MARGIN_MS)
    done = threading.Event()
    try:
        s.schedule(done.set, 20)
        assert done.wait(1.0)
    finally:
        s.destroy()


def test_sweep_source_alone_fires_tasks():
    s = DeferredScheduler(sources=[SweepSource(interval_ms=20)], margin_ms=FAR_MARGIN_MS)
    done = threading.Event()
    try:
        s.schedule(done.set, 20)
        assert done.wait(1.0)
    finally:
        s.destroy()


def test_resume_source_is_inert_off_main_thread():
    source = ResumeSource()
    t = threading.Thread(target=source.start, args=(lambda: None,))
    t.start()
    t.join()
    source.stop()


def test_missing_sources_still_fire(clock):
    # without any wake-up source an explicit due-check is enough
    s = DeferredScheduler(sources=[], clock=clock, margin_ms=FAR_MARGIN_MS)
    fired = []
    try:
        s.schedule(lambda: fired.append(1), 10)
        clock.advance(10)
        s.check_due()
        assert fired == [1]
    finally:
        s.destroy()
