"""Deferred task scheduler.

Callbacks are registered with a delay and fired by a single due-check.  The
due-check is armed on an ordinary :class:`threading.Timer`, but timers can be
late (a stopped process, a starved interpreter), so independent wake-up
sources call it as well:

* :class:`TickerSource` - a daemon thread that does nothing but tick
* :class:`SweepSource` - a coarse, re-armed fallback sweep
* :class:`ResumeSource` - fires when the process is continued after a stop

Any subset of sources may be missing; only latency suffers.
"""

from __future__ import annotations

import logging
import signal
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

SAFETY_MARGIN_MS = 15
TICK_INTERVAL_MS = 50
SWEEP_INTERVAL_MS = 1000


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


@dataclass
class ScheduledTask:
    id: str
    execute_at: float
    callback: Callable[[], object] = field(repr=False)
    seq: int = 0


class TickerSource:
    """Background thread emitting a tick every *interval_ms*."""

    def __init__(self, interval_ms: float = TICK_INTERVAL_MS) -> None:
        self.interval_ms = interval_ms
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self, trigger: Callable[[], object]) -> None:
        self._stop.clear()

        def _run() -> None:
            while not self._stop.wait(self.interval_ms / 1000.0):
                trigger()

        self._thread = threading.Thread(target=_run, daemon=True, name="cope-ticker")
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        self._thread = None


class SweepSource:
    """Coarse fixed-interval sweep built on re-armed timers."""

    def __init__(self, interval_ms: float = SWEEP_INTERVAL_MS) -> None:
        self.interval_ms = interval_ms
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()
        self._running = False

    def start(self, trigger: Callable[[], object]) -> None:
        def _sweep() -> None:
            try:
                trigger()
            finally:
                self._arm(_sweep)

        with self._lock:
            self._running = True
        self._arm(_sweep)

    def _arm(self, fn: Callable[[], None]) -> None:
        with self._lock:
            if not self._running:
                return
            self._timer = threading.Timer(self.interval_ms / 1000.0, fn)
            self._timer.daemon = True
            self._timer.name = "cope-sweep"
            self._timer.start()

    def stop(self) -> None:
        with self._lock:
            self._running = False
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None


class _ResumeDispatcher:
    """Process-wide ``SIGCONT`` handler fanning out to registered triggers.

    The handler is installed with the first trigger and the previous handler
    is put back when the last one is removed.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._triggers: Dict[int, Callable[[], object]] = {}
        self._previous = None
        self._installed = False
        self._next_key = 0

    @property
    def installed(self) -> bool:
        return self._installed

    def add(self, trigger: Callable[[], object]) -> Optional[int]:
        with self._lock:
            if not self._installed:
                self._previous = signal.signal(signal.SIGCONT, self._on_resume)
                self._installed = True
            self._next_key += 1
            self._triggers[self._next_key] = trigger
            return self._next_key

    def remove(self, key: int) -> None:
        with self._lock:
            self._triggers.pop(key, None)
            if self._triggers or not self._installed:
                return
            try:
                signal.signal(signal.SIGCONT, self._previous or signal.SIG_DFL)
            except ValueError:
                logger.debug("resume handler left installed, stopped off the main thread")
                return
            self._installed = False
            self._previous = None

    def _on_resume(self, signum, frame) -> None:
        for trigger in list(self._triggers.values()):
            try:
                trigger()
            except Exception:
                logger.exception("resume trigger failed")


_RESUME = _ResumeDispatcher()


class ResumeSource:
    """Run the due-check when the process is foregrounded (``SIGCONT``).

    All sources share one signal handler, so stopping one scheduler leaves
    the others subscribed.  Signal handlers can only be installed from the
    main thread and ``SIGCONT`` does not exist everywhere; in those cases the
    source stays inert.
    """

    def __init__(self) -> None:
        self._key: Optional[int] = None

    def start(self, trigger: Callable[[], object]) -> None:
        if not hasattr(signal, "SIGCONT"):
            return
        try:
            self._key = _RESUME.add(trigger)
        except ValueError:
            logger.debug("resume source unavailable outside the main thread")

    def stop(self) -> None:
        if self._key is None:
            return
        _RESUME.remove(self._key)
        self._key = None


def default_sources() -> List[object]:
    return [TickerSource(), SweepSource(), ResumeSource()]


class DeferredScheduler:
    """Run zero-argument callbacks no earlier than a given delay."""

    def __init__(
        self,
        sources: Optional[Iterable[object]] = None,
        clock: Optional[Callable[[], float]] = None,
        margin_ms: float = SAFETY_MARGIN_MS,
    ) -> None:
        self._clock = clock or monotonic_ms
        self.margin_ms = margin_ms
        self._tasks: Dict[str, ScheduledTask] = {}
        self._seq = 0
        self._lock = threading.RLock()
        self._timer: Optional[threading.Timer] = None
        self._destroyed = False
        self._sources = list(default_sources() if sources is None else sources)
        for source in self._sources:
            source.start(self.check_due)

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._tasks)

    def schedule(self, callback: Callable[[], object], delay_ms: float) -> str:
        """Register *callback* to run after *delay_ms*; returns the task id."""
        task_id = uuid.uuid4().hex
        with self._lock:
            if self._destroyed:
                logger.warning(f"scheduler destroyed, dropping task {task_id}")
                return task_id
            self._seq += 1
            task = ScheduledTask(
                id=task_id,
                execute_at=self._clock() + max(0.0, float(delay_ms)),
                callback=callback,
                seq=self._seq,
            )
            self._tasks[task_id] = task
            self._rearm()
        return task_id

    def clear(self, task_id: str) -> None:
        """Cancel a pending task; unknown or fired ids are ignored."""
        with self._lock:
            if self._tasks.pop(task_id, None) is not None:
                self._rearm()

    def check_due(self) -> int:
        """Fire every task whose time has come; returns how many ran."""
        with self._lock:
            if self._destroyed or not self._tasks:
                return 0
            now = self._clock()
            due = sorted(
                (t for t in self._tasks.values() if t.execute_at <= now),
                key=lambda t: (t.execute_at, t.seq),
            )
            for task in due:
                del self._tasks[task.id]

            for task in due:
                try:
                    task.callback()
                except Exception:
                    logger.exception(f"scheduled task {task.id} failed")

            self._rearm()
            return len(due)

    def _rearm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._destroyed or not self._tasks:
            return
        soonest = min(t.execute_at for t in self._tasks.values())
        wait_ms = max(0.0, soonest - self._clock()) + self.margin_ms
        self._timer = threading.Timer(wait_ms / 1000.0, self.check_due)
        self._timer.daemon = True
        self._timer.name = "cope-wakeup"
        self._timer.start()

    def destroy(self) -> None:
        """Stop all wake-up sources and drop pending tasks unfired."""
        with self._lock:
            self._destroyed = True
            dropped = len(self._tasks)
            self._tasks.clear()
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        for source in self._sources:
            source.stop()
        logger.debug(f"scheduler destroyed, {dropped} pending tasks dropped")
