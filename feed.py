"""Auto-feed of preloaded confessions.

Every so often a stored confession is replayed as if a stranger had just
posted it, followed by Cope's reply.  Delays are skewed towards the short end
of the interval so the feed feels alive without flooding.
"""

from __future__ import annotations

import datetime
import logging
import random
import string
from dataclasses import dataclass
from typing import Callable, List, Optional, Set

import cope

logger = logging.getLogger(__name__)

STARTUP_DELAY_MS = 5000
MIN_INTERVAL_MS = 15000
MAX_INTERVAL_MS = 45000
LOADING_DELAY_MS = 2000
LOADING_LINE = "Loading latest user submission..."
REPLY_PREFIX = "Cope: "

PRELOADED_CONFESSIONS = [
    "Sold my wife's wedding ring for TROLL. She found out when I couldn't afford this month's rent. Moving out tomorrow.",
    "$500 → $12k → $89 → food stamps.",
    "Day 47: Still can't tell my parents I lost their retirement fund on a memecoin. Dad keeps asking about the \"crypto gains.\"",
    "Watched $BAGWORK pump 400% while my sell order sat 0.01% too high. Pain.",
    "Status update: living in car. Portfolio up 140%. Worth it.",
    "Just took out a 28k personal loan to average down. This can't go wrong, right?",
]

THERAPIST_FALLBACK = [
    "Therapist: breathe, learn, adjust size, live to trade another day.",
    "Therapist: note the pattern, set rules you will actually follow.",
    "Therapist: wins don't define you, losses don't destroy you.",
    "Therapist: step away, hydrate, reset. Charts will still be there.",
    "Therapist: journal this, extract the lesson, move forward.",
]

_ID_CHARS = string.ascii_lowercase + string.digits


def random_user_id(rng: Optional[random.Random] = None) -> str:
    rng = rng or random.Random()
    return "user@" + "".join(rng.choice(_ID_CHARS) for _ in range(16))


def render_reply(engine: cope.ResponseEngine, message: str, rng: Optional[random.Random] = None) -> str:
    """Reply line for *message*; sentinels become a therapist fallback."""
    reply = engine.get_reply(message)
    if cope.is_sentinel(reply):
        rng = rng or random.Random()
        return REPLY_PREFIX + rng.choice(THERAPIST_FALLBACK)
    return REPLY_PREFIX + reply


@dataclass
class FeedItem:
    message: str
    user_id: str
    display_time: str
    reply: str

    def lines(self) -> List[str]:
        return [f"[{self.display_time}] {self.user_id}", f'"{self.message}"', self.reply]


class AutoFeed:
    """Replay confessions through the engine on the deferred scheduler."""

    def __init__(
        self,
        engine: cope.ResponseEngine,
        scheduler,
        sink: Callable[[str], object],
        confessions: Optional[List[str]] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.engine = engine
        self.scheduler = scheduler
        self.sink = sink
        self._confessions = confessions
        self._rng = rng or random.Random()
        self._displayed: Set[int] = set()
        self._task: Optional[str] = None
        self.running = False

    @property
    def confessions(self) -> List[str]:
        if self._confessions is not None:
            return self._confessions
        return self.engine.catalog.examples or PRELOADED_CONFESSIONS

    def next_delay(self) -> int:
        skew = self._rng.random() ** 2
        return int(MIN_INTERVAL_MS + (MAX_INTERVAL_MS - MIN_INTERVAL_MS) * skew)

    def start(self) -> bool:
        if not self.confessions:
            self.sink("Auto-feed disabled (no preloaded confessions).")
            return False
        self.running = True
        self._task = self.scheduler.schedule(self._tick, STARTUP_DELAY_MS)
        return True

    def stop(self) -> None:
        self.running = False
        if self._task is not None:
            self.scheduler.clear(self._task)
            self._task = None

    def _tick(self) -> None:
        if not self.running:
            return
        self.sink(LOADING_LINE)
        self._task = self.scheduler.schedule(self._deliver, LOADING_DELAY_MS)

    def next_confession(self) -> str:
        """Pick a confession not shown in the current rotation."""
        pool = [i for i in range(len(self.confessions)) if i not in self._displayed]
        if not pool:
            self._displayed.clear()
            pool = list(range(len(self.confessions)))
        idx = self._rng.choice(pool)
        self._displayed.add(idx)
        return self.confessions[idx]

    def produce(self) -> FeedItem:
        message = self.next_confession()
        return FeedItem(
            message=message,
            user_id=random_user_id(self._rng),
            display_time=datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            reply=render_reply(self.engine, message, self._rng),
        )

    def _deliver(self) -> None:
        if not self.running:
            return
        try:
            item = self.produce()
            for line in item.lines():
                self.sink(line)
        finally:
            if self.running:
                self._task = self.scheduler.schedule(self._tick, self.next_delay())
