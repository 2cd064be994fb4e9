"""cope response engine

The :mod:`cope` module answers short confessions with a curated reply.  It
matches the confession against the prompt catalog by token overlap, picks a
reply that has not been served recently, personalizes it deterministically
and keeps a small buffer of recent answers so the same text does not come
back twice in a row.
"""

from __future__ import annotations

import datetime
import logging
import random
from collections import deque
from typing import Deque, Optional

import augment
from catalog import PromptCatalog
from selector import ReplySelector

logger = logging.getLogger(__name__)

# Sentinels returned instead of raising
NOT_READY = "Cope is still waking up. Give it a second and confess again."
NO_MATCH = "Cope has nothing for that one. Breathe and try again."
SENTINELS = frozenset({NOT_READY, NO_MATCH})

RECENT_CAPACITY = 12
MAX_RETRIES = 2


def is_sentinel(text: Optional[str]) -> bool:
    return text in SENTINELS


class ResponseEngine:
    """Facade over catalog loading, reply selection and augmentation.

    Usage tracking and the recent-output buffer belong to the instance, so
    separate engines never influence each other.
    """

    def __init__(
        self,
        catalog: Optional[PromptCatalog] = None,
        rng: Optional[random.Random] = None,
        style: Optional[str] = None,
        today: Optional[datetime.date] = None,
    ) -> None:
        self.catalog = catalog if catalog is not None else PromptCatalog()
        self.selector = ReplySelector(self.catalog, rng)
        self.style = style
        self.today = today
        self.recent: Deque[str] = deque(maxlen=RECENT_CAPACITY)

    @property
    def ready(self) -> bool:
        return self.catalog.loaded

    async def init(self) -> bool:
        """Load the catalog.  Repeated calls are no-ops."""
        return await self.catalog.load()

    def load(self) -> bool:
        """Blocking variant of :meth:`init`."""
        return self.catalog.load_sync()

    def _augment(self, base: str, message: str) -> str:
        return augment.augment(base, message, today=self.today, style=self.style)

    def _resolve(self, message: str) -> str:
        logger.debug(f"Input text: '{message}'")
        if not self.ready:
            logger.debug("catalog not loaded - returning NOT_READY")
            return NOT_READY

        prompt, base = self.selector.select(message)
        logger.debug(f"Matched prompt: {prompt!r}, base reply: {base!r}")
        if base is None:
            logger.debug("no base reply available - returning NO_MATCH")
            return NO_MATCH

        reply = self._augment(base, message)
        retries = 0
        while reply in self.recent and prompt is not None and retries < MAX_RETRIES:
            retries += 1
            again = self.selector.pick_from_prompt(prompt)
            if again is None:
                break
            reply = self._augment(again, message)
            logger.debug(f"Recent repeat, retry {retries}: '{reply}'")

        self.recent.append(reply)
        logger.debug(f"Final reply: '{reply}'")
        return reply

    def get_reply(self, message: str) -> str:
        """Return a reply for *message*.  Never raises."""
        try:
            return self._resolve(message or "")
        except Exception:
            logger.exception("get_reply failed")
            return NO_MATCH


if __name__ == "__main__":  # pragma: no cover - manual exercise
    import sys

    logging.basicConfig(level=logging.INFO)
    engine = ResponseEngine()
    engine.load()
    user_input = " ".join(sys.argv[1:]) if len(sys.argv) > 1 else input("> ")
    print(engine.get_reply(user_input))
