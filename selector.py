"""Reply selection over the prompt catalog."""

from __future__ import annotations

import logging
import random
from typing import Dict, Optional, Set, Tuple

import lexicon
from catalog import PromptCatalog

logger = logging.getLogger(__name__)


class ReplySelector:
    """Pick a base reply for an input, avoiding immediate repeats.

    Usage is tracked per prompt for the lifetime of the selector: every reply
    under a prompt is served once before any of them is served again.
    """

    def __init__(self, catalog: PromptCatalog, rng: Optional[random.Random] = None):
        self.catalog = catalog
        self._rng = rng or random.Random()
        self._used: Dict[str, Set[int]] = {}

    def find_best_prompt(self, message: str) -> Optional[str]:
        """Return the catalog prompt with the highest positive overlap score."""
        best_prompt: Optional[str] = None
        best_score = 0.0
        for prompt in self.catalog.prompts():
            s = lexicon.score(message, prompt)
            # strict comparison keeps the first prompt on ties
            if s > best_score:
                best_prompt, best_score = prompt, s
        logger.debug(f"best prompt: {best_prompt!r} (score={best_score:.3f})")
        return best_prompt

    def pick_from_prompt(self, prompt: str) -> Optional[str]:
        """Serve a reply from *prompt* that has not been used this cycle."""
        replies = self.catalog.responses(prompt)
        if not replies:
            return None

        used = self._used.setdefault(prompt, set())
        available = [i for i in range(len(replies)) if i not in used]
        if not available:
            used.clear()
            available = list(range(len(replies)))

        idx = self._rng.choice(available)
        used.add(idx)
        if len(used) >= len(replies):
            # every reply served, next call starts a fresh cycle
            used.clear()
        return replies[idx]

    def select(self, message: str) -> Tuple[Optional[str], Optional[str]]:
        """Return ``(matched_prompt, base_reply)``.

        The prompt is ``None`` when the reply came from the catalog-wide pool;
        the reply is ``None`` when the catalog has nothing to offer.
        """
        if not self.catalog.loaded:
            return None, None

        prompt = self.find_best_prompt(message)
        if prompt is not None:
            reply = self.pick_from_prompt(prompt)
            if reply is not None:
                return prompt, reply

        pool = self.catalog.all_responses
        if pool:
            return None, self._rng.choice(pool)
        return None, None

    def select_base(self, message: str) -> Optional[str]:
        """Base reply for *message*, or ``None`` when nothing is available."""
        return self.select(message)[1]

    def usage(self, prompt: str) -> Set[int]:
        """Indices served for *prompt* in the current cycle."""
        return set(self._used.get(prompt, ()))
