"""Lexical overlap scoring.

Inputs and catalog prompts are compared as bags of lowercase tokens.  Only
ASCII letters, digits and the ``$`` ticker marker survive tokenization; all
other characters act as separators.
"""

import math
import re
from typing import List, Optional

_SEPARATORS = re.compile(r"[^a-z0-9$ ]+")


def tokenize(text: Optional[str]) -> List[str]:
    """Split *text* into lowercase tokens, dropping punctuation."""
    cleaned = _SEPARATORS.sub(" ", (text or "").lower())
    return [t for t in re.split(r"\s+", cleaned) if t]


def score(a: Optional[str], b: Optional[str]) -> float:
    """Cosine-style overlap of the token sets of *a* and *b*.

    Returns 0.0 when either side has no tokens, 1.0 for identical sets.
    """
    left = set(tokenize(a))
    right = set(tokenize(b))
    if not left or not right:
        return 0.0
    overlap = len(left & right)
    return overlap / math.sqrt(len(left) * len(right))
