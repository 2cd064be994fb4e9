"""Text constraints and normalization utilities.

Small pure helpers used by the augmentation pipeline: whitespace cleanup,
case transfer for substituted words, terminal punctuation, the em-dash
sentence join and the length cap that protects the core reply.
"""

import re
from typing import Optional

TERMINAL_PUNCT = ".!?"
MAX_REPLY_LENGTH = 200

# A period that ends a sentence and is followed by more text.
_SENTENCE_BREAK = re.compile(r"\.\s+(?=\S)")


def normalize_whitespace(text: str) -> str:
    """Collapse consecutive whitespace characters into single spaces."""
    return re.sub(r"\s+", " ", text).strip()


def match_case(original: str, replacement: str) -> str:
    """Give *replacement* the capitalization pattern of *original*.

    ALL-CAPS stays all caps, a leading capital stays a leading capital,
    anything else is lowercased.
    """
    if len(original) > 1 and original.isupper():
        return replacement.upper()
    if original[:1].isupper():
        return replacement[:1].upper() + replacement[1:]
    return replacement.lower()


def ensure_terminal_punct(text: str) -> str:
    """Append a period unless *text* already ends with ``.``, ``!`` or ``?``."""
    text = text.rstrip()
    if not text or text[-1] in TERMINAL_PUNCT:
        return text
    return text + "."


def dash_first_sentence(text: str) -> Optional[str]:
    """Join the first two sentences with an em-dash.

    ``"Breathe. Size down."`` becomes ``"Breathe — size down."``.  Returns
    ``None`` when there is no sentence break to replace.
    """
    match = _SENTENCE_BREAK.search(text)
    if not match:
        return None
    head = text[: match.start()]
    tail = text[match.end():]
    if tail[:1].isupper() and not tail[:2].isupper():
        tail = tail[:1].lower() + tail[1:]
    return f"{head} — {tail}"


def compose(*parts: Optional[str]) -> str:
    """Join the non-empty *parts* with single spaces."""
    return " ".join(normalize_whitespace(p) for p in parts if p and p.strip())


def fit_length(
    intro: Optional[str],
    core: str,
    outro: Optional[str],
    limit: int = MAX_REPLY_LENGTH,
) -> str:
    """Compose ``intro core outro`` within *limit* characters.

    The outro goes first, then the intro.  The core itself is only cut when it
    alone is longer than *limit*.
    """
    for candidate in (compose(intro, core, outro), compose(intro, core), compose(core)):
        if len(candidate) <= limit:
            return candidate
    return compose(core)[:limit].rstrip()
