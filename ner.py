"""Heuristic entity and theme detection for confessions.

Everything here is plain pattern matching over the raw input: a ticker such
as ``$BONK``, money amounts such as ``2k`` or ``$150k``, hints that family or
work is involved, and a closed set of trading themes found by keyword
substring membership.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional

TICKER_PATTERN = re.compile(r"\$([A-Za-z0-9]{2,16})(?![A-Za-z0-9])")
AMOUNT_PATTERN = re.compile(
    r"(?<![\w$])\$?\d+(?:[.,]\d+)?(?:\s?[kKmMbB])?(?![A-Za-z0-9])"
)
_BARE_AMOUNT = re.compile(r"^\d+(?:[.,]\d+)?[kKmMbB]?$")

RELATION_KEYWORDS = {
    "family": (
        "wife", "husband", "mom", "dad", "mother", "father", "parents",
        "kids", "son", "daughter", "family", "girlfriend", "boyfriend",
        "brother", "sister", "grandma", "grandpa",
    ),
    "work": (
        "boss", "job", "work", "salary", "paycheck", "coworker", "office",
        "shift", "fired", "promotion",
    ),
}

# Order matters: the first detected theme drives intro and outro phrasing.
THEME_KEYWORDS = {
    "revenge": ("revenge", "win it back", "make it back", "get it back", "double down"),
    "budget": ("rent", "loan", "debt", "savings", "budget", "bills", "food stamps", "mortgage"),
    "sleep": ("sleep", "3am", "4am", "awake", "insomnia", "all night"),
    "journal": ("journal", "notes", "log my", "write down"),
    "exit": ("sell", "sold", "exit", "take profit", "stop loss", "dump"),
    "size": ("all in", "all-in", "position size", "leverage", "100x", "50x", "margin"),
    "discipline": ("fomo", "impulse", "chase", "chased", "rules", "plan"),
    "emotions": ("cry", "sad", "angry", "panic", "pain", "depressed", "shame", "hate"),
    "risk": ("risk", "liquidat", "rug", "memecoin", "shitcoin", "gamble", "degen"),
}
THEMES = tuple(THEME_KEYWORDS)


@dataclass
class Entities:
    """Everything detected in one input."""

    ticker: Optional[str] = None
    amounts: List[str] = field(default_factory=list)
    relations: List[str] = field(default_factory=list)
    themes: List[str] = field(default_factory=list)

    @property
    def theme(self) -> Optional[str]:
        return self.themes[0] if self.themes else None


def detect_ticker(text: str) -> Optional[str]:
    """Return the first ``$TICKER`` in *text*, upper-cased, skipping amounts."""
    for match in TICKER_PATTERN.finditer(text):
        symbol = match.group(1)
        if _BARE_AMOUNT.match(symbol):
            continue
        return "$" + symbol.upper()
    return None


def detect_amounts(text: str) -> List[str]:
    return [m.group(0).replace(" ", "") for m in AMOUNT_PATTERN.finditer(text)]


def _starts_word(lowered: str, keyword: str) -> bool:
    # relation words are short ("son", "job"), so they must start a word
    return re.search(r"\b" + re.escape(keyword), lowered) is not None


def detect_relations(text: str) -> List[str]:
    lowered = text.lower()
    return [
        name
        for name, words in RELATION_KEYWORDS.items()
        if any(_starts_word(lowered, w) for w in words)
    ]


def detect_themes(text: str) -> List[str]:
    lowered = text.lower()
    return [
        theme
        for theme, words in THEME_KEYWORDS.items()
        if any(w in lowered for w in words)
    ]


def extract(text: str) -> Entities:
    """Detect ticker, amounts, relation hints and themes in *text*."""
    text = text or ""
    return Entities(
        ticker=detect_ticker(text),
        amounts=detect_amounts(text),
        relations=detect_relations(text),
        themes=detect_themes(text),
    )
