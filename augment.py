"""Deterministic augmentation of canned replies.

A base reply is lightly personalized from the confession it answers: a few
synonyms are swapped, punctuation varies, and an intro or outro clause may be
wrapped around it.  All choices come from a private :class:`random.Random`
seeded by the confession text and the day of the year, so the same
confession gets the same treatment all day and may read differently
tomorrow.  Any failure falls back to the untouched reply.
"""

from __future__ import annotations

import datetime
import hashlib
import logging
import random
import re
from typing import Dict, List, Optional

import constraints
import ner

logger = logging.getLogger(__name__)

STYLES = ("blunt", "coach", "deadpan")
SUBSTITUTION_RATE = {"blunt": 0.15, "coach": 0.35, "deadpan": 0.30}
MAX_SUBSTITUTIONS = 2
DASH_PROBABILITY = 0.25

SYNONYMS: Dict[str, List[str]] = {
    "breathe": ["exhale", "pause"],
    "small": ["tiny", "modest"],
    "smaller": ["lighter", "tinier"],
    "size": ["position", "stake"],
    "step": ["walk", "move"],
    "rules": ["guardrails", "limits"],
    "plan": ["playbook", "script"],
    "lesson": ["takeaway", "note"],
    "chart": ["screen", "candles"],
    "charts": ["screens", "candles"],
    "loss": ["hit", "drawdown"],
    "losses": ["hits", "drawdowns"],
    "hope": ["wishful thinking", "prayer"],
    "classic": ["textbook", "standard"],
    "touch": ["find", "go touch"],
    "sleep": ["rest", "shut-eye"],
    "money": ["capital", "cash"],
    "trade": ["play", "punt"],
    "adjust": ["tune", "fix"],
    "learn": ["study", "absorb"],
    "quick": ["fast", "rapid"],
    "big": ["large", "oversized"],
}

TICKER_INTROS = ["Re {ticker}:", "{ticker}, huh:"]
THEME_INTROS = ["On {theme}:", "About the {theme} part:"]
RELATION_INTROS = {
    "family": ["With family money in play:", "When family is involved:"],
    "work": ["Bringing the day job into it:", "Paycheck on the line:"],
}
AMOUNT_INTROS = ["{amount}, noted:"]
NEUTRAL_INTROS = ["Look:", "Okay:", "Real talk:"]

THEME_OUTROS: Dict[str, List[str]] = {
    "revenge": ["No revenge trades today.", "Walk away before you win it back."],
    "budget": ["Rent money stays off-chain.", "Pay the bills first."],
    "sleep": ["Close the app. Sleep.", "Charts at 4am lie."],
    "journal": ["Write it down tonight.", "Log it, then log off."],
    "exit": ["Set the exit before the entry.", "Plan the sell, not the hope."],
    "size": ["Cut size in half.", "Smaller size, calmer head."],
    "discipline": ["Rules first, clicks second.", "No plan, no trade."],
    "emotions": ["Feel it, then step back.", "Name the feeling, skip the trade."],
    "risk": ["Guardrail: size small.", "Risk only what you can lose."],
}
GENERIC_OUTROS = ["Log off for an hour.", "Hydrate. Reset.", "Tomorrow is another candle."]

_WORD = re.compile(r"[A-Za-z][A-Za-z'-]*")


def day_of_year(today: Optional[datetime.date] = None) -> int:
    today = today or datetime.date.today()
    return today.timetuple().tm_yday


def seed_for(text: str, day: int) -> int:
    """Reproducible seed from the raw input *text* and the ordinal *day*."""
    digest = hashlib.sha1((text or "").encode("utf-8")).hexdigest()
    return int(digest[:12], 16) * 1000 + day


def substitute_synonyms(text: str, rng: random.Random, rate: float) -> str:
    """Replace up to ``MAX_SUBSTITUTIONS`` table words, preserving case."""
    count = 0

    def _swap(match: re.Match) -> str:
        nonlocal count
        word = match.group(0)
        options = SYNONYMS.get(word.lower())
        if not options or count >= MAX_SUBSTITUTIONS:
            return word
        if rng.random() >= rate:
            return word
        count += 1
        return constraints.match_case(word, rng.choice(options))

    return _WORD.sub(_swap, text)


def vary_punctuation(text: str, rng: random.Random) -> str:
    if rng.random() < DASH_PROBABILITY:
        dashed = constraints.dash_first_sentence(text)
        if dashed is not None:
            return dashed
    return constraints.ensure_terminal_punct(text)


def choose_intro(entities: ner.Entities, rng: random.Random) -> Optional[str]:
    if entities.ticker:
        chance, templates = 0.7, TICKER_INTROS
    elif entities.themes:
        chance, templates = 0.45, list(THEME_INTROS)
        for relation in entities.relations:
            templates += RELATION_INTROS[relation]
    elif entities.relations:
        chance, templates = 0.25, RELATION_INTROS[entities.relations[0]]
    elif entities.amounts:
        chance, templates = 0.1, AMOUNT_INTROS
    else:
        chance, templates = 0.1, NEUTRAL_INTROS

    if rng.random() >= chance:
        return None
    template = rng.choice(templates)
    amount = entities.amounts[0] if entities.amounts else ""
    return template.format(ticker=entities.ticker, theme=entities.theme, amount=amount)


def choose_outro(entities: ner.Entities, rng: random.Random) -> Optional[str]:
    if entities.themes:
        chance, phrases = 0.5, THEME_OUTROS[entities.theme]
    else:
        chance, phrases = 0.15, GENERIC_OUTROS
    if rng.random() >= chance:
        return None
    return rng.choice(phrases)


def _augment(
    candidate: str,
    text: str,
    today: Optional[datetime.date],
    style: Optional[str],
) -> str:
    rng = random.Random(seed_for(text, day_of_year(today)))
    entities = ner.extract(text)
    if style not in SUBSTITUTION_RATE:
        style = rng.choice(STYLES)

    core = constraints.normalize_whitespace(candidate)
    core = substitute_synonyms(core, rng, SUBSTITUTION_RATE[style])
    core = vary_punctuation(core, rng)
    intro = choose_intro(entities, rng)
    outro = choose_outro(entities, rng)
    return constraints.fit_length(intro, core, outro)


def augment(
    candidate: str,
    text: str,
    today: Optional[datetime.date] = None,
    style: Optional[str] = None,
) -> str:
    """Personalize *candidate* for the confession *text*.

    The result depends only on ``(candidate, text, day of year, style)``.
    When *style* is omitted it is drawn from the seeded generator.
    """
    try:
        result = _augment(candidate, text, today, style)
    except Exception:
        logger.debug("augmentation failed, using base reply", exc_info=True)
        return candidate
    if not result.strip():
        return candidate
    return result
