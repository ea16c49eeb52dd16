"""Relevance scoring for candidate cards.

``score_card`` is a pure function: identical inputs always give the same
integer, and nothing outside its arguments is read.  All matching is
case-insensitive substring matching.

    exact phrase     name contains the whole request          +100
    name terms       each search term found in the name        +3
    text terms       each search term found in ability text    +1
    subtype overlap  each card subtype in the preferred set    +5
    style abilities  sum of matching style keyword weights
"""

from __future__ import annotations

from typing import Iterable, Mapping

from deckbuilder.models.card import CandidateCard

EXACT_PHRASE_BONUS = 100
NAME_TERM_WEIGHT = 3
TEXT_TERM_WEIGHT = 1
SUBTYPE_WEIGHT = 5


def score_card(
    card: CandidateCard,
    request: str,
    search_terms: Iterable[str],
    preferred_subtypes: Iterable[str],
    ability_weights: Mapping[str, int],
) -> int:
    """Return the composite relevance score of *card* for *request*."""
    name = card.name.lower()
    text = card.text.lower()
    score = 0

    phrase = request.strip().lower()
    if phrase and phrase in name:
        score += EXACT_PHRASE_BONUS

    for term in search_terms:
        needle = term.lower()
        if not needle:
            continue
        if needle in name:
            score += NAME_TERM_WEIGHT
        if needle in text:
            score += TEXT_TERM_WEIGHT

    preferred = {s.lower() for s in preferred_subtypes}
    score += SUBTYPE_WEIGHT * sum(1 for s in card.subtypes if s.lower() in preferred)

    for keyword, weight in ability_weights.items():
        needle = keyword.lower()
        if needle in name or needle in text:
            score += weight

    return score


def score_pool(
    pool: list[CandidateCard],
    request: str,
    search_terms: Iterable[str],
    preferred_subtypes: Iterable[str],
    ability_weights: Mapping[str, int],
) -> dict[str, int]:
    """Score every card in *pool*, keyed by name."""
    terms = list(search_terms)
    subtypes = list(preferred_subtypes)
    return {
        card.name: score_card(card, request, terms, subtypes, ability_weights)
        for card in pool
    }
