"""Unit tests for relevance scoring."""

from __future__ import annotations

from deckbuilder.services.card_scorer import (
    EXACT_PHRASE_BONUS,
    NAME_TERM_WEIGHT,
    SUBTYPE_WEIGHT,
    TEXT_TERM_WEIGHT,
    score_card,
    score_pool,
)


def test_every_component_adds_up(make_card) -> None:
    card = make_card(
        "Captain Hook - Forceful Duelist",
        text="Challenger +2",
        subtypes=["Storyborn", "Villain", "Pirate", "Captain"],
    )
    score = score_card(
        card,
        request="captain hook",
        search_terms=["captain", "hook"],
        preferred_subtypes=["pirate"],
        ability_weights={"challenger": 3},
    )
    assert score == EXACT_PHRASE_BONUS + 2 * NAME_TERM_WEIGHT + SUBTYPE_WEIGHT + 3


def test_term_counts_in_name_and_text(make_card) -> None:
    card = make_card("Ursula - Sea Witch", text="Whenever Ursula quests, draw a card.")
    score = score_card(card, "sea witch deck", ["ursula"], [], {})
    assert score == NAME_TERM_WEIGHT + TEXT_TERM_WEIGHT


def test_no_match_scores_zero(make_card) -> None:
    card = make_card("Mickey Mouse - Brave Little Tailor", text="Evasive")
    assert score_card(card, "pirates", ["pirates"], ["Pirate"], {"rush": 4}) == 0


def test_matching_is_case_insensitive(make_card) -> None:
    card = make_card("STITCH - ROCK STAR", text="SHIFT 4")
    assert score_card(card, "stitch - rock star", [], [], {"shift": 4}) == EXACT_PHRASE_BONUS + 4


def test_score_pool_is_pure(make_card) -> None:
    pool = [make_card("A", text="Rush"), make_card("B", text="Bodyguard")]
    args = ("aggro", ["aggro"], [], {"rush": 4})
    first = score_pool(pool, *args)
    second = score_pool(pool, *args)
    assert first == second == {"A": 4, "B": 0}
