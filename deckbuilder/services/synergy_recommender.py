"""Synergy recommendation: flag a small set of cards as preferred.

The recommender sees the colour-legal pool only.  Its primary path asks the
LLM for a JSON array of card names that interact well; names not in the
pool are discarded and the set is capped at ``max_size``.  When that path
yields nothing (no provider, provider failure, unparseable reply, only
unknown names) the top cards by :func:`score_card` are used instead, so a
non-empty pool always produces a non-empty set.
"""

from __future__ import annotations

import asyncio
import re

from deckbuilder.config.deck_knowledge import STYLE_KEYWORDS, ability_weights_for
from deckbuilder.interfaces.llm_provider import ILLMProvider
from deckbuilder.models.card import CandidateCard
from deckbuilder.models.deck import DeckStyle, SynergySet
from deckbuilder.services.card_scorer import score_pool
from deckbuilder.utils.errors import LLMError
from deckbuilder.utils.json_extract import extract_json_array, lower_keys
from deckbuilder.utils.logging import get_logger
from deckbuilder.utils.names import name_lookup, normalize_name

_SUMMARY_TEXT_CHARS = 120
_SUMMARY_MAX_CARDS = 80

_SYSTEM_PROMPT = (
    "You are an expert Disney Lorcana deck builder who looks for cards that "
    "work together. Reply with a JSON array of card names only."
)

_KEYWORD_PATTERNS: dict[DeckStyle, list[re.Pattern[str]]] = {
    style: [re.compile(rf"\b{re.escape(kw)}\b", re.IGNORECASE) for kw in keywords]
    for style, keywords in STYLE_KEYWORDS.items()
}


def detect_style(request: str) -> DeckStyle:
    """Detect the play style named by *request*.

    The style with the most keyword hits wins; ties go to the style listed
    first in ``STYLE_KEYWORDS``.  No hits means :attr:`DeckStyle.MIDRANGE`.
    """
    best = DeckStyle.MIDRANGE
    best_hits = 0
    for style, patterns in _KEYWORD_PATTERNS.items():
        hits = sum(1 for pattern in patterns if pattern.search(request))
        if hits > best_hits:
            best, best_hits = style, hits
    return best


class SynergyRecommender:
    """Produces the synergy set for one deck build."""

    def __init__(
        self,
        llm_provider: ILLMProvider | None = None,
        max_size: int = 15,
        timeout_seconds: float | None = 25.0,
    ) -> None:
        self._llm = llm_provider
        self._max_size = max_size
        self._timeout = timeout_seconds
        self._logger = get_logger(__name__)

    async def recommend(
        self,
        request: str,
        style: DeckStyle,
        pool: list[CandidateCard],
        preferred_subtypes: list[str],
        search_terms: list[str],
    ) -> SynergySet:
        """Return up to ``max_size`` preferred card names from *pool*."""
        if not pool or self._max_size <= 0:
            return SynergySet()

        names: list[str] = []
        if self._llm is not None:
            names = await self._ask_llm(request, style, pool, preferred_subtypes)

        if names:
            self._logger.info("synergy_selected", source="llm", size=len(names))
            return SynergySet(names=frozenset(names), source="llm")

        fallback = self.top_by_score(request, style, pool, preferred_subtypes, search_terms)
        self._logger.info("synergy_selected", source="score_fallback", size=len(fallback))
        return SynergySet(names=frozenset(fallback), source="score_fallback")

    def top_by_score(
        self,
        request: str,
        style: DeckStyle,
        pool: list[CandidateCard],
        preferred_subtypes: list[str],
        search_terms: list[str],
    ) -> list[str]:
        """Top ``max_size`` names by score; pool order breaks ties."""
        scores = score_pool(pool, request, search_terms, preferred_subtypes, ability_weights_for(style))
        ranked = sorted(pool, key=lambda card: scores[card.name], reverse=True)
        return [card.name for card in ranked[: self._max_size]]

    async def _ask_llm(
        self,
        request: str,
        style: DeckStyle,
        pool: list[CandidateCard],
        preferred_subtypes: list[str],
    ) -> list[str]:
        prompt = self._build_prompt(request, style, pool, preferred_subtypes)
        try:
            call = self._llm.complete(_SYSTEM_PROMPT, prompt, temperature=0.3, max_tokens=800)
            reply = await (call if self._timeout is None else asyncio.wait_for(call, self._timeout))
        except (LLMError, asyncio.TimeoutError) as exc:
            self._logger.warning(
                "synergy_llm_failed",
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return []

        parsed = extract_json_array(reply)
        if parsed is None:
            self._logger.warning("synergy_reply_unparseable", response_preview=reply[:200])
            return []

        by_key = name_lookup(card.name for card in pool)
        names: list[str] = []
        for item in parsed:
            if isinstance(item, dict):
                item = lower_keys(item)
                item = item.get("name") or item.get("card")
            if not isinstance(item, str):
                continue
            name = by_key.get(normalize_name(item))
            if name is None or name in names:
                continue
            names.append(name)
            if len(names) >= self._max_size:
                break

        dropped = len(parsed) - len(names)
        if dropped > 0:
            self._logger.debug("synergy_names_dropped", count=dropped)
        return names

    def _build_prompt(
        self,
        request: str,
        style: DeckStyle,
        pool: list[CandidateCard],
        preferred_subtypes: list[str],
    ) -> str:
        lines = [
            f"Player request: {request}",
            f"Detected play style: {style.value.replace('_', ' ')}",
        ]
        if preferred_subtypes:
            lines.append(f"Themed subtypes: {', '.join(preferred_subtypes)}")
        lines.append("")
        lines.append("Candidate cards (name | cost | subtypes | ability):")
        for card in pool[:_SUMMARY_MAX_CARDS]:
            cost = card.cost if card.cost is not None else "?"
            subtypes = ", ".join(card.subtypes) or "-"
            text = card.text.replace("\n", " ")[:_SUMMARY_TEXT_CHARS]
            lines.append(f"- {card.name} | {cost} | {subtypes} | {text}")
        lines.append("")
        lines.append(
            f"Pick up to {self._max_size} cards from this list that interact well with "
            "each other and with the request. Favour cohesive interactions over raw "
            "power. Do not name example cards from outside the list."
        )
        lines.append('Respond with ONLY a JSON array of exact card names, e.g. ["Name A", "Name B"].')
        return "\n".join(lines)
