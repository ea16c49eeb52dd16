"""Colour identity selection.

Decides the one or two inks a deck is built in.

    1. Caller supplied inks        -> used verbatim (first two)
    2. LLM available               -> asked to pick two canonical inks from
                                      the pool's distribution and a sample
    3. Otherwise / reply rejected  -> the two most frequent inks, ties
                                      broken by canonical ink order

An LLM answer is accepted only if it resolves to exactly two distinct
canonical inks.  Anything else (provider error, timeout, prose without
JSON, unknown ink names, one or three inks) falls back to the frequency
rule, which is a pure function of the pool.
"""

from __future__ import annotations

import asyncio
from collections import Counter

from deckbuilder.config.deck_knowledge import CANONICAL_COLORS, canonical_color, color_sort_key
from deckbuilder.interfaces.llm_provider import ILLMProvider
from deckbuilder.models.card import CandidateCard
from deckbuilder.models.deck import ColorIdentity, IdentitySource
from deckbuilder.utils.errors import LLMError
from deckbuilder.utils.json_extract import extract_json_object
from deckbuilder.utils.logging import get_logger

_SAMPLES_PER_COLOR = 3

_SYSTEM_PROMPT = (
    "You are an expert Disney Lorcana deck builder. "
    "Pick the two ink colours that best support the player's request. "
    "Reply with JSON only."
)


def color_distribution(pool: list[CandidateCard]) -> dict[str, int]:
    """Count ink occurrences across *pool*.

    A dual-ink card counts once for each of its inks.  Keys use canonical
    spelling where known and are returned in canonical order.
    """
    counts: Counter[str] = Counter()
    for card in pool:
        for color in card.colors:
            counts[canonical_color(color) or color.strip()] += 1
    return {color: counts[color] for color in sorted(counts, key=color_sort_key)}


def top_colors_by_frequency(distribution: dict[str, int], limit: int = 2) -> list[str]:
    """Return the *limit* most frequent inks; ties go to canonical order."""
    ranked = sorted(
        (c for c, n in distribution.items() if n > 0),
        key=lambda c: (-distribution[c], color_sort_key(c)),
    )
    return ranked[:limit]


def parse_identity_reply(reply: str) -> tuple[list[str], str] | None:
    """Validate an LLM identity reply.

    Returns ``(colors, reasoning)`` when the reply holds exactly two
    distinct canonical inks, otherwise ``None``.
    """
    data = extract_json_object(reply)
    if not data:
        return None
    raw_colors = data.get("colors")
    if isinstance(raw_colors, str):
        raw_colors = [p for p in raw_colors.replace("/", ",").split(",")]
    if not isinstance(raw_colors, list):
        return None

    resolved: list[str] = []
    for value in raw_colors:
        if not isinstance(value, str):
            return None
        canonical = canonical_color(value)
        if canonical is None:
            return None
        if canonical not in resolved:
            resolved.append(canonical)
    if len(resolved) != 2:
        return None
    reasoning = data.get("reasoning")
    return resolved, reasoning if isinstance(reasoning, str) else ""


class IdentitySelector:
    """Chooses the deck's ink identity for one request."""

    def __init__(
        self,
        llm_provider: ILLMProvider | None = None,
        timeout_seconds: float | None = 25.0,
    ) -> None:
        self._llm = llm_provider
        self._timeout = timeout_seconds
        self._logger = get_logger(__name__)

    async def select(
        self,
        pool: list[CandidateCard],
        requested_colors: list[str] | None = None,
        request: str = "",
    ) -> ColorIdentity:
        """Return the identity for a deck built from *pool*.

        Parameters
        ----------
        pool:
            The merged candidate pool, not yet colour filtered.
        requested_colors:
            Inks named by the caller; used verbatim when non-empty.
        request:
            The free-text request, included in the LLM prompt.
        """
        distribution = color_distribution(pool)

        explicit = [c.strip() for c in (requested_colors or []) if c and c.strip()]
        if explicit:
            deduped: list[str] = []
            for color in explicit:
                if color.lower() not in {d.lower() for d in deduped}:
                    deduped.append(color)
            identity = ColorIdentity(
                colors=deduped[:2],
                source=IdentitySource.CALLER,
                distribution=distribution,
            )
            self._logger.info("identity_selected", colors=identity.colors, source="caller")
            return identity

        if not distribution:
            raise ValueError("Cannot choose an identity from an empty pool")

        if self._llm is not None:
            chosen = await self._ask_llm(pool, distribution, request)
            if chosen is not None:
                colors, reasoning = chosen
                identity = ColorIdentity(
                    colors=colors,
                    source=IdentitySource.LLM,
                    distribution=distribution,
                    reasoning=reasoning,
                )
                self._logger.info(
                    "identity_selected",
                    colors=colors,
                    source="llm",
                    distribution=distribution,
                )
                return identity

        colors = top_colors_by_frequency(distribution)
        identity = ColorIdentity(
            colors=colors,
            source=IdentitySource.FREQUENCY,
            distribution=distribution,
        )
        self._logger.info(
            "identity_selected",
            colors=colors,
            source="frequency",
            distribution=distribution,
        )
        return identity

    async def _ask_llm(
        self,
        pool: list[CandidateCard],
        distribution: dict[str, int],
        request: str,
    ) -> tuple[list[str], str] | None:
        prompt = self._build_prompt(pool, distribution, request)
        try:
            if self._timeout is None:
                reply = await self._llm.complete(_SYSTEM_PROMPT, prompt, temperature=0.2, max_tokens=300)
            else:
                reply = await asyncio.wait_for(
                    self._llm.complete(_SYSTEM_PROMPT, prompt, temperature=0.2, max_tokens=300),
                    self._timeout,
                )
        except (LLMError, asyncio.TimeoutError) as exc:
            self._logger.warning(
                "identity_llm_failed",
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return None

        parsed = parse_identity_reply(reply)
        if parsed is None:
            self._logger.warning("identity_reply_rejected", response_preview=reply[:200])
        return parsed

    @staticmethod
    def _build_prompt(
        pool: list[CandidateCard],
        distribution: dict[str, int],
        request: str,
    ) -> str:
        lines = [f"Player request: {request}" if request else "Player request: (none)", ""]
        lines.append("Ink distribution across matching cards:")
        for color, count in distribution.items():
            lines.append(f"- {color}: {count}")

        lines.append("")
        lines.append("Sample cards per ink:")
        for color in distribution:
            samples = [
                card for card in pool
                if any((canonical_color(c) or c) == color for c in card.colors)
            ][:_SAMPLES_PER_COLOR]
            for card in samples:
                cost = card.cost if card.cost is not None else "?"
                ink = "inkable" if card.inkable else "uninkable"
                lines.append(f"- [{color}] {card.name} (cost {cost}, {ink}): {card.text[:100]}")

        lines.append("")
        lines.append(f"Valid inks: {', '.join(CANONICAL_COLORS)}.")
        lines.append("Choose exactly two different inks.")
        lines.append('Respond with ONLY a JSON object: {"colors": ["Ink1", "Ink2"], "reasoning": "..."}')
        return "\n".join(lines)
