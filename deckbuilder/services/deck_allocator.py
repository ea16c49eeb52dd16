"""Constrained allocation of copy counts.

# ─── HOW ALLOCATION WORKS ─────────────────────────────────────────────
#
# The allocator sees the colour-legal pool, one score per card, and the
# synergy set.  It makes one greedy pass over the pool in rank order:
#
#   rank key   (score + synergy bonus if preferred, inkable, -cost), desc
#   pass cap   preferred -> max_copies
#              cost <= 2 -> min(3, max_copies)
#              cost >= 5 -> 1
#              otherwise -> min(2, max_copies)
#   curve      copies limited by the card's bucket deficit; a preferred
#              card in a satisfied bucket may still take one copy
#   ink ratio  below the band, non-inkable non-preferred cards take at
#              most one copy; above it, inkable cards take at most one
#
# When the pass leaves slots open, a round-robin top-up raises existing
# entries (lowest count first) and then adds unused cards in rank order.
# Counts only ever grow here.  If the pool cannot hold the target size a
# DeckSizeShortfallError is raised before any copies are assigned.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from deckbuilder.config.deck_knowledge import (
    CURVE_BUCKETS,
    cost_bucket,
    desired_curve,
    effective_cost,
)
from deckbuilder.models.card import CandidateCard
from deckbuilder.models.deck import AllocationState, CurveBucket, DeckStyle, SynergySet
from deckbuilder.utils.errors import DeckSizeShortfallError
from deckbuilder.utils.logging import get_logger


def rank_candidates(
    pool: list[CandidateCard],
    scores: dict[str, int],
    synergy: SynergySet,
    synergy_bonus: int = 10,
) -> list[CandidateCard]:
    """Order *pool* by the allocation key, highest first.

    Python's sort is stable under ``reverse=True``, so cards with equal
    keys keep their pool order.
    """

    def _key(card: CandidateCard) -> tuple[int, int, int]:
        score = scores.get(card.name, 0)
        if card.name in synergy:
            score += synergy_bonus
        return (score, int(card.inkable), -effective_cost(card.cost))

    return sorted(pool, key=_key, reverse=True)


def pass_cap(card: CandidateCard, preferred: bool) -> int:
    """Copies *card* may reach during the greedy pass."""
    if preferred:
        return card.max_copies
    cost = effective_cost(card.cost)
    if cost <= 2:
        return min(3, card.max_copies)
    if cost >= 5:
        return 1
    return min(2, card.max_copies)


class DeckAllocator:
    """Assigns copy counts until the deck reaches its target size."""

    def __init__(
        self,
        synergy_bonus: int = 10,
        inkable_min_pct: float = 70.0,
        inkable_max_pct: float = 85.0,
    ) -> None:
        self._synergy_bonus = synergy_bonus
        self._inkable_min = inkable_min_pct
        self._inkable_max = inkable_max_pct
        self._logger = get_logger(__name__)

    def allocate(
        self,
        pool: list[CandidateCard],
        scores: dict[str, int],
        synergy: SynergySet,
        style: DeckStyle,
        target_size: int,
    ) -> AllocationState:
        """Return an allocation totalling exactly *target_size* copies.

        Parameters
        ----------
        pool:
            Colour-legal candidates, deduplicated by name.
        scores:
            Relevance score per card name.
        synergy:
            Names that get the synergy bonus and a full pass cap.
        style:
            Selects the desired curve shape.
        target_size:
            Exact number of copies the deck must contain.

        Raises
        ------
        DeckSizeShortfallError
            If the pool's combined ``max_copies`` is below *target_size*.
        """
        available = sum(card.max_copies for card in pool)
        if available < target_size:
            self._logger.warning(
                "allocation_shortfall",
                target_size=target_size,
                available=available,
                pool_size=len(pool),
            )
            raise DeckSizeShortfallError(target_size=target_size, available=available)

        state = AllocationState(
            target_size=target_size,
            curve={
                label: CurveBucket(label=label, desired=desired)
                for label, desired in desired_curve(style, target_size).items()
            },
        )
        ranked = rank_candidates(pool, scores, synergy, self._synergy_bonus)

        self._greedy_pass(state, ranked, synergy)
        after_pass = state.total
        if state.remaining > 0:
            self._top_up(state, ranked)

        if state.remaining > 0:
            raise DeckSizeShortfallError(target_size=target_size, available=state.total)

        self._logger.info(
            "allocation_complete",
            target_size=target_size,
            unique_cards=len(state.counts),
            greedy_copies=after_pass,
            topped_up=state.total - after_pass,
            inkable_pct=round(state.inkable_pct(), 1),
            curve={label: state.curve[label].actual for label in CURVE_BUCKETS},
        )
        return state

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _greedy_pass(
        self,
        state: AllocationState,
        ranked: list[CandidateCard],
        synergy: SynergySet,
    ) -> None:
        for card in ranked:
            if state.remaining <= 0:
                break
            preferred = card.name in synergy
            bucket = state.curve[cost_bucket(card.cost)]

            if bucket.deficit > 0:
                curve_allowance = bucket.deficit
            elif preferred:
                curve_allowance = 1
            else:
                curve_allowance = 0

            have = state.counts.get(card.name, 0)
            copies = min(pass_cap(card, preferred) - have, state.remaining, curve_allowance)
            copies = self._steer_ink(state, card, preferred, copies)
            if copies <= 0:
                continue

            state.add(card, copies)
            bucket.actual += copies

    def _steer_ink(
        self,
        state: AllocationState,
        card: CandidateCard,
        preferred: bool,
        copies: int,
    ) -> int:
        # An empty deck has no ratio yet.
        if state.total == 0:
            return copies
        pct = state.inkable_pct()
        if pct < self._inkable_min and not card.inkable and not preferred:
            return min(copies, 1)
        if pct > self._inkable_max and card.inkable:
            return min(copies, 1)
        return copies

    def _top_up(self, state: AllocationState, ranked: list[CandidateCard]) -> None:
        rank_of = {card.name: i for i, card in enumerate(ranked)}
        while state.remaining > 0:
            grew = False

            # Existing entries, one copy each per round, lowest count first.
            order = sorted(state.counts, key=lambda n: (state.counts[n], rank_of[n]))
            for name in order:
                if state.remaining <= 0:
                    break
                card = state.cards[name]
                if state.counts[name] < card.max_copies:
                    self._add_copy(state, card)
                    grew = True

            if grew:
                continue

            # Every entry is full; bring in the next unused card.
            for card in ranked:
                if card.name not in state.counts:
                    self._add_copy(state, card)
                    grew = True
                    break

            if not grew:
                break

    @staticmethod
    def _add_copy(state: AllocationState, card: CandidateCard) -> None:
        state.add(card, 1)
        state.curve[cost_bucket(card.cost)].actual += 1
