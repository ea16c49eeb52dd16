"""Keep the number of full playsets inside a band.

A full playset is an entry whose count equals its ``max_copies``.  The
normalizer moves single copies between entries; the deck total never
changes and no count leaves ``[0, max_copies]``.

Promotion (below the band)
    target  the non-full entry with the most copies, earliest rank first
    donor   a non-full entry other than the target: multi-copy entries
            first (fewest copies, latest rank), then singletons (latest
            rank).  Full playsets never donate.

Demotion (above the band)
    The latest-ranked full playset gives one copy to the earliest-ranked
    entry that sits at least two below its ``max_copies``, so the move
    cannot create a new playset.

Every copy moved is recorded on ``AllocationState.moves``.
"""

from __future__ import annotations

from deckbuilder.models.deck import AllocationState, PlaysetMove
from deckbuilder.utils.logging import get_logger


class PlaysetNormalizer:
    """Moves copies until the full-playset count is within the band."""

    def __init__(self, min_playsets: int = 5, max_playsets: int = 12) -> None:
        if min_playsets > max_playsets:
            raise ValueError(
                f"min_playsets ({min_playsets}) must not exceed max_playsets ({max_playsets})"
            )
        self._min = min_playsets
        self._max = max_playsets
        self._logger = get_logger(__name__)

    def normalize(self, state: AllocationState) -> AllocationState:
        """Adjust *state* in place and return it."""
        total_before = state.total
        playsets_before = len(state.full_playsets())

        self._promote(state)
        self._demote(state)

        if state.total != total_before:
            raise RuntimeError(
                f"Playset normalisation changed the deck size ({total_before} -> {state.total})"
            )

        self._logger.info(
            "playsets_normalized",
            before=playsets_before,
            after=len(state.full_playsets()),
            moves=len(state.moves),
            band=[self._min, self._max],
        )
        return state

    # ------------------------------------------------------------------
    # Promotion
    # ------------------------------------------------------------------

    def _promote(self, state: AllocationState) -> None:
        while len(state.full_playsets()) < self._min:
            target = self._promotion_target(state)
            if target is None:
                return
            donor = self._donor(state, exclude=target)
            if donor is None:
                self._logger.debug("playset_promotion_stopped", reason="no_donor", target=target)
                return
            self._move(state, donor, target, action="promote")

    @staticmethod
    def _promotion_target(state: AllocationState) -> str | None:
        rank = list(state.counts)
        open_entries = [
            name for name in rank
            if state.counts[name] < state.cards[name].max_copies
        ]
        if not open_entries:
            return None
        return min(open_entries, key=lambda n: (-state.counts[n], rank.index(n)))

    @staticmethod
    def _donor(state: AllocationState, exclude: str) -> str | None:
        rank = list(state.counts)
        candidates = [
            name for name in rank
            if name != exclude and state.counts[name] < state.cards[name].max_copies
        ]
        multi = [n for n in candidates if state.counts[n] > 1]
        if multi:
            return min(multi, key=lambda n: (state.counts[n], -rank.index(n)))
        if candidates:
            return candidates[-1]
        return None

    # ------------------------------------------------------------------
    # Demotion
    # ------------------------------------------------------------------

    def _demote(self, state: AllocationState) -> None:
        while len(state.full_playsets()) > self._max:
            victim = state.full_playsets()[-1]
            recipient = next(
                (
                    name for name in state.counts
                    if name != victim
                    and state.counts[name] <= state.cards[name].max_copies - 2
                ),
                None,
            )
            if recipient is None:
                self._logger.debug("playset_demotion_stopped", reason="no_recipient", victim=victim)
                return
            self._move(state, victim, recipient, action="demote")

    # ------------------------------------------------------------------

    @staticmethod
    def _move(state: AllocationState, donor: str, recipient: str, action: str) -> None:
        donor_before = state.counts[donor]
        state.remove_one(donor)
        state.moves.append(
            PlaysetMove(
                action="donate" if action == "promote" else "demote",
                name=donor,
                before=donor_before,
                after=donor_before - 1,
            )
        )

        recipient_before = state.counts[recipient]
        state.add(state.cards[recipient], 1)
        state.moves.append(
            PlaysetMove(
                action="promote" if action == "promote" else "receive",
                name=recipient,
                before=recipient_before,
                after=recipient_before + 1,
            )
        )
