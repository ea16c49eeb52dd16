"""Final validation and rendering of a finished allocation.

The builder is the last gate before a deck leaves the engine.  It checks
the three properties every successful deck must hold (exact size, copy
caps, colour identity) and renders the entries in a stable order together
with a plain-text narrative of what each phase did.
"""

from __future__ import annotations

from deckbuilder.config.deck_knowledge import CURVE_BUCKETS, cost_bucket
from deckbuilder.models.deck import AllocationState, ColorIdentity, DeckCardEntry, DeckResponse
from deckbuilder.models.pipeline import DeckBuildState
from deckbuilder.utils.errors import ColorLegalityError, DeckBuildError, DeckSizeShortfallError
from deckbuilder.utils.logging import get_logger

_MAX_REMOVED_NAMES = 12


def validate_allocation(state: AllocationState, identity: ColorIdentity) -> None:
    """Raise if *state* is not a valid finished deck for *identity*.

    Raises
    ------
    DeckSizeShortfallError
        If the deck holds fewer copies than its target.
    DeckBuildError
        If the deck is oversized or an entry exceeds its ``max_copies``.
    ColorLegalityError
        If any entry has a colour outside the identity.
    """
    total = state.total
    if total < state.target_size:
        raise DeckSizeShortfallError(target_size=state.target_size, available=total)
    if total > state.target_size:
        raise DeckBuildError(
            message=f"Deck holds {total} cards, more than the requested {state.target_size}"
        )

    over_cap = [
        name for name, count in state.counts.items()
        if count > state.cards[name].max_copies or count <= 0
    ]
    if over_cap:
        raise DeckBuildError(message=f"Copy counts out of range for: {', '.join(over_cap)}")

    off_color = [name for name in state.counts if not identity.allows(state.cards[name])]
    if off_color:
        raise ColorLegalityError(
            message=(
                f"{len(off_color)} card(s) fall outside {'/'.join(identity.colors)}: "
                f"{', '.join(off_color)}"
            ),
            card_names=off_color,
        )


def order_entries(state: AllocationState) -> list[DeckCardEntry]:
    """Deck entries sorted by cost (unknown last), then name."""
    entries = [
        DeckCardEntry(
            name=name,
            count=count,
            inkable=state.cards[name].inkable,
            color=state.cards[name].color_label,
            cost=state.cards[name].cost,
            subtypes=list(state.cards[name].subtypes),
            link=state.cards[name].link,
        )
        for name, count in state.counts.items()
    ]
    entries.sort(
        key=lambda e: (e.cost is None, e.cost if e.cost is not None else 0, e.name.lower())
    )
    return entries


def curve_histogram(state: AllocationState) -> dict[str, int]:
    """Copies per cost bucket, in bucket order."""
    histogram = {label: 0 for label in CURVE_BUCKETS}
    for name, count in state.counts.items():
        histogram[cost_bucket(state.cards[name].cost)] += count
    return histogram


class DeckResponseBuilder:
    """Validates an allocation and turns it into a :class:`DeckResponse`."""

    def __init__(self) -> None:
        self._logger = get_logger(__name__)

    def build(self, allocation: AllocationState, build_state: DeckBuildState) -> DeckResponse:
        if build_state.filtering is None:
            raise DeckBuildError(message="Cannot build a response before colour filtering")
        identity = build_state.filtering.identity
        validate_allocation(allocation, identity)

        entries = order_entries(allocation)
        explanation = self.explain(allocation, build_state)
        self._logger.info(
            "deck_response_built",
            unique_cards=len(entries),
            total_cards=allocation.total,
            colors=identity.colors,
        )
        return DeckResponse(
            cards=entries,
            explanation=explanation,
            colors=list(identity.colors),
            style=build_state.style,
        )

    @staticmethod
    def explain(allocation: AllocationState, build_state: DeckBuildState) -> str:
        """Render the narrative of a finished build."""
        lines: list[str] = []
        request = build_state.request

        retrieval = build_state.retrieval
        if retrieval is not None:
            lines.append(
                f"Search: found {len(retrieval.pool)} candidate cards for "
                f"'{request.request}' in {request.deck_format.value} format "
                f"using {retrieval.queries_issued} queries"
                + (f" ({retrieval.queries_failed} failed)." if retrieval.queries_failed else ".")
            )
            if retrieval.search_terms:
                lines.append(f"Search terms: {', '.join(retrieval.search_terms)}.")
            if retrieval.subtype_terms:
                lines.append(f"Themed subtypes: {', '.join(retrieval.subtype_terms)}.")
            if retrieval.dropped_illegal:
                lines.append(
                    f"Dropped {retrieval.dropped_illegal} card(s) not legal in "
                    f"{request.deck_format.value}."
                )

        filtering = build_state.filtering
        if filtering is not None:
            identity = filtering.identity
            source = {
                "caller": "as requested",
                "llm": "chosen by the assistant",
                "frequency": "most common in the search results",
            }[identity.source.value]
            lines.append(f"Colours: {'/'.join(identity.colors)} ({source}).")
            if identity.reasoning:
                lines.append(f"Reasoning: {identity.reasoning}")
            removed = filtering.removed_for_color
            if removed:
                shown = ", ".join(removed[:_MAX_REMOVED_NAMES])
                more = len(removed) - _MAX_REMOVED_NAMES
                suffix = f" and {more} more" if more > 0 else ""
                lines.append(
                    f"Filtered out {len(removed)} off-colour card(s): {shown}{suffix}."
                )
            lines.append(f"{len(filtering.legal_pool)} colour-legal candidates remained.")

        lines.append(f"Style: {build_state.style.value.replace('_', ' ')}.")
        synergy = build_state.synergy
        if len(synergy):
            lines.append(f"Synergy picks: {len(synergy)} card(s) ({synergy.source.replace('_', ' ')}).")

        lines.append(
            f"Assembled {allocation.total} cards from {len(allocation.counts)} unique names."
        )
        histogram = curve_histogram(allocation)
        lines.append(
            "Curve: " + ", ".join(f"{label}: {histogram[label]}" for label in CURVE_BUCKETS) + "."
        )
        lines.append(
            f"Inkable: {allocation.inkable_total}/{allocation.total} "
            f"({allocation.inkable_pct():.0f}%)."
        )
        full = allocation.full_playsets()
        lines.append(f"Full playsets: {len(full)}.")
        if allocation.moves:
            promoted = sorted({m.name for m in allocation.moves if m.action == "promote"})
            demoted = sorted({m.name for m in allocation.moves if m.action == "demote"})
            if promoted:
                lines.append(f"Consolidated copies into: {', '.join(promoted)}.")
            if demoted:
                lines.append(f"Trimmed playsets: {', '.join(demoted)}.")

        return "\n".join(lines)
