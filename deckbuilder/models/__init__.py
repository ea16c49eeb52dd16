"""Deck builder domain models.

    - card.py      -- CandidateCard, format legality, search hits
    - deck.py      -- request, colour identity, allocation state, response
    - pipeline.py  -- pipeline phases and per-phase results
"""

from __future__ import annotations

from deckbuilder.models.card import (
    DEFAULT_MAX_COPIES,
    CandidateCard,
    CardHit,
    DeckFormat,
    FormatLegality,
)
from deckbuilder.models.deck import (
    AllocationState,
    ColorIdentity,
    CurveBucket,
    DeckCardEntry,
    DeckRequest,
    DeckResponse,
    DeckStyle,
    IdentitySource,
    PlaysetMove,
    SynergySet,
)
from deckbuilder.models.pipeline import (
    DeckBuildState,
    FilterResult,
    PipelinePhase,
    RetrievalResult,
)

__all__ = [
    "DEFAULT_MAX_COPIES",
    "AllocationState",
    "CandidateCard",
    "CardHit",
    "ColorIdentity",
    "CurveBucket",
    "DeckBuildState",
    "DeckCardEntry",
    "DeckFormat",
    "DeckRequest",
    "DeckResponse",
    "DeckStyle",
    "FilterResult",
    "FormatLegality",
    "IdentitySource",
    "PipelinePhase",
    "PlaysetMove",
    "RetrievalResult",
    "SynergySet",
]
