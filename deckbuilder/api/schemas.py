"""Pydantic request/response schemas for the deck builder API.

# ─── HOW SCHEMAS WORK ─────────────────────────────────────────────────
#
# These models are the public HTTP contract.  They are deliberately
# separate from the engine models in ``deckbuilder.models`` so the wire
# names (``deck_size``, ``format``) can differ from the internal names
# (``target_size``, ``deck_format``) without leaking either way.
#
#   DeckBuildRequest  --to_deck_request()-->  DeckRequest
#   DeckResponse      --from_deck()-------->  DeckBuildResponse
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator

from deckbuilder.models.card import DeckFormat
from deckbuilder.models.deck import DeckRequest, DeckResponse


class DeckBuildRequest(BaseModel):
    """Body of ``POST /api/v1/deck`` and ``POST /api/v1/deck/agentic``."""

    request: str = Field(..., min_length=1, max_length=2000)
    deck_size: int = Field(default=60, gt=0, le=200)
    colors: list[str] = Field(default_factory=list, max_length=2)
    format: str = Field(default="core", description="core or infinity")

    @field_validator("format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        return DeckFormat.parse(value).value

    def to_deck_request(self) -> DeckRequest:
        return DeckRequest(
            request=self.request,
            target_size=self.deck_size,
            colors=self.colors,
            deck_format=self.format,
        )


class DeckCardResponse(BaseModel):
    """One line of the deck list."""

    name: str
    count: int
    inkable: bool
    color: str
    cost: int | None = None
    subtypes: list[str] = Field(default_factory=list)
    link: str | None = None


class DeckBuildResponse(BaseModel):
    """A finished deck."""

    cards: list[DeckCardResponse]
    explanation: str
    colors: list[str] = Field(default_factory=list)
    style: str | None = None
    total_cards: int

    @classmethod
    def from_deck(cls, deck: DeckResponse) -> DeckBuildResponse:
        return cls(
            cards=[DeckCardResponse(**entry.model_dump()) for entry in deck.cards],
            explanation=deck.explanation,
            colors=list(deck.colors),
            style=deck.style.value if deck.style is not None else None,
            total_cards=deck.total_cards,
        )


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
    phase: str | None = None
