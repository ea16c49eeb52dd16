"""Shared pytest fixtures for the deck builder test suite."""

from __future__ import annotations

from pathlib import Path
from typing import Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from deckbuilder.interfaces.card_index_provider import ICardIndexProvider
from deckbuilder.interfaces.embedding_provider import IEmbeddingProvider
from deckbuilder.interfaces.llm_provider import ILLMProvider
from deckbuilder.models.card import CandidateCard, CardHit, DeckFormat, FormatLegality

# ---------------------------------------------------------------------------
# Card helpers
# ---------------------------------------------------------------------------


def build_card(
    name: str,
    colors: list[str] | None = None,
    cost: int | None = 2,
    inkable: bool = True,
    text: str = "",
    subtypes: list[str] | None = None,
    max_copies: int = 4,
    legality: dict[DeckFormat, FormatLegality] | None = None,
) -> CandidateCard:
    return CandidateCard(
        name=name,
        colors=colors if colors is not None else ["Ruby"],
        cost=cost,
        inkable=inkable,
        text=text,
        subtypes=subtypes if subtypes is not None else [],
        max_copies=max_copies,
        legality=legality or {},
    )


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def make_card() -> Callable[..., CandidateCard]:
    """Factory fixture for :class:`CandidateCard` with sensible defaults."""
    return build_card


@pytest.fixture
def make_hits() -> Callable[[list[CandidateCard]], list[CardHit]]:
    """Wrap cards as search hits with descending similarity."""

    def _make(cards: list[CandidateCard]) -> list[CardHit]:
        return [
            CardHit(card=card, score=max(0.0, 1.0 - i * 0.01))
            for i, card in enumerate(cards)
        ]

    return _make


@pytest.fixture
def ruby_steel_pool() -> list[CandidateCard]:
    """Forty Ruby/Steel candidates across the curve, each with max_copies 4."""
    pool: list[CandidateCard] = []
    for i in range(40):
        color = "Ruby" if i % 2 == 0 else "Steel"
        pool.append(
            build_card(
                name=f"{color} Card {i:02d}",
                colors=[color],
                cost=1 + (i % 7),
                inkable=(i % 5 != 0),
                text="Rush. Challenger +2" if i % 3 == 0 else "When you play this character, draw a card.",
                subtypes=["Storyborn", "Pirate"] if i % 4 == 0 else ["Dreamborn"],
            )
        )
    return pool


# ---------------------------------------------------------------------------
# Mock providers
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_embedding_provider() -> MagicMock:
    mock = MagicMock(spec=IEmbeddingProvider)
    mock.embed_single = AsyncMock(return_value=[0.1] * 8)
    mock.embed = AsyncMock(return_value=[[0.1] * 8])
    mock.get_dimension.return_value = 8
    mock.get_provider_name.return_value = "mock_embedding"
    mock.is_available.return_value = True
    return mock


@pytest.fixture
def mock_card_index() -> MagicMock:
    mock = MagicMock(spec=ICardIndexProvider)
    mock.search = AsyncMock(return_value=[])
    mock.check_dimension.return_value = None
    mock.count.return_value = 0
    mock.get_provider_name.return_value = "mock_index"
    mock.is_available.return_value = True
    return mock


@pytest.fixture
def mock_llm() -> MagicMock:
    mock = MagicMock(spec=ILLMProvider)
    mock.complete = AsyncMock(return_value="")
    mock.get_provider_name.return_value = "mock_llm"
    mock.is_available.return_value = True
    mock.validate_credentials = AsyncMock(return_value=True)
    return mock
