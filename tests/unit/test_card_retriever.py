"""Unit tests for CardRetriever and its pure helpers."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from deckbuilder.models.card import DeckFormat, FormatLegality
from deckbuilder.services.card_retriever import (
    CardRetriever,
    extract_search_terms,
    harvest_subtype_terms,
    merge_hits,
    tokenize,
)
from deckbuilder.utils.errors import EmbeddingError, EmptyCandidatePoolError, RAGError


# ======================================================================
# Pure helpers
# ======================================================================


def test_tokenize_splits_on_punctuation() -> None:
    assert tokenize("Elsa's ice-deck, please!") == ["Elsa", "s", "ice", "deck", "please"]


class TestExtractSearchTerms:
    def test_keeps_long_tokens_deduplicated(self) -> None:
        terms = extract_search_terms("Aggressive Pirate deck with pirates and PIRATE songs")
        assert terms == ["Aggressive", "Pirate", "deck", "with", "pirates"]

    def test_respects_max_terms(self) -> None:
        assert extract_search_terms("alpha bravo charlie delta", max_terms=2) == ["alpha", "bravo"]

    def test_short_words_only(self) -> None:
        assert extract_search_terms("a big red one") == []


class TestHarvestSubtypeTerms:
    def test_request_named_subtypes_win(self, make_card) -> None:
        pool = [
            make_card("A", subtypes=["Storyborn", "Pirate"]),
            make_card("B", subtypes=["Storyborn", "Hero"]),
            make_card("C", subtypes=["Storyborn"]),
        ]
        assert harvest_subtype_terms(pool, "a deck full of pirates") == ["Pirate"]

    def test_most_frequent_when_nothing_named(self, make_card) -> None:
        pool = [
            make_card("A", subtypes=["Hero", "Princess"]),
            make_card("B", subtypes=["Princess"]),
            make_card("C", subtypes=["Villain"]),
        ]
        assert harvest_subtype_terms(pool, "anything", max_terms=2) == ["Princess", "Hero"]

    def test_empty_pool_or_zero_cap(self, make_card) -> None:
        assert harvest_subtype_terms([], "pirates") == []
        assert harvest_subtype_terms([make_card("A", subtypes=["Pirate"])], "pirates", max_terms=0) == []


def test_merge_hits_first_occurrence_wins(make_card, make_hits) -> None:
    first = make_card("Shared", cost=1)
    second = make_card("Shared", cost=5)
    other = make_card("Other")
    pool = merge_hits([make_hits([first]), make_hits([other, second])])
    assert [c.name for c in pool] == ["Shared", "Other"]
    assert pool[0].cost == 1


# ======================================================================
# CardRetriever.retrieve
# ======================================================================


def _retriever(embedding, index, **kwargs) -> CardRetriever:
    return CardRetriever(embedding_provider=embedding, card_index=index, **kwargs)


class TestRetrieve:
    @pytest.mark.asyncio
    async def test_merges_waves_and_counts_queries(
        self, mock_embedding_provider, mock_card_index, make_card, make_hits
    ) -> None:
        cards = [
            make_card("Captain Hook", subtypes=["Pirate", "Captain"]),
            make_card("Mr. Smee", subtypes=["Pirate"]),
        ]
        mock_card_index.search = AsyncMock(return_value=make_hits(cards))

        result = await _retriever(mock_embedding_provider, mock_card_index).retrieve(
            "pirate songs", DeckFormat.CORE
        )

        assert [c.name for c in result.pool] == ["Captain Hook", "Mr. Smee"]
        assert result.search_terms == ["pirate", "songs"]
        # Only the request-named tag is harvested, and it was already
        # queried as a term, so no second wave runs.
        assert result.subtype_terms == ["Pirate"]
        assert result.queries_issued == 3
        assert result.queries_failed == 0
        # The raw request is embedded once and reused for its own search.
        embedded = [call.args[0] for call in mock_embedding_provider.embed_single.call_args_list]
        assert embedded.count("pirate songs") == 1

    @pytest.mark.asyncio
    async def test_subtype_wave_runs_for_unqueried_tags(
        self, mock_embedding_provider, mock_card_index, make_card, make_hits
    ) -> None:
        cards = [make_card("Ariel", subtypes=["Princess"]), make_card("Belle", subtypes=["Princess"])]
        mock_card_index.search = AsyncMock(return_value=make_hits(cards))

        result = await _retriever(mock_embedding_provider, mock_card_index).retrieve(
            "mermaid", DeckFormat.CORE
        )

        assert result.subtype_terms == ["Princess"]
        # raw request ("mermaid" is also its only term, so it is not repeated) + subtype
        assert result.queries_issued == 2
        assert mock_card_index.search.await_count == 2

    @pytest.mark.asyncio
    async def test_term_failure_is_logged_not_fatal(
        self, mock_embedding_provider, mock_card_index, make_card, make_hits
    ) -> None:
        async def _embed(text: str) -> list[float]:
            if text == "songs":
                raise EmbeddingError(message="boom", provider_name="mock_embedding")
            return [0.1] * 8

        mock_embedding_provider.embed_single = AsyncMock(side_effect=_embed)
        mock_card_index.search = AsyncMock(return_value=make_hits([make_card("Friends")]))

        result = await _retriever(mock_embedding_provider, mock_card_index).retrieve(
            "pirate songs", DeckFormat.CORE
        )

        assert result.queries_failed == 1
        assert [c.name for c in result.pool] == ["Friends"]

    @pytest.mark.asyncio
    async def test_request_embedding_failure_aborts(
        self, mock_embedding_provider, mock_card_index
    ) -> None:
        mock_embedding_provider.embed_single = AsyncMock(side_effect=EmbeddingError(message="down"))

        with pytest.raises(EmbeddingError):
            await _retriever(mock_embedding_provider, mock_card_index).retrieve(
                "pirate songs", DeckFormat.CORE
            )
        mock_card_index.search.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_all_queries_empty_raises(self, mock_embedding_provider, mock_card_index) -> None:
        mock_card_index.search = AsyncMock(return_value=[])

        with pytest.raises(EmptyCandidatePoolError, match="No candidates found"):
            await _retriever(mock_embedding_provider, mock_card_index).retrieve(
                "nothing matches this", DeckFormat.CORE
            )

    @pytest.mark.asyncio
    async def test_all_queries_failing_raises_empty_pool(
        self, mock_embedding_provider, mock_card_index
    ) -> None:
        mock_card_index.search = AsyncMock(side_effect=RAGError(message="index down"))

        with pytest.raises(EmptyCandidatePoolError):
            await _retriever(mock_embedding_provider, mock_card_index).retrieve(
                "pirate songs", DeckFormat.CORE
            )

    @pytest.mark.asyncio
    async def test_illegal_cards_are_dropped(
        self, mock_embedding_provider, mock_card_index, make_card, make_hits
    ) -> None:
        banned = make_card("Banned", legality={DeckFormat.CORE: FormatLegality(allowed=False)})
        legal = make_card("Legal")
        mock_card_index.search = AsyncMock(return_value=make_hits([banned, legal]))

        result = await _retriever(mock_embedding_provider, mock_card_index).retrieve(
            "anything", DeckFormat.CORE
        )

        assert [c.name for c in result.pool] == ["Legal"]
        assert result.dropped_illegal == 1

    @pytest.mark.asyncio
    async def test_search_is_format_filtered_without_inks(
        self, mock_embedding_provider, mock_card_index, make_card, make_hits
    ) -> None:
        mock_card_index.search = AsyncMock(return_value=make_hits([make_card("A")]))

        await _retriever(mock_embedding_provider, mock_card_index, search_limit=7).retrieve(
            "anything", DeckFormat.INFINITY
        )

        call = mock_card_index.search.await_args
        assert call.args[1] == DeckFormat.INFINITY
        assert call.kwargs == {"limit": 7}
