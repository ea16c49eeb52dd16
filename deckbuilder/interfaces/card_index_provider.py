"""Abstract base class for the card vector index.

The card index stores one embedding per card together with its payload
(name, cost, inks, inkwell flag, subtypes, copy limit, link and format
legality).  Searches take a pre-computed query vector so the caller owns
the embedding step and can tell an embedding failure from a search
failure.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from deckbuilder.models.card import CardHit, DeckFormat


# Concrete implementation: ChromaDBCardIndex
# Located in: deckbuilder/providers/vector_store/
class ICardIndexProvider(ABC):
    """Contract for semantic card search."""

    @abstractmethod
    async def search(
        self,
        vector: list[float],
        deck_format: DeckFormat,
        limit: int = 100,
        colors: list[str] | None = None,
    ) -> list[CardHit]:
        """Return the cards closest to *vector* that are legal in *deck_format*.

        Parameters
        ----------
        vector:
            Query embedding.
        deck_format:
            Only cards legal in this format (including legality windows)
            are returned.
        limit:
            Maximum number of hits.
        colors:
            When given, only cards whose inks are all inside this list are
            returned.  Retrieval for colour identity selection leaves this
            unset.

        Returns
        -------
        list[CardHit]
            Hits ordered by descending similarity.

        Raises
        ------
        deckbuilder.utils.errors.RAGError
            If the index cannot be queried.
        """

    @abstractmethod
    def check_dimension(self, dimension: int) -> None:
        """Verify stored card vectors have *dimension* entries.

        An empty index passes.  Called once at startup with the embedding
        provider's dimension.

        Raises
        ------
        deckbuilder.utils.errors.RAGError
            If the stored vectors have a different dimension.
        """

    @abstractmethod
    def count(self) -> int:
        """Return the number of cards stored in the index."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this index backend."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the index can be queried."""
