"""ChromaDB card index adapter.

Wraps ``chromadb.PersistentClient`` to implement :class:`ICardIndexProvider`.
Each card is one record: the id is the card name, the document is the
ability text, and the metadata holds the flattened payload.  Cosine
distance is used for similarity.

Chroma metadata values must be scalars, so list fields are stored as
comma-separated strings and format legality as ``allowed_<format>``,
``allowed_<format>_from_ts`` and ``allowed_<format>_until_ts``.
"""

from __future__ import annotations

import os
import time
from typing import Any

# Chroma's anonymous telemetry is switched off before import.
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import chromadb
import structlog
from pydantic import ValidationError

from deckbuilder.interfaces.card_index_provider import ICardIndexProvider
from deckbuilder.models.card import CandidateCard, CardHit, DeckFormat
from deckbuilder.utils.errors import ProviderUnavailableError, RAGError

logger = structlog.get_logger(logger_name=__name__)

# Over-fetch factor so post-filtering (legality windows, inks) still
# leaves enough hits.
_OVERFETCH = 4


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """Embedding function that is never called.

    Queries always pass pre-computed vectors; this stops ChromaDB
    from downloading its default ONNX model on collection creation.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError(
            "The card index uses pre-computed embeddings; "
            "ChromaDB's built-in embedding should never be called."
        )

    def name(self) -> str:
        return "noop_precomputed"


class ChromaDBCardIndex(ICardIndexProvider):
    """Card index backed by ChromaDB with local persistence."""

    def __init__(
        self,
        persist_directory: str = "./data/chromadb",
        collection_name: str = "lorcana_cards",
    ) -> None:
        self._persist_directory = persist_directory
        self._collection_name = collection_name
        try:
            self._client = chromadb.PersistentClient(
                path=persist_directory,
                settings=chromadb.config.Settings(anonymized_telemetry=False),
            )
            self._collection = self._open_collection()
        except Exception as exc:
            raise ProviderUnavailableError(
                message=(
                    f"Cannot open ChromaDB collection '{collection_name}' "
                    f"at {persist_directory}: {exc}"
                ),
                provider_name="chromadb",
            ) from exc

    def _open_collection(self) -> Any:
        # Collections created by other tooling may carry a different
        # persisted embedding function; open them without one.
        try:
            return self._client.get_or_create_collection(
                name=self._collection_name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=_NoopEmbeddingFunction(),
            )
        except ValueError:
            return self._client.get_or_create_collection(
                name=self._collection_name,
                metadata={"hnsw:space": "cosine"},
            )

    # ------------------------------------------------------------------
    # ICardIndexProvider implementation
    # ------------------------------------------------------------------

    async def search(
        self,
        vector: list[float],
        deck_format: DeckFormat,
        limit: int = 100,
        colors: list[str] | None = None,
    ) -> list[CardHit]:
        """Nearest-neighbour search, filtered to *deck_format* (and *colors*)."""
        try:
            stored = self._collection.count()
            if stored == 0 or limit <= 0:
                return []

            fetch_k = min(limit * _OVERFETCH, stored)
            kwargs: dict[str, Any] = {
                "query_embeddings": [vector],
                "n_results": fetch_k,
            }
            where_clause = self._format_where(deck_format)
            if where_clause:
                kwargs["where"] = where_clause

            results = self._collection.query(**kwargs)
        except Exception as exc:
            raise RAGError(
                message=f"ChromaDB query failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if not results["ids"] or not results["ids"][0]:
            return []

        ids = results["ids"][0]
        documents = results["documents"][0] if results.get("documents") else [""] * len(ids)
        metadatas = results["metadatas"][0] if results.get("metadatas") else [{}] * len(ids)
        distances = results["distances"][0] if results.get("distances") else [0.0] * len(ids)

        allowed_colors = {c.lower() for c in colors} if colors else None
        now = int(time.time())
        hits: list[CardHit] = []
        skipped = 0
        for doc_text, meta, distance in zip(documents, metadatas, distances, strict=True):
            payload = dict(meta or {})
            payload.setdefault("fullText", doc_text or "")
            try:
                card = CandidateCard.from_payload(payload)
            except ValidationError:
                card = None
            if card is None:
                skipped += 1
                continue
            if not card.is_legal_in(deck_format, now):
                continue
            if allowed_colors is not None and not all(
                c.lower() in allowed_colors for c in card.colors
            ):
                continue
            similarity = max(0.0, min(1.0, 1.0 - distance))
            hits.append(CardHit(card=card, score=similarity))
            if len(hits) >= limit:
                break

        if skipped:
            logger.warning("card_payload_skipped", count=skipped, reason="missing name or ink, or invalid fields")
        logger.debug(
            "chromadb_card_search",
            deck_format=deck_format.value,
            raw_results=len(ids),
            results_count=len(hits),
            top_score=hits[0].score if hits else 0.0,
        )
        return hits

    def check_dimension(self, dimension: int) -> None:
        """Compare one stored vector against *dimension*; empty indexes pass."""
        try:
            stored_count = self._collection.count()
            if stored_count == 0:
                return
            sample = self._collection.peek(limit=1)
        except Exception as exc:
            logger.warning("embedding_dimension_check_skipped", error=str(exc))
            return

        embeddings = sample.get("embeddings") if sample else None
        if embeddings is None or len(embeddings) == 0:
            return

        stored_dim = len(embeddings[0])
        if stored_dim != dimension:
            logger.error(
                "embedding_dimension_mismatch",
                stored_dim=stored_dim,
                expected_dim=dimension,
                collection=self._collection_name,
            )
            raise RAGError(
                message=(
                    f"Embedding dimension mismatch: collection '{self._collection_name}' holds "
                    f"{stored_dim}-dim card vectors but the embedding provider produces "
                    f"{dimension}-dim vectors. Use the model the card index was built with."
                ),
                provider_name=self.get_provider_name(),
            )
        logger.info("embedding_dimension_validated", dimension=stored_dim, cards=stored_count)

    def count(self) -> int:
        return self._collection.count()

    def get_provider_name(self) -> str:
        return "chromadb"

    def is_available(self) -> bool:
        """Return ``True`` if the ChromaDB collection is accessible."""
        try:
            self._collection.count()
            return True
        except Exception:
            return False

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _format_where(deck_format: DeckFormat) -> dict[str, Any] | None:
        """Translate a format to a ChromaDB ``where`` clause.

        Core legality admits cards with no legality fields at all, which a
        ``where`` clause cannot express, so Core is filtered in Python only.
        Infinity requires an explicit ``allowed_infinity`` flag.
        """
        if deck_format == DeckFormat.INFINITY:
            return {"allowed_infinity": True}
        return None

