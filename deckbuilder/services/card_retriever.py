"""Card retrieval: turn a free-text request into a candidate pool.

Retrieval runs in two waves against the card index:

    Wave 1   the raw request, plus up to ``max_search_terms`` words taken
             from it (longer than three characters, deduplicated)
    Wave 2   up to ``max_subtype_queries`` subtype tags harvested from the
             wave-1 pool (tags named in the request first, otherwise the
             most frequent ones)

Every query embeds its text and searches with the format filter only.
Inks are deliberately left open here so the identity selector sees an
unbiased colour distribution.

Failure policy:
    - the raw request cannot be embedded  -> EmbeddingError, build aborts
    - one term query fails or times out   -> logged, contributes nothing
    - every wave comes back empty         -> EmptyCandidatePoolError

Results merge in query order (raw request, then terms, then subtypes) and
are deduplicated by card name, first occurrence wins.  Query completion
order never affects the pool.
"""

from __future__ import annotations

import asyncio
import re
import time
from collections import Counter

from deckbuilder.interfaces.card_index_provider import ICardIndexProvider
from deckbuilder.interfaces.embedding_provider import IEmbeddingProvider
from deckbuilder.models.card import CandidateCard, CardHit, DeckFormat
from deckbuilder.models.pipeline import RetrievalResult
from deckbuilder.utils.concurrency import parallel_search
from deckbuilder.utils.errors import DeckBuilderError, EmbeddingError, EmptyCandidatePoolError
from deckbuilder.utils.logging import get_logger

_TOKEN_SPLIT_RE = re.compile(r"[\W_]+", re.UNICODE)

_MIN_TERM_LENGTH = 4


def tokenize(text: str) -> list[str]:
    """Split on whitespace and punctuation, dropping empty tokens."""
    return [t for t in _TOKEN_SPLIT_RE.split(text) if t]


def extract_search_terms(request: str, max_terms: int = 5) -> list[str]:
    """Pick search terms out of a request.

    Keeps tokens longer than three characters, deduplicated
    case-insensitively in order of first appearance, capped at *max_terms*.

    >>> extract_search_terms("Aggressive Pirate deck with pirates and PIRATE songs")
    ['Aggressive', 'Pirate', 'deck', 'with', 'pirates']
    """
    terms: list[str] = []
    seen: set[str] = set()
    for token in tokenize(request):
        if len(token) < _MIN_TERM_LENGTH:
            continue
        key = token.lower()
        if key in seen:
            continue
        seen.add(key)
        terms.append(token)
        if len(terms) >= max_terms:
            break
    return terms


def harvest_subtype_terms(
    pool: list[CandidateCard],
    request: str,
    max_terms: int = 3,
) -> list[str]:
    """Choose subtype tags for the second retrieval wave.

    Tags that name a word of the request (singular or plural) win.  When
    none do, the most frequent tags across *pool* are used instead.  Ties
    keep first-seen order, so the result is deterministic for a given pool.
    """
    if max_terms <= 0:
        return []

    counts: Counter[str] = Counter()
    spelling: dict[str, str] = {}
    for card in pool:
        for tag in card.subtypes:
            key = tag.strip().lower()
            if not key:
                continue
            spelling.setdefault(key, tag.strip())
            counts[key] += 1

    if not counts:
        return []

    request_words = {t.lower() for t in tokenize(request)}
    first_seen = list(spelling)
    ranked = sorted(first_seen, key=lambda k: (-counts[k], first_seen.index(k)))

    matched = [
        k for k in ranked
        if k in request_words or f"{k}s" in request_words or f"{k}es" in request_words
    ]
    chosen = matched if matched else ranked
    return [spelling[k] for k in chosen[:max_terms]]


def merge_hits(result_lists: list[list[CardHit]]) -> list[CandidateCard]:
    """Flatten per-query hits into one pool; first occurrence of a name wins."""
    pool: list[CandidateCard] = []
    seen: set[str] = set()
    for hits in result_lists:
        for hit in hits:
            if hit.card.name in seen:
                continue
            seen.add(hit.card.name)
            pool.append(hit.card)
    return pool


class CardRetriever:
    """Builds the candidate pool for one deck request.

    Holds only injected providers and tuning values; every call to
    :meth:`retrieve` creates its own semaphore and result lists.
    """

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        card_index: ICardIndexProvider,
        search_limit: int = 100,
        max_search_terms: int = 5,
        max_subtype_queries: int = 3,
        concurrency: int = 5,
        timeout_seconds: float | None = 10.0,
    ) -> None:
        self._embedder = embedding_provider
        self._index = card_index
        self._search_limit = search_limit
        self._max_search_terms = max_search_terms
        self._max_subtype_queries = max_subtype_queries
        self._concurrency = max(1, concurrency)
        self._timeout = timeout_seconds
        self._logger = get_logger(__name__)

    async def retrieve(self, request: str, deck_format: DeckFormat) -> RetrievalResult:
        """Run both retrieval waves and return the merged pool.

        Raises
        ------
        EmbeddingError
            If the raw request cannot be embedded.
        EmptyCandidatePoolError
            If no query returned any card.
        """
        request_vector = await self._embed_request(request)
        vectors: dict[str, list[float]] = {request: request_vector}
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _search(query: str) -> list[CardHit]:
            vector = vectors.get(query)
            if vector is None:
                vector = await self._embedder.embed_single(query)
            return await self._index.search(vector, deck_format, limit=self._search_limit)

        # -- Wave 1: raw request + request terms --
        terms = [
            t for t in extract_search_terms(request, self._max_search_terms)
            if t.lower() != request.strip().lower()
        ]
        wave1_queries = [request, *terms]
        wave1_results, wave1_failed = await parallel_search(
            _search,
            wave1_queries,
            semaphore=semaphore,
            timeout=self._timeout,
            logger=self._logger,
        )
        wave1_pool = merge_hits(wave1_results)
        self._logger.info(
            "retrieval_wave_complete",
            wave=1,
            queries=len(wave1_queries),
            failed=wave1_failed,
            unique_cards=len(wave1_pool),
        )

        # -- Wave 2: subtype tags harvested from wave 1 --
        subtypes = harvest_subtype_terms(wave1_pool, request, self._max_subtype_queries)
        queried = {q.lower() for q in wave1_queries}
        wave2_queries = [s for s in subtypes if s.lower() not in queried]
        wave2_results: list[list[CardHit]] = []
        wave2_failed = 0
        if wave2_queries:
            wave2_results, wave2_failed = await parallel_search(
                _search,
                wave2_queries,
                semaphore=semaphore,
                timeout=self._timeout,
                logger=self._logger,
            )

        merged = merge_hits(wave1_results + wave2_results)
        now = int(time.time())
        pool = [card for card in merged if card.is_legal_in(deck_format, now)]
        dropped = len(merged) - len(pool)

        self._logger.info(
            "retrieval_complete",
            deck_format=deck_format.value,
            search_terms=terms,
            subtype_terms=subtypes,
            queries=len(wave1_queries) + len(wave2_queries),
            failed=wave1_failed + wave2_failed,
            pool_size=len(pool),
            dropped_illegal=dropped,
        )

        if not pool:
            raise EmptyCandidatePoolError(
                message=f"No candidates found for '{request}' in {deck_format.value} format"
            )

        return RetrievalResult(
            pool=pool,
            search_terms=terms,
            subtype_terms=subtypes,
            queries_issued=len(wave1_queries) + len(wave2_queries),
            queries_failed=wave1_failed + wave2_failed,
            dropped_illegal=dropped,
        )

    async def _embed_request(self, request: str) -> list[float]:
        try:
            if self._timeout is None:
                return await self._embedder.embed_single(request)
            return await asyncio.wait_for(self._embedder.embed_single(request), self._timeout)
        except EmbeddingError:
            raise
        except asyncio.TimeoutError as exc:
            raise EmbeddingError(
                message=f"Embedding the request timed out after {self._timeout:g}s",
                provider_name=self._embedder.get_provider_name(),
            ) from exc
        except DeckBuilderError as exc:
            raise EmbeddingError(
                message=f"Embedding the request failed: {exc.message}",
                provider_name=self._embedder.get_provider_name(),
            ) from exc
