"""Deterministic three-phase deck build.

    SEARCH    retrieve the candidate pool (two semantic waves)
    FILTER    choose the colour identity and drop off-identity cards
    ASSEMBLY  detect style, pick synergy, score, allocate, normalise
              playsets, validate and render

Each phase hands a new frozen :class:`DeckBuildState` to the next via
``model_copy``.  There is no retry inside a phase; the only recoveries
are the fallbacks inside the identity selector and synergy recommender.
Any failure that prevents a correctly sized, correctly coloured deck is
raised as a :class:`DeckBuildError` naming the phase it happened in.
"""

from __future__ import annotations

import structlog

from deckbuilder.config.deck_knowledge import ability_weights_for
from deckbuilder.models.card import CandidateCard
from deckbuilder.models.deck import ColorIdentity, DeckRequest, DeckResponse
from deckbuilder.models.pipeline import DeckBuildState, FilterResult, PipelinePhase
from deckbuilder.services.card_retriever import CardRetriever
from deckbuilder.services.card_scorer import score_pool
from deckbuilder.services.deck_allocator import DeckAllocator
from deckbuilder.services.deck_response_builder import DeckResponseBuilder
from deckbuilder.services.identity_selector import IdentitySelector
from deckbuilder.services.playset_normalizer import PlaysetNormalizer
from deckbuilder.services.synergy_recommender import SynergyRecommender, detect_style
from deckbuilder.utils.errors import DeckBuildError, DeckBuilderError
from deckbuilder.utils.logging import deck_build_context, get_logger


def filter_by_identity(
    pool: list[CandidateCard],
    identity: ColorIdentity,
) -> tuple[list[CandidateCard], list[str]]:
    """Split *pool* into colour-legal cards and the names removed."""
    legal: list[CandidateCard] = []
    removed: list[str] = []
    for card in pool:
        if identity.allows(card):
            legal.append(card)
        else:
            removed.append(card.name)
    return legal, removed


class DeckBuildPipeline:
    """Runs SEARCH, FILTER and ASSEMBLY for one request at a time.

    All services are injected.  The pipeline keeps no per-request state
    on ``self``, so one instance can serve concurrent requests.
    """

    def __init__(
        self,
        retriever: CardRetriever,
        identity_selector: IdentitySelector,
        synergy_recommender: SynergyRecommender,
        allocator: DeckAllocator,
        normalizer: PlaysetNormalizer,
        response_builder: DeckResponseBuilder,
    ) -> None:
        self._retriever = retriever
        self._identity_selector = identity_selector
        self._synergy = synergy_recommender
        self._allocator = allocator
        self._normalizer = normalizer
        self._response_builder = response_builder
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def build(self, request: DeckRequest) -> DeckResponse:
        """Build a deck for *request*.

        Raises
        ------
        DeckBuildError
            If any phase fails.  ``phase`` names the failing phase and the
            original error is chained as ``__cause__``.
        """
        with deck_build_context(
            "pipeline", request.target_size, request.deck_format.value, request.colors
        ):
            return await self._run(request)

    async def _run(self, request: DeckRequest) -> DeckResponse:
        state = DeckBuildState(request=request)
        self._logger.info("deck_build_start", request=request.request)

        state = await self._search(state)
        state = await self._filter(state)
        response = await self._assemble(state)

        self._logger.info(
            "deck_build_complete",
            total_cards=response.total_cards,
            unique_cards=len(response.cards),
            colors=response.colors,
        )
        return response

    # ------------------------------------------------------------------
    # Phase: SEARCH
    # ------------------------------------------------------------------

    async def _search(self, state: DeckBuildState) -> DeckBuildState:
        state = state.model_copy(update={"phase": PipelinePhase.SEARCH})
        request = state.request
        try:
            retrieval = await self._retriever.retrieve(request.request, request.deck_format)
        except DeckBuilderError as exc:
            raise self._phase_error(PipelinePhase.SEARCH, exc) from exc
        return state.model_copy(update={"retrieval": retrieval})

    # ------------------------------------------------------------------
    # Phase: FILTER
    # ------------------------------------------------------------------

    async def _filter(self, state: DeckBuildState) -> DeckBuildState:
        state = state.model_copy(update={"phase": PipelinePhase.FILTER})
        request = state.request
        pool = state.retrieval.pool

        try:
            identity = await self._identity_selector.select(
                pool, requested_colors=request.colors, request=request.request
            )
        except (DeckBuilderError, ValueError) as exc:
            raise self._phase_error(PipelinePhase.FILTER, exc) from exc

        legal_pool, removed = filter_by_identity(pool, identity)
        self._logger.info(
            "color_filter_complete",
            colors=identity.colors,
            kept=len(legal_pool),
            removed=len(removed),
        )
        if not legal_pool:
            raise DeckBuildError(
                message=f"No candidates match the colour identity {'/'.join(identity.colors)}",
                phase=PipelinePhase.FILTER.value,
            )

        filtering = FilterResult(identity=identity, legal_pool=legal_pool, removed_for_color=removed)
        return state.model_copy(update={"filtering": filtering})

    # ------------------------------------------------------------------
    # Phase: ASSEMBLY
    # ------------------------------------------------------------------

    async def _assemble(self, state: DeckBuildState) -> DeckResponse:
        state = state.model_copy(update={"phase": PipelinePhase.ASSEMBLY})
        request = state.request
        retrieval = state.retrieval
        legal_pool = state.filtering.legal_pool

        style = detect_style(request.request)
        synergy = await self._synergy.recommend(
            request.request,
            style,
            legal_pool,
            preferred_subtypes=retrieval.subtype_terms,
            search_terms=retrieval.search_terms,
        )
        state = state.model_copy(update={"style": style, "synergy": synergy})

        scores = score_pool(
            legal_pool,
            request.request,
            retrieval.search_terms,
            retrieval.subtype_terms,
            ability_weights_for(style),
        )

        try:
            allocation = self._allocator.allocate(
                legal_pool, scores, synergy, style, request.target_size
            )
            allocation = self._normalizer.normalize(allocation)
            return self._response_builder.build(allocation, state)
        except DeckBuilderError as exc:
            raise self._phase_error(PipelinePhase.ASSEMBLY, exc) from exc

    # ------------------------------------------------------------------

    def _phase_error(self, phase: PipelinePhase, exc: Exception) -> DeckBuildError:
        message = exc.message if isinstance(exc, DeckBuilderError) else str(exc)
        provider = exc.provider_name if isinstance(exc, DeckBuilderError) else None
        self._logger.error(
            "deck_build_failed",
            phase=phase.value,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return DeckBuildError(message=message, phase=phase.value, provider_name=provider)
