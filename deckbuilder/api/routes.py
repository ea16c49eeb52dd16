"""FastAPI routes for the deck builder.

Service dependencies are resolved from ``app.state`` via FastAPI's
``Depends`` using the ``Annotated`` pattern.

# ─── API ROUTE MAP ────────────────────────────────────────────────────
#
# Endpoint                 Method  Description
# ─────────────────────────────────────────────────────────────────────
# /api/v1/deck             POST    Deterministic three-phase build
# /api/v1/deck/agentic     POST    LLM-driven agent loop build
# /api/v1/health           GET     Health check + provider status
#
# Errors raised by the engine propagate to ErrorHandlingMiddleware,
# which renders them as ErrorResponse bodies.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request

from deckbuilder import __version__
from deckbuilder.api.schemas import DeckBuildRequest, DeckBuildResponse, ErrorResponse, HealthResponse
from deckbuilder.pipeline.agent_loop import AgenticDeckBuilder
from deckbuilder.pipeline.deck_pipeline import DeckBuildPipeline
from deckbuilder.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    422: {"model": ErrorResponse, "description": "The deck could not be built"},
    502: {"model": ErrorResponse, "description": "An external provider failed"},
}


def _get_pipeline(request: Request) -> DeckBuildPipeline:
    """Return the deterministic pipeline from application state."""
    return request.app.state.pipeline


def _get_agent(request: Request) -> AgenticDeckBuilder | None:
    """Return the agentic builder, or ``None`` when no LLM is configured."""
    return getattr(request.app.state, "agent", None)


PipelineDep = Annotated[DeckBuildPipeline, Depends(_get_pipeline)]
AgentDep = Annotated[AgenticDeckBuilder | None, Depends(_get_agent)]


@router.post(
    "/deck",
    response_model=DeckBuildResponse,
    responses=_ERROR_RESPONSES,
    summary="Build a deck from a free-text request",
)
async def build_deck(body: DeckBuildRequest, pipeline: PipelineDep) -> DeckBuildResponse:
    """Run search, colour filtering and assembly and return the deck."""
    _logger.info("deck_request_received", request=body.request, deck_size=body.deck_size)
    deck = await pipeline.build(body.to_deck_request())
    return DeckBuildResponse.from_deck(deck)


@router.post(
    "/deck/agentic",
    response_model=DeckBuildResponse,
    responses={**_ERROR_RESPONSES, 503: {"model": ErrorResponse}},
    summary="Build a deck with the LLM agent loop",
)
async def build_deck_agentic(body: DeckBuildRequest, agent: AgentDep) -> DeckBuildResponse:
    """Let the LLM agent search and add cards until it finalizes a deck."""
    if agent is None:
        raise HTTPException(status_code=503, detail="Agentic builds need an LLM provider")
    _logger.info("agentic_deck_request_received", request=body.request, deck_size=body.deck_size)
    deck = await agent.build(body.to_deck_request())
    return DeckBuildResponse.from_deck(deck)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Application health check",
)
async def health_check(request: Request) -> HealthResponse:
    """Return application health, version, and provider availability."""
    providers: dict[str, Any] = dict(getattr(request.app.state, "provider_registry", {}))

    card_index = getattr(request.app.state, "card_index", None)
    if card_index is not None:
        try:
            providers["card_index_cards"] = card_index.count()
        except Exception as exc:  # noqa: BLE001
            _logger.warning("health_card_count_failed", error=str(exc))
            providers["card_index_cards"] = 0

    critical_ok = bool(providers.get("embedding")) and bool(providers.get("card_index"))
    if critical_ok and providers.get("card_index_cards", 0) > 0 and providers.get("llm"):
        status = "healthy"
    elif critical_ok:
        status = "degraded"
    else:
        status = "unhealthy"

    return HealthResponse(status=status, version=__version__, providers=providers)
