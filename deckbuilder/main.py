"""Deck builder FastAPI application entry point.

Wires together providers, services, and routes via dependency injection.
Loads configuration from ``.env`` and ``config/config.yaml`` and
configures structured logging when the application is created.

``build_services`` is shared with the CLI so a command-line build uses
exactly the same wiring as the HTTP API.

Run with::

    uvicorn deckbuilder.main:create_app --factory
    python -m deckbuilder.main
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from deckbuilder import __version__
from deckbuilder.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from deckbuilder.api.routes import router as api_router
from deckbuilder.config.loader import load_config, resolve_settings
from deckbuilder.config.settings import Settings
from deckbuilder.interfaces.embedding_provider import IEmbeddingProvider
from deckbuilder.interfaces.llm_provider import ILLMProvider
from deckbuilder.pipeline.agent_loop import AgenticDeckBuilder
from deckbuilder.pipeline.deck_pipeline import DeckBuildPipeline
from deckbuilder.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider
from deckbuilder.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from deckbuilder.providers.llm.anthropic_provider import AnthropicLLMProvider
from deckbuilder.providers.llm.ollama_provider import OllamaLLMProvider
from deckbuilder.providers.llm.openai_provider import OpenAILLMProvider
from deckbuilder.providers.vector_store.chromadb_card_index import ChromaDBCardIndex
from deckbuilder.services.card_retriever import CardRetriever
from deckbuilder.services.deck_allocator import DeckAllocator
from deckbuilder.services.deck_response_builder import DeckResponseBuilder
from deckbuilder.services.identity_selector import IdentitySelector
from deckbuilder.services.playset_normalizer import PlaysetNormalizer
from deckbuilder.services.synergy_recommender import SynergyRecommender
from deckbuilder.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings
# ---------------------------------------------------------------------------

_env_settings = Settings()
config = load_config(settings=_env_settings)
settings = resolve_settings(config, _env_settings)

_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_llm_provider(app_settings: Settings) -> ILLMProvider | None:
    """Select the first configured LLM provider.

    Priority order: Anthropic -> OpenAI -> Ollama.  Returns ``None`` when
    ``LLM_ENABLED`` is false, in which case identity and synergy use their
    deterministic fallbacks and agentic builds are unavailable.
    """
    if not app_settings.llm_enabled:
        return None
    if app_settings.anthropic_api_key:
        return AnthropicLLMProvider(settings=app_settings)
    if app_settings.openai_api_key:
        return OpenAILLMProvider(settings=app_settings)
    return OllamaLLMProvider(settings=app_settings)


def _build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    """Select the embedding provider.

    Priority: OpenAI/OpenAI-compatible (if an API key is set) -> Nomic via
    Ollama.  The Nomic provider is returned even when Ollama is not
    reachable yet; requests then fail with ``EmbeddingError`` and
    ``/health`` reports the provider as unavailable.
    """
    if app_settings.openai_api_key:
        return OpenAIEmbeddingProvider(settings=app_settings)
    return NomicEmbeddingProvider(settings=app_settings)


# ---------------------------------------------------------------------------
# Full DI assembly
# ---------------------------------------------------------------------------


def build_services(app_settings: Settings) -> dict[str, Any]:
    """Construct every provider and service.

    Returns a flat dict of named components; the FastAPI lifespan stores
    them on ``app.state`` and the CLI uses them directly.
    """
    llm = _build_llm_provider(app_settings)
    embedding_provider = _build_embedding_provider(app_settings)
    card_index = ChromaDBCardIndex(
        persist_directory=app_settings.chromadb_persist_dir,
        collection_name=app_settings.chromadb_collection,
    )
    card_index.check_dimension(embedding_provider.get_dimension())

    retriever = CardRetriever(
        embedding_provider=embedding_provider,
        card_index=card_index,
        search_limit=app_settings.search_limit,
        max_search_terms=app_settings.max_search_terms,
        max_subtype_queries=app_settings.max_subtype_queries,
        concurrency=app_settings.search_concurrency,
        timeout_seconds=app_settings.search_timeout_seconds,
    )
    identity_selector = IdentitySelector(
        llm_provider=llm,
        timeout_seconds=app_settings.llm_timeout_seconds,
    )
    synergy_recommender = SynergyRecommender(
        llm_provider=llm,
        max_size=app_settings.synergy_max_size,
        timeout_seconds=app_settings.llm_timeout_seconds,
    )
    allocator = DeckAllocator(
        synergy_bonus=app_settings.synergy_bonus,
        inkable_min_pct=app_settings.inkable_min_pct,
        inkable_max_pct=app_settings.inkable_max_pct,
    )
    normalizer = PlaysetNormalizer(
        min_playsets=app_settings.playset_min,
        max_playsets=app_settings.playset_max,
    )
    response_builder = DeckResponseBuilder()

    pipeline = DeckBuildPipeline(
        retriever=retriever,
        identity_selector=identity_selector,
        synergy_recommender=synergy_recommender,
        allocator=allocator,
        normalizer=normalizer,
        response_builder=response_builder,
    )

    agent: AgenticDeckBuilder | None = None
    if llm is not None:
        agent = AgenticDeckBuilder(
            llm_provider=llm,
            embedding_provider=embedding_provider,
            card_index=card_index,
            response_builder=response_builder,
            max_iterations=app_settings.agent_max_iterations,
            timeout_seconds=app_settings.llm_timeout_seconds,
        )

    # -- Provider registry for /health --
    provider_registry: dict[str, Any] = {
        "llm": llm is not None and llm.is_available(),
        "llm_provider": llm.get_provider_name() if llm is not None else None,
        "embedding": embedding_provider.is_available(),
        "embedding_provider": embedding_provider.get_provider_name(),
        "card_index": card_index.is_available(),
    }

    return {
        "pipeline": pipeline,
        "agent": agent,
        "card_index": card_index,
        "llm": llm,
        "embedding_provider": embedding_provider,
        "provider_registry": provider_registry,
    }


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise all providers and services on startup."""
    components = build_services(settings)
    registry = components["provider_registry"]
    llm: ILLMProvider | None = components["llm"]
    if llm is not None and registry["llm"]:
        # One round-trip at startup; /health reports "degraded" on rejection.
        registry["llm"] = await llm.validate_credentials()
        if not registry["llm"]:
            _logger.warning("llm_credentials_rejected", provider=llm.get_provider_name())

    for key, value in components.items():
        setattr(application.state, key, value)

    _logger.info(
        "app_startup",
        version=__version__,
        environment=settings.app_env,
        llm=registry["llm_provider"],
        embedding=registry["embedding_provider"],
        card_index_ready=registry["card_index"],
    )

    yield

    _logger.info("app_shutdown")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    configure_logging(
        log_level=settings.log_level,
        json_output=(settings.app_env == "production"),
    )

    application = FastAPI(
        title="Lorcana Deck Builder API",
        version=__version__,
        description=(
            "Assemble a legal Disney Lorcana deck from a free-text request: "
            "semantic card search, colour identity selection, synergy picks "
            "and constrained copy allocation."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application, allowed_origins=config.get("app", {}).get("cors_origins"))

    application.include_router(api_router)
    return application


if __name__ == "__main__":
    uvicorn.run(
        "deckbuilder.main:create_app",
        factory=True,
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
