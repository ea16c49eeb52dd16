"""Deck builder API layer: routes, schemas, and middleware."""

from deckbuilder.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from deckbuilder.api.routes import router
from deckbuilder.api.schemas import (
    DeckBuildRequest,
    DeckBuildResponse,
    DeckCardResponse,
    ErrorResponse,
    HealthResponse,
)

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "configure_cors",
    "router",
    "DeckBuildRequest",
    "DeckBuildResponse",
    "DeckCardResponse",
    "ErrorResponse",
    "HealthResponse",
]
