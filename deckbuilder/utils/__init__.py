"""Utility modules for the deck builder.

- **errors** -- Exception hierarchy rooted at DeckBuilderError.
- **logging** -- structlog configuration (console in development, JSON in
  production) and the ``get_logger`` helper.
- **concurrency** -- Semaphore-bounded gather and the parallel search
  fan-out used by the card retriever.
- **json_extract** -- Never-raising JSON extraction from LLM replies.
- **names** -- Card-name normalization for matching LLM output to the index.
"""

from deckbuilder.utils.errors import (
    AgentLoopError,
    ColorLegalityError,
    ConfigurationError,
    DeckBuildError,
    DeckBuilderError,
    DeckSizeShortfallError,
    EmbeddingError,
    EmptyCandidatePoolError,
    LLMError,
    ProviderUnavailableError,
    RAGError,
)
from deckbuilder.utils.logging import configure_logging, get_logger
from deckbuilder.utils.names import normalize_name

__all__ = [
    "AgentLoopError",
    "ColorLegalityError",
    "ConfigurationError",
    "DeckBuildError",
    "DeckBuilderError",
    "DeckSizeShortfallError",
    "EmbeddingError",
    "EmptyCandidatePoolError",
    "LLMError",
    "ProviderUnavailableError",
    "RAGError",
    "configure_logging",
    "get_logger",
    "normalize_name",
]
