"""Custom exception hierarchy for the deck builder.

All application exceptions inherit from :class:`DeckBuilderError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai", "chromadb") caused the failure.

The hierarchy is organized by pipeline phase:

    DeckBuilderError  (base -- catch-all for any deck builder error)
    +-- RAGError                  (vector-store search failure)
    |   +-- EmbeddingError        (request text could not be embedded)
    +-- EmptyCandidatePoolError   (every retrieval wave came back empty)
    +-- LLMError                  (any LLM API call failure)
    +-- ColorLegalityError        (an off-identity card reached the deck)
    +-- DeckSizeShortfallError    (not enough legal copies for the target)
    +-- DeckBuildError            (phase-tagged failure surfaced to callers)
    +-- AgentLoopError            (agentic builder gave up)
    +-- ConfigurationError        (startup / missing config)
    +-- ProviderUnavailableError  (external service down / unreachable)

Failures that only affect a single search term or a single generation call
never leave their service: they are logged and replaced by a fallback.
Everything that prevents a correctly sized, correctly coloured deck ends up
as a :class:`DeckBuildError` carrying the phase it happened in.
"""


class DeckBuilderError(Exception):
    """Base exception for all deck builder errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[openai] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Search & discovery errors
# ---------------------------------------------------------------------------

class RAGError(DeckBuilderError):
    """Raised when a vector-store operation fails."""

    def __init__(
        self,
        message: str = "Vector store operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingError(RAGError):
    """Raised when text cannot be turned into an embedding vector.

    For individual search terms this is logged and the term is dropped.
    For the raw request it aborts the build.
    """

    def __init__(
        self,
        message: str = "Embedding generation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmptyCandidatePoolError(DeckBuilderError):
    """Raised when every retrieval query returned nothing."""

    def __init__(
        self,
        message: str = "No candidates found for the request",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# External service / provider errors
# ---------------------------------------------------------------------------

class ProviderUnavailableError(DeckBuilderError):
    """Raised when an external service or provider is unreachable."""

    def __init__(
        self,
        message: str = "External service is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class LLMError(DeckBuilderError):
    """Raised when an LLM API call fails or returns an empty response."""

    def __init__(
        self,
        message: str = "LLM API call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Assembly errors
# ---------------------------------------------------------------------------

class ColorLegalityError(DeckBuilderError):
    """Raised when a card outside the chosen colour identity reaches the deck."""

    def __init__(
        self,
        message: str = "Card colours fall outside the deck identity",
        card_names: list[str] | None = None,
    ) -> None:
        self._card_names = list(card_names or [])
        super().__init__(message=message)

    @property
    def card_names(self) -> list[str]:
        return list(self._card_names)


class DeckSizeShortfallError(DeckBuilderError):
    """Raised when the legal pool cannot supply the requested deck size.

    ``shortfall`` is the exact number of copies missing.
    """

    def __init__(self, target_size: int, available: int) -> None:
        self._target_size = target_size
        self._available = available
        super().__init__(
            message=(
                f"Only {available} legal copies available for a {target_size}-card deck "
                f"(short by {target_size - available})"
            )
        )

    @property
    def target_size(self) -> int:
        return self._target_size

    @property
    def available(self) -> int:
        return self._available

    @property
    def shortfall(self) -> int:
        return self._target_size - self._available


# ---------------------------------------------------------------------------
# Orchestration / configuration errors
# ---------------------------------------------------------------------------

class DeckBuildError(DeckBuilderError):
    """Raised by the pipeline when a phase cannot produce a valid deck.

    ``phase`` names the pipeline phase (``SEARCH``, ``FILTER``,
    ``ASSEMBLY``) so callers can report where the build stopped.
    """

    def __init__(
        self,
        message: str = "Deck build failed",
        phase: str | None = None,
        provider_name: str | None = None,
    ) -> None:
        self._phase = phase
        super().__init__(message=message, provider_name=provider_name)

    @property
    def phase(self) -> str | None:
        return self._phase


class AgentLoopError(DeckBuilderError):
    """Raised when the agentic builder stops without a finalized deck."""

    def __init__(
        self,
        message: str = "Agentic deck build failed",
        iterations: int = 0,
        provider_name: str | None = None,
    ) -> None:
        self._iterations = iterations
        super().__init__(message=message, provider_name=provider_name)

    @property
    def iterations(self) -> int:
        return self._iterations


class ConfigurationError(DeckBuilderError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
