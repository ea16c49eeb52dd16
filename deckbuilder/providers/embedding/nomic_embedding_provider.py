"""Local card-search embeddings served by Ollama.

Implements :class:`IEmbeddingProvider` over Ollama's OpenAI-compatible
``/v1/embeddings`` endpoint.  The default model is ``nomic-embed-text``;
any pulled Ollama embedding model can be named via
``OLLAMA_EMBEDDING_MODEL``.

Nomic models are trained with task prefixes, so deck request search
terms are sent as ``search_query: <text>``.  The card index vectors are
expected to have been written with the matching ``search_document:``
prefix.

Every returned vector is checked against :meth:`get_dimension`, which
``build_services`` also compares with the stored card vectors at
startup, so a model swap fails loudly instead of returning nonsense
neighbours.
"""

from __future__ import annotations

import httpx
import openai
import structlog

from deckbuilder.config.settings import Settings
from deckbuilder.interfaces.embedding_provider import IEmbeddingProvider
from deckbuilder.utils.errors import ConfigurationError, EmbeddingError

logger = structlog.get_logger(logger_name=__name__)

_OLLAMA_BATCH_LIMIT = 512

# Output sizes of the embedding models commonly pulled into Ollama.
KNOWN_DIMENSIONS: dict[str, int] = {
    "nomic-embed-text": 768,
    "mxbai-embed-large": 1024,
    "all-minilm": 384,
    "snowflake-arctic-embed": 1024,
}

QUERY_PREFIX = "search_query: "


def _base_model(name: str) -> str:
    """``nomic-embed-text:latest`` -> ``nomic-embed-text``."""
    return name.split(":", 1)[0]


class NomicEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by a local Ollama embedding model."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._base_url = settings.ollama_base_url.rstrip("/")
        self._client = openai.AsyncOpenAI(
            base_url=f"{self._base_url}/v1",
            api_key="ollama",
        )
        self._model = settings.ollama_embedding_model
        dimension = settings.ollama_embedding_dimension or KNOWN_DIMENSIONS.get(
            _base_model(self._model), 0
        )
        if dimension <= 0:
            raise ConfigurationError(
                message=(
                    f"Unknown Ollama embedding model '{self._model}': "
                    "set OLLAMA_EMBEDDING_DIMENSION to its vector size"
                ),
                provider_name=self.get_provider_name(),
            )
        self._dimension = dimension
        self._prefix = QUERY_PREFIX if _base_model(self._model).startswith("nomic-embed") else ""

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed search texts, 512 per call, checking each vector's size."""
        if not texts:
            return []

        prepared = [self._with_prefix(text) for text in texts]
        all_embeddings: list[list[float]] = []
        try:
            for start in range(0, len(prepared), _OLLAMA_BATCH_LIMIT):
                batch = prepared[start : start + _OLLAMA_BATCH_LIMIT]
                response = await self._client.embeddings.create(
                    input=batch,
                    model=self._model,
                )
                vectors = [item.embedding for item in response.data]
                self._check_batch(vectors, len(batch))
                all_embeddings.extend(vectors)
                logger.debug(
                    "ollama_embedding_batch",
                    model=self._model,
                    batch_size=len(batch),
                )
        except openai.APIError as exc:
            raise EmbeddingError(
                message=f"Ollama embedding API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return all_embeddings

    async def embed_single(self, text: str) -> list[float]:
        """Embed one search text."""
        result = await self.embed([text])
        return result[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "nomic_embedding"

    def is_available(self) -> bool:
        """Return ``True`` if Ollama answers and has the model pulled."""
        if not self._base_url:
            return False
        try:
            response = httpx.get(f"{self._base_url}/api/tags", timeout=3.0)
            if response.status_code != 200:
                return False
            models = response.json().get("models") or []
        except (httpx.ConnectError, httpx.TimeoutException, ValueError):
            return False

        wanted = _base_model(self._model)
        pulled = {_base_model(str(entry.get("name", ""))) for entry in models if isinstance(entry, dict)}
        if wanted not in pulled:
            logger.warning("ollama_embedding_model_missing", model=self._model, pulled=sorted(pulled))
            return False
        return True

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _with_prefix(self, text: str) -> str:
        if not self._prefix or text.startswith(self._prefix):
            return text
        return self._prefix + text

    def _check_batch(self, vectors: list[list[float]], expected: int) -> None:
        if len(vectors) != expected:
            raise EmbeddingError(
                message=f"Ollama returned {len(vectors)} vectors for {expected} texts",
                provider_name=self.get_provider_name(),
            )
        for vector in vectors:
            if len(vector) != self._dimension:
                raise EmbeddingError(
                    message=(
                        f"Ollama model '{self._model}' returned a {len(vector)}-dim vector; "
                        f"expected {self._dimension}"
                    ),
                    provider_name=self.get_provider_name(),
                )
