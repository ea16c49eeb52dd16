"""Embedding provider implementations.

    1. OpenAIEmbeddingProvider -- text-embedding-3-small (1536 dims), or an
       OpenAI-compatible model set via OPENAI_EMBEDDING_MODEL.
    2. NomicEmbeddingProvider  -- local Ollama embedding model (nomic-embed-text by default).

The query model must match the model the card index was built with.
"""

from deckbuilder.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider
from deckbuilder.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["NomicEmbeddingProvider", "OpenAIEmbeddingProvider"]
