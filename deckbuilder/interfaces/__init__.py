"""Public interface definitions for all external service providers.

Every external service used by the deck builder is reached only through
the abstract base classes in this package.  Concrete adapters implement
them and are injected at startup in ``deckbuilder/main.py``, which keeps
services testable with mock providers.

CONCRETE PROVIDER MAP:
    Interface              ->  Concrete implementations (in deckbuilder/providers/)
    ─────────────────────────────────────────────────────────────────────
    ILLMProvider           ->  AnthropicLLMProvider, OpenAILLMProvider,
                               OllamaLLMProvider
    IEmbeddingProvider     ->  OpenAIEmbeddingProvider, NomicEmbeddingProvider
    ICardIndexProvider     ->  ChromaDBCardIndex
"""

from deckbuilder.interfaces.card_index_provider import ICardIndexProvider
from deckbuilder.interfaces.embedding_provider import IEmbeddingProvider
from deckbuilder.interfaces.llm_provider import ILLMProvider

__all__ = [
    "ICardIndexProvider",
    "IEmbeddingProvider",
    "ILLMProvider",
]
