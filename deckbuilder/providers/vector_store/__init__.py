"""Card index implementations.

ChromaDB is the only backend.  Data persists at CHROMADB_PERSIST_DIR in the
collection named by CHROMADB_COLLECTION (default ``lorcana_cards``).
"""

from deckbuilder.providers.vector_store.chromadb_card_index import ChromaDBCardIndex

__all__ = ["ChromaDBCardIndex"]
