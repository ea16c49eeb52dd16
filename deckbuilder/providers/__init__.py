"""Concrete adapters for the interfaces in ``deckbuilder.interfaces``."""
