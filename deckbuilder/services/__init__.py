"""Deck building services: retrieval, identity, scoring, synergy, allocation."""
