"""Deck build orchestration: the deterministic pipeline and the agentic loop."""
