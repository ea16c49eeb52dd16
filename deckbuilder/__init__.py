"""Lorcana deck builder: retrieval-driven, constraint-checked deck assembly."""

__version__ = "0.1.0"
