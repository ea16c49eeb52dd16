"""Configuration module -- exports Settings and the YAML/env resolution helpers."""

from deckbuilder.config.loader import load_config, resolve_settings
from deckbuilder.config.settings import Settings

__all__ = ["Settings", "load_config", "resolve_settings"]
