"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ──────────────────────────────────────────
#
# Configuration is resolved in layers (later layers override earlier):
#
#   1. Settings field defaults    -- declared in settings.py
#   2. config/config.yaml         -- static defaults checked into the repo
#   3. .env file / environment    -- only the variables that are actually set
#
# Every Settings field that has a YAML home is listed in _SETTINGS_KEYS.
# ``load_config`` returns the merged dict and ``resolve_settings`` turns
# it back into a validated Settings object, which is what build_services
# consumes.
#
# _deep_merge does recursive dict merging:
#   base = {"assembly": {"playset_min": 5}}
#   overrides = {"assembly": {"playset_max": 12}}
#   result = {"assembly": {"playset_min": 5, "playset_max": 12}}
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path

import yaml
from pydantic import ValidationError

from deckbuilder.config.settings import Settings
from deckbuilder.utils.errors import ConfigurationError

# Settings field -> (YAML section, YAML key)
_SETTINGS_KEYS: dict[str, tuple[str, str]] = {
    "app_host": ("app", "host"),
    "app_port": ("app", "port"),
    "app_env": ("app", "env"),
    "llm_enabled": ("llm", "enabled"),
    "llm_timeout_seconds": ("llm", "timeout_seconds"),
    "chromadb_persist_dir": ("card_index", "persist_dir"),
    "chromadb_collection": ("card_index", "collection"),
    "search_limit": ("retrieval", "search_limit"),
    "max_search_terms": ("retrieval", "max_search_terms"),
    "max_subtype_queries": ("retrieval", "max_subtype_queries"),
    "search_concurrency": ("retrieval", "concurrency"),
    "search_timeout_seconds": ("retrieval", "timeout_seconds"),
    "default_deck_size": ("assembly", "default_deck_size"),
    "synergy_max_size": ("assembly", "synergy_max_size"),
    "synergy_bonus": ("assembly", "synergy_bonus"),
    "playset_min": ("assembly", "playset_min"),
    "playset_max": ("assembly", "playset_max"),
    "inkable_min_pct": ("assembly", "inkable_min_pct"),
    "inkable_max_pct": ("assembly", "inkable_max_pct"),
    "agent_max_iterations": ("assembly", "agent_max_iterations"),
    "log_level": ("logging", "level"),
}


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge it with environment-based Settings.

    YAML values replace Settings defaults; a Settings field only wins over
    the YAML when it was set explicitly (environment, ``.env`` or keyword).

    Args:
        path: Path to the YAML configuration file.
        settings: Pre-built settings; a fresh ``Settings()`` is read otherwise.

    Returns:
        Fully resolved configuration dictionary.

    Raises:
        ConfigurationError: The file is not valid YAML or its top level
            (or one of the known sections) is not a mapping.
    """
    yaml_config = _read_yaml(Path(path))
    settings = settings or Settings()

    explicit = settings.model_fields_set
    config = _nest({field: getattr(settings, field) for field in _SETTINGS_KEYS})
    _deep_merge(config, yaml_config)
    _deep_merge(config, _nest({f: getattr(settings, f) for f in _SETTINGS_KEYS if f in explicit}))

    config["llm"]["available_providers"] = settings.get_available_llm_providers()
    return config


def resolve_settings(config: dict, settings: Settings | None = None) -> Settings:
    """Return *settings* with every YAML-backed field taken from *config*.

    Raises:
        ConfigurationError: A merged value fails Settings validation, or
            the playset bounds are inverted.
    """
    settings = settings or Settings()
    values = settings.model_dump()
    for field, (section, key) in _SETTINGS_KEYS.items():
        value = (config.get(section) or {}).get(key)
        if value is not None:
            values[field] = value

    try:
        resolved = Settings.model_validate(values)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        raise ConfigurationError(message=f"Invalid setting '{field}': {first.get('msg', '')}") from exc

    if resolved.playset_min > resolved.playset_max:
        raise ConfigurationError(
            message=f"playset_min ({resolved.playset_min}) exceeds playset_max ({resolved.playset_max})"
        )
    if resolved.inkable_min_pct > resolved.inkable_max_pct:
        raise ConfigurationError(
            message=(
                f"inkable_min_pct ({resolved.inkable_min_pct}) exceeds "
                f"inkable_max_pct ({resolved.inkable_max_pct})"
            )
        )
    return resolved


def _read_yaml(config_path: Path) -> dict:
    if not config_path.exists():
        return {}
    try:
        with open(config_path, encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(message=f"Cannot parse {config_path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ConfigurationError(message=f"{config_path} must contain a mapping at the top level")
    for section in {section for section, _ in _SETTINGS_KEYS.values()}:
        if section not in loaded:
            continue
        if loaded[section] is None:
            loaded[section] = {}
        elif not isinstance(loaded[section], dict):
            raise ConfigurationError(message=f"Section '{section}' in {config_path} must be a mapping")
    return loaded


def _nest(values: dict) -> dict:
    nested: dict = {}
    for field, value in values.items():
        section, key = _SETTINGS_KEYS[field]
        nested.setdefault(section, {})[key] = value
    return nested


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
