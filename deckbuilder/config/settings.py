"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# Values are read from two sources (in priority order):
#
#   1. **Environment variables** -- e.g. OPENAI_API_KEY=sk-abc123
#   2. **.env file** -- key=value lines in the project root .env file
#
# Field ``openai_api_key`` maps to env var ``OPENAI_API_KEY``.
# Defaults apply when neither source sets a value.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Deck builder settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === LLM Providers ===
    # Empty string = "not configured"; the factories in main.py skip
    # providers with empty keys and fall through to the next one.
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_text_model: str = ""
    openai_embedding_model: str = ""
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    ollama_base_url: str = "http://localhost:11434"
    ollama_text_model: str = "llama3.1"
    ollama_embedding_model: str = "nomic-embed-text"
    # 0 = take the size from the known-model table in the Nomic provider.
    ollama_embedding_dimension: int = 0
    llm_enabled: bool = True
    llm_timeout_seconds: float = 25.0

    # === Card index (ChromaDB) ===
    chromadb_persist_dir: str = "./data/chromadb"
    chromadb_collection: str = "lorcana_cards"

    # === Retrieval ===
    search_limit: int = 100
    max_search_terms: int = 5
    max_subtype_queries: int = 3
    search_concurrency: int = 5
    search_timeout_seconds: float = 10.0

    # === Assembly ===
    default_deck_size: int = 60
    synergy_max_size: int = 15
    synergy_bonus: int = 10
    playset_min: int = 5
    playset_max: int = 12
    inkable_min_pct: float = 70.0
    inkable_max_pct: float = 85.0
    agent_max_iterations: int = 10

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    def get_available_llm_providers(self) -> list[str]:
        """Return a list of LLM provider names that have non-empty credentials configured."""
        providers: list[str] = []
        if self.anthropic_api_key:
            providers.append("anthropic")
        if self.openai_api_key:
            providers.append("openai")
        if self.ollama_base_url:
            providers.append("ollama")
        return providers
