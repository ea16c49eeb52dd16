"""LLM provider adapters.

Three concrete implementations of ILLMProvider (deckbuilder/interfaces/llm_provider.py):
    - AnthropicLLMProvider -- Claude via the Messages API
    - OpenAILLMProvider    -- gpt-4o-mini, or any OpenAI-compatible API
    - OllamaLLMProvider    -- local models via an Ollama server

main.py picks the first configured one (Anthropic, then OpenAI, then Ollama).
"""

from deckbuilder.providers.llm.anthropic_provider import AnthropicLLMProvider
from deckbuilder.providers.llm.ollama_provider import OllamaLLMProvider
from deckbuilder.providers.llm.openai_provider import OpenAILLMProvider

__all__ = ["AnthropicLLMProvider", "OllamaLLMProvider", "OpenAILLMProvider"]
