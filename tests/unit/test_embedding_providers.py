"""Unit tests for the OpenAI and Nomic embedding providers."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest

from deckbuilder.config.settings import Settings
from deckbuilder.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider
from deckbuilder.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from deckbuilder.utils.errors import ConfigurationError, EmbeddingError


def _embedding_response(vectors: list[list[float]]) -> MagicMock:
    response = MagicMock()
    response.data = [MagicMock(embedding=v) for v in vectors]
    response.usage = MagicMock(total_tokens=12)
    return response


class TestOpenAIEmbeddingProvider:
    @pytest.mark.asyncio
    async def test_embed_batch(self) -> None:
        mock_client = AsyncMock()
        mock_client.embeddings.create = AsyncMock(
            return_value=_embedding_response([[0.1, 0.2], [0.3, 0.4]])
        )

        with patch(
            "deckbuilder.providers.embedding.openai_embedding_provider.openai.AsyncOpenAI",
            return_value=mock_client,
        ):
            provider = OpenAIEmbeddingProvider(Settings(openai_api_key="sk-test"))
            vectors = await provider.embed(["pirates", "songs"])

        assert vectors == [[0.1, 0.2], [0.3, 0.4]]
        kwargs = mock_client.embeddings.create.call_args.kwargs
        assert kwargs["model"] == "text-embedding-3-small"
        assert kwargs["input"] == ["pirates", "songs"]

    @pytest.mark.asyncio
    async def test_embed_empty_skips_api(self) -> None:
        mock_client = AsyncMock()
        with patch(
            "deckbuilder.providers.embedding.openai_embedding_provider.openai.AsyncOpenAI",
            return_value=mock_client,
        ):
            provider = OpenAIEmbeddingProvider(Settings(openai_api_key="sk-test"))
            assert await provider.embed([]) == []
        mock_client.embeddings.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_embed_single(self) -> None:
        mock_client = AsyncMock()
        mock_client.embeddings.create = AsyncMock(return_value=_embedding_response([[0.5, 0.5]]))

        with patch(
            "deckbuilder.providers.embedding.openai_embedding_provider.openai.AsyncOpenAI",
            return_value=mock_client,
        ):
            provider = OpenAIEmbeddingProvider(Settings(openai_api_key="sk-test"))
            assert await provider.embed_single("ruby aggro") == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_api_error_becomes_embedding_error(self) -> None:
        mock_client = AsyncMock()
        mock_client.embeddings.create = AsyncMock(
            side_effect=openai.APIError(message="quota", request=MagicMock(), body=None)
        )

        with patch(
            "deckbuilder.providers.embedding.openai_embedding_provider.openai.AsyncOpenAI",
            return_value=mock_client,
        ):
            provider = OpenAIEmbeddingProvider(Settings(openai_api_key="sk-test"))
            with pytest.raises(EmbeddingError) as excinfo:
                await provider.embed_single("ruby aggro")

        assert excinfo.value.provider_name == "openai_embedding"

    def test_dimension_and_name(self) -> None:
        provider = OpenAIEmbeddingProvider(
            Settings(openai_api_key="sk-test", openai_embedding_model="text-embedding-3-large")
        )
        assert provider.get_dimension() == 3072
        assert provider.get_provider_name() == "openai_embedding"
        assert provider.is_available() is True

    def test_compatible_label(self) -> None:
        provider = OpenAIEmbeddingProvider(
            Settings(openai_api_key="sk-test", openai_base_url="https://api.together.xyz/v1")
        )
        assert provider.get_provider_name() == "openai-compatible_embedding"


_NOMIC_CLIENT = "deckbuilder.providers.embedding.nomic_embedding_provider.openai.AsyncOpenAI"
_NOMIC_GET = "deckbuilder.providers.embedding.nomic_embedding_provider.httpx.get"


def _tags(*names: str) -> MagicMock:
    response = MagicMock(status_code=200)
    response.json.return_value = {"models": [{"name": name} for name in names]}
    return response


class TestNomicEmbeddingProvider:
    @pytest.fixture()
    def provider(self) -> NomicEmbeddingProvider:
        return NomicEmbeddingProvider(Settings(ollama_base_url="http://localhost:11434/"))

    def test_metadata(self, provider: NomicEmbeddingProvider) -> None:
        assert provider.get_dimension() == 768
        assert provider.get_provider_name() == "nomic_embedding"

    @pytest.mark.parametrize(
        ("model", "dimension"),
        [("mxbai-embed-large", 1024), ("all-minilm:latest", 384), ("nomic-embed-text:v1.5", 768)],
    )
    def test_known_model_dimensions(self, model: str, dimension: int) -> None:
        provider = NomicEmbeddingProvider(Settings(ollama_embedding_model=model))
        assert provider.get_dimension() == dimension

    def test_unknown_model_needs_explicit_dimension(self) -> None:
        with pytest.raises(ConfigurationError, match="OLLAMA_EMBEDDING_DIMENSION"):
            NomicEmbeddingProvider(Settings(ollama_embedding_model="bge-m3"))

        provider = NomicEmbeddingProvider(
            Settings(ollama_embedding_model="bge-m3", ollama_embedding_dimension=1024)
        )
        assert provider.get_dimension() == 1024

    def test_is_available_when_model_is_pulled(self, provider: NomicEmbeddingProvider) -> None:
        with patch(_NOMIC_GET, return_value=_tags("llama3.1:latest", "nomic-embed-text:latest")) as mock_get:
            assert provider.is_available() is True
        assert mock_get.call_args.args[0] == "http://localhost:11434/api/tags"

    def test_is_unavailable_when_model_missing(self, provider: NomicEmbeddingProvider) -> None:
        with patch(_NOMIC_GET, return_value=_tags("llama3.1:latest")):
            assert provider.is_available() is False

    def test_is_unavailable_on_server_error(self, provider: NomicEmbeddingProvider) -> None:
        with patch(_NOMIC_GET, return_value=MagicMock(status_code=500)):
            assert provider.is_available() is False

    def test_is_unavailable_when_unreachable(self, provider: NomicEmbeddingProvider) -> None:
        with patch(_NOMIC_GET, side_effect=httpx.ConnectError("Connection refused")):
            assert provider.is_available() is False

    @pytest.mark.asyncio
    async def test_nomic_queries_get_search_prefix(self) -> None:
        mock_client = AsyncMock()
        mock_client.embeddings.create = AsyncMock(
            return_value=_embedding_response([[0.1] * 768, [0.2] * 768])
        )

        with patch(_NOMIC_CLIENT, return_value=mock_client):
            provider = NomicEmbeddingProvider(Settings())
            await provider.embed(["pirates", "search_query: songs"])

        kwargs = mock_client.embeddings.create.call_args.kwargs
        assert kwargs["input"] == ["search_query: pirates", "search_query: songs"]
        assert kwargs["model"] == "nomic-embed-text"

    @pytest.mark.asyncio
    async def test_other_models_get_no_prefix(self) -> None:
        mock_client = AsyncMock()
        mock_client.embeddings.create = AsyncMock(return_value=_embedding_response([[0.1] * 384]))

        with patch(_NOMIC_CLIENT, return_value=mock_client):
            provider = NomicEmbeddingProvider(Settings(ollama_embedding_model="all-minilm"))
            vector = await provider.embed_single("pirates")

        assert len(vector) == 384
        assert mock_client.embeddings.create.call_args.kwargs["input"] == ["pirates"]

    @pytest.mark.asyncio
    async def test_wrong_vector_size_raises(self) -> None:
        mock_client = AsyncMock()
        mock_client.embeddings.create = AsyncMock(return_value=_embedding_response([[0.1] * 1024]))

        with patch(_NOMIC_CLIENT, return_value=mock_client):
            provider = NomicEmbeddingProvider(Settings())
            with pytest.raises(EmbeddingError, match="1024-dim vector; expected 768"):
                await provider.embed_single("songs")

    @pytest.mark.asyncio
    async def test_embed_single_without_vectors_raises(self) -> None:
        mock_client = AsyncMock()
        mock_client.embeddings.create = AsyncMock(return_value=_embedding_response([]))

        with patch(_NOMIC_CLIENT, return_value=mock_client):
            provider = NomicEmbeddingProvider(Settings())
            with pytest.raises(EmbeddingError, match="0 vectors for 1 texts"):
                await provider.embed_single("songs")

    @pytest.mark.asyncio
    async def test_api_error_becomes_embedding_error(self) -> None:
        mock_client = AsyncMock()
        mock_client.embeddings.create = AsyncMock(
            side_effect=openai.APIConnectionError(request=httpx.Request("POST", "http://localhost:11434/v1"))
        )

        with patch(_NOMIC_CLIENT, return_value=mock_client):
            provider = NomicEmbeddingProvider(Settings())
            with pytest.raises(EmbeddingError, match="Ollama embedding API error"):
                await provider.embed(["songs"])
