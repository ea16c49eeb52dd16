"""Integration tests for FastAPI API endpoints using TestClient.

The app comes from ``create_app()`` so the real middleware stack is in
place; the lifespan is skipped and ``app.state`` is filled with mocks.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
import structlog
from fastapi.testclient import TestClient

from deckbuilder.main import create_app
from deckbuilder.models.deck import DeckCardEntry, DeckRequest, DeckResponse, DeckStyle
from deckbuilder.pipeline.agent_loop import AgenticDeckBuilder
from deckbuilder.pipeline.deck_pipeline import DeckBuildPipeline
from deckbuilder.utils.errors import AgentLoopError, DeckBuildError, RAGError


def _deck() -> DeckResponse:
    return DeckResponse(
        cards=[
            DeckCardEntry(name="Ruby One", count=4, inkable=True, color="Ruby", cost=1),
            DeckCardEntry(name="Steel Two", count=4, inkable=True, color="Steel", cost=2, subtypes=["Pirate"]),
        ],
        explanation="Colours: Ruby/Steel (as requested).",
        colors=["Ruby", "Steel"],
        style=DeckStyle.MIDRANGE,
    )


def _registry(**overrides) -> dict:
    registry = {
        "llm": True,
        "llm_provider": "openai",
        "embedding": True,
        "embedding_provider": "openai_embedding",
        "card_index": True,
    }
    registry.update(overrides)
    return registry


@pytest.fixture
def test_app():
    app = create_app()

    pipeline = MagicMock(spec=DeckBuildPipeline)
    pipeline.build = AsyncMock(return_value=_deck())
    agent = MagicMock(spec=AgenticDeckBuilder)
    agent.build = AsyncMock(return_value=_deck())
    card_index = MagicMock()
    card_index.count.return_value = 1200

    app.state.pipeline = pipeline
    app.state.agent = agent
    app.state.card_index = card_index
    app.state.provider_registry = _registry()

    return app


@pytest.fixture
def client(test_app) -> TestClient:
    return TestClient(test_app)


class TestDeckEndpoint:
    def test_build_deck(self, test_app, client) -> None:
        response = client.post(
            "/api/v1/deck",
            json={"request": "ruby steel pirates", "deck_size": 8, "colors": ["Ruby", "Steel"]},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["total_cards"] == 8
        assert body["colors"] == ["Ruby", "Steel"]
        assert body["style"] == "midrange"
        assert body["cards"][1]["subtypes"] == ["Pirate"]

        request: DeckRequest = test_app.state.pipeline.build.await_args.args[0]
        assert request.target_size == 8
        assert request.deck_format.value == "core"

    def test_defaults(self, test_app, client) -> None:
        response = client.post("/api/v1/deck", json={"request": "songs", "format": "Infinity"})

        assert response.status_code == 200
        request: DeckRequest = test_app.state.pipeline.build.await_args.args[0]
        assert request.target_size == 60
        assert request.colors == []
        assert request.deck_format.value == "infinity"

    def test_build_error_is_422_with_phase(self, test_app, client) -> None:
        test_app.state.pipeline.build = AsyncMock(
            side_effect=DeckBuildError(message="Only 40 legal copies", phase="ASSEMBLY")
        )

        response = client.post("/api/v1/deck", json={"request": "ruby"})

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "DeckBuildError"
        assert body["phase"] == "ASSEMBLY"
        assert "Only 40 legal copies" in body["detail"]

    def test_provider_error_is_502(self, test_app, client) -> None:
        test_app.state.pipeline.build = AsyncMock(
            side_effect=RAGError(message="index unreachable", provider_name="chromadb")
        )

        response = client.post("/api/v1/deck", json={"request": "ruby"})

        assert response.status_code == 502
        body = response.json()
        assert body["error"] == "RAGError"
        assert body["detail"] == "[chromadb] index unreachable"
        assert body["phase"] is None

    @pytest.mark.parametrize(
        "payload",
        [
            {"request": "x", "colors": ["Ruby", "Steel", "Amber"]},
            {"request": "x", "format": "standard"},
            {"request": "", "deck_size": 60},
            {"request": "x", "deck_size": 0},
        ],
    )
    def test_invalid_body_is_rejected(self, test_app, client, payload) -> None:
        response = client.post("/api/v1/deck", json=payload)

        assert response.status_code == 422
        test_app.state.pipeline.build.assert_not_awaited()


class TestAgenticEndpoint:
    def test_agentic_build(self, test_app, client) -> None:
        response = client.post("/api/v1/deck/agentic", json={"request": "songs", "deck_size": 8})

        assert response.status_code == 200
        assert response.json()["total_cards"] == 8
        test_app.state.agent.build.assert_awaited_once()
        test_app.state.pipeline.build.assert_not_awaited()

    def test_agent_failure_is_422(self, test_app, client) -> None:
        test_app.state.agent.build = AsyncMock(
            side_effect=AgentLoopError(message="No finalized deck after 10 iterations", iterations=10)
        )

        response = client.post("/api/v1/deck/agentic", json={"request": "songs"})

        assert response.status_code == 422
        assert response.json()["error"] == "AgentLoopError"

    def test_without_llm_is_503(self, test_app, client) -> None:
        test_app.state.agent = None

        response = client.post("/api/v1/deck/agentic", json={"request": "songs"})

        assert response.status_code == 503


class TestHealthEndpoint:
    def test_healthy(self, client) -> None:
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["providers"]["card_index_cards"] == 1200
        assert body["providers"]["llm_provider"] == "openai"
        assert body["version"]

    def test_degraded_without_llm(self, test_app, client) -> None:
        test_app.state.provider_registry = _registry(llm=False, llm_provider=None)
        assert client.get("/api/v1/health").json()["status"] == "degraded"

    def test_degraded_with_empty_index(self, test_app, client) -> None:
        test_app.state.card_index.count.return_value = 0
        assert client.get("/api/v1/health").json()["status"] == "degraded"

    def test_unhealthy_without_embedding(self, test_app, client) -> None:
        test_app.state.provider_registry = _registry(embedding=False)
        assert client.get("/api/v1/health").json()["status"] == "unhealthy"

    def test_count_failure_reports_zero(self, test_app, client) -> None:
        test_app.state.card_index.count.side_effect = RuntimeError("sqlite locked")
        body = client.get("/api/v1/health").json()
        assert body["providers"]["card_index_cards"] == 0
        assert body["status"] == "degraded"


class TestRequestId:
    def test_caller_request_id_is_echoed(self, client) -> None:
        response = client.get("/api/v1/health", headers={"X-Request-ID": "abc-123"})
        assert response.headers["X-Request-ID"] == "abc-123"

    def test_request_id_is_generated(self, client) -> None:
        first = client.get("/api/v1/health").headers["X-Request-ID"]
        second = client.get("/api/v1/health").headers["X-Request-ID"]
        assert len(first) == 12
        assert first != second

    def test_request_id_is_bound_during_build(self, test_app, client) -> None:
        seen: dict = {}

        async def build(request):
            seen.update(structlog.contextvars.get_contextvars())
            return _deck()

        test_app.state.pipeline.build = AsyncMock(side_effect=build)

        client.post("/api/v1/deck", json={"request": "songs"}, headers={"X-Request-ID": "deck-7"})

        assert seen["request_id"] == "deck-7"
        assert "request_id" not in structlog.contextvars.get_contextvars()

    def test_error_response_carries_request_id(self, test_app, client) -> None:
        test_app.state.pipeline.build = AsyncMock(side_effect=RAGError(message="index down"))

        response = client.post("/api/v1/deck", json={"request": "songs"}, headers={"X-Request-ID": "r-9"})

        assert response.status_code == 502
        assert response.headers["X-Request-ID"] == "r-9"
