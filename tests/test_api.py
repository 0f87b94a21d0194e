"""
Tests for the FastAPI backend.

The pipeline is built from the sample dataset with a mocked generation
provider, so no request leaves the process.
"""

import pytest
from contextlib import contextmanager
from unittest.mock import patch

from fastapi.testclient import TestClient

from nimbus_assistant.assistant import AssistantPipeline


@contextmanager
def serve(pipeline):
    import api_server

    with patch.object(api_server, "create_pipeline", return_value=pipeline), \
            patch.object(api_server, "init_logging"):
        with TestClient(api_server.app) as client:
            yield client


@pytest.fixture
def client(knowledge_base, mock_llm_provider):
    with serve(AssistantPipeline(knowledge_base, mock_llm_provider)) as client:
        yield client


@pytest.fixture
def store_client(knowledge_base, mock_llm_provider, session_store):
    with serve(AssistantPipeline(knowledge_base, mock_llm_provider, store=session_store)) as client:
        yield client


class TestBasics:
    """Health, welcome and role endpoints."""

    def test_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_welcome_for_role(self, client):
        response = client.get("/api/welcome", params={"role": "customer"})

        assert response.status_code == 200
        assert response.json()["message"].endswith("How may I assist you with NimbusERP today?")

    def test_roles(self, client):
        roles = client.get("/api/roles").json()["roles"]
        assert {r["id"] for r in roles} == {"technical", "business", "customer"}

    def test_role_detail(self, client):
        response = client.get("/api/roles/Technical Support Engineer")

        assert response.status_code == 200
        assert response.json()["id"] == "technical"

    def test_unknown_role(self, client):
        assert client.get("/api/roles/pirate").status_code == 404


class TestChat:
    """Tests for POST /api/chat."""

    def test_knowledge_answer(self, client, mock_llm_provider):
        response = client.post("/api/chat", json={"message": "Nimbus Core", "role": "business"})

        assert response.status_code == 200
        data = response.json()
        assert data["source"] == "Product Catalog"
        assert data["role"] == "business"
        assert data["confidence"] >= 0.9
        assert "Accounting" in data["response"]
        mock_llm_provider.generate.assert_not_called()

    def test_generated_answer(self, client):
        response = client.post(
            "/api/chat",
            json={"message": "xyzzy_unrelated_gibberish_42", "role": "customer"},
        )

        data = response.json()
        assert data["source"] == "AI Assistant"
        assert data["confidence"] == 0.85
        assert data["response"] == "This is a generated answer."

    @pytest.mark.parametrize("payload", [
        {"role": "customer"},
        {"message": "Nimbus Core"},
        {"message": "   ", "role": "customer"},
    ])
    def test_missing_fields(self, client, payload):
        response = client.post("/api/chat", json=payload)

        assert response.status_code == 400
        assert response.json()["response"] == "Message and role are required"
        assert response.json()["source"] == "System"


class TestKnowledge:
    """Tests for the knowledge-only endpoints."""

    def test_search(self, client):
        data = client.post("/api/knowledge/search", json={"query": "How do I reset my password?"}).json()

        assert data["matched"] is True
        assert data["source"] == "FAQ Database"
        assert data["confidence_percent"] == 100

    def test_search_no_match(self, client):
        data = client.post("/api/knowledge/search", json={"query": "xyzzy_unrelated_gibberish_42"}).json()

        assert data["matched"] is False
        assert data["response"] is None
        assert data["source"] is None
        assert data["confidence"] == 0.0

    def test_stats(self, client):
        data = client.get("/api/stats").json()

        assert data["collections"]["products"] == 2
        assert data["thresholds"]["company"] == 0.3
        assert data["environment"] == "test"


class TestSessions:
    """Tests for chat history endpoints."""

    def test_store_disabled(self, client):
        assert client.post("/api/sessions", json={"user_id": "u-1"}).status_code == 404

    def test_session_flow(self, store_client):
        session = store_client.post("/api/sessions", json={"user_id": "u-1", "title": "Pricing"}).json()
        assert session["title"] == "Pricing"

        store_client.post(
            "/api/chat",
            json={"message": "Nimbus Core", "role": "business", "session_id": session["id"]},
        )

        sessions = store_client.get("/api/sessions", params={"user_id": "u-1"}).json()
        assert [s["id"] for s in sessions] == [session["id"]]

        messages = store_client.get(f"/api/sessions/{session['id']}/messages").json()
        assert [m["message_type"] for m in messages] == ["user", "ai"]
        assert messages[1]["source"] == "Product Catalog"

    def test_unknown_session(self, store_client):
        assert store_client.get("/api/sessions/missing/messages").status_code == 404


class TestSpeech:
    """Tests for the TTS and avatar helpers."""

    def test_tts_without_azure(self, client):
        data = client.post("/api/tts", json={"text": "Hello there"}).json()

        assert data["success"] is True
        assert data["text"] == "Hello there"
        assert data["voice"] == "en-US"

    def test_tts_requires_text(self, client):
        assert client.post("/api/tts", json={"text": ""}).status_code == 400

    def test_avatar(self, client):
        data = client.post("/api/avatar", json={"text": "x" * 100, "avatar_style": "technical"}).json()

        assert data["avatar_url"] == "/avatars/technical.jpg"
        assert data["speaking_duration"] == 5000

    def test_avatar_minimum_duration(self, client):
        data = client.post("/api/avatar", json={"text": "Hi", "avatar_style": "unknown"}).json()

        assert data["avatar_url"] == "/avatars/default.jpg"
        assert data["speaking_duration"] == 2000

    def test_avatar_requires_text(self, client):
        assert client.post("/api/avatar", json={}).status_code == 400


class TestRateLimit:
    """Tests for the in-memory rate limiter."""

    def test_prune_forgets_idle_clients(self):
        from api_server import RateLimitMiddleware

        limiter = RateLimitMiddleware(app=None, requests_limit=5, window_seconds=60)
        limiter.request_counts["10.0.0.1"] = [10.0, 20.0]
        limiter.request_counts["10.0.0.2"] = [20.0, 150.0]
        limiter.request_counts["10.0.0.3"] = []

        limiter._prune(cutoff_time=100.0)

        assert set(limiter.request_counts) == {"10.0.0.2"}

    @pytest.mark.asyncio
    async def test_idle_clients_dropped_on_next_request(self):
        from starlette.requests import Request
        from starlette.responses import PlainTextResponse

        from api_server import RateLimitMiddleware

        def request_from(ip):
            return Request({
                "type": "http",
                "method": "GET",
                "path": "/api/roles",
                "query_string": b"",
                "headers": [(b"x-forwarded-for", ip.encode())],
                "client": ("127.0.0.1", 5000),
            })

        async def call_next(request):
            return PlainTextResponse("ok")

        limiter = RateLimitMiddleware(app=None, requests_limit=5, window_seconds=60)
        with patch("api_server.time.time", return_value=1000.0):
            await limiter.dispatch(request_from("203.0.113.7"), call_next)
        with patch("api_server.time.time", return_value=1061.0):
            response = await limiter.dispatch(request_from("198.51.100.1"), call_next)

        assert response.status_code == 200
        assert set(limiter.request_counts) == {"198.51.100.1"}
