"""
Tests for LLM Provider Module

Tests the Gemini provider with requests.post mocked out.
"""

import pytest
import requests
from unittest.mock import MagicMock, patch

from nimbus_assistant.core.llm import (
    EMPTY_RESPONSE,
    INVALID_ARGUMENT,
    MAX_RETRY_AFTER,
    NETWORK_ERROR,
    PERMISSION_DENIED,
    RESOURCE_EXHAUSTED,
    UNAUTHENTICATED,
    GeminiLLMProvider,
    GenerationError,
    build_prompt,
    _retry_after_seconds,
)
from nimbus_assistant.roles import Role


def make_response(status_code=200, payload=None, headers=None):
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.headers = headers or {}
    response.json.return_value = payload if payload is not None else {}
    return response


def candidate(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


@pytest.fixture
def provider():
    return GeminiLLMProvider(
        api_key="test-key",
        model="gemini-test",
        url="https://api.test/models/gemini-test:generateContent",
        max_retries=2,
    )


class TestGenerate:
    """Tests for GeminiLLMProvider.generate."""

    def test_success(self, provider):
        with patch("nimbus_assistant.core.llm.requests.post") as post:
            post.return_value = make_response(payload=candidate("  Generated answer  "))

            text = provider.generate("Hello")

        assert text == "Generated answer"
        kwargs = post.call_args.kwargs
        assert kwargs["headers"]["x-goog-api-key"] == "test-key"
        assert kwargs["json"]["contents"][0]["parts"][0]["text"] == "Hello"
        assert "maxOutputTokens" in kwargs["json"]["generationConfig"]

    def test_joins_parts(self, provider):
        payload = {"candidates": [{"content": {"parts": [{"text": "Part one. "}, {"text": "Part two."}]}}]}
        with patch("nimbus_assistant.core.llm.requests.post", return_value=make_response(payload=payload)):
            assert provider.generate("Hello") == "Part one. Part two."

    def test_empty_prompt(self, provider):
        with pytest.raises(GenerationError) as exc:
            provider.generate("")
        assert exc.value.code == INVALID_ARGUMENT

    def test_missing_api_key(self):
        provider = GeminiLLMProvider(api_key="", url="https://api.test")
        provider.api_key = ""

        with pytest.raises(GenerationError) as exc:
            provider.generate("Hello")
        assert exc.value.code == UNAUTHENTICATED
        assert exc.value.is_auth_error

    def test_empty_candidates(self, provider):
        payload = {"candidates": [], "promptFeedback": {"blockReason": "SAFETY"}}
        with patch("nimbus_assistant.core.llm.requests.post", return_value=make_response(payload=payload)):
            with pytest.raises(GenerationError) as exc:
                provider.generate("Hello")
        assert exc.value.code == EMPTY_RESPONSE

    def test_error_status_mapped(self, provider):
        payload = {"error": {"status": "PERMISSION_DENIED", "message": "Caller lacks permission"}}
        with patch("nimbus_assistant.core.llm.requests.post", return_value=make_response(403, payload)):
            with pytest.raises(GenerationError) as exc:
                provider.generate("Hello")
        assert exc.value.code == PERMISSION_DENIED
        assert exc.value.message == "Caller lacks permission"

    def test_api_key_message_is_auth_error(self, provider):
        payload = {"error": {"status": "INVALID_ARGUMENT", "message": "API key not valid."}}
        with patch("nimbus_assistant.core.llm.requests.post", return_value=make_response(400, payload)):
            with pytest.raises(GenerationError) as exc:
                provider.generate("Hello")
        assert exc.value.is_auth_error

    def test_network_error(self, provider):
        with patch(
            "nimbus_assistant.core.llm.requests.post",
            side_effect=requests.ConnectionError("connection refused"),
        ):
            with pytest.raises(GenerationError) as exc:
                provider.generate("Hello")
        assert exc.value.code == NETWORK_ERROR

    def test_rate_limit_retry(self, provider):
        """Test a 429 is retried after Retry-After."""
        responses = [
            make_response(429, headers={"Retry-After": "0"}),
            make_response(payload=candidate("After retry")),
        ]
        with patch("nimbus_assistant.core.llm.requests.post", side_effect=responses) as post, \
                patch("nimbus_assistant.core.llm.time.sleep") as sleep:
            assert provider.generate("Hello") == "After retry"

        assert post.call_count == 2
        sleep.assert_called_once_with(0)

    def test_rate_limit_exhausted(self, provider):
        with patch(
            "nimbus_assistant.core.llm.requests.post",
            return_value=make_response(429, headers={"Retry-After": "0"}),
        ), patch("nimbus_assistant.core.llm.time.sleep"):
            with pytest.raises(GenerationError) as exc:
                provider.generate("Hello")
        assert exc.value.code == RESOURCE_EXHAUSTED

    def test_rate_limit_http_date(self, provider):
        """Test a Retry-After given as an HTTP date is honoured, within the cap."""
        responses = [
            make_response(429, headers={"Retry-After": "Wed, 21 Oct 2026 07:28:00 GMT"}),
            make_response(payload=candidate("After retry")),
        ]
        with patch("nimbus_assistant.core.llm.requests.post", side_effect=responses), \
                patch("nimbus_assistant.core.llm.time.sleep") as sleep:
            assert provider.generate("Hello") == "After retry"

        delay = sleep.call_args.args[0]
        assert 0.0 <= delay <= MAX_RETRY_AFTER


class TestRetryAfter:
    """Tests for Retry-After parsing."""

    def test_seconds(self):
        assert _retry_after_seconds("3", 1) == 3.0

    def test_missing_uses_default(self):
        assert _retry_after_seconds(None, 4) == 4
        assert _retry_after_seconds("", 4) == 4

    def test_garbage_uses_default(self):
        assert _retry_after_seconds("soon", 4) == 4

    def test_past_date(self):
        assert _retry_after_seconds("Sun, 06 Nov 1994 08:49:37 GMT", 4) == 0.0

    def test_capped(self):
        assert _retry_after_seconds("86400", 1) == MAX_RETRY_AFTER
        assert _retry_after_seconds("Fri, 31 Dec 9999 23:59:59 GMT", 1) == MAX_RETRY_AFTER

    def test_negative_seconds(self):
        assert _retry_after_seconds("-5", 1) == 0.0


class TestBuildPrompt:
    """Tests for the role-aware prompt."""

    def test_contains_role_and_query(self):
        prompt = build_prompt("  How do I close the books?  ", Role.BUSINESS)

        assert "Business Support Specialist" in prompt
        assert "Professional and strategic" in prompt
        assert "under 300 words" in prompt
        assert "User Query: How do I close the books?" in prompt

    def test_unknown_role(self):
        assert "Customer Support Representative" in build_prompt("Hi", "pirate")
