"""
Tests for Assistant Pipeline Module

Tests the knowledge-first flow, generation fallback, timeouts and
persistence of chat messages.
"""

import time

import pytest

from nimbus_assistant.assistant import (
    AI_CONFIDENCE,
    AI_SOURCE,
    SYSTEM_SOURCE,
    AssistantPipeline,
    AssistantResponse,
    create_pipeline,
)
from nimbus_assistant.core.llm import RESOURCE_EXHAUSTED, GenerationError
from nimbus_assistant.knowledge.matchers import EMPLOYEE_KB, PRODUCT_CATALOG
from nimbus_assistant.messages import apology
from nimbus_assistant.roles import Role

GIBBERISH = "xyzzy_unrelated_gibberish_42"


@pytest.fixture
def pipeline(knowledge_base, mock_llm_provider):
    return AssistantPipeline(knowledge_base, mock_llm_provider, timeout=2.0)


class TestKnowledgeAnswers:
    """Answers served from the knowledge base."""

    @pytest.mark.asyncio
    async def test_product_match(self, pipeline, mock_llm_provider):
        answer = await pipeline.respond("Nimbus Core", role="business")

        assert answer.source == PRODUCT_CATALOG
        assert answer.kb_match is True
        assert answer.confidence >= 0.9
        assert "Accounting" in answer.response
        assert answer.role is Role.BUSINESS
        mock_llm_provider.generate.assert_not_called()

    @pytest.mark.asyncio
    async def test_plain_entry_gets_role_layout(self, pipeline):
        answer = await pipeline.respond("Release schedule", role=Role.TECHNICAL)

        assert answer.source == EMPLOYEE_KB
        assert answer.response.startswith("## Technical Overview")
        assert "Minor releases ship every second Tuesday." in answer.response

    @pytest.mark.asyncio
    async def test_empty_message(self, pipeline):
        with pytest.raises(ValueError):
            await pipeline.respond("   ")

    @pytest.mark.asyncio
    async def test_non_text_message(self, pipeline, mock_llm_provider):
        with pytest.raises(ValueError, match="Message is required"):
            await pipeline.respond(42)
        mock_llm_provider.generate.assert_not_called()

    def test_search_only(self, pipeline, mock_llm_provider):
        assert pipeline.search(GIBBERISH).matched is False
        mock_llm_provider.generate.assert_not_called()


class TestGenerationFallback:
    """Answers from the text-generation service."""

    @pytest.mark.asyncio
    async def test_generated_answer(self, pipeline, mock_llm_provider):
        answer = await pipeline.respond(GIBBERISH, role="customer")

        assert answer.response == "This is a generated answer."
        assert answer.source == AI_SOURCE
        assert answer.confidence == AI_CONFIDENCE
        assert answer.kb_match is False

        prompt = mock_llm_provider.generate.call_args.args[0]
        assert GIBBERISH in prompt
        assert "Customer Support Representative" in prompt

    @pytest.mark.asyncio
    async def test_generation_error(self, pipeline, mock_llm_provider):
        mock_llm_provider.generate.side_effect = GenerationError(RESOURCE_EXHAUSTED, "quota")

        answer = await pipeline.respond(GIBBERISH, role="technical")

        assert answer.source == SYSTEM_SOURCE
        assert answer.confidence == 0.0
        assert answer.is_fallback
        assert "high demand" in answer.response

    @pytest.mark.asyncio
    async def test_unexpected_provider_error(self, pipeline, mock_llm_provider):
        """Test an error outside the provider contract still yields a fallback."""
        mock_llm_provider.generate.side_effect = ValueError("Invalid isoformat string")

        answer = await pipeline.respond(GIBBERISH, role="customer")

        assert answer.source == SYSTEM_SOURCE
        assert answer.confidence == 0.0
        assert answer.response == apology(Role.CUSTOMER)

    @pytest.mark.asyncio
    async def test_timeout(self, knowledge_base, mock_llm_provider):
        """Test a slow generation resolves to the timeout apology."""
        mock_llm_provider.generate.side_effect = lambda prompt: time.sleep(0.5) or "late"
        pipeline = AssistantPipeline(knowledge_base, mock_llm_provider, timeout=0.05)

        answer = await pipeline.respond(GIBBERISH, role="business")

        assert answer.source == SYSTEM_SOURCE
        assert answer.confidence == 0.0
        assert "longer than expected" in answer.response


class TestPersistence:
    """Chat messages recorded in the session store."""

    @pytest.mark.asyncio
    async def test_records_exchange(self, knowledge_base, mock_llm_provider, session_store):
        session = session_store.create_chat_session("u-1", "Chat")
        pipeline = AssistantPipeline(knowledge_base, mock_llm_provider, store=session_store)

        await pipeline.respond("Nimbus Core", role="customer", session_id=session.id)

        history = session_store.get_chat_history(session.id)
        assert [m.message_type for m in history] == ["user", "ai"]
        assert history[0].content == "Nimbus Core"
        assert history[1].source == PRODUCT_CATALOG

    @pytest.mark.asyncio
    async def test_unknown_session_does_not_fail_answer(self, knowledge_base, mock_llm_provider, session_store):
        pipeline = AssistantPipeline(knowledge_base, mock_llm_provider, store=session_store)

        answer = await pipeline.respond("Nimbus Core", session_id="missing")

        assert answer.source == PRODUCT_CATALOG


class TestAssistantResponse:
    """Tests for AssistantResponse."""

    def test_to_dict(self):
        answer = AssistantResponse(response="Hi", source=AI_SOURCE, confidence=0.85, role=Role.CUSTOMER)
        data = answer.to_dict()

        assert data["role"] == "customer"
        assert data["source"] == AI_SOURCE
        assert isinstance(data["timestamp"], str)


class TestCreatePipeline:
    """Tests for create_pipeline."""

    def test_from_dataset_file(self, dataset_file, mock_llm_provider):
        pipeline = create_pipeline(llm_provider=mock_llm_provider, dataset_path=str(dataset_file))

        assert pipeline.store is None
        assert pipeline.llm_provider is mock_llm_provider
        assert pipeline.knowledge_base.dataset.counts()["products"] == 2

    def test_bad_dataset(self, tmp_path, mock_llm_provider):
        from nimbus_assistant.knowledge.dataset import DatasetError

        with pytest.raises(DatasetError):
            create_pipeline(llm_provider=mock_llm_provider, dataset_path=str(tmp_path / "missing.json"))
