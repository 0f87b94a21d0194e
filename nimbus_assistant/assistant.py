"""
Assistant Pipeline Module

Answers one chat message: the knowledge base is consulted first and the
text-generation service is only called when nothing matches. The generation
call is raced against a timeout, and any upstream failure resolves to a
role-appropriate apology instead of an exception, so a conversation never
stays stuck waiting for an answer.

Usage:
    from nimbus_assistant.assistant import AssistantPipeline

    pipeline = AssistantPipeline(knowledge_base, GeminiLLMProvider())
    answer = await pipeline.respond("What is Nimbus Core?", role="business")
    print(answer.source, answer.response)
"""

import asyncio
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Union

import requests
from sqlalchemy.exc import SQLAlchemyError

from nimbus_assistant.config import settings
from nimbus_assistant.core.llm import GeminiLLMProvider, GenerationError, LLMProvider, build_prompt
from nimbus_assistant.knowledge.aggregator import KnowledgeBase
from nimbus_assistant.knowledge.dataset import load_dataset
from nimbus_assistant.knowledge.formatter import format_response
from nimbus_assistant.knowledge.matchers import MatchResult
from nimbus_assistant.logger import get_logger
from nimbus_assistant.messages import apology
from nimbus_assistant.roles import Role
from nimbus_assistant.store import ChatMessage, SessionStore

logger = get_logger(__name__)

AI_SOURCE = "AI Assistant"
SYSTEM_SOURCE = "System"
AI_CONFIDENCE = 0.85


@dataclass
class AssistantResponse:
    """
    Answer to one chat message.

    Attributes:
        response: Display text
        source: Source label ("Product Catalog", "AI Assistant", "System", ...)
        confidence: Knowledge confidence, AI_CONFIDENCE for generated
            answers, 0 for fallbacks
        role: Role the answer was written for
        kb_match: Whether the answer came from the knowledge base
        timestamp: When the answer was produced
    """
    response: str
    source: str
    confidence: float
    role: Role
    kb_match: bool = False
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def is_fallback(self) -> bool:
        return self.source == SYSTEM_SOURCE

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["role"] = self.role.value
        data["timestamp"] = self.timestamp.isoformat()
        return data


class AssistantPipeline:
    """
    Knowledge-first chat pipeline with generation fallback.

    Flow:
    1. Search the knowledge base
    2. On a match, format the entry for the role and return it
    3. Otherwise ask the generation service, bounded by `timeout`
    4. On timeout or upstream error, return the role's apology
    5. Persist both messages when a store and session id are available
    """

    def __init__(
        self,
        knowledge_base: KnowledgeBase,
        llm_provider: LLMProvider,
        store: Optional[SessionStore] = None,
        timeout: Optional[float] = None
    ):
        """
        Args:
            knowledge_base: Search handle over the loaded dataset
            llm_provider: Text-generation fallback
            store: Optional chat session store
            timeout: Seconds to wait for generation (defaults to settings)
        """
        self.knowledge_base = knowledge_base
        self.llm_provider = llm_provider
        self.store = store
        self.timeout = timeout if timeout is not None else settings.knowledge.generation_timeout

        logger.info(
            f"Initialized AssistantPipeline: timeout={self.timeout}s, "
            f"store={'enabled' if store else 'disabled'}"
        )

    def search(self, query: str) -> MatchResult:
        """Knowledge-base lookup only, no generation."""
        return self.knowledge_base.search(query)

    async def respond(
        self,
        message: str,
        role: Union[str, Role, None] = Role.CUSTOMER,
        session_id: Optional[str] = None
    ) -> AssistantResponse:
        """
        Answer a chat message.

        Args:
            message: User's message
            role: Assistant role (value, title or Role)
            session_id: Chat session to record the exchange in

        Returns:
            AssistantResponse; upstream failures produce a fallback
            response rather than an exception

        Raises:
            ValueError: If the message is empty
        """
        if not isinstance(message, str) or not message.strip():
            raise ValueError("Message is required")

        message = message.strip()
        role = Role.parse(role)
        logger.info(f"Processing message for role={role.value}: {message[:50]}...")

        match = self.knowledge_base.search(message)
        if match.matched:
            answer = AssistantResponse(
                response=format_response(match.response_text, role, match.source),
                source=match.source,
                confidence=match.confidence,
                role=role,
                kb_match=True,
            )
        else:
            answer = await self._generate(message, role)

        if self.store and session_id:
            await asyncio.to_thread(self._record, session_id, message, answer)
        return answer

    async def _generate(self, message: str, role: Role) -> AssistantResponse:
        prompt = build_prompt(message, role)
        try:
            text = await asyncio.wait_for(
                asyncio.to_thread(self.llm_provider.generate, prompt),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Generation timed out after {self.timeout}s")
            return self._fallback(role, TimeoutError())
        except GenerationError as e:
            logger.error(f"Generation failed: {e}")
            return self._fallback(role, e)
        except requests.RequestException as e:
            logger.error(f"Generation transport error: {e}")
            return self._fallback(role, e)
        except Exception as e:
            logger.exception(f"Unexpected generation failure: {e}")
            return self._fallback(role, e)

        return AssistantResponse(
            response=text,
            source=AI_SOURCE,
            confidence=AI_CONFIDENCE,
            role=role,
        )

    @staticmethod
    def _fallback(role: Role, error: BaseException) -> AssistantResponse:
        return AssistantResponse(
            response=apology(role, error),
            source=SYSTEM_SOURCE,
            confidence=0.0,
            role=role,
        )

    def _record(self, session_id: str, message: str, answer: AssistantResponse) -> None:
        try:
            self.store.save_chat_message(ChatMessage(
                session_id=session_id,
                message_type="user",
                content=message,
            ))
            self.store.save_chat_message(ChatMessage(
                session_id=session_id,
                message_type="ai",
                content=answer.response,
                source=answer.source,
                confidence=answer.confidence,
            ))
        except (SQLAlchemyError, ValueError) as e:
            logger.error(f"Failed to save chat messages for session {session_id}: {e}")


def create_pipeline(
    llm_provider: Optional[LLMProvider] = None,
    store: Optional[SessionStore] = None,
    dataset_path: Optional[str] = None
) -> AssistantPipeline:
    """
    Build a pipeline from settings.

    Loads the dataset (failing fast on malformed data), applies the
    configured thresholds and opens the session store when enabled.

    Raises:
        DatasetError: If the dataset cannot be loaded
        ValueError: If the knowledge settings are invalid
    """
    settings.knowledge.validate()
    dataset = load_dataset(dataset_path or settings.knowledge.path)
    knowledge_base = KnowledgeBase(dataset, thresholds=settings.knowledge.thresholds)

    if store is None and settings.database.enabled:
        store = SessionStore()

    return AssistantPipeline(
        knowledge_base=knowledge_base,
        llm_provider=llm_provider or GeminiLLMProvider(),
        store=store,
    )
