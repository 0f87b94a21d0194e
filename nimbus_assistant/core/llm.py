"""
LLM Provider Module

Client for the text-generation service the assistant falls back to when the
knowledge base has no confident answer.

Architecture:
- LLMProvider: Abstract base class defining the interface
- GeminiLLMProvider: Gemini generateContent over REST
- GenerationError: Every upstream failure, tagged with an error code

Usage:
    from nimbus_assistant.core.llm import GeminiLLMProvider, build_prompt

    llm = GeminiLLMProvider()
    text = llm.generate(build_prompt("How do I close the books?", "business"))
"""

import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Optional, Union

import requests

from nimbus_assistant.config import settings
from nimbus_assistant.logger import get_logger
from nimbus_assistant.roles import Role, get_profile

logger = get_logger(__name__)

# Error codes (mirror the API's status names where one exists)
INVALID_ARGUMENT = "INVALID_ARGUMENT"
RESOURCE_EXHAUSTED = "RESOURCE_EXHAUSTED"
PERMISSION_DENIED = "PERMISSION_DENIED"
UNAUTHENTICATED = "UNAUTHENTICATED"
FAILED_PRECONDITION = "FAILED_PRECONDITION"
NOT_FOUND = "NOT_FOUND"
EMPTY_RESPONSE = "EMPTY_RESPONSE"
NETWORK_ERROR = "NETWORK_ERROR"
UNKNOWN = "UNKNOWN"

# Longest wait honored from a Retry-After header
MAX_RETRY_AFTER = 60.0

_STATUS_BY_HTTP_CODE = {
    400: INVALID_ARGUMENT,
    401: UNAUTHENTICATED,
    403: PERMISSION_DENIED,
    404: NOT_FOUND,
    429: RESOURCE_EXHAUSTED,
}


class GenerationError(Exception):
    """
    Raised when the generation service cannot produce an answer.

    Attributes:
        code: One of the module-level error codes
        message: Detail from the service or transport layer
    """

    def __init__(self, code: str, message: str = ""):
        self.code = code
        self.message = message
        super().__init__(f"{code}: {message}" if message else code)

    @property
    def is_auth_error(self) -> bool:
        return self.code == UNAUTHENTICATED or "api key" in self.message.lower()


class LLMProvider(ABC):
    """
    Abstract base class for text-generation providers.

    Implementations either return non-empty text or raise GenerationError.
    """

    @abstractmethod
    def generate(self, prompt: str) -> str:
        """
        Generate text for a prompt.

        Args:
            prompt: Complete prompt text

        Returns:
            Generated text

        Raises:
            GenerationError: On any failure, including empty output
        """
        pass


class GeminiLLMProvider(LLMProvider):
    """
    Gemini text generation over the Generative Language REST API.

    Features:
    - Generation parameters from settings.gemini
    - Retry with exponential backoff when rate limited
    - Error responses mapped to GenerationError codes

    Example:
        llm = GeminiLLMProvider(api_key="...")
        print(llm.generate("Summarize the Nimbus Core features"))
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        url: Optional[str] = None,
        temperature: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
        max_retries: Optional[int] = None,
        request_timeout: float = 30.0
    ):
        """
        Initialize the Gemini provider.

        Args:
            api_key: API key (defaults to settings)
            model: Model name (defaults to settings)
            url: Full generateContent URL (defaults to settings)
            temperature: Sampling temperature (defaults to settings)
            max_output_tokens: Output token cap (defaults to settings)
            max_retries: Attempts when rate limited (defaults to settings)
            request_timeout: Per-request HTTP timeout in seconds
        """
        self.api_key = api_key or settings.gemini.api_key
        self.model = model or settings.gemini.model
        self.url = url or settings.gemini.generate_url
        self.temperature = temperature if temperature is not None else settings.gemini.temperature
        self.max_output_tokens = max_output_tokens or settings.gemini.max_output_tokens
        self.max_retries = max(1, max_retries if max_retries is not None else settings.gemini.max_retries)
        self.request_timeout = request_timeout

        logger.info(
            f"Initialized GeminiLLMProvider: model={self.model}, "
            f"temperature={self.temperature}, max_output_tokens={self.max_output_tokens}"
        )

    @property
    def _headers(self) -> Dict[str, str]:
        return {
            "x-goog-api-key": self.api_key,
            "Content-Type": "application/json"
        }

    def _body(self, prompt: str) -> Dict[str, Any]:
        return {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self.temperature,
                "topK": settings.gemini.top_k,
                "topP": settings.gemini.top_p,
                "maxOutputTokens": self.max_output_tokens,
            },
        }

    def generate(self, prompt: str) -> str:
        if not prompt or not isinstance(prompt, str):
            raise GenerationError(INVALID_ARGUMENT, "Prompt must be a non-empty string")
        if not self.api_key:
            raise GenerationError(UNAUTHENTICATED, "GEMINI_API_KEY is not configured")

        last_error: Optional[GenerationError] = None

        for attempt in range(self.max_retries):
            try:
                response = requests.post(
                    self.url,
                    headers=self._headers,
                    json=self._body(prompt),
                    timeout=self.request_timeout
                )
            except requests.RequestException as e:
                raise GenerationError(NETWORK_ERROR, str(e)) from e

            if response.status_code == 429:
                last_error = _error_from_response(response)
                if attempt < self.max_retries - 1:
                    retry_after = _retry_after_seconds(response.headers.get("Retry-After"), 2 ** attempt)
                    logger.warning(f"Rate limited, retrying in {retry_after}s")
                    time.sleep(retry_after)
                continue

            if not response.ok:
                raise _error_from_response(response)

            text = _extract_text(response.json())
            logger.info(f"Gemini response: prompt={len(prompt)} chars, response={len(text)} chars")
            return text

        raise last_error or GenerationError(RESOURCE_EXHAUSTED, "Rate limited")


def _retry_after_seconds(value: Optional[str], default: float) -> float:
    """
    Seconds to wait from a Retry-After header.

    Accepts delay-seconds or an HTTP date; anything unparseable gives `default`.
    """
    if not value:
        return default
    try:
        return min(MAX_RETRY_AFTER, max(0.0, float(value)))
    except ValueError:
        pass
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return default
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    return min(MAX_RETRY_AFTER, max(0.0, (retry_at - datetime.now(timezone.utc)).total_seconds()))


def _error_from_response(response: requests.Response) -> GenerationError:
    status = _STATUS_BY_HTTP_CODE.get(response.status_code, UNKNOWN)
    message = f"HTTP {response.status_code}"
    try:
        error = response.json().get("error", {})
        status = error.get("status") or status
        message = error.get("message") or message
    except ValueError:
        pass
    logger.error(f"Gemini API error: status={status}, message={message}")
    return GenerationError(status, message)


def _extract_text(data: Dict[str, Any]) -> str:
    candidates = data.get("candidates") or []
    if not candidates:
        feedback = data.get("promptFeedback", {}).get("blockReason")
        raise GenerationError(EMPTY_RESPONSE, f"No candidates returned (blockReason={feedback})")

    parts = candidates[0].get("content", {}).get("parts") or []
    text = "".join(part.get("text", "") for part in parts).strip()
    if not text:
        raise GenerationError(EMPTY_RESPONSE, "Empty text in Gemini response")
    return text


PROMPT_TEMPLATE = """You are an AI Assistant specializing in ERP systems and business solutions for NimbusERP. You're currently acting as a {title}.

Persona:
- Tone: {tone}
- Style: {style}
- Approach: {approach}
- Preferred structure: {structure}
- Keep the answer under {max_length} words

Context:
- You have access to information about our ERP system and its features
- Provide detailed, professional responses in a clear, structured way
- Include specific features and benefits when relevant

For product queries, structure your response as:
1. Brief Overview
2. Key Features
3. Benefits
4. Pricing (if applicable)
5. Next Steps

For technical queries, structure your response as:
1. Issue Analysis
2. Solution Steps
3. Technical Details
4. Prevention Tips

For general queries, provide:
1. Clear explanation
2. Relevant examples
3. Actionable recommendations

User Query: {query}

Please provide a comprehensive, role-appropriate response:"""


def build_prompt(query: str, role: Union[str, Role, None] = Role.CUSTOMER) -> str:
    """
    Build the role-aware generation prompt.

    Args:
        query: User's message
        role: Assistant role (value, title or Role)

    Returns:
        Prompt text for LLMProvider.generate
    """
    profile = get_profile(role)
    return PROMPT_TEMPLATE.format(
        title=profile.title,
        tone=profile.tone,
        style=profile.style,
        approach=profile.approach,
        structure=profile.structure,
        max_length=profile.max_length,
        query=query.strip(),
    )
