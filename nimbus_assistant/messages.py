"""Message lookup for user-facing text.

Holds API error strings, role-aware welcome messages and the apologies shown
when the generation service fails or times out.
"""

from __future__ import annotations

from datetime import datetime
import random
from typing import Optional, Union

from nimbus_assistant.core.llm import (
    FAILED_PRECONDITION,
    INVALID_ARGUMENT,
    PERMISSION_DENIED,
    RESOURCE_EXHAUSTED,
    GenerationError,
)
from nimbus_assistant.roles import Role, get_profile

_MESSAGES: dict[str, str] = {
    "error.rate_limited": "Too many requests. Please try again later.",
    "error.assistant_not_ready": "The assistant is starting up. Please try again in a moment.",
    "error.message_required": "Message and role are required",
    "error.session_store_disabled": "Chat history is not enabled on this server.",
    "error.session_not_found": "Chat session not found.",
    "error.text_required": "Invalid request: text is required",
    "error.tts_failed": "Text-to-speech conversion failed.",
}

_APOLOGIES: dict[Role, str] = {
    Role.TECHNICAL: (
        "I apologize, but I couldn't complete the technical analysis right now. "
        "Please try again, or open a ticket with our engineering support desk."
    ),
    Role.BUSINESS: (
        "I apologize, but I couldn't prepare that business insight right now. "
        "Please try again in a moment or reach out to your account manager."
    ),
    Role.CUSTOMER: (
        "I'm sorry, something went wrong while I was looking into that. "
        "Please try again, I'm happy to help."
    ),
}

_TIMEOUT_APOLOGIES: dict[Role, str] = {
    Role.TECHNICAL: "The analysis is taking longer than expected. Please retry your question.",
    Role.BUSINESS: "This is taking longer than expected. Please try your request again.",
    Role.CUSTOMER: "Sorry for the wait! That took too long, could you ask me again?",
}

_ERROR_CODE_MESSAGES: dict[str, str] = {
    INVALID_ARGUMENT: "I couldn't process your request due to invalid input. Please try rephrasing your question.",
    RESOURCE_EXHAUSTED: "I'm currently experiencing high demand. Please try again in a moment.",
    PERMISSION_DENIED: "I'm having trouble accessing the required services. Please contact support if this persists.",
    FAILED_PRECONDITION: "The system is currently unavailable. Please try again later.",
}

_CONFIG_ERROR = "There is an issue with the AI service configuration. Please contact support."

_WELCOME_GENERIC: tuple[str, ...] = (
    "Hi! Ask me about NimbusERP products, pricing, or support.",
    "Hello! What can I help you with in NimbusERP today?",
    "Welcome back. What would you like to know?",
)


def _greeting(now: datetime) -> str:
    if 5 <= now.hour < 12:
        return "Good morning!"
    if 12 <= now.hour < 17:
        return "Good afternoon!"
    if 17 <= now.hour < 22:
        return "Good evening!"
    return "Hello!"


def welcome_message(role: Union[str, Role, None] = None, now: Optional[datetime] = None) -> str:
    """Greeting for a new conversation; role-specific when a role is given."""
    now = now or datetime.now()
    if role:
        return f"{_greeting(now)} {get_profile(role).default_message}"
    return random.choice(_WELCOME_GENERIC)


def apology(role: Union[str, Role, None], error: Optional[BaseException] = None) -> str:
    """
    Fallback text shown when no answer could be generated.

    Args:
        role: Role of the assistant persona
        error: What went wrong; TimeoutError and GenerationError get
            tailored wording, anything else the role's generic apology
    """
    parsed = Role.parse(role)
    if isinstance(error, TimeoutError):
        return _TIMEOUT_APOLOGIES[parsed]
    if isinstance(error, GenerationError):
        if error.is_auth_error:
            return _CONFIG_ERROR
        if error.code in _ERROR_CODE_MESSAGES:
            return _ERROR_CODE_MESSAGES[error.code]
    return _APOLOGIES[parsed]


def msg(key: str, role: Union[str, Role, None] = None) -> str:
    """Return a message by key, or the key itself if not found."""
    if key == "welcome.message":
        return welcome_message(role)
    if key == "assistant.processing":
        return get_profile(role).processing_message
    return _MESSAGES.get(key, key)
