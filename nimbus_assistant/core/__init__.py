"""
Core Module Package

Integrations with external services. Currently the text-generation client
used when the knowledge base cannot answer a question.
"""

from nimbus_assistant.core.llm import (
    LLMProvider,
    GeminiLLMProvider,
    GenerationError,
    build_prompt,
)

__all__ = [
    "LLMProvider",
    "GeminiLLMProvider",
    "GenerationError",
    "build_prompt",
]
