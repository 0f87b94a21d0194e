"""
NimbusERP Assistant - Source Package

A demo chat assistant for the NimbusERP product suite.

This package provides:
- Fuzzy matching of questions against the bundled knowledge base
  (products, FAQs, support history, internal articles, company profile)
- Role-aware formatting of knowledge-base answers
- Fallback to a text-generation service when nothing matches
- Chat session persistence, a CLI and a FastAPI backend
"""

__version__ = "1.0.0"

from nimbus_assistant.config import settings

__all__ = ["settings", "__version__"]
