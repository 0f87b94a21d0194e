"""
Knowledge Base Package

In-process fuzzy matching over the bundled NimbusERP dataset:
- Dataset: immutable entities and the fail-fast loader
- Similarity: the edit-distance scorer shared by every matcher
- Matchers: one search function per collection
- Aggregator: picks the most confident match across collections
- Formatter: role-aware rendering of matched text
"""

from nimbus_assistant.knowledge.dataset import (
    DatasetError,
    KnowledgeDataset,
    load_dataset,
)
from nimbus_assistant.knowledge.similarity import score
from nimbus_assistant.knowledge.matchers import (
    NOT_FOUND,
    MatchResult,
    search_company_info,
    search_employee_kb,
    search_faqs,
    search_products,
    search_support_tickets,
)
from nimbus_assistant.knowledge.aggregator import KnowledgeBase, aggregate, search_knowledge
from nimbus_assistant.knowledge.formatter import format_response

__all__ = [
    "DatasetError",
    "KnowledgeDataset",
    "load_dataset",
    "score",
    "NOT_FOUND",
    "MatchResult",
    "search_products",
    "search_faqs",
    "search_support_tickets",
    "search_employee_kb",
    "search_company_info",
    "KnowledgeBase",
    "aggregate",
    "search_knowledge",
    "format_response",
]
