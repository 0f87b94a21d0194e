"""
Knowledge Aggregator

Runs every matcher against a query and keeps the single most confident
result. Matchers are a plain ordered list of callables; registration order
breaks confidence ties so the outcome is deterministic.

Usage:
    from nimbus_assistant.knowledge import KnowledgeBase, load_dataset

    kb = KnowledgeBase(load_dataset("data/dataset.json"))
    result = kb.search("How do I reset my password?")
    if not result.matched:
        ...  # fall back to the generation service
"""

from functools import partial
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from nimbus_assistant.knowledge.dataset import KnowledgeDataset
from nimbus_assistant.knowledge.matchers import (
    ARTICLE_THRESHOLD,
    COMPANY_THRESHOLD,
    FAQ_THRESHOLD,
    NOT_FOUND,
    PRODUCT_THRESHOLD,
    TICKET_THRESHOLD,
    MatchResult,
    search_company_info,
    search_employee_kb,
    search_faqs,
    search_products,
    search_support_tickets,
)
from nimbus_assistant.logger import get_logger

logger = get_logger(__name__)

Matcher = Callable[[str], Optional[MatchResult]]

DEFAULT_THRESHOLDS: Dict[str, float] = {
    "products": PRODUCT_THRESHOLD,
    "faqs": FAQ_THRESHOLD,
    "support_tickets": TICKET_THRESHOLD,
    "employee_knowledge_base": ARTICLE_THRESHOLD,
    "company": COMPANY_THRESHOLD,
}

# Invocation order; earlier entries win confidence ties
SOURCE_MATCHERS: Tuple[Tuple[str, Callable[..., Optional[MatchResult]]], ...] = (
    ("products", search_products),
    ("faqs", search_faqs),
    ("support_tickets", search_support_tickets),
    ("employee_knowledge_base", search_employee_kb),
    ("company", search_company_info),
)


def resolve_thresholds(overrides: Optional[Mapping[str, float]] = None) -> Dict[str, float]:
    """Merge threshold overrides into the defaults, rejecting unknown keys."""
    unknown = set(overrides or {}) - set(DEFAULT_THRESHOLDS)
    if unknown:
        raise ValueError(f"Unknown threshold keys: {sorted(unknown)}")
    return {**DEFAULT_THRESHOLDS, **(overrides or {})}


def build_matchers(
    dataset: KnowledgeDataset,
    thresholds: Optional[Mapping[str, float]] = None
) -> List[Matcher]:
    """Bind every source matcher to a dataset and its threshold, in order."""
    resolved = resolve_thresholds(thresholds)
    return [
        partial(search, dataset=dataset, threshold=resolved[name])
        for name, search in SOURCE_MATCHERS
    ]


def aggregate(query: str, matchers: Sequence[Matcher]) -> MatchResult:
    """
    Reduce the matcher results for `query` to one winner.

    Returns NOT_FOUND when no matcher reports a result. Only a strictly
    higher confidence replaces the current winner.
    """
    best: Optional[MatchResult] = None
    for matcher in matchers:
        result = matcher(query)
        if result is None:
            continue
        if best is None or result.confidence > best.confidence:
            best = result
    return best if best is not None else NOT_FOUND


class KnowledgeBase:
    """
    Read-only search handle over one KnowledgeDataset.

    Holds no per-query state, so a single instance can serve concurrent
    requests.

    Example:
        kb = KnowledgeBase(dataset, thresholds={"faqs": 0.5})
        kb.search("Nimbus Core").source   # "Product Catalog"
    """

    def __init__(
        self,
        dataset: KnowledgeDataset,
        thresholds: Optional[Mapping[str, float]] = None
    ):
        """
        Args:
            dataset: Loaded dataset to search
            thresholds: Per-source overrides keyed like DEFAULT_THRESHOLDS
        """
        self.dataset = dataset
        self.thresholds = resolve_thresholds(thresholds)
        self.matchers = build_matchers(dataset, self.thresholds)

        logger.info(f"Initialized KnowledgeBase: thresholds={self.thresholds}")

    def search(self, query: str) -> MatchResult:
        """Best match across all sources, or NOT_FOUND."""
        result = aggregate(query, self.matchers)
        if result.matched:
            logger.debug(
                f"Knowledge match for '{str(query)[:50]}': "
                f"{result.source} ({result.confidence_percent}%)"
            )
        else:
            logger.debug(f"No knowledge match for '{str(query)[:50]}'")
        return result

    def search_products(self, query: str) -> Optional[MatchResult]:
        return search_products(query, self.dataset, self.thresholds["products"])

    def search_faqs(self, query: str) -> Optional[MatchResult]:
        return search_faqs(query, self.dataset, self.thresholds["faqs"])

    def search_support_tickets(self, query: str) -> Optional[MatchResult]:
        return search_support_tickets(query, self.dataset, self.thresholds["support_tickets"])

    def search_employee_kb(self, query: str) -> Optional[MatchResult]:
        return search_employee_kb(query, self.dataset, self.thresholds["employee_knowledge_base"])

    def search_company_info(self, query: str) -> Optional[MatchResult]:
        return search_company_info(query, self.dataset, self.thresholds["company"])

    def stats(self) -> Dict[str, Any]:
        return {
            "collections": self.dataset.counts(),
            "thresholds": dict(self.thresholds),
        }


def search_knowledge(
    query: str,
    dataset: KnowledgeDataset,
    thresholds: Optional[Mapping[str, float]] = None
) -> MatchResult:
    """One-off search without keeping a KnowledgeBase around."""
    return aggregate(query, build_matchers(dataset, thresholds))
