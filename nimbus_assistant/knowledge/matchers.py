"""
Per-Source Matchers

One search function per dataset collection. Each scans its collection,
scores every candidate against the query and returns the single best entry
whose score strictly exceeds the threshold, or None when nothing does.
"No sufficiently similar entry" is an ordinary outcome, not an error.

Usage:
    from nimbus_assistant.knowledge.matchers import search_products

    result = search_products("Nimbus Core", dataset)
    if result:
        print(result.source, result.confidence)
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Tuple

from nimbus_assistant.knowledge.dataset import (
    CompanyProfile,
    KnowledgeDataset,
    Product,
)
from nimbus_assistant.knowledge.similarity import contains, has_any_word, normalize, score, words

# Source labels shown to the end user
PRODUCT_CATALOG = "Product Catalog"
FAQ_DATABASE = "FAQ Database"
SUPPORT_HISTORY = "Support History"
EMPLOYEE_KB = "Employee Knowledge Base"
COMPANY_INFORMATION = "Company Information"

SOURCE_LABELS = (
    PRODUCT_CATALOG,
    FAQ_DATABASE,
    SUPPORT_HISTORY,
    EMPLOYEE_KB,
    COMPANY_INFORMATION,
)

# Default thresholds (overridable via settings.knowledge)
PRODUCT_THRESHOLD = 0.4
FAQ_THRESHOLD = 0.6
TICKET_THRESHOLD = 0.6
ARTICLE_THRESHOLD = 0.6
COMPANY_THRESHOLD = 0.3

# Added to a product's score when the query names the product verbatim
PRODUCT_NAME_BOOST = 0.3

COMPANY_TRIGGER_WORDS = ("company", "about", "organization", "business", "enterprise")

# Words that carry no topic of their own in a question
QUESTION_FILLER_WORDS = frozenset((
    "a", "an", "the", "me", "us", "you", "your", "yours", "we", "our", "is", "are",
    "what", "what's", "who", "who's", "where", "when", "how", "many", "much", "which",
    "tell", "give", "show", "do", "does", "have", "has", "can", "could", "please",
    "some", "more", "of", "in", "kind", "behind", "this", "that", "information", "info",
) + COMPANY_TRIGGER_WORDS)

# Company facts a question may ask about besides the profile's own names
COMPANY_TOPIC_WORDS = frozenset((
    "clients", "customers", "headquarters", "headquartered", "located", "location",
    "founded", "history", "background", "overview", "employees", "staff", "size",
))

# Phrasings the company profile answers
COMPANY_QUESTIONS = (
    "tell me about your company",
    "tell me about the company",
    "what does your company do",
    "what is your company",
    "about your company",
    "company information",
    "what kind of business are you",
    "tell me about your organization",
    "who is behind your company",
    "what enterprise clients do you have",
)

MAX_LISTED_CLIENTS = 5


@dataclass(frozen=True)
class MatchResult:
    """
    Outcome of a knowledge-base lookup for one query.

    Attributes:
        matched: Whether a sufficiently similar entry was found
        response_text: Rendered entry text (None when not matched)
        source: Source label of the winning collection
        confidence: Similarity score in [0, 1], used for ranking only
    """
    matched: bool
    response_text: Optional[str] = None
    source: Optional[str] = None
    confidence: float = 0.0

    @property
    def confidence_percent(self) -> int:
        """Confidence rounded to the nearest whole percent, for display."""
        return int(round(self.confidence * 100))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "matched": self.matched,
            "response": self.response_text,
            "source": self.source,
            "confidence": self.confidence,
        }


NOT_FOUND = MatchResult(matched=False, response_text=None, source=None, confidence=0.0)


def _best(candidates: Iterable[Tuple[float, Any]], threshold: float) -> Optional[Tuple[float, Any]]:
    """Highest-scoring candidate strictly above threshold; earlier wins ties."""
    best_score = threshold
    best_item = None
    for candidate_score, item in candidates:
        if candidate_score > best_score:
            best_score = candidate_score
            best_item = item
    if best_item is None:
        return None
    return best_score, best_item


def format_product(product: Product) -> str:
    features = "\n".join(f"• {feature}" for feature in product.features)
    return (
        f"{product.name}: {product.description}\n\n"
        f"Features:\n{features}\n\n"
        f"Pricing:\n"
        f"• Basic: {product.pricing.basic}\n"
        f"• Pro: {product.pricing.pro}\n"
        f"• Enterprise: {product.pricing.enterprise}"
    )


def format_company(company: CompanyProfile) -> str:
    clients = list(company.clients)
    if len(clients) > MAX_LISTED_CLIENTS:
        shown = ", ".join(clients[:MAX_LISTED_CLIENTS])
        client_text = f"{shown} and {len(clients) - MAX_LISTED_CLIENTS} more"
    elif len(clients) > 1:
        client_text = f"{', '.join(clients[:-1])} and {clients[-1]}"
    else:
        client_text = clients[0] if clients else "a growing list of customers"

    article = "an" if company.industry[:1].lower() in "aeiou" else "a"
    return (
        f"{company.name} is {article} {company.industry} company headquartered in "
        f"{company.headquarters}, founded in {company.founded}, with "
        f"{company.employees} employees. Our clients include {client_text}."
    )


def search_products(
    query: str,
    dataset: KnowledgeDataset,
    threshold: float = PRODUCT_THRESHOLD
) -> Optional[MatchResult]:
    """
    Match the query against product names and descriptions.

    A product scores the better of its name and description similarity,
    plus PRODUCT_NAME_BOOST (capped at 1.0) when the query contains the
    product name.
    """
    if not normalize(query):
        return None

    def candidates():
        for product in dataset.products:
            similarity = max(score(query, product.name), score(query, product.description))
            if contains(query, product.name):
                similarity = min(1.0, similarity + PRODUCT_NAME_BOOST)
            yield similarity, product

    best = _best(candidates(), threshold)
    if best is None:
        return None
    confidence, product = best
    return MatchResult(
        matched=True,
        response_text=format_product(product),
        source=PRODUCT_CATALOG,
        confidence=confidence,
    )


def search_faqs(
    query: str,
    dataset: KnowledgeDataset,
    threshold: float = FAQ_THRESHOLD
) -> Optional[MatchResult]:
    """Match the query against FAQ questions."""
    if not normalize(query):
        return None

    best = _best(((score(query, faq.question), faq) for faq in dataset.faqs), threshold)
    if best is None:
        return None
    confidence, faq = best
    return MatchResult(
        matched=True,
        response_text=f"Question:\n{faq.question}\n\nAnswer:\n{faq.answer}",
        source=FAQ_DATABASE,
        confidence=confidence,
    )


def search_support_tickets(
    query: str,
    dataset: KnowledgeDataset,
    threshold: float = TICKET_THRESHOLD
) -> Optional[MatchResult]:
    """Match the query against the issue text of resolved tickets only."""
    if not normalize(query):
        return None

    best = _best(
        ((score(query, ticket.issue), ticket) for ticket in dataset.resolved_tickets),
        threshold,
    )
    if best is None:
        return None
    confidence, ticket = best
    return MatchResult(
        matched=True,
        response_text=(
            f"Similar Issue Found:\n"
            f"Issue: {ticket.issue}\n"
            f"Status: {ticket.status}\n"
            f"Resolution: {ticket.resolution}"
        ),
        source=SUPPORT_HISTORY,
        confidence=confidence,
    )


def search_employee_kb(
    query: str,
    dataset: KnowledgeDataset,
    threshold: float = ARTICLE_THRESHOLD
) -> Optional[MatchResult]:
    """Match the query against article topics and bodies."""
    if not normalize(query):
        return None

    best = _best(
        (
            (max(score(query, article.topic), score(query, article.details)), article)
            for article in dataset.employee_knowledge_base
        ),
        threshold,
    )
    if best is None:
        return None
    confidence, article = best
    return MatchResult(
        matched=True,
        response_text=f"{article.topic}:\n{article.details}",
        source=EMPLOYEE_KB,
        confidence=confidence,
    )


def is_company_question(query: str, company: CompanyProfile) -> bool:
    """
    True when the query mentions a trigger word and every other word is
    filler, a company fact or part of the company's name or location.
    """
    if not has_any_word(query, COMPANY_TRIGGER_WORDS):
        return False
    tokens = words(query)
    own_words = set(words(company.name)) | set(words(company.headquarters))
    allowed = QUESTION_FILLER_WORDS | COMPANY_TOPIC_WORDS | own_words
    return all(word in allowed for word in tokens)


def search_company_info(
    query: str,
    dataset: KnowledgeDataset,
    threshold: float = COMPANY_THRESHOLD
) -> Optional[MatchResult]:
    """
    Answer questions about the company itself.

    Only questions accepted by is_company_question are scored, so "tell me
    about <some other topic>" falls through to the other sources. The query
    is then compared with the canonical company questions and the company
    name.
    """
    company = dataset.company
    if not is_company_question(query, company):
        return None

    phrasings = COMPANY_QUESTIONS + (company.name, f"about {company.name}")
    confidence = max(score(query, phrase) for phrase in phrasings)
    if not confidence > threshold:
        return None

    return MatchResult(
        matched=True,
        response_text=format_company(company),
        source=COMPANY_INFORMATION,
        confidence=confidence,
    )
