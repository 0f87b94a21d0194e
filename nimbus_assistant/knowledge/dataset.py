"""
Knowledge Dataset Module

Read-only reference data the assistant answers from: the product catalog,
FAQs, support ticket history, internal knowledge articles and the company
profile. Everything is loaded once from a single JSON file and never mutated.

Malformed entries are a configuration error: loading fails immediately with
a DatasetError naming the collection, index and field, instead of silently
skipping the entry at query time.

Usage:
    from nimbus_assistant.knowledge.dataset import load_dataset

    dataset = load_dataset("data/dataset.json")
    print(len(dataset.products))
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Tuple, Union

from nimbus_assistant.logger import get_logger

logger = get_logger(__name__)

RESOLVED = "Resolved"


class DatasetError(ValueError):
    """Raised when the knowledge dataset is missing or malformed."""


@dataclass(frozen=True)
class Pricing:
    """Price strings for each plan tier."""
    basic: str
    pro: str
    enterprise: str


@dataclass(frozen=True)
class Product:
    """
    A product in the catalog.

    Attributes:
        name: Unique product name
        description: One-line description
        features: Ordered feature names
        pricing: Per-tier price strings
    """
    name: str
    description: str
    features: Tuple[str, ...]
    pricing: Pricing


@dataclass(frozen=True)
class FAQ:
    question: str
    answer: str


@dataclass(frozen=True)
class SupportTicket:
    """A historical support ticket. Only resolved tickets are ever suggested."""
    issue: str
    resolution: str
    status: str

    @property
    def is_resolved(self) -> bool:
        return self.status == RESOLVED


@dataclass(frozen=True)
class KnowledgeArticle:
    topic: str
    details: str


@dataclass(frozen=True)
class CompanyProfile:
    """
    Singleton company record.

    Attributes:
        name: Company name
        industry: Industry description
        headquarters: Head office location
        founded: Founding year
        employees: Head count as displayed (e.g. "250" or "250+")
        clients: Client names, most notable first
    """
    name: str
    industry: str
    headquarters: str
    founded: str
    employees: str
    clients: Tuple[str, ...]


@dataclass(frozen=True)
class KnowledgeDataset:
    """
    Immutable handle over all five collections.

    Pass one instance explicitly to the matchers or to KnowledgeBase; tests
    build their own instead of sharing a process-wide copy.
    """
    products: Tuple[Product, ...]
    faqs: Tuple[FAQ, ...]
    support_tickets: Tuple[SupportTicket, ...]
    employee_knowledge_base: Tuple[KnowledgeArticle, ...]
    company: CompanyProfile

    @property
    def resolved_tickets(self) -> Tuple[SupportTicket, ...]:
        return tuple(t for t in self.support_tickets if t.is_resolved)

    def counts(self) -> Dict[str, int]:
        """Number of entries per collection."""
        return {
            "products": len(self.products),
            "faqs": len(self.faqs),
            "support_tickets": len(self.support_tickets),
            "resolved_tickets": len(self.resolved_tickets),
            "employee_knowledge_base": len(self.employee_knowledge_base),
            "company_clients": len(self.company.clients),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "KnowledgeDataset":
        """
        Build a dataset from parsed JSON.

        Raises:
            DatasetError: If a collection or a required field is missing,
                a field has the wrong type, or product names repeat
        """
        if not isinstance(data, Mapping):
            raise DatasetError("Dataset root must be a JSON object")

        products = tuple(
            _parse_product(item, f"products[{i}]")
            for i, item in enumerate(_collection(data, "products"))
        )
        seen = set()
        for product in products:
            key = product.name.lower()
            if key in seen:
                raise DatasetError(f"products: duplicate product name '{product.name}'")
            seen.add(key)

        faqs = tuple(
            FAQ(
                question=_text(item, "question", f"faqs[{i}]"),
                answer=_text(item, "answer", f"faqs[{i}]"),
            )
            for i, item in enumerate(_collection(data, "faqs"))
        )
        tickets = tuple(
            SupportTicket(
                issue=_text(item, "issue", f"support_tickets[{i}]"),
                resolution=_text(item, "resolution", f"support_tickets[{i}]", allow_empty=True),
                status=_text(item, "status", f"support_tickets[{i}]"),
            )
            for i, item in enumerate(_collection(data, "support_tickets"))
        )
        articles = tuple(
            KnowledgeArticle(
                topic=_text(item, "topic", f"employee_knowledge_base[{i}]"),
                details=_text(item, "details", f"employee_knowledge_base[{i}]"),
            )
            for i, item in enumerate(_collection(data, "employee_knowledge_base"))
        )
        company = _parse_company(data.get("company"))

        return cls(
            products=products,
            faqs=faqs,
            support_tickets=tickets,
            employee_knowledge_base=articles,
            company=company,
        )


def load_dataset(path: Union[str, Path]) -> KnowledgeDataset:
    """
    Load and validate the dataset file.

    Args:
        path: Location of the JSON dataset

    Returns:
        KnowledgeDataset ready for matching

    Raises:
        DatasetError: If the file is missing, is not valid JSON, or any
            entry is malformed
    """
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as f:
            raw = json.load(f)
    except FileNotFoundError as e:
        raise DatasetError(f"Dataset file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise DatasetError(f"Dataset file {path} is not valid JSON: {e}") from e

    dataset = KnowledgeDataset.from_dict(raw)
    logger.info(f"Loaded knowledge dataset from {path}: {dataset.counts()}")
    return dataset


def _collection(data: Mapping[str, Any], key: str) -> List[Mapping[str, Any]]:
    items = data.get(key)
    if not isinstance(items, list):
        raise DatasetError(f"Dataset is missing the '{key}' list")
    for i, item in enumerate(items):
        if not isinstance(item, Mapping):
            raise DatasetError(f"{key}[{i}]: entry must be an object")
    return items


def _text(item: Mapping[str, Any], key: str, where: str, allow_empty: bool = False) -> str:
    if key not in item:
        raise DatasetError(f"{where}: missing field '{key}'")
    value = item[key]
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise DatasetError(f"{where}: field '{key}' must be text")
    value = str(value).strip()
    if not value and not allow_empty:
        raise DatasetError(f"{where}: field '{key}' must not be empty")
    return value


def _parse_product(item: Mapping[str, Any], where: str) -> Product:
    features = item.get("features")
    if not isinstance(features, list) or not all(isinstance(f, str) for f in features):
        raise DatasetError(f"{where}: field 'features' must be a list of strings")

    pricing = item.get("pricing")
    if not isinstance(pricing, Mapping):
        raise DatasetError(f"{where}: missing field 'pricing'")

    return Product(
        name=_text(item, "name", where),
        description=_text(item, "description", where),
        features=tuple(f.strip() for f in features if f.strip()),
        pricing=Pricing(
            basic=_text(pricing, "basic", f"{where}.pricing"),
            pro=_text(pricing, "pro", f"{where}.pricing"),
            enterprise=_text(pricing, "enterprise", f"{where}.pricing"),
        ),
    )


def _parse_company(item: Any) -> CompanyProfile:
    if not isinstance(item, Mapping):
        raise DatasetError("Dataset is missing the 'company' object")

    clients = item.get("clients")
    if not isinstance(clients, list) or not all(isinstance(c, str) for c in clients):
        raise DatasetError("company: field 'clients' must be a list of strings")

    return CompanyProfile(
        name=_text(item, "name", "company"),
        industry=_text(item, "industry", "company"),
        headquarters=_text(item, "headquarters", "company"),
        founded=_text(item, "founded", "company"),
        employees=_text(item, "employees", "company"),
        clients=tuple(c.strip() for c in clients if c.strip()),
    )
