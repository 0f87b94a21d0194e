"""
Pytest Configuration and Fixtures

This module provides shared fixtures and configuration for all tests.
"""

import json
import os
import sys
import pytest
from pathlib import Path
from unittest.mock import MagicMock

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Set test environment
os.environ["APP_ENV"] = "test"
os.environ["GEMINI_API_KEY"] = "test-key"
os.environ["ENABLE_SESSION_STORE"] = "false"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_REQUESTS"] = "1000"


@pytest.fixture
def sample_data():
    """Small dataset covering every collection."""
    return {
        "company": {
            "name": "NimbusERP",
            "industry": "enterprise resource planning software",
            "headquarters": "Austin, Texas",
            "founded": 2012,
            "employees": "450+",
            "clients": [
                "Acme Manufacturing",
                "Brightline Logistics",
                "Cedar Health Partners",
                "Delta Retail Group",
                "Evergreen Foods",
                "Fulcrum Engineering",
                "Granite Financial",
            ],
        },
        "products": [
            {
                "name": "Nimbus Core",
                "description": "Finance and operations foundation of the suite",
                "features": ["Accounting", "General Ledger", "Financial Reporting"],
                "pricing": {
                    "basic": "$49/user/month",
                    "pro": "$89/user/month",
                    "enterprise": "Contact sales",
                },
            },
            {
                "name": "Nimbus Inventory",
                "description": "Real-time stock tracking across warehouses",
                "features": ["Barcode scanning", "Automated reorder points"],
                "pricing": {
                    "basic": "$29/user/month",
                    "pro": "$59/user/month",
                    "enterprise": "Contact sales",
                },
            },
        ],
        "faqs": [
            {
                "question": "How do I reset my password?",
                "answer": "Click 'Forgot Password' on the login page.",
            },
            {
                "question": "What are your support hours?",
                "answer": "Monday to Friday, 8am to 6pm Central Time.",
            },
        ],
        "support_tickets": [
            {
                "issue": "Payroll export fails with a date format error",
                "resolution": "Set the locale date format to ISO and re-ran the export.",
                "status": "Resolved",
            },
            {
                "issue": "Barcode scanner not recognized in warehouse app",
                "resolution": "",
                "status": "Open",
            },
        ],
        "employee_knowledge_base": [
            {
                "topic": "Release schedule",
                "details": "Minor releases ship every second Tuesday.",
            },
            {
                "topic": "Escalation process",
                "details": "Tickets unresolved after 48 hours move to tier 2.",
            },
        ],
    }


@pytest.fixture
def dataset(sample_data):
    """KnowledgeDataset built from sample_data."""
    from nimbus_assistant.knowledge.dataset import KnowledgeDataset

    return KnowledgeDataset.from_dict(sample_data)


@pytest.fixture
def dataset_file(tmp_path, sample_data):
    """sample_data written to a JSON file."""
    filepath = tmp_path / "dataset.json"
    with open(filepath, "w", encoding="utf-8") as f:
        json.dump(sample_data, f)
    return filepath


@pytest.fixture
def bundled_dataset():
    """The dataset shipped with the application."""
    from nimbus_assistant.knowledge.dataset import load_dataset

    return load_dataset(project_root / "data" / "dataset.json")


@pytest.fixture
def knowledge_base(dataset):
    from nimbus_assistant.knowledge.aggregator import KnowledgeBase

    return KnowledgeBase(dataset)


@pytest.fixture
def mock_llm_provider():
    """Mock text-generation provider."""
    provider = MagicMock()
    provider.generate.return_value = "This is a generated answer."
    return provider


@pytest.fixture
def session_store(tmp_path):
    """Session store backed by a temporary SQLite file."""
    from nimbus_assistant.store import SessionStore

    return SessionStore(url=f"sqlite:///{tmp_path / 'sessions.db'}")
