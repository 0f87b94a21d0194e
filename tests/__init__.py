"""
Test Package Initialization

Unit and integration tests for the NimbusERP assistant.

Test Structure:
- test_similarity.py / test_matchers.py / test_aggregator.py: Matching engine
- test_dataset.py: Dataset loading and validation
- test_formatter.py: Role-aware answer formatting
- test_assistant.py: Knowledge-first pipeline with generation fallback
- test_store.py: Chat session persistence
- test_api.py / test_cli.py: Outer surfaces

Run tests with:
    pytest tests/ -v
"""
