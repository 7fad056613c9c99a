"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import pytest
import sys
from datetime import UTC, date, datetime, timedelta
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from revision_scheduler.core.models import RevisionItem  # noqa: E402

# Monday
FIXED_NOW = datetime(2026, 3, 2, 6, 0, tzinfo=UTC)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (service over real stores)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def fixed_now() -> datetime:
    """A Monday morning, in UTC."""
    return FIXED_NOW


@pytest.fixture
def today(fixed_now) -> date:
    return fixed_now.date()


@pytest.fixture
def make_item():
    """Factory for revision items with sensible defaults."""

    def _make(item_id: str = "item-1", owner_id: str = "alice", **overrides) -> RevisionItem:
        data = {
            "item_id": item_id,
            "owner_id": owner_id,
            "subject": "Polity",
            "created_at": FIXED_NOW - timedelta(days=30),
            "updated_at": FIXED_NOW - timedelta(days=30),
        }
        data.update(overrides)
        return RevisionItem(**data)

    return _make


@pytest.fixture
def sample_review():
    """Provide a sample review event payload."""
    return {
        "self_rating": "good",
        "confidence": 3,
        "time_spent_seconds": 20,
        "hints_used": 0,
    }
