"""Shared fixtures: in-memory cache, metadata store with a users table, log capture."""
import pytest

from app.core.models import ExplainRow
from app.core.result_cache import InMemoryResultCache
from app.smart_logger import SmartLogger
from app.tests.fakes import FakeMetadataStore, users_indexes, users_schema


@pytest.fixture
def cache():
    return InMemoryResultCache(max_size=100)


@pytest.fixture
def users_store():
    return FakeMetadataStore(
        schemas={"users": users_schema()},
        indexes={"users": users_indexes()},
        explain_rows=[
            ExplainRow(
                id=1,
                select_type="SIMPLE",
                table="users",
                access_type="ALL",
                estimated_rows=1000,
                filtered_percent=100.0,
            )
        ],
    )


@pytest.fixture
def log_events(monkeypatch):
    """Capture SmartLogger calls as (level, message, category, params) tuples."""
    events = []

    def _capture(level, message, category=None, params=None, max_inline_chars=100):
        events.append((level, message, category, params))

    monkeypatch.setattr(SmartLogger, "log", _capture)
    return events
