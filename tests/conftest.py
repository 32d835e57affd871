"""Shared pytest fixtures and configuration."""

import os
import pytest
from unittest.mock import MagicMock
from freezegun import freeze_time

# Set test environment variables
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("STAGE_TASK_ESTIMATED_HOURS", "4")
os.environ.setdefault("STAGE_TAG_PREFIX", "stage:")

from tests.utils.factories import create_deal_row  # noqa: E402
from tests.utils.fake_supabase import FakeSupabase  # noqa: E402


@pytest.fixture
def fake_db(monkeypatch):
    """In-memory Supabase stand-in installed as the client singleton."""
    db = FakeSupabase()
    monkeypatch.setattr("src.services.supabase_client._client", db)
    return db


@pytest.fixture
def mock_supabase_client():
    """Mock Supabase client for testing."""
    client = MagicMock()
    client.table = MagicMock(return_value=MagicMock())
    return client


@pytest.fixture
def residential_deal(fake_db):
    """A stored residential rental deal without stages."""
    row = create_deal_row(
        "residential_rental",
        project_name="Palm Grove 4B",
        start_date="2024-01-01",
        end_date="2024-01-08",
    )
    fake_db.seed("deals", row)
    return row


@pytest.fixture
def builder_deal(fake_db):
    """A stored builder deal without stages."""
    row = create_deal_row("builder", project_name="Skyline Tower 12A")
    fake_db.seed("deals", row)
    return row


@pytest.fixture
def freeze_time_fixture():
    """Fixture for freezing time in tests."""
    with freeze_time("2024-12-09 12:00:00") as frozen_time:
        yield frozen_time
