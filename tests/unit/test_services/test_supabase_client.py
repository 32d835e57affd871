"""Tests for Supabase table helpers."""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from src.services import supabase_client
from src.utils.errors import SupabaseError


def _client_returning(data):
    mock_client = MagicMock()
    mock_query = MagicMock()
    for method in ("select", "update", "insert", "delete", "eq", "in_", "contains", "order"):
        getattr(mock_query, method).return_value = mock_query
    mock_query.execute.return_value = MagicMock(data=data)
    mock_client.table.return_value = mock_query
    return mock_client, mock_query


@pytest.mark.unit
@pytest.mark.asyncio
async def test_update_stage_if_status_filters_on_expected_status():
    mock_client, mock_query = _client_returning([{"id": "s1", "status": "completed"}])

    with patch("src.services.supabase_client.SupabaseClient") as mock_client_class:
        mock_client_class.return_value.__aenter__.return_value = mock_client
        mock_client_class.return_value.__aexit__.return_value = None

        row = await supabase_client.update_stage_if_status("s1", "in_progress", {"status": "completed"})

    assert row["status"] == "completed"
    mock_client.table.assert_called_once_with("deal_stages")
    mock_query.eq.assert_any_call("id", "s1")
    mock_query.eq.assert_any_call("status", "in_progress")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_update_stage_if_status_no_match_returns_none():
    mock_client, _ = _client_returning([])

    with patch("src.services.supabase_client.SupabaseClient") as mock_client_class:
        mock_client_class.return_value.__aenter__.return_value = mock_client
        mock_client_class.return_value.__aexit__.return_value = None

        assert await supabase_client.update_stage_if_status("s1", "in_progress", {}) is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_tasks_by_tag_uses_contains():
    mock_client, mock_query = _client_returning([{"id": "t1", "status": "completed", "tags": ["stage:s1"]}])

    with patch("src.services.supabase_client.SupabaseClient") as mock_client_class:
        mock_client_class.return_value.__aenter__.return_value = mock_client
        mock_client_class.return_value.__aexit__.return_value = None

        tasks = await supabase_client.get_tasks_by_tag("stage:s1")

    assert tasks[0]["id"] == "t1"
    mock_query.contains.assert_called_once_with("tags", ["stage:s1"])


@pytest.mark.unit
@pytest.mark.asyncio
async def test_query_errors_become_supabase_errors():
    mock_client, mock_query = _client_returning([])
    mock_query.execute.side_effect = Exception("connection reset")

    with patch("src.services.supabase_client.SupabaseClient") as mock_client_class:
        mock_client_class.return_value.__aenter__.return_value = mock_client
        mock_client_class.return_value.__aexit__.return_value = None

        with pytest.raises(SupabaseError, match="connection reset"):
            await supabase_client.get_stages_by_deal("d1")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_empty_id_lists_skip_the_query():
    with patch("src.services.supabase_client.SupabaseClient") as mock_client_class:
        assert await supabase_client.get_tasks_by_ids([]) == []
        await supabase_client.delete_assignments([])

    mock_client_class.assert_not_called()


@pytest.mark.unit
def test_missing_credentials(monkeypatch):
    monkeypatch.setattr(supabase_client, "_client", None)
    monkeypatch.delenv("SUPABASE_URL", raising=False)

    with pytest.raises(SupabaseError):
        supabase_client.get_supabase_client()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_close_drops_clients_and_realtime_channels(monkeypatch):
    async_client = MagicMock()
    async_client.remove_all_channels = AsyncMock()
    monkeypatch.setattr(supabase_client, "_client", MagicMock())
    monkeypatch.setattr(supabase_client, "_async_client", async_client)

    await supabase_client.close_supabase_client()

    async_client.remove_all_channels.assert_awaited_once()
    assert supabase_client._client is None
    assert supabase_client._async_client is None
