"""Supabase client wrapper with async context manager support."""

import os
from datetime import datetime, timezone
from typing import Optional
from supabase import create_client, acreate_client, Client, AsyncClient
from supabase.client import ClientOptions
from src.utils.errors import SupabaseError
import logging

logger = logging.getLogger(__name__)

# Global client instances (singleton pattern)
_client: Optional[Client] = None
_async_client: Optional[AsyncClient] = None

DEALS_TABLE = "deals"
STAGES_TABLE = "deal_stages"
ASSIGNMENTS_TABLE = "stage_assignments"
TASKS_TABLE = "tasks"


def _credentials() -> tuple[str, str]:
    url = os.environ.get("SUPABASE_URL")
    key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")

    if not url or not key:
        raise SupabaseError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
    return url, key


def is_configured() -> bool:
    """True when Supabase credentials are present in the environment."""
    try:
        _credentials()
    except SupabaseError:
        return False
    return True


def get_supabase_client() -> Client:
    """Get or create Supabase client singleton."""
    global _client

    if _client is None:
        url, key = _credentials()
        options = ClientOptions(
            auto_refresh_token=False,
            persist_session=False,
        )
        _client = create_client(url, key, options)
        logger.info("Supabase client initialized", extra={"url": url})

    return _client


async def get_async_supabase_client() -> AsyncClient:
    """Get or create the async client used for realtime subscriptions."""
    global _async_client

    if _async_client is None:
        url, key = _credentials()
        _async_client = await acreate_client(url, key)
        logger.info("Async Supabase client initialized", extra={"url": url})

    return _async_client


async def close_supabase_client() -> None:
    """Drop client references; the realtime socket is closed explicitly."""
    global _client, _async_client
    if _async_client is not None:
        try:
            await _async_client.remove_all_channels()
        except Exception as e:
            logger.warning("Failed to remove realtime channels", extra={"error": str(e)})
        _async_client = None
    if _client:
        _client = None
        logger.info("Supabase client closed")


class SupabaseClient:
    """Async context manager for Supabase client."""

    def __init__(self):
        self.client: Optional[Client] = None

    async def __aenter__(self) -> Client:
        """Enter async context."""
        self.client = get_supabase_client()
        return self.client

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Exit async context."""
        if exc_type:
            logger.error(
                "Supabase operation error",
                extra={"error": str(exc_val), "type": exc_type.__name__}
            )
        return False


def utc_now() -> str:
    """Current UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat()


def _first(result) -> Optional[dict]:
    return result.data[0] if result.data and len(result.data) > 0 else None


# Deals table operations
async def get_deal(deal_id: str) -> Optional[dict]:
    """Get deal by ID."""
    async with SupabaseClient() as client:
        try:
            result = client.table(DEALS_TABLE).select("*").eq("id", deal_id).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to get deal: {e}")
    return _first(result)


async def create_deal(deal_data: dict) -> dict:
    """Create a new deal record."""
    async with SupabaseClient() as client:
        try:
            result = client.table(DEALS_TABLE).insert(deal_data).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to create deal: {e}")
    deal = _first(result)
    if deal is None:
        raise SupabaseError("Failed to create deal: no data returned")
    return deal


async def update_deal(deal_id: str, updates: dict) -> Optional[dict]:
    """Update a deal. Returns None when no row matched."""
    async with SupabaseClient() as client:
        try:
            result = client.table(DEALS_TABLE).update(updates).eq("id", deal_id).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to update deal: {e}")
    return _first(result)


# Deal stages table operations
async def get_stage(stage_id: str) -> Optional[dict]:
    """Get stage by ID."""
    async with SupabaseClient() as client:
        try:
            result = client.table(STAGES_TABLE).select("*").eq("id", stage_id).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to get stage: {e}")
    return _first(result)


async def get_stages_by_deal(deal_id: str) -> list[dict]:
    """Get all stages for a deal ordered by stage_order."""
    async with SupabaseClient() as client:
        try:
            result = client.table(STAGES_TABLE).select("*").eq("deal_id", deal_id).order("stage_order").execute()
        except Exception as e:
            raise SupabaseError(f"Failed to get stages: {e}")
    return result.data if result.data else []


async def insert_stages(stage_rows: list[dict]) -> list[dict]:
    """Insert a batch of stages in one request."""
    async with SupabaseClient() as client:
        try:
            result = client.table(STAGES_TABLE).insert(stage_rows).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to create stages: {e}")
    if not result.data:
        raise SupabaseError("Failed to create stages: no data returned")
    return result.data


async def update_stage(stage_id: str, updates: dict) -> Optional[dict]:
    """Update a stage. Returns None when no row matched."""
    async with SupabaseClient() as client:
        try:
            result = client.table(STAGES_TABLE).update(updates).eq("id", stage_id).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to update stage: {e}")
    return _first(result)


async def update_stage_if_status(stage_id: str, expected_status: str, updates: dict) -> Optional[dict]:
    """
    Update a stage only while it still has the expected status.

    Returns the updated row, or None when the precondition did not hold.
    """
    async with SupabaseClient() as client:
        try:
            result = (
                client.table(STAGES_TABLE)
                .update(updates)
                .eq("id", stage_id)
                .eq("status", expected_status)
                .execute()
            )
        except Exception as e:
            raise SupabaseError(f"Failed to transition stage: {e}")
    return _first(result)


# Stage assignments table operations
async def get_assignments_by_stage(stage_id: str) -> list[dict]:
    """Get all assignments for a stage, oldest first."""
    async with SupabaseClient() as client:
        try:
            result = client.table(ASSIGNMENTS_TABLE).select("*").eq("stage_id", stage_id).order("created_at").execute()
        except Exception as e:
            raise SupabaseError(f"Failed to get assignments: {e}")
    return result.data if result.data else []


async def create_assignment(assignment_data: dict) -> dict:
    """Create a stage assignment."""
    async with SupabaseClient() as client:
        try:
            result = client.table(ASSIGNMENTS_TABLE).insert(assignment_data).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to create assignment: {e}")
    assignment = _first(result)
    if assignment is None:
        raise SupabaseError("Failed to create assignment: no data returned")
    return assignment


async def update_assignment(assignment_id: str, updates: dict) -> Optional[dict]:
    """Update a stage assignment."""
    async with SupabaseClient() as client:
        try:
            result = client.table(ASSIGNMENTS_TABLE).update(updates).eq("id", assignment_id).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to update assignment: {e}")
    return _first(result)


async def delete_assignments(assignment_ids: list[str]) -> None:
    """Delete stage assignments by ID."""
    if not assignment_ids:
        return
    async with SupabaseClient() as client:
        try:
            client.table(ASSIGNMENTS_TABLE).delete().in_("id", assignment_ids).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to delete assignments: {e}")


# Tasks table operations
async def create_task(task_data: dict) -> dict:
    """Create a new task."""
    async with SupabaseClient() as client:
        try:
            result = client.table(TASKS_TABLE).insert(task_data).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to create task: {e}")
    task = _first(result)
    if task is None:
        raise SupabaseError("Failed to create task: no data returned")
    return task


async def get_task(task_id: str) -> Optional[dict]:
    """Get task by ID."""
    async with SupabaseClient() as client:
        try:
            result = client.table(TASKS_TABLE).select("*").eq("id", task_id).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to get task: {e}")
    return _first(result)


async def get_tasks_by_ids(task_ids: list[str]) -> list[dict]:
    """Get tasks by ID."""
    if not task_ids:
        return []
    async with SupabaseClient() as client:
        try:
            result = client.table(TASKS_TABLE).select("*").in_("id", task_ids).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to get tasks: {e}")
    return result.data if result.data else []


async def get_tasks_by_tag(tag: str) -> list[dict]:
    """Get all tasks carrying a tag."""
    async with SupabaseClient() as client:
        try:
            result = client.table(TASKS_TABLE).select("id, status, task_name, tags, assigned_user_ids").contains("tags", [tag]).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to get tasks by tag: {e}")
    return result.data if result.data else []
