"""Test helper functions."""

import json
from typing import Dict, Any, Optional


def create_request(
    method: str = "POST",
    path: str = "/api/deals/stages",
    body: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    query: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Create a Vercel request object for testing."""
    if headers is None:
        headers = {
            "content-type": "application/json"
        }

    return {
        "method": method,
        "path": path,
        "headers": headers,
        "body": json.dumps(body) if isinstance(body, dict) else body,
        "query": query or {}
    }


def create_task_webhook(
    task_id: str,
    status: str,
    old_status: Optional[str] = None,
    event_type: str = "UPDATE",
    project_id: str = "proj_1",
) -> Dict[str, Any]:
    """Create a Supabase database-webhook payload for the tasks table."""
    payload = {
        "type": event_type,
        "table": "tasks",
        "schema": "public",
        "record": {"id": task_id, "status": status, "project_id": project_id},
        "old_record": None,
    }
    if old_status is not None:
        payload["old_record"] = {"id": task_id, "status": old_status, "project_id": project_id}
    return payload
