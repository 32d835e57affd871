"""Database webhook for task changes (stage auto-completion)."""

import json
import asyncio
import logging

from src.services.deal_progression import on_work_item_status_changed
from src.services.task_watcher import extract_change, status_changed
from src.utils.errors import EstateOpsError, status_code_for
from src.utils.logging import correlation_context
from src.utils.logging_config import LoggingConfig

LoggingConfig.setup_logging()
logger = logging.getLogger(__name__)


def handler(request):
    """
    Receive a Supabase database-webhook payload for the tasks table.

    Only UPDATEs that may have changed a task's status are evaluated.
    """
    try:
        raw_body = request.get("body") or "{}"
        try:
            payload = json.loads(raw_body) if isinstance(raw_body, str) else raw_body
        except json.JSONDecodeError:
            return {
                "statusCode": 400,
                "headers": {"Content-Type": "application/json"},
                "body": json.dumps({"error": "invalid JSON"})
            }

        if not isinstance(payload, dict) or payload.get("type") != "UPDATE":
            return {
                "statusCode": 200,
                "headers": {"Content-Type": "application/json"},
                "body": json.dumps({"ok": True, "ignored": True})
            }

        record, old_record = extract_change(payload)
        if not status_changed(record, old_record) or not record.get("id"):
            return {
                "statusCode": 200,
                "headers": {"Content-Type": "application/json"},
                "body": json.dumps({"ok": True, "ignored": True})
            }

        with correlation_context():
            results = asyncio.run(on_work_item_status_changed(record["id"]))

        return {
            "statusCode": 200,
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps({
                "ok": True,
                "task_id": record["id"],
                "advanced": [r.model_dump(mode="json") for r in results]
            })
        }

    except EstateOpsError as e:
        logger.warning(f"Task change not applied: {e}")
        return {
            "statusCode": status_code_for(e),
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps({"error": str(e), "retryable": e.retryable})
        }

    except Exception as e:
        logger.error(f"Error processing task change: {e}", exc_info=True)
        return {
            "statusCode": 500,
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps({"error": str(e)})
        }
