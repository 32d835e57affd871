"""Deal stage timeline endpoint (operator actions)."""

import json
import asyncio
import logging
from typing import Any

from src.services import assignment_manager, deal_progression, stage_store
from src.services.notifier import Notifier
from src.utils.errors import EstateOpsError, InputValidationError, PartialAssignmentError, status_code_for
from src.utils.logging import correlation_context
from src.utils.logging_config import LoggingConfig
from src.utils.stage_dates import effective_stage_dates

LoggingConfig.setup_logging()
logger = logging.getLogger(__name__)


def _require(body: dict, *fields: str) -> None:
    missing = [f for f in fields if not body.get(f)]
    if missing:
        raise InputValidationError(f"Missing required field(s): {', '.join(missing)}")


def _dump(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return [_dump(v) for v in value]
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    return value


async def _timeline(deal_id: str) -> dict:
    deal = await deal_progression.load_deal(deal_id)
    stages = await stage_store.list_stages(deal_id)
    dates = effective_stage_dates(stages, deal.start_date, deal.end_date)
    rows = []
    for stage, display_date in zip(stages, dates):
        row = stage.model_dump(mode="json")
        row["display_date"] = display_date.isoformat() if display_date else None
        rows.append(row)
    return {"deal": deal.model_dump(mode="json"), "stages": rows}


async def dispatch(action: str, body: dict, notifier: Notifier) -> Any:
    """Run one operator action and report its outcome."""
    if action == "open_deal":
        deal, stages = await deal_progression.open_deal(body.get("deal") or {})
        notifier.success(f"Deal created with {len(stages)} stages", deal_id=deal.id)
        return {"deal": _dump(deal), "stages": _dump(stages)}

    if action == "create_stages":
        _require(body, "deal_id", "category")
        stages = await stage_store.create_stages_for_deal(body["deal_id"], body["category"])
        notifier.success(f"{len(stages)} stages created", deal_id=body["deal_id"])
        return _dump(stages)

    if action == "list":
        _require(body, "deal_id")
        return await _timeline(body["deal_id"])

    if action == "update_metadata":
        _require(body, "stage_id")
        stage = await stage_store.update_stage_metadata(body["stage_id"], body.get("metadata") or {})
        notifier.success("Stage updated successfully", stage_id=stage.id)
        return _dump(stage)

    if action == "set_date":
        _require(body, "stage_id")
        stage = await stage_store.set_stage_date(body["stage_id"], body.get("estimated_date"))
        notifier.success("Date updated successfully", stage_id=stage.id)
        return _dump(stage)

    if action == "assign":
        _require(body, "stage_id")
        outcome = await assignment_manager.assign_members(
            body["stage_id"],
            body.get("member_ids") or [],
            priority=body.get("priority"),
            due_date=body.get("due_date"),
            attachments=body.get("attachments"),
            comments=body.get("comments"),
            created_by=body.get("created_by"),
        )
        created = 1 if outcome.work_item else 0
        notifier.success(f"Stage updated successfully. {created} task(s) created.", stage_id=outcome.stage.id)
        return _dump(outcome)

    if action == "assignments":
        _require(body, "stage_id")
        return _dump(await assignment_manager.list_stage_assignments(body["stage_id"]))

    if action == "complete":
        _require(body, "stage_id")
        result = await deal_progression.mark_stage_complete(body["stage_id"])
        notifier.success("Stage marked as complete", stage_id=result.stage_id)
        if result.deal_completed:
            notifier.success("Deal completed", deal_id=result.deal_id)
        return _dump(result)

    if action == "skip":
        _require(body, "stage_id")
        result = await deal_progression.skip_stage(body["stage_id"])
        notifier.success("Stage skipped", stage_id=body["stage_id"])
        return _dump(result)

    if action == "reconcile":
        _require(body, "deal_id")
        result = await deal_progression.reconcile_deal(body["deal_id"])
        return _dump(result)

    raise InputValidationError(f"Unknown action: {action}")


def _response(status_code: int, payload: dict) -> dict:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(payload),
    }


def handler(request):
    """
    Stage timeline actions.

    GET ?deal_id=... returns the timeline; POST takes {"action": ..., ...}.
    """
    headers = request.get("headers", {}) or {}
    correlation_id = headers.get(LoggingConfig.LOG_CORRELATION_ID_HEADER) or headers.get(
        LoggingConfig.LOG_CORRELATION_ID_HEADER.lower()
    )
    notifier = Notifier()

    with correlation_context(correlation_id):
        try:
            if request.get("method", "POST") == "GET":
                query_params = request.get("query", {}) or {}
                action, body = "list", {"deal_id": query_params.get("deal_id")}
            else:
                raw_body = request.get("body") or "{}"
                try:
                    body = json.loads(raw_body) if isinstance(raw_body, str) else raw_body
                except json.JSONDecodeError:
                    raise InputValidationError("Request body is not valid JSON")
                if not isinstance(body, dict):
                    raise InputValidationError("Request body must be an object")
                action = body.get("action", "")

            data = asyncio.run(dispatch(action, body, notifier))
            return _response(200, {"ok": True, "data": data, "notifications": notifier.drain()})

        except EstateOpsError as e:
            if isinstance(e, PartialAssignmentError):
                notifier.error("Failed to update stage; retry to link the created task")
            else:
                notifier.error(f"Action failed: {e}")
            payload = {"ok": False, "error": str(e), "retryable": e.retryable, "notifications": notifier.drain()}
            if isinstance(e, PartialAssignmentError):
                payload["task_id"] = e.task_id
            return _response(status_code_for(e), payload)

        except Exception as e:
            logger.error(f"Error handling stage action: {e}", exc_info=True)
            notifier.error("Action failed")
            return _response(500, {"ok": False, "error": "internal server error", "notifications": notifier.drain()})
