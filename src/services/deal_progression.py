"""Deal progression controller - stage transitions and the deal's current-stage pointer."""

from datetime import date
from typing import Optional

from src.models.deal import Deal, DealStatus
from src.models.stage import AdvanceResult, ProgressionResult, Stage, StageStatus
from src.services import stage_store
from src.services.completion_evaluator import evaluate_stage, stage_ids_for_task
from src.services.stage_store import derive_current_stage, list_stages, parse_category
from src.services.supabase_client import (
    create_deal as insert_deal,
    get_deal,
    get_task,
    update_deal,
    utc_now,
)
from src.utils.errors import InputValidationError, NotFoundError
from src.utils.ids import generate_id
from src.utils.logging import get_structured_logger, log_timing, timed

logger = get_structured_logger(__name__)


async def load_deal(deal_id: str) -> Deal:
    """Get a deal or raise NotFoundError."""
    row = await get_deal(deal_id)
    if row is None:
        raise NotFoundError(f"Deal not found: {deal_id}")
    return Deal(**row)


async def open_deal(deal_data: dict) -> tuple[Deal, list[Stage]]:
    """
    Create a deal and its catalog stages.

    The deal starts active on stage 1. If stage creation fails the deal row
    remains and create_stages_for_deal can be re-run for it.
    """
    category = parse_category(deal_data.get("category"))
    if not (deal_data.get("project_name") or "").strip():
        raise InputValidationError("project_name is required")

    now = utc_now()
    try:
        deal = Deal(**{
            **deal_data,
            "id": deal_data.get("id") or generate_id(),
            "category": category,
            "current_stage": 1,
            "status": DealStatus.ACTIVE,
            "created_at": now,
            "updated_at": now,
        })
    except ValueError as e:
        raise InputValidationError(f"Invalid deal: {e}")

    row = await insert_deal(deal.model_dump(mode="json"))
    deal = Deal(**row)
    stages = await stage_store.create_stages_for_deal(deal.id, deal.category)

    logger.info(
        "Deal opened",
        deal_id=deal.id,
        project_id=deal.project_id,
        category=deal.category.value,
        stage_count=len(stages),
    )
    return deal, stages


async def _settle_activated(advance: AdvanceResult) -> tuple[AdvanceResult, list[str]]:
    """
    Advance through newly activated stages whose work items are already done.

    Work on a pending stage can finish before the stage is activated; no later
    work item change would re-evaluate it, so it is checked on activation.
    """
    cascaded = []
    while advance.activated_stage is not None:
        follow = await evaluate_stage(advance.activated_stage.id)
        if follow is None:
            break
        logger.info(
            "Activated stage already complete",
            deal_id=follow.stage.deal_id,
            stage_id=follow.stage.id,
            stage_order=follow.stage.stage_order,
        )
        cascaded.append(follow.stage.id)
        advance = follow
    return advance, cascaded


async def _apply_advance(advance: AdvanceResult) -> ProgressionResult:
    """Persist the deal pointer (and completion) after a stage left in_progress."""
    stage_id = advance.stage.id
    advance, cascaded = await _settle_activated(advance)
    finished = advance.stage
    stages = await list_stages(finished.deal_id)
    stage_count = len(stages)

    if advance.activated_stage is not None:
        pointer = advance.activated_stage.stage_order
    else:
        pointer = min(finished.stage_order + 1, stage_count)

    updates = {"current_stage": pointer, "updated_at": utc_now()}
    deal_completed = bool(stages) and all(s.status.is_terminal for s in stages)
    if deal_completed:
        updates["status"] = DealStatus.COMPLETED.value
        updates["actual_end_date"] = date.today().isoformat()

    row = await update_deal(finished.deal_id, updates)
    if row is None:
        raise NotFoundError(f"Deal not found: {finished.deal_id}")

    logger.info(
        "Deal pointer updated",
        deal_id=finished.deal_id,
        stage_id=stage_id,
        cascaded=len(cascaded),
        current_stage=pointer,
        deal_completed=deal_completed,
    )
    return ProgressionResult(
        deal_id=finished.deal_id,
        stage_id=stage_id,
        stage_completed=True,
        activated_stage_id=advance.activated_stage.id if advance.activated_stage else None,
        cascaded_stage_ids=cascaded,
        current_stage=pointer,
        deal_completed=deal_completed,
    )


async def mark_stage_complete(stage_id: str) -> ProgressionResult:
    """
    Operator completion of the active stage.

    PreconditionFailedError propagates: an operator whose completion lost a
    race, or who targets a stage that is not active, is told it had no effect.
    """
    with log_timing("mark_stage_complete", logger=logger, stage_id=stage_id):
        advance = await stage_store.advance_stage(stage_id)
        return await _apply_advance(advance)


async def skip_stage(stage_id: str) -> ProgressionResult:
    """Operator skip of a pending or active stage."""
    advance = await stage_store.skip_stage(stage_id)
    if advance.activated_stage is None:
        stages = await list_stages(advance.stage.deal_id)
        if any(s.status is StageStatus.IN_PROGRESS for s in stages):
            # Skipped a pending stage; the active stage and pointer stay put
            deal = await load_deal(advance.stage.deal_id)
            return ProgressionResult(
                deal_id=deal.id,
                stage_id=stage_id,
                current_stage=deal.current_stage,
            )
    return await _apply_advance(advance)


async def on_work_item_status_changed(work_item_id: str) -> list[ProgressionResult]:
    """
    Re-evaluate every stage a work item is tagged with.

    Returns one result per stage that advanced; an empty list when nothing
    changed.
    """
    task = await get_task(work_item_id)
    if task is None:
        raise NotFoundError(f"Work item not found: {work_item_id}")

    results = []
    for stage_id in stage_ids_for_task(task):
        try:
            advance = await evaluate_stage(stage_id)
        except NotFoundError:
            logger.warning("Tagged stage no longer exists", task_id=work_item_id, stage_id=stage_id)
            continue
        if advance is not None:
            results.append(await _apply_advance(advance))

    logger.info(
        "Work item change processed",
        task_id=work_item_id,
        task_status=task.get("status"),
        stages_advanced=len(results),
    )
    return results


@timed("reconcile_deal")
async def reconcile_deal(deal_id: str) -> ProgressionResult:
    """
    Pull-based repair after an abandoned or failed operation.

    Activates the next pending stage when none is active, re-checks the
    active stage against its tasks, then rewrites the deal pointer from
    stage statuses if it drifted.
    """
    deal = await load_deal(deal_id)
    stages = await list_stages(deal_id)

    advanced: Optional[ProgressionResult] = None
    resumed: Optional[Stage] = None
    active = next((s for s in stages if s.status is StageStatus.IN_PROGRESS), None)
    if active is None and not all(s.status.is_terminal for s in stages):
        resumed = await stage_store.activate_stalled_stage(deal_id)
        active = resumed

    if active is not None:
        advance = await evaluate_stage(active.id)
        if advance is not None:
            advanced = await _apply_advance(advance)

    if resumed is not None or advanced is not None:
        deal = await load_deal(deal_id)
        stages = await list_stages(deal_id)

    pointer = derive_current_stage(stages)
    deal_completed = bool(stages) and all(s.status.is_terminal for s in stages)
    updates = {}
    if deal.current_stage != pointer:
        updates["current_stage"] = pointer
    if deal_completed and deal.status is not DealStatus.COMPLETED:
        updates["status"] = DealStatus.COMPLETED.value
        updates["actual_end_date"] = date.today().isoformat()

    if updates:
        updates["updated_at"] = utc_now()
        await update_deal(deal_id, updates)
        logger.warning(
            "Deal state repaired",
            deal_id=deal_id,
            previous_stage=deal.current_stage,
            current_stage=pointer,
            deal_completed=deal_completed,
        )

    if advanced is not None:
        activated_stage_id = advanced.activated_stage_id
    else:
        activated_stage_id = resumed.id if resumed else None

    return ProgressionResult(
        deal_id=deal_id,
        stage_id=advanced.stage_id if advanced else None,
        stage_completed=advanced is not None,
        activated_stage_id=activated_stage_id,
        cascaded_stage_ids=advanced.cascaded_stage_ids if advanced else [],
        current_stage=pointer,
        deal_completed=deal_completed,
    )
