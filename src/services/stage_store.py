"""Stage store - persisted stages of a deal and their status transitions."""

from datetime import date
from typing import Optional, Union

from src.models.deal import DealCategory
from src.models.stage import AdvanceResult, Stage, StageMetadataUpdate, StageStatus
from src.services.stage_catalog import get_stage_templates
from src.services.supabase_client import (
    get_stage as fetch_stage,
    get_stages_by_deal,
    insert_stages,
    update_stage,
    update_stage_if_status,
    utc_now,
)
from src.utils.errors import InputValidationError, NotFoundError, PreconditionFailedError
from src.utils.ids import generate_id
from src.utils.logging import get_structured_logger, log_timing, sanitize_text
from src.utils.stage_dates import parse_date

logger = get_structured_logger(__name__)


def parse_category(category: Union[DealCategory, str, None]) -> DealCategory:
    """Validate a deal category before any write."""
    if not category:
        raise InputValidationError("Deal category is required")
    try:
        return DealCategory(category)
    except ValueError:
        raise InputValidationError(f"Unknown deal category: {category}")


def derive_current_stage(stages: list[Stage]) -> int:
    """
    Current-stage pointer implied by stage statuses.

    The highest in_progress stage wins; otherwise the stage after the run of
    finished stages at the front of the workflow, clamped to the stage count;
    1 when nothing has started.
    """
    if not stages:
        return 1
    active = [s.stage_order for s in stages if s.status is StageStatus.IN_PROGRESS]
    if active:
        return max(active)

    finished = 0
    for stage in sorted(stages, key=lambda s: s.stage_order):
        if not stage.status.is_terminal:
            break
        finished += 1
    return min(finished + 1, len(stages))


async def create_stages_for_deal(deal_id: str, category: Union[DealCategory, str]) -> list[Stage]:
    """Instantiate the catalog stages for a deal; stage 1 starts in_progress."""
    if not deal_id:
        raise InputValidationError("deal_id is required")
    deal_category = parse_category(category)

    existing = await get_stages_by_deal(deal_id)
    if existing:
        raise PreconditionFailedError(
            f"Stages already exist for deal {deal_id}",
            expected="no stages",
        )

    now = utc_now()
    rows = [
        {
            "id": generate_id(),
            "deal_id": deal_id,
            "stage_name": template.name,
            "stage_order": template.order,
            "status": (StageStatus.IN_PROGRESS if template.order == 1 else StageStatus.PENDING).value,
            "estimated_date": None,
            "actual_date": None,
            "priority": "medium",
            "comments": None,
            "attachments": [],
            "created_at": now,
            "updated_at": now,
        }
        for template in get_stage_templates(deal_category)
    ]

    with log_timing("create_stages_for_deal", logger=logger, deal_id=deal_id, category=deal_category.value):
        created = await insert_stages(rows)

    logger.info(
        "Created deal stages",
        deal_id=deal_id,
        category=deal_category.value,
        stage_count=len(created),
    )
    return sorted((Stage(**row) for row in created), key=lambda s: s.stage_order)


async def list_stages(deal_id: str) -> list[Stage]:
    """All stages of a deal in ascending order."""
    rows = await get_stages_by_deal(deal_id)
    return sorted((Stage(**row) for row in rows), key=lambda s: s.stage_order)


async def get_stage(stage_id: str) -> Stage:
    """Get a stage or raise NotFoundError."""
    row = await fetch_stage(stage_id)
    if row is None:
        raise NotFoundError(f"Stage not found: {stage_id}")
    return Stage(**row)


async def update_stage_metadata(stage_id: str, metadata: Union[StageMetadataUpdate, dict]) -> Stage:
    """Partial update of date, priority, comments and attachments; never touches status."""
    if isinstance(metadata, dict):
        try:
            metadata = StageMetadataUpdate(**metadata)
        except ValueError as e:
            raise InputValidationError(f"Invalid stage metadata: {e}")

    updates = metadata.to_row()
    if not updates:
        return await get_stage(stage_id)

    updates["updated_at"] = utc_now()
    row = await update_stage(stage_id, updates)
    if row is None:
        raise NotFoundError(f"Stage not found: {stage_id}")

    logger.info(
        "Stage metadata updated",
        stage_id=stage_id,
        fields=sorted(updates),
        comments=sanitize_text(updates.get("comments")),
    )
    return Stage(**row)


async def set_stage_date(stage_id: str, estimated_date: Optional[Union[date, str]]) -> Stage:
    """Inline date edit; writes estimated_date only."""
    parsed = parse_date(estimated_date)
    row = await update_stage(stage_id, {
        "estimated_date": parsed.isoformat() if parsed else None,
        "updated_at": utc_now(),
    })
    if row is None:
        raise NotFoundError(f"Stage not found: {stage_id}")

    logger.info("Stage date updated", stage_id=stage_id, estimated_date=row.get("estimated_date"))
    return Stage(**row)


async def _activate_next_stage(stage: Stage) -> Optional[Stage]:
    """Move the first pending stage after `stage` to in_progress, stepping over finished ones."""
    stages = await list_stages(stage.deal_id)
    for candidate in stages:
        if candidate.stage_order <= stage.stage_order:
            continue
        if candidate.status.is_terminal:
            continue
        if candidate.status is StageStatus.IN_PROGRESS:
            logger.warning(
                "Next stage already in progress",
                deal_id=stage.deal_id,
                stage_id=candidate.id,
                stage_order=candidate.stage_order,
            )
            return None

        row = await update_stage_if_status(candidate.id, StageStatus.PENDING.value, {
            "status": StageStatus.IN_PROGRESS.value,
            "updated_at": utc_now(),
        })
        if row is None:
            logger.info(
                "Next stage changed concurrently, not activated",
                deal_id=stage.deal_id,
                stage_id=candidate.id,
            )
            return None
        return Stage(**row)
    return None


async def activate_stalled_stage(deal_id: str) -> Optional[Stage]:
    """
    Activate the first pending stage of a deal left with no active stage.

    A deal stalls when a stage finished but activating its successor failed.
    Returns None when a stage is already active, every stage is terminal, or
    the candidate changed concurrently.
    """
    stages = await list_stages(deal_id)
    if any(s.status is StageStatus.IN_PROGRESS for s in stages):
        return None

    candidate = next((s for s in stages if not s.status.is_terminal), None)
    if candidate is None:
        return None

    row = await update_stage_if_status(candidate.id, StageStatus.PENDING.value, {
        "status": StageStatus.IN_PROGRESS.value,
        "updated_at": utc_now(),
    })
    if row is None:
        logger.info("Stalled stage changed concurrently, not activated", deal_id=deal_id, stage_id=candidate.id)
        return None

    logger.warning(
        "Stalled deal resumed",
        deal_id=deal_id,
        stage_id=candidate.id,
        stage_order=candidate.stage_order,
    )
    return Stage(**row)


async def advance_stage(stage_id: str, outcome: StageStatus = StageStatus.COMPLETED) -> AdvanceResult:
    """
    Finish the in_progress stage and activate the next pending one.

    The transition is conditional on the stage still being in_progress, so two
    concurrent callers produce one transition; the loser gets
    PreconditionFailedError.
    """
    if not outcome.is_terminal:
        raise InputValidationError(f"Stage cannot advance to {outcome.value}")

    stage = await get_stage(stage_id)
    if stage.status is not StageStatus.IN_PROGRESS:
        raise PreconditionFailedError(
            f"Stage {stage_id} is {stage.status.value}, not in_progress",
            stage_id=stage_id,
            expected=StageStatus.IN_PROGRESS.value,
        )

    now = utc_now()
    row = await update_stage_if_status(stage_id, StageStatus.IN_PROGRESS.value, {
        "status": outcome.value,
        "actual_date": now if outcome is StageStatus.COMPLETED else None,
        "updated_at": now,
    })
    if row is None:
        raise PreconditionFailedError(
            f"Stage {stage_id} left in_progress concurrently",
            stage_id=stage_id,
            expected=StageStatus.IN_PROGRESS.value,
        )

    finished = Stage(**row)
    activated = await _activate_next_stage(finished)

    logger.info(
        "Stage advanced",
        deal_id=finished.deal_id,
        stage_id=stage_id,
        stage_order=finished.stage_order,
        outcome=outcome.value,
        activated_stage_id=activated.id if activated else None,
    )
    return AdvanceResult(stage=finished, activated_stage=activated)


async def skip_stage(stage_id: str) -> AdvanceResult:
    """Mark a pending or in_progress stage as skipped."""
    stage = await get_stage(stage_id)
    if stage.status is StageStatus.IN_PROGRESS:
        return await advance_stage(stage_id, outcome=StageStatus.SKIPPED)

    if stage.status is not StageStatus.PENDING:
        raise PreconditionFailedError(
            f"Stage {stage_id} is already {stage.status.value}",
            stage_id=stage_id,
            expected=StageStatus.PENDING.value,
        )

    row = await update_stage_if_status(stage_id, StageStatus.PENDING.value, {
        "status": StageStatus.SKIPPED.value,
        "updated_at": utc_now(),
    })
    if row is None:
        raise PreconditionFailedError(
            f"Stage {stage_id} changed concurrently",
            stage_id=stage_id,
            expected=StageStatus.PENDING.value,
        )

    logger.info("Pending stage skipped", deal_id=stage.deal_id, stage_id=stage_id)
    return AdvanceResult(stage=Stage(**row), activated_stage=None)
