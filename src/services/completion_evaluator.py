"""Completion evaluator - decides whether a stage's generated work is all done."""

from typing import Optional

from src.models.stage import AdvanceResult
from src.models.work_item import WorkItemStatus
from src.services.stage_store import advance_stage
from src.services.supabase_client import get_tasks_by_tag
from src.utils.config import TimelineConfig
from src.utils.errors import PreconditionFailedError
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


def stage_ids_for_task(task: dict) -> list[str]:
    """Stage IDs a task is correlated with through its tags."""
    stage_ids = []
    for tag in task.get("tags") or []:
        stage_id = TimelineConfig.stage_id_from_tag(tag)
        if stage_id and stage_id not in stage_ids:
            stage_ids.append(stage_id)
    return stage_ids


async def is_stage_work_complete(stage_id: str) -> bool:
    """True when the stage has tagged tasks and every one is completed."""
    tasks = await get_tasks_by_tag(TimelineConfig.stage_tag(stage_id))
    if not tasks:
        logger.debug("No tagged tasks for stage", stage_id=stage_id)
        return False

    done = all(task.get("status") == WorkItemStatus.COMPLETED.value for task in tasks)
    logger.debug(
        "Stage task completion checked",
        stage_id=stage_id,
        task_count=len(tasks),
        completed_count=sum(1 for task in tasks if task.get("status") == WorkItemStatus.COMPLETED.value),
        all_completed=done,
    )
    return done


async def evaluate_stage(stage_id: str) -> Optional[AdvanceResult]:
    """
    Advance the stage when all of its tagged tasks are completed.

    Returns the advance result, or None when nothing changed. A stage that is
    no longer in_progress is a no-op, so re-evaluation is always safe.
    """
    if not await is_stage_work_complete(stage_id):
        return None

    try:
        result = await advance_stage(stage_id)
    except PreconditionFailedError as e:
        logger.info("Stage already advanced, nothing to do", stage_id=stage_id, reason=str(e))
        return None

    logger.info(
        "Stage auto-completed from task status",
        stage_id=stage_id,
        deal_id=result.stage.deal_id,
        activated_stage_id=result.activated_stage.id if result.activated_stage else None,
    )
    return result
