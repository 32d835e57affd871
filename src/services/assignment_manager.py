"""Assignment manager - team members on a stage and the work item generated for them."""

import re
from datetime import date
from typing import Optional, Union

from pydantic import BaseModel, Field

from src.models.assignment import StageAssignment
from src.models.deal import Deal, DealCategory
from src.models.stage import Priority, Stage, StageMetadataUpdate
from src.models.work_item import WorkItem, WorkItemStatus
from src.services.stage_store import get_stage, update_stage_metadata
from src.services.supabase_client import (
    create_assignment,
    create_task,
    delete_assignments,
    get_assignments_by_stage,
    get_deal,
    get_task,
    get_tasks_by_ids,
    get_tasks_by_tag,
    update_assignment,
    utc_now,
)
from src.utils.config import TimelineConfig
from src.utils.errors import InputValidationError, NotFoundError, PartialAssignmentError, SupabaseError
from src.utils.ids import generate_id
from src.utils.logging import get_structured_logger, log_timing, mask_member_id
from src.utils.stage_dates import parse_date

logger = get_structured_logger(__name__)


class AssignmentOutcome(BaseModel):
    """Result of an assign_members call."""
    stage: Stage
    added: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)
    work_item: Optional[WorkItem] = None
    assignment: Optional[StageAssignment] = None


class StageTaskDetail(BaseModel):
    """An assignment joined with its work item, for the stage card."""
    assignment: StageAssignment
    work_item: Optional[WorkItem] = None


def slugify(name: str) -> str:
    """Lowercase, whitespace collapsed to hyphens."""
    return re.sub(r"\s+", "-", name.strip().lower())


def build_task_description(deal: Deal, stage: Stage) -> str:
    """Task description carrying the deal context of a stage."""
    if deal.category is DealCategory.BUILDER:
        lines = [
            f"Complete {stage.stage_name} for {deal.category.segment} builder purchase deal: {deal.project_name}.",
            "",
            f"Builder: {deal.builder_name or '-'}",
            f"Client: {deal.client_name or '-'}",
        ]
    else:
        lines = [
            f"Complete {stage.stage_name} for {deal.category.segment} rental deal: {deal.project_name}.",
            "",
            f"Client: {deal.client_name or '-'}",
            f"Owner: {deal.owner_name or '-'}",
        ]
    lines += [
        f"Property: {deal.property_address or '-'}",
        "",
        f"Stage Details: {stage.stage_name}",
    ]
    return "\n".join(lines)


def build_task_tags(deal: Deal, stage: Stage) -> list[str]:
    """Tags for a generated task; the last one correlates it with the stage."""
    return [
        f"{deal.category.kind}-deal",
        deal.category.segment,
        slugify(stage.stage_name),
        TimelineConfig.stage_tag(stage.id),
    ]


def _normalize_members(member_ids: Optional[list[str]]) -> list[str]:
    if member_ids is None:
        return []
    if isinstance(member_ids, str) or not isinstance(member_ids, (list, tuple)):
        raise InputValidationError("member_ids must be a list")

    seen = []
    for member_id in member_ids:
        if not isinstance(member_id, str) or not member_id.strip():
            raise InputValidationError("member_ids must be non-empty strings")
        if member_id not in seen:
            seen.append(member_id)
    return seen


async def load_stage_deal(stage_id: str) -> tuple[Stage, Deal]:
    """The stage and its owning deal; NotFoundError if either is missing."""
    stage = await get_stage(stage_id)
    row = await get_deal(stage.deal_id)
    if row is None:
        raise NotFoundError(f"Deal not found for stage {stage_id}: {stage.deal_id}")
    return stage, Deal(**row)


async def get_stage_assignments(stage_id: str) -> list[StageAssignment]:
    """All assignment rows on a stage."""
    rows = await get_assignments_by_stage(stage_id)
    return [StageAssignment(**row) for row in rows]


async def list_stage_assignments(stage_id: str) -> list[StageTaskDetail]:
    """Assignments on a stage with their work items."""
    assignments = await get_stage_assignments(stage_id)
    task_ids = [a.task_id for a in assignments if a.task_id]
    tasks = {row["id"]: WorkItem(**row) for row in await get_tasks_by_ids(task_ids)}
    return [
        StageTaskDetail(assignment=a, work_item=tasks.get(a.task_id) if a.task_id else None)
        for a in assignments
    ]


async def _remove_members(assignments: list[StageAssignment], to_remove: list[str]) -> None:
    """Drop members from their assignment rows; rows left empty are deleted."""
    doomed = []
    for assignment in assignments:
        remaining = [m for m in assignment.member_ids if m not in to_remove]
        if not remaining:
            doomed.append(assignment.id)
        elif remaining != assignment.member_ids:
            await update_assignment(assignment.id, {
                "member_id": remaining[0],
                "member_ids": remaining,
            })
    await delete_assignments(doomed)


async def assign_members(
    stage_id: str,
    member_ids: Optional[list[str]],
    priority: Optional[Union[Priority, str]] = None,
    due_date: Optional[Union[date, str]] = None,
    attachments: Optional[list[str]] = None,
    comments: Optional[str] = None,
    created_by: Optional[str] = None,
) -> AssignmentOutcome:
    """
    Make the stage's assignees exactly `member_ids`.

    Removed members lose their assignment (their work item stays for audit).
    Newly added members share one work item and one assignment row whose
    primary holder is the first added member. Stage metadata is saved first;
    the work item is created before the assignment so a failed task insert
    never leaves an assignment without one. When the assignment insert fails
    instead, a retry with the same members links the work item already
    created rather than creating another.
    """
    members = _normalize_members(member_ids)
    metadata = {}
    if priority is not None:
        metadata["priority"] = priority
    if due_date is not None:
        metadata["estimated_date"] = parse_date(due_date)
    if attachments is not None:
        metadata["attachments"] = attachments
    if comments is not None:
        metadata["comments"] = comments
    try:
        metadata_update = StageMetadataUpdate(**metadata)
    except ValueError as e:
        raise InputValidationError(f"Invalid stage metadata: {e}")

    stage, deal = await load_stage_deal(stage_id)
    assignments = await get_stage_assignments(stage_id)

    current = []
    for assignment in assignments:
        current.extend(m for m in assignment.member_ids if m not in current)
    to_add = [m for m in members if m not in current]
    to_remove = [m for m in current if m not in members]

    with log_timing("assign_members", logger=logger, stage_id=stage_id, deal_id=deal.id):
        stage = await update_stage_metadata(stage_id, metadata_update)

        if to_remove:
            await _remove_members(assignments, to_remove)
            logger.info(
                "Members unassigned from stage",
                stage_id=stage_id,
                removed=[mask_member_id(m) for m in to_remove],
            )

        work_item = None
        assignment = None
        if to_add:
            work_item, assignment = await _create_batch(stage, deal, assignments, to_add, created_by)

    return AssignmentOutcome(
        stage=stage,
        added=to_add,
        removed=to_remove,
        work_item=work_item,
        assignment=assignment,
    )


async def _find_orphaned_work_item(
    stage_id: str,
    assignments: list[StageAssignment],
    to_add: list[str],
) -> Optional[WorkItem]:
    """
    An open work item for exactly these members that no assignment links to.

    Left behind when an earlier call created the task but its assignment
    insert failed.
    """
    linked = {a.task_id for a in assignments if a.task_id}
    for row in await get_tasks_by_tag(TimelineConfig.stage_tag(stage_id)):
        if row["id"] in linked or row.get("status") == WorkItemStatus.COMPLETED.value:
            continue
        if set(row.get("assigned_user_ids") or []) != set(to_add):
            continue
        task_row = await get_task(row["id"])
        if task_row is not None:
            return WorkItem(**task_row)
    return None


async def _create_batch(
    stage: Stage,
    deal: Deal,
    assignments: list[StageAssignment],
    to_add: list[str],
    created_by: Optional[str],
) -> tuple[WorkItem, StageAssignment]:
    now = utc_now()
    work_item = await _find_orphaned_work_item(stage.id, assignments, to_add)
    if work_item is not None:
        logger.warning("Adopting unlinked work item", stage_id=stage.id, task_id=work_item.id)
        return work_item, await _link_assignment(stage, work_item, to_add, now)

    task_row = await create_task({
        "id": generate_id(),
        "task_name": f"{deal.project_name} - {stage.stage_name}",
        "description": build_task_description(deal, stage),
        "due_date": stage.estimated_date.isoformat() if stage.estimated_date else None,
        "priority": stage.priority.value,
        "status": WorkItemStatus.PENDING.value,
        "user_id": to_add[0],
        "assigned_user_ids": to_add,
        "tags": build_task_tags(deal, stage),
        "project_id": deal.project_id,
        "estimated_hours": TimelineConfig.STAGE_TASK_ESTIMATED_HOURS,
        "attachments": stage.attachments,
        "created_by": created_by or to_add[0],
        "created_at": now,
        "updated_at": now,
    })
    work_item = WorkItem(**task_row)
    assignment = await _link_assignment(stage, work_item, to_add, now)

    logger.info(
        "Members assigned to stage",
        deal_id=deal.id,
        stage_id=stage.id,
        task_id=work_item.id,
        assignment_id=assignment.id,
        added=[mask_member_id(m) for m in to_add],
    )
    return work_item, assignment


async def _link_assignment(stage: Stage, work_item: WorkItem, to_add: list[str], now: str) -> StageAssignment:
    """Insert the assignment row for a batch; PartialAssignmentError if it fails."""
    try:
        assignment_row = await create_assignment({
            "id": generate_id(),
            "stage_id": stage.id,
            "member_id": to_add[0],
            "member_ids": to_add,
            "task_id": work_item.id,
            "priority": stage.priority.value,
            "attachments": stage.attachments,
            "created_at": now,
        })
    except SupabaseError as e:
        logger.error(
            "Work item created but assignment failed",
            stage_id=stage.id,
            task_id=work_item.id,
            error=str(e),
        )
        raise PartialAssignmentError(
            f"Work item {work_item.id} created but assignment for stage {stage.id} failed: {e}",
            task_id=work_item.id,
        )
    return StageAssignment(**assignment_row)
