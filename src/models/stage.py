"""Stage models."""

from enum import Enum
from typing import Optional
from datetime import date
from pydantic import BaseModel, ConfigDict, Field, field_validator


class StageStatus(str, Enum):
    """Stage status values."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        """Completed and skipped stages both count as done for progression."""
        return self in (StageStatus.COMPLETED, StageStatus.SKIPPED)


class Priority(str, Enum):
    """Priority shared by stages, assignments and work items."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class Stage(BaseModel):
    """One ordered step of a deal's workflow."""
    id: str = Field(..., description="Stage ID (text)")
    deal_id: str = Field(..., description="Owning deal ID (text FK)")
    stage_name: str = Field(..., description="Stage name from the catalog")
    stage_order: int = Field(..., ge=1, description="Position in the workflow, contiguous from 1")
    status: StageStatus = Field(default=StageStatus.PENDING)
    estimated_date: Optional[date] = Field(None, description="Planned date")
    actual_date: Optional[str] = Field(None, description="Completion timestamp (ISO)")
    priority: Priority = Field(default=Priority.MEDIUM)
    comments: Optional[str] = None
    attachments: list[str] = Field(default_factory=list, description="Attachment references")
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @field_validator("attachments", mode="before")
    @classmethod
    def null_attachments(cls, value):
        return value if value is not None else []


class StageMetadataUpdate(BaseModel):
    """Partial update of operator-editable stage fields."""
    model_config = ConfigDict(extra="forbid")

    estimated_date: Optional[date] = None
    priority: Optional[Priority] = None
    comments: Optional[str] = None
    attachments: Optional[list[str]] = None

    def to_row(self) -> dict:
        """Only the fields that were explicitly provided."""
        return self.model_dump(mode="json", exclude_unset=True)


class AdvanceResult(BaseModel):
    """Outcome of a stage transition out of in_progress."""
    stage: Stage = Field(..., description="The stage that left in_progress")
    activated_stage: Optional[Stage] = Field(None, description="Next stage moved to in_progress, if any")


class ProgressionResult(BaseModel):
    """Outcome of a progression operation on a deal."""
    deal_id: str
    stage_id: Optional[str] = None
    stage_completed: bool = False
    activated_stage_id: Optional[str] = None
    cascaded_stage_ids: list[str] = Field(default_factory=list, description="Stages completed on activation because their work was already done")
    current_stage: Optional[int] = None
    deal_completed: bool = False
