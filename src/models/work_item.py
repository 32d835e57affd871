"""Work item (task) model."""

from enum import Enum
from typing import Optional
from datetime import date
from pydantic import BaseModel, Field, field_validator

from src.models.stage import Priority


class WorkItemStatus(str, Enum):
    """Work item status values."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class WorkItem(BaseModel):
    """Actionable task generated for a stage assignment batch."""
    id: str = Field(..., description="Task ID (text)")
    task_name: str = Field(..., description="Task title")
    description: Optional[str] = None
    due_date: Optional[date] = None
    priority: Priority = Field(default=Priority.MEDIUM)
    status: WorkItemStatus = Field(default=WorkItemStatus.PENDING)
    user_id: Optional[str] = Field(None, description="Primary assignee")
    assigned_user_ids: list[str] = Field(default_factory=list, description="All assignees")
    tags: list[str] = Field(default_factory=list, description="Tags, including the stage correlation tag")
    project_id: Optional[str] = Field(None, description="Owning project ID (text FK)")
    estimated_hours: Optional[float] = None
    attachments: list[str] = Field(default_factory=list)
    created_by: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @field_validator("assigned_user_ids", "tags", "attachments", mode="before")
    @classmethod
    def null_lists(cls, value):
        return value if value is not None else []
