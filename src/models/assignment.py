"""Stage assignment model - team members bound to a stage and its work item."""

from typing import Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from src.models.stage import Priority


class StageAssignment(BaseModel):
    """One assignment batch on a stage."""
    id: str = Field(..., description="Assignment ID (text)")
    stage_id: str = Field(..., description="Stage ID (text FK)")
    member_id: str = Field(..., description="Primary holder of the assignment")
    member_ids: list[str] = Field(default_factory=list, description="All co-assigned members")
    task_id: Optional[str] = Field(None, description="Generated work item ID (text FK)")
    priority: Priority = Field(default=Priority.MEDIUM)
    attachments: list[str] = Field(default_factory=list)
    created_at: Optional[str] = None

    @field_validator("member_ids", "attachments", mode="before")
    @classmethod
    def null_lists(cls, value):
        return value if value is not None else []

    @model_validator(mode="after")
    def include_primary(self) -> "StageAssignment":
        """The primary holder is always one of the co-assigned members."""
        if self.member_id not in self.member_ids:
            self.member_ids = [self.member_id] + list(self.member_ids)
        return self
