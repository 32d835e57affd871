"""Deal models - one real-estate transaction tracked through a stage workflow."""

from enum import Enum
from typing import Optional
from datetime import date
from pydantic import BaseModel, Field, model_validator


class DealCategory(str, Enum):
    """Deal categories; each has its own stage catalog."""
    RESIDENTIAL_RENTAL = "residential_rental"
    COMMERCIAL_RENTAL = "commercial_rental"
    BUILDER = "builder"

    @property
    def kind(self) -> str:
        """Deal kind used in generated task tags and descriptions."""
        return "builder" if self is DealCategory.BUILDER else "rental"

    @property
    def segment(self) -> str:
        """Residential or commercial."""
        return "commercial" if self is DealCategory.COMMERCIAL_RENTAL else "residential"


class DealStatus(str, Enum):
    """Deal lifecycle status."""
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Deal(BaseModel):
    """Deal record as stored in the deals table."""
    id: str = Field(..., description="Deal ID (text)")
    category: DealCategory = Field(..., description="residential_rental, commercial_rental or builder")
    project_id: Optional[str] = Field(None, description="Owning project ID (text FK)")
    project_name: str = Field(..., description="Deal display name")
    client_name: Optional[str] = Field(None, description="Client (tenant or buyer) name")
    owner_name: Optional[str] = Field(None, description="Property owner name (rental deals)")
    builder_name: Optional[str] = Field(None, description="Builder name (builder deals)")
    property_address: Optional[str] = Field(None, description="Property reference")
    start_date: Optional[date] = Field(None, description="Deal start date")
    end_date: Optional[date] = Field(None, description="Deal target end date")
    current_stage: int = Field(default=1, ge=1, description="Order of the active stage (1-based)")
    status: DealStatus = Field(default=DealStatus.ACTIVE, description="active, completed or cancelled")
    actual_end_date: Optional[date] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @model_validator(mode="after")
    def check_date_range(self) -> "Deal":
        """end_date may not precede start_date."""
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self

    @property
    def counterparty_name(self) -> Optional[str]:
        """Owner for rental deals, builder for builder deals."""
        if self.category is DealCategory.BUILDER:
            return self.builder_name
        return self.owner_name
