"""Canonical stage templates per deal category."""

from typing import NamedTuple

from src.models.deal import DealCategory


class StageTemplate(NamedTuple):
    """One catalog entry."""
    name: str
    order: int


def _numbered(*names: str) -> tuple[StageTemplate, ...]:
    return tuple(StageTemplate(name, index + 1) for index, name in enumerate(names))


RESIDENTIAL_RENTAL_STAGES = _numbered(
    "Booking and Document collection",
    "Agreement process",
    "Formalities and internal work",
    "Move-in formalities and Handover",
    "Brokerage invoicing and collection",
    "Agreement uploading",
    "Renewal & other reminders",
)

COMMERCIAL_RENTAL_STAGES = _numbered(
    "Booking and Document collection",
    "Agreement process",
    "Formalities and internal work",
    "Interior work cum Rent Free period",
    "Move-in formalities and Handover",
    "Brokerage invoicing and collection",
    "Agreement uploading",
    "Renewal reminders",
)

BUILDER_STAGES = _numbered(
    "Booking formalities",
    "Brokerage confirmation signing",
    "Buyer loan sanction process",
    "Legal check",
    "Agreement to sale",
    "TDS and bank loan formalities",
    "Loan disbursement",
    "Brokerage invoicing",
    "Documents upload and future reminders",
)

STAGE_CATALOG: dict[DealCategory, tuple[StageTemplate, ...]] = {
    DealCategory.RESIDENTIAL_RENTAL: RESIDENTIAL_RENTAL_STAGES,
    DealCategory.COMMERCIAL_RENTAL: COMMERCIAL_RENTAL_STAGES,
    DealCategory.BUILDER: BUILDER_STAGES,
}


def get_stage_templates(category: DealCategory) -> list[StageTemplate]:
    """
    Ordered stage templates for a deal category.

    Raises ValueError for an unknown category; callers validate user input
    before reaching here.
    """
    return list(STAGE_CATALOG[DealCategory(category)])
