"""Default stage dates spread evenly across a deal's date range."""

import math
from datetime import date, datetime, timedelta
from typing import Optional, Union

from src.utils.errors import InputValidationError

DateLike = Union[date, str]


def parse_date(value: Optional[DateLike]) -> Optional[date]:
    """Parse an ISO date (yyyy-MM-dd or yyyy-MM-ddTHH:mm...) into a date."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        if "T" in value:
            value = value.split("T")[0]
        return date.fromisoformat(value)
    except (ValueError, TypeError, AttributeError):
        raise InputValidationError(f"Malformed date: {value!r}")


def calculate_stage_dates(start_date: DateLike, end_date: DateLike, stage_count: int) -> list[date]:
    """
    Evenly distribute calendar days across stages.

    Each stage gets ceil(total_days / stage_count) days; stage i (0-indexed)
    starts on start + i * per_stage_days.
    """
    start = parse_date(start_date)
    end = parse_date(end_date)
    if start is None or end is None:
        raise InputValidationError("start_date and end_date are required")
    if end < start:
        raise InputValidationError("end_date must not be before start_date")
    if stage_count < 0:
        raise InputValidationError("stage_count must not be negative")
    if stage_count == 0:
        return []

    total_days = (end - start).days
    per_stage_days = math.ceil(total_days / stage_count)
    return [start + timedelta(days=i * per_stage_days) for i in range(stage_count)]


def effective_stage_dates(stages: list, start_date: Optional[DateLike], end_date: Optional[DateLike]) -> list[Optional[date]]:
    """
    Display dates for an ordered stage list.

    An explicit estimated_date always wins; stages without one fall back to the
    evenly spread default when the deal has both a start and an end date.
    """
    defaults: list[Optional[date]] = [None] * len(stages)
    if start_date and end_date:
        defaults = calculate_stage_dates(start_date, end_date, len(stages))

    dates = []
    for stage, default in zip(stages, defaults):
        explicit = getattr(stage, "estimated_date", None)
        dates.append(parse_date(explicit) if explicit else default)
    return dates
