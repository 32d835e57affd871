"""Tests for default stage date calculation."""

import pytest
from datetime import date, datetime

from src.models.stage import Stage
from src.utils.errors import InputValidationError
from src.utils.stage_dates import calculate_stage_dates, effective_stage_dates, parse_date


@pytest.mark.unit
def test_week_over_seven_stages_spaces_one_day():
    dates = calculate_stage_dates("2024-01-01", "2024-01-08", 7)

    assert len(dates) == 7
    assert dates[0] == date(2024, 1, 1)
    assert dates[3] == date(2024, 1, 4)
    assert dates[6] == date(2024, 1, 7)


@pytest.mark.unit
def test_uneven_split_rounds_days_up():
    """10 days over 4 stages gives 3 days per stage."""
    dates = calculate_stage_dates(date(2024, 3, 1), date(2024, 3, 11), 4)

    assert dates == [date(2024, 3, 1), date(2024, 3, 4), date(2024, 3, 7), date(2024, 3, 10)]


@pytest.mark.unit
def test_same_day_range_puts_every_stage_on_start():
    dates = calculate_stage_dates("2024-05-05", "2024-05-05", 3)

    assert dates == [date(2024, 5, 5)] * 3


@pytest.mark.unit
def test_zero_stages_returns_empty():
    assert calculate_stage_dates("2024-01-01", "2024-01-08", 0) == []


@pytest.mark.unit
def test_first_date_is_start_and_dates_non_decreasing():
    dates = calculate_stage_dates("2024-02-10", "2024-06-30", 9)

    assert dates[0] == date(2024, 2, 10)
    assert dates == sorted(dates)


@pytest.mark.unit
def test_end_before_start_rejected():
    with pytest.raises(InputValidationError):
        calculate_stage_dates("2024-01-08", "2024-01-01", 7)


@pytest.mark.unit
@pytest.mark.parametrize("start,end", [(None, "2024-01-08"), ("2024-01-01", None)])
def test_missing_bound_rejected(start, end):
    with pytest.raises(InputValidationError):
        calculate_stage_dates(start, end, 7)


@pytest.mark.unit
def test_parse_date_accepts_timestamps_and_dates():
    assert parse_date("2024-01-04T10:30:00+00:00") == date(2024, 1, 4)
    assert parse_date(datetime(2024, 1, 4, 10, 30)) == date(2024, 1, 4)
    assert parse_date(date(2024, 1, 4)) == date(2024, 1, 4)
    assert parse_date("") is None
    assert parse_date(None) is None


@pytest.mark.unit
def test_parse_date_rejects_garbage():
    with pytest.raises(InputValidationError):
        parse_date("next tuesday")


@pytest.mark.unit
def test_effective_dates_prefer_explicit_estimate():
    stages = [
        Stage(id=f"s{i}", deal_id="d1", stage_name=f"Stage {i}", stage_order=i)
        for i in range(1, 8)
    ]
    stages[2] = stages[2].model_copy(update={"estimated_date": date(2024, 2, 1)})

    dates = effective_stage_dates(stages, "2024-01-01", "2024-01-08")

    assert dates[1] == date(2024, 1, 2)
    assert dates[2] == date(2024, 2, 1)
    assert dates[3] == date(2024, 1, 4)


@pytest.mark.unit
def test_effective_dates_without_deal_range():
    stages = [
        Stage(id="s1", deal_id="d1", stage_name="A", stage_order=1, estimated_date=date(2024, 1, 9)),
        Stage(id="s2", deal_id="d1", stage_name="B", stage_order=2),
    ]

    assert effective_stage_dates(stages, None, None) == [date(2024, 1, 9), None]
