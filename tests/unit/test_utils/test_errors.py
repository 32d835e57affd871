"""Tests for error types and HTTP mapping."""

import pytest

from src.utils.errors import (
    EstateOpsError,
    InputValidationError,
    NotFoundError,
    PartialAssignmentError,
    PreconditionFailedError,
    SupabaseError,
    status_code_for,
)


@pytest.mark.unit
@pytest.mark.parametrize("error,status", [
    (NotFoundError("x"), 404),
    (PreconditionFailedError("x", stage_id="s1", expected="in_progress"), 409),
    (InputValidationError("x"), 400),
    (SupabaseError("x"), 503),
    (PartialAssignmentError("x", task_id="t1"), 503),
    (EstateOpsError("x"), 500),
    (RuntimeError("x"), 500),
])
def test_status_code_for(error, status):
    assert status_code_for(error) == status


@pytest.mark.unit
def test_only_storage_errors_are_retryable():
    assert SupabaseError("x").retryable is True
    assert PartialAssignmentError("x").retryable is True
    assert PreconditionFailedError("x").retryable is False
    assert NotFoundError("x").retryable is False


@pytest.mark.unit
def test_precondition_carries_context():
    error = PreconditionFailedError("Stage s1 is pending", stage_id="s1", expected="in_progress")

    assert error.stage_id == "s1"
    assert error.expected == "in_progress"
    assert str(error) == "Stage s1 is pending"
