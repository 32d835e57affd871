"""Error handling utilities."""

from typing import Optional


class EstateOpsError(Exception):
    """Base exception for the deal timeline backend."""
    retryable = False


class NotFoundError(EstateOpsError):
    """Referenced deal, stage or work item does not exist."""
    pass


class PreconditionFailedError(EstateOpsError):
    """Stage is not in the status required by the requested transition."""

    def __init__(self, message: str, stage_id: Optional[str] = None, expected: Optional[str] = None):
        super().__init__(message)
        self.stage_id = stage_id
        self.expected = expected


class InputValidationError(EstateOpsError):
    """Input rejected before any write was attempted."""
    pass


class SupabaseError(EstateOpsError):
    """Supabase operation error."""
    retryable = True


class PartialAssignmentError(SupabaseError):
    """Work item was created but the assignment row was not."""

    def __init__(self, message: str, task_id: Optional[str] = None):
        super().__init__(message)
        self.task_id = task_id


def status_code_for(error: Exception) -> int:
    """HTTP status for an error raised by the timeline services."""
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, PreconditionFailedError):
        return 409
    if isinstance(error, InputValidationError):
        return 400
    if isinstance(error, SupabaseError):
        return 503
    return 500
