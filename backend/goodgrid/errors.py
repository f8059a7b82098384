from __future__ import annotations


class PipelineError(Exception):
    """Base class for verification/reward pipeline failures."""


class TaskUnavailable(PipelineError):
    pass


class DuplicateSubmission(PipelineError):
    pass


class NotEligible(PipelineError):
    """Resubmit guard: caller does not own the submission or it is not awaiting revision."""


class NotFound(PipelineError):
    pass


class AlreadyAssigned(PipelineError):
    pass


class NotAssignedToReviewer(PipelineError):
    pass


class InvalidTransition(PipelineError):
    def __init__(self, submission_id, current: str | None, target: str):
        super().__init__(f"submission {submission_id}: {current} -> {target} not allowed")
        self.submission_id = submission_id
        self.current = current
        self.target = target


class GatewayUnavailable(PipelineError):
    """Verification (or another external) call failed or timed out."""


class TransactionFailed(PipelineError):
    """Storage layer aborted the unit of work; nothing was committed."""
