"""Error taxonomy for the job workflow engine.

Every failure an operation can report is a ``WorkflowError`` subclass with a
stable machine ``code``. The HTTP layer maps codes to status codes; callers
never see raw storage or payment-provider error text.
"""

from typing import Any, Dict, Optional


class WorkflowError(Exception):
    """Base exception for workflow operations."""

    code = "workflow_error"
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        data = {"code": self.code, "detail": self.message}
        if self.details:
            data["details"] = self.details
        if self.retryable:
            data["retryable"] = True
        return data


class NotFoundError(WorkflowError):
    """Entity does not exist, or the actor may not know that it exists."""

    code = "not_found"


class AuthorizationDenied(WorkflowError):
    """A participant attempted an action outside their role."""

    code = "forbidden"


class AssignmentConflict(WorkflowError):
    """A non-void assignment already exists for the job."""

    code = "assignment_conflict"

    def __init__(self, job_id: str, existing_assignment_id: Optional[str] = None):
        details = {"job_id": job_id}
        if existing_assignment_id:
            details["assignment_id"] = existing_assignment_id
        super().__init__(f"Job {job_id} already has an active assignment", details)
        self.job_id = job_id
        self.existing_assignment_id = existing_assignment_id


class InvalidTransition(WorkflowError):
    """Operation is not permitted from the entity's current status."""

    code = "invalid_transition"


class ConcurrencyConflict(WorkflowError):
    """Row was modified since the caller read it."""

    code = "version_conflict"

    def __init__(self, entity: str, entity_id: str, expected: Optional[int] = None, found: Optional[int] = None):
        details: Dict[str, Any] = {"entity": entity, "id": entity_id}
        if expected is not None:
            details["expected_version"] = expected
        if found is not None:
            details["current_version"] = found
        super().__init__(
            f"{entity.capitalize()} {entity_id} was modified by another request. Please refresh and try again.",
            details,
        )


class ValidationError(WorkflowError):
    """Missing or malformed input."""

    code = "validation_error"


class NetworkFailure(WorkflowError):
    """Transient failure talking to a collaborator. Safe to retry manually."""

    code = "network_failure"
    retryable = True

    def __init__(self, collaborator: str, message: str = "Upstream service unavailable"):
        super().__init__(f"{message} ({collaborator})", {"collaborator": collaborator})
        self.collaborator = collaborator


class StorageError(WorkflowError):
    """The storage backend rejected an operation for a non-transient reason."""

    code = "storage_error"

    def __init__(self, message: str = "Storage operation failed"):
        super().__init__(message)
