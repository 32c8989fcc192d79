"""jobflow - job lifecycle and escrow engine for a two-sided trades marketplace.

Accepting a quote creates an assignment; the provider raises variations and
a completion invoice against it; the customer approves them, which releases
the escrowed funds; either party can open a dispute, which freezes the job.

Example:
    >>> from jobflow import Actor, WorkflowEngine
    >>> engine = WorkflowEngine.in_memory()
    >>> assignment = engine.accept_quote(Actor.from_account_type(customer_id, "customer"), job_id, quote_id)
"""

from jobflow.authz import Actor, Role
from jobflow.config import TransitionPolicy, WorkflowConfig
from jobflow.engine import WorkflowEngine
from jobflow.errors import (
    AssignmentConflict,
    AuthorizationDenied,
    ConcurrencyConflict,
    InvalidTransition,
    NetworkFailure,
    NotFoundError,
    StorageError,
    ValidationError,
    WorkflowError,
)

__version__ = "0.1.0"
__all__ = [
    "WorkflowEngine",
    "WorkflowConfig",
    "TransitionPolicy",
    "Actor",
    "Role",
    # Errors
    "WorkflowError",
    "NotFoundError",
    "AuthorizationDenied",
    "AssignmentConflict",
    "InvalidTransition",
    "ConcurrencyConflict",
    "ValidationError",
    "NetworkFailure",
    "StorageError",
]
