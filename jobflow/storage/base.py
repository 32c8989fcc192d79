"""
Storage protocol for the workflow engine.

Contract shared by every backend:

- ``save_*`` inserts a new row and returns the stored copy.
- ``update_*`` is compare-and-set on ``version``: the entity passed in
  carries the version the caller read. On success the stored copy is
  returned with ``version + 1``; a mismatch raises ``ConcurrencyConflict``.
- Events have no update or delete.
- ``transaction()`` groups the writes of one operation. Either all of them
  are applied or none are.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import ContextManager, List, Optional, Protocol

from jobflow.assignments.models import Assignment
from jobflow.disputes.models import Dispute
from jobflow.errors import ConcurrencyConflict
from jobflow.events.models import JobEvent
from jobflow.invoices.models import Invoice
from jobflow.jobs.models import Job, Quote
from jobflow.messaging.models import Notification
from jobflow.types import iso, parse_datetime
from jobflow.variations.models import Variation


@dataclass
class IdempotencyRecord:
    """Remembers which entity a client-supplied key produced."""

    key: str
    actor_id: str
    operation: str
    result_id: str
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "actor_id": self.actor_id,
            "operation": self.operation,
            "result_id": self.result_id,
            "created_at": iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "IdempotencyRecord":
        return cls(
            key=data["key"],
            actor_id=data["actor_id"],
            operation=data["operation"],
            result_id=data["result_id"],
            created_at=parse_datetime(data.get("created_at")),
        )


class WorkflowStorage(Protocol):
    """Protocol for workflow persistence backends."""

    def transaction(self) -> ContextManager[None]:
        """Unit of work for one operation."""
        ...

    # Jobs and quotes
    def save_job(self, job: Job) -> Job: ...

    def get_job(self, job_id: str) -> Optional[Job]: ...

    def update_job(self, job: Job) -> Job: ...

    def save_quote(self, quote: Quote) -> Quote: ...

    def get_quote(self, quote_id: str) -> Optional[Quote]: ...

    def update_quote(self, quote: Quote) -> Quote: ...

    # Assignments
    def save_assignment(self, assignment: Assignment) -> Assignment:
        """Insert an assignment. Raises AssignmentConflict if the job already has one."""
        ...

    def get_assignment(self, job_id: str) -> Optional[Assignment]: ...

    def update_assignment(self, assignment: Assignment) -> Assignment: ...

    # Invoices
    def save_invoice(self, invoice: Invoice) -> Invoice: ...

    def get_invoice(self, invoice_id: str) -> Optional[Invoice]: ...

    def update_invoice(self, invoice: Invoice) -> Invoice: ...

    def list_invoices(self, job_id: str, status: Optional[str] = None) -> List[Invoice]:
        """Invoices for a job, oldest first."""
        ...

    def next_invoice_number(self, job_id: str) -> int: ...

    # Variations
    def save_variation(self, variation: Variation) -> Variation: ...

    def get_variation(self, variation_id: str) -> Optional[Variation]: ...

    def update_variation(self, variation: Variation) -> Variation: ...

    def list_variations(self, job_id: str, status: Optional[str] = None) -> List[Variation]:
        """Variations for a job, oldest first."""
        ...

    # Disputes
    def save_dispute(self, dispute: Dispute) -> Dispute: ...

    def list_disputes(self, job_id: str, status: Optional[str] = None) -> List[Dispute]: ...

    # Events (append-only)
    def append_event(self, event: JobEvent) -> JobEvent: ...

    def list_events(self, job_id: str) -> List[JobEvent]:
        """Events ascending by (created_at, sequence)."""
        ...

    # Notification outbox
    def save_notification(self, notification: Notification) -> Notification: ...

    def update_notification(self, notification: Notification) -> Notification: ...

    def list_notifications(
        self,
        status: Optional[str] = None,
        job_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[Notification]: ...

    # Idempotency
    def get_idempotency_record(self, actor_id: str, key: str) -> Optional[IdempotencyRecord]: ...

    def save_idempotency_record(self, record: IdempotencyRecord) -> IdempotencyRecord: ...

    # Payout accounts
    def get_payout_account(self, provider_id: str) -> Optional[str]:
        """Settlement destination (e.g. Stripe connected account) for a provider."""
        ...


def check_version(entity, expected_version: Optional[int], name: str) -> None:
    """Fail early when the caller's copy (ETag) is stale."""
    if expected_version is not None and expected_version != entity.version:
        raise ConcurrencyConflict(name, entity.id, expected=expected_version, found=entity.version)
