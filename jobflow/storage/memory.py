"""
In-memory workflow storage for testing and local development.

Rows are deep-copied on the way in and out so callers can never mutate
stored state without going through ``update_*``. ``transaction()`` takes a
snapshot and restores it if the block raises.
"""

import copy
import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional

from jobflow.assignments.models import Assignment
from jobflow.disputes.models import Dispute
from jobflow.errors import AssignmentConflict, ConcurrencyConflict, NotFoundError
from jobflow.events.models import JobEvent
from jobflow.invoices.models import Invoice
from jobflow.jobs.models import Job, Quote
from jobflow.messaging.models import Notification
from jobflow.storage.base import IdempotencyRecord
from jobflow.types import utc_now
from jobflow.variations.models import Variation

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class InMemoryWorkflowStorage:
    """Dict-backed implementation of ``WorkflowStorage``."""

    def __init__(self):
        """Initialize empty storage."""
        self._jobs: Dict[str, Job] = {}
        self._quotes: Dict[str, Quote] = {}
        self._assignments: Dict[str, Assignment] = {}  # job_id -> assignment
        self._invoices: Dict[str, Invoice] = {}
        self._variations: Dict[str, Variation] = {}
        self._disputes: Dict[str, Dispute] = {}
        self._events: Dict[str, List[JobEvent]] = {}  # job_id -> events
        self._notifications: Dict[str, Notification] = {}
        self._idempotency: Dict[tuple, IdempotencyRecord] = {}
        self._payout_accounts: Dict[str, str] = {}
        self._event_sequence = 0
        self._tx_depth = 0
        self._lock = threading.RLock()

    _STATE_ATTRS = (
        "_jobs",
        "_quotes",
        "_assignments",
        "_invoices",
        "_variations",
        "_disputes",
        "_events",
        "_notifications",
        "_idempotency",
        "_event_sequence",
    )

    # === Unit of work ===

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Apply every write in the block, or none of them.

        Units of work are serialized on a re-entrant lock so a rollback never
        discards writes made by another thread.
        """
        with self._lock:
            if self._tx_depth:
                self._tx_depth += 1
                try:
                    yield
                finally:
                    self._tx_depth -= 1
                return

            snapshot = {attr: copy.deepcopy(getattr(self, attr)) for attr in self._STATE_ATTRS}
            self._tx_depth = 1
            try:
                yield
            except BaseException:
                for attr, value in snapshot.items():
                    setattr(self, attr, value)
                logger.debug("Transaction rolled back")
                raise
            finally:
                self._tx_depth = 0

    # === Helpers ===

    @staticmethod
    def _stamp_new(entity):
        now = utc_now()
        updates = {}
        if hasattr(entity, "created_at") and entity.created_at is None:
            updates["created_at"] = now
        if hasattr(entity, "updated_at") and entity.updated_at is None:
            updates["updated_at"] = now
        return replace(entity, **updates) if updates else entity

    @staticmethod
    def _compare_and_set(table: dict, key: str, entity, name: str):
        current = table.get(key)
        if current is None:
            raise NotFoundError(f"{name.capitalize()} not found")
        if current.version != entity.version:
            raise ConcurrencyConflict(name, entity.id, expected=entity.version, found=current.version)
        updates = {"version": entity.version + 1}
        if hasattr(entity, "updated_at"):
            updates["updated_at"] = utc_now()
        stored = replace(copy.deepcopy(entity), **updates)
        table[key] = stored
        return copy.deepcopy(stored)

    # === Jobs & quotes ===

    def save_job(self, job: Job) -> Job:
        stored = self._stamp_new(copy.deepcopy(job))
        self._jobs[job.id] = stored
        return copy.deepcopy(stored)

    def get_job(self, job_id: str) -> Optional[Job]:
        return copy.deepcopy(self._jobs.get(job_id))

    def update_job(self, job: Job) -> Job:
        return self._compare_and_set(self._jobs, job.id, job, "job")

    def save_quote(self, quote: Quote) -> Quote:
        stored = self._stamp_new(copy.deepcopy(quote))
        self._quotes[quote.id] = stored
        return copy.deepcopy(stored)

    def get_quote(self, quote_id: str) -> Optional[Quote]:
        return copy.deepcopy(self._quotes.get(quote_id))

    def update_quote(self, quote: Quote) -> Quote:
        return self._compare_and_set(self._quotes, quote.id, quote, "quote")

    # === Assignments ===

    def save_assignment(self, assignment: Assignment) -> Assignment:
        existing = self._assignments.get(assignment.job_id)
        if existing is not None:
            raise AssignmentConflict(assignment.job_id, existing.id)
        stored = self._stamp_new(copy.deepcopy(assignment))
        self._assignments[assignment.job_id] = stored
        return copy.deepcopy(stored)

    def get_assignment(self, job_id: str) -> Optional[Assignment]:
        return copy.deepcopy(self._assignments.get(job_id))

    def update_assignment(self, assignment: Assignment) -> Assignment:
        return self._compare_and_set(self._assignments, assignment.job_id, assignment, "assignment")

    # === Invoices ===

    def save_invoice(self, invoice: Invoice) -> Invoice:
        stored = self._stamp_new(copy.deepcopy(invoice))
        self._invoices[invoice.id] = stored
        return copy.deepcopy(stored)

    def get_invoice(self, invoice_id: str) -> Optional[Invoice]:
        return copy.deepcopy(self._invoices.get(invoice_id))

    def update_invoice(self, invoice: Invoice) -> Invoice:
        return self._compare_and_set(self._invoices, invoice.id, invoice, "invoice")

    def list_invoices(self, job_id: str, status: Optional[str] = None) -> List[Invoice]:
        invoices = [i for i in self._invoices.values() if i.job_id == job_id]
        if status is not None:
            invoices = [i for i in invoices if i.status == status]
        invoices.sort(key=lambda i: i.invoice_number)
        return copy.deepcopy(invoices)

    def next_invoice_number(self, job_id: str) -> int:
        numbers = [i.invoice_number for i in self._invoices.values() if i.job_id == job_id]
        return max(numbers, default=0) + 1

    # === Variations ===

    def save_variation(self, variation: Variation) -> Variation:
        stored = self._stamp_new(copy.deepcopy(variation))
        self._variations[variation.id] = stored
        return copy.deepcopy(stored)

    def get_variation(self, variation_id: str) -> Optional[Variation]:
        return copy.deepcopy(self._variations.get(variation_id))

    def update_variation(self, variation: Variation) -> Variation:
        return self._compare_and_set(self._variations, variation.id, variation, "variation")

    def list_variations(self, job_id: str, status: Optional[str] = None) -> List[Variation]:
        variations = [v for v in self._variations.values() if v.job_id == job_id]
        if status is not None:
            variations = [v for v in variations if v.status == status]
        variations.sort(key=lambda v: v.created_at or _EPOCH)
        return copy.deepcopy(variations)

    # === Disputes ===

    def save_dispute(self, dispute: Dispute) -> Dispute:
        stored = self._stamp_new(copy.deepcopy(dispute))
        self._disputes[dispute.id] = stored
        return copy.deepcopy(stored)

    def list_disputes(self, job_id: str, status: Optional[str] = None) -> List[Dispute]:
        disputes = [d for d in self._disputes.values() if d.job_id == job_id]
        if status is not None:
            disputes = [d for d in disputes if d.status == status]
        disputes.sort(key=lambda d: d.created_at or _EPOCH)
        return copy.deepcopy(disputes)

    # === Events ===

    def append_event(self, event: JobEvent) -> JobEvent:
        self._event_sequence += 1
        stored = replace(
            copy.deepcopy(event),
            created_at=event.created_at or utc_now(),
            sequence=self._event_sequence,
        )
        self._events.setdefault(event.job_id, []).append(stored)
        return copy.deepcopy(stored)

    def list_events(self, job_id: str) -> List[JobEvent]:
        events = self._events.get(job_id, [])
        return copy.deepcopy(sorted(events, key=lambda e: (e.created_at or _EPOCH, e.sequence)))

    # === Notification outbox ===

    def save_notification(self, notification: Notification) -> Notification:
        stored = self._stamp_new(copy.deepcopy(notification))
        self._notifications[notification.id] = stored
        return copy.deepcopy(stored)

    def update_notification(self, notification: Notification) -> Notification:
        return self._compare_and_set(self._notifications, notification.id, notification, "notification")

    def list_notifications(
        self,
        status: Optional[str] = None,
        job_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[Notification]:
        notifications = list(self._notifications.values())
        if status is not None:
            notifications = [n for n in notifications if n.status == status]
        if job_id is not None:
            notifications = [n for n in notifications if n.job_id == job_id]
        notifications.sort(key=lambda n: n.created_at or _EPOCH)
        return copy.deepcopy(notifications[:limit])

    # === Idempotency ===

    def get_idempotency_record(self, actor_id: str, key: str) -> Optional[IdempotencyRecord]:
        return copy.deepcopy(self._idempotency.get((actor_id, key)))

    def save_idempotency_record(self, record: IdempotencyRecord) -> IdempotencyRecord:
        stored = replace(record, created_at=record.created_at or utc_now())
        self._idempotency[(record.actor_id, record.key)] = stored
        return copy.deepcopy(stored)

    # === Payout accounts ===

    def set_payout_account(self, provider_id: str, account_id: str) -> None:
        """Register a provider's settlement destination (test/dev helper)."""
        self._payout_accounts[provider_id] = account_id

    def get_payout_account(self, provider_id: str) -> Optional[str]:
        return self._payout_accounts.get(provider_id)
