"""
Participant-scoped data access.

Services read workflow rows through ``ScopedStorage`` rather than the raw
backend. Every read applies the participant predicate, and anything the actor
may not see is reported as missing.
"""

from typing import List

from jobflow.assignments.models import Assignment
from jobflow.authz import Actor, is_participant, is_provider_of
from jobflow.disputes.models import Dispute
from jobflow.errors import NotFoundError
from jobflow.events.models import JobEvent, JobEventType
from jobflow.invoices.models import Invoice
from jobflow.jobs.models import Job
from jobflow.storage.base import WorkflowStorage
from jobflow.variations.models import Variation

# Draft activity stays with the provider until the invoice is submitted.
DRAFT_EVENT_TYPES = frozenset(
    t.value for t in (JobEventType.INVOICE_CREATED, JobEventType.INVOICE_UPDATED, JobEventType.INVOICE_VOIDED)
)


class ScopedStorage:
    """Read-side view of ``WorkflowStorage`` for one actor."""

    def __init__(self, storage: WorkflowStorage, actor: Actor):
        self.storage = storage
        self.actor = actor

    def job(self, job_id: str) -> Job:
        job = self.storage.get_job(job_id)
        if job is None or not is_participant(self.actor, job.customer_id, job.assigned_provider_id):
            raise NotFoundError("Job not found")
        return job

    def assignment(self, job_id: str) -> Assignment:
        assignment = self.storage.get_assignment(job_id)
        if assignment is None or not is_participant(self.actor, assignment.customer_id, assignment.provider_id):
            raise NotFoundError("Assignment not found")
        return assignment

    def _can_see_invoice(self, invoice: Invoice) -> bool:
        if not is_participant(self.actor, invoice.customer_id, invoice.provider_id):
            return False
        if invoice.is_draft:
            # Drafts and their items belong to the provider until submitted.
            return self.actor.is_service or is_provider_of(self.actor, invoice)
        return True

    def invoice(self, invoice_id: str) -> Invoice:
        invoice = self.storage.get_invoice(invoice_id)
        if invoice is None or not self._can_see_invoice(invoice):
            raise NotFoundError("Invoice not found")
        return invoice

    def invoices(self, job_id: str) -> List[Invoice]:
        self.assignment(job_id)
        return [i for i in self.storage.list_invoices(job_id) if self._can_see_invoice(i)]

    def variation(self, variation_id: str) -> Variation:
        variation = self.storage.get_variation(variation_id)
        if variation is None or not is_participant(self.actor, variation.customer_id, variation.provider_id):
            raise NotFoundError("Variation not found")
        return variation

    def variations(self, job_id: str) -> List[Variation]:
        self.assignment(job_id)
        return self.storage.list_variations(job_id)

    def disputes(self, job_id: str) -> List[Dispute]:
        self.assignment(job_id)
        return self.storage.list_disputes(job_id)

    def events(self, job_id: str) -> List[JobEvent]:
        assignment = self.assignment(job_id)
        events = self.storage.list_events(job_id)
        if self.actor.is_service or is_provider_of(self.actor, assignment):
            return events
        return [e for e in events if e.type not in DRAFT_EVENT_TYPES]
