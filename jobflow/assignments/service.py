"""
Job assignment ledger.

An assignment is created exactly once per job, when a quote is accepted,
either by the payment webhook (as the service identity) or directly by the
job's customer. What happens to the job next depends on
``WorkflowConfig.transition_policy``:

- single_step: the job goes straight to in_progress;
- two_step: the job goes to agreed, and only moves to in_progress once the
  provider has accepted the terms.
"""

import logging
from dataclasses import replace
from decimal import Decimal
from typing import Optional

from jobflow.assignments.models import Assignment
from jobflow.authz import Actor, Role, require_provider
from jobflow.config import WorkflowConfig
from jobflow.errors import (
    AssignmentConflict,
    AuthorizationDenied,
    InvalidTransition,
    NotFoundError,
    ValidationError,
)
from jobflow.events.models import JobEventType
from jobflow.events.service import EventLog
from jobflow.idempotency import remember, replay
from jobflow.jobs.models import JobStatus, QuoteStatus
from jobflow.jobs.status import advance_job
from jobflow.logging_config import log_transition
from jobflow.messaging.models import MessageType
from jobflow.messaging.outbox import NotificationOutbox
from jobflow.storage.base import WorkflowStorage, check_version
from jobflow.storage.scoped import ScopedStorage
from jobflow.types import ZERO, format_money, new_id, utc_now
from jobflow.variations.models import VariationStatus

logger = logging.getLogger(__name__)


def compute_payable_total(storage: WorkflowStorage, assignment: Assignment) -> Decimal:
    """Accepted quote price plus every approved variation."""
    approved = storage.list_variations(assignment.job_id, status=VariationStatus.APPROVED.value)
    return assignment.quote_price + sum((v.amount for v in approved), ZERO)


class AssignmentService:
    """Creates assignments and moves them to in_progress."""

    CREATE_OPERATION = "create_assignment"

    def __init__(
        self,
        storage: WorkflowStorage,
        events: EventLog,
        outbox: NotificationOutbox,
        config: WorkflowConfig,
    ):
        self.storage = storage
        self.events = events
        self.outbox = outbox
        self.config = config

    def create_assignment(
        self,
        actor: Actor,
        job_id: str,
        customer_id: str,
        provider_id: str,
        accepted_quote_id: str,
        idempotency_key: Optional[str] = None,
    ) -> Assignment:
        """Bind a provider and accepted quote to a job.

        Args:
            actor: The service identity (payment webhook) or the job's customer
            job_id: Job being assigned
            customer_id: Customer who posted the job
            provider_id: Provider whose quote was accepted
            accepted_quote_id: The winning quote
            idempotency_key: Optional replay key

        Returns:
            The new assignment

        Raises:
            NotFoundError: Job or quote does not exist, or actor may not see the job
            AuthorizationDenied: Actor cannot accept quotes
            AssignmentConflict: The job already has an assignment
            ValidationError: Quote, customer and provider do not line up
            InvalidTransition: Quote is no longer pending
        """
        job = self.storage.get_job(job_id)
        if job is None or not (actor.is_service or actor.id == job.customer_id):
            raise NotFoundError("Job not found")
        if not actor.has_role(Role.CUSTOMER):
            raise AuthorizationDenied("Only the customer can accept a quote")

        previous = replay(
            self.storage,
            actor,
            idempotency_key,
            self.CREATE_OPERATION,
            lambda _id: self.storage.get_assignment(job_id),
        )
        if previous is not None:
            return previous

        if customer_id != job.customer_id:
            raise ValidationError("Customer does not own this job")
        quote = self.storage.get_quote(accepted_quote_id)
        if quote is None or quote.job_id != job_id:
            raise NotFoundError("Quote not found")
        if quote.provider_id != provider_id:
            raise ValidationError("Quote was not submitted by this provider")

        existing = self.storage.get_assignment(job_id)
        if existing is not None:
            raise AssignmentConflict(job_id, existing.id)
        if quote.status != QuoteStatus.PENDING.value:
            raise InvalidTransition(f"Quote is {quote.status}")

        now = utc_now()
        two_step = self.config.is_two_step
        try:
            assignment = Assignment(
                id=new_id(),
                job_id=job_id,
                customer_id=customer_id,
                provider_id=provider_id,
                accepted_quote_id=quote.id,
                quote_price=quote.price,
                agreed_at=now,
                provider_accepted_terms_at=None if two_step else now,
                in_progress_at=None if two_step else now,
            )
        except ValueError as e:
            raise ValidationError(str(e))

        target = JobStatus.AGREED if two_step else JobStatus.IN_PROGRESS
        with self.storage.transaction():
            assignment = self.storage.save_assignment(assignment)
            self.storage.update_quote(replace(quote, status=QuoteStatus.ACCEPTED.value))
            event = self.events.log_event(
                job_id,
                JobEventType.QUOTE_ACCEPTED,
                actor.id,
                {"quote_id": quote.id, "provider_id": provider_id, "price": str(quote.price)},
            )
            advance_job(
                self.storage,
                self.events,
                job_id,
                target,
                actor.id,
                assigned_provider_id=provider_id,
                agreed_at=now,
            )
            text = f"Quote accepted: {job.title or 'Job'} ({format_money(quote.price)})."
            if two_step:
                text += " Please review and accept the job terms to start work."
            self.outbox.enqueue(
                assignment, customer_id, text, MessageType.SYSTEM, {"quote_id": quote.id}, event_id=event.id
            )
            remember(self.storage, actor, idempotency_key, self.CREATE_OPERATION, assignment.id)

        log_transition(job_id, "assignment", assignment.id, None, assignment.status, actor.id)
        logger.info(
            f"Assignment created | job={job_id} | assignment={assignment.id} | provider={provider_id} "
            f"| policy={self.config.transition_policy.value}"
        )
        return assignment

    def accept_quote(
        self,
        actor: Actor,
        job_id: str,
        quote_id: str,
        idempotency_key: Optional[str] = None,
    ) -> Assignment:
        """Customer-side acceptance: resolve the parties from the job and quote."""
        job = self.storage.get_job(job_id)
        if job is None or not (actor.is_service or actor.id == job.customer_id):
            raise NotFoundError("Job not found")
        quote = self.storage.get_quote(quote_id)
        if quote is None or quote.job_id != job_id:
            raise NotFoundError("Quote not found")
        return self.create_assignment(
            actor,
            job_id,
            customer_id=job.customer_id,
            provider_id=quote.provider_id,
            accepted_quote_id=quote.id,
            idempotency_key=idempotency_key,
        )

    def accept_terms(self, actor: Actor, job_id: str, expected_version: Optional[int] = None) -> Assignment:
        """Provider accepts the agreed terms; the job moves to in_progress.

        Only used under the two_step policy.
        """
        assignment = ScopedStorage(self.storage, actor).assignment(job_id)
        require_provider(actor, assignment, "accept the job terms")
        check_version(assignment, expected_version, "assignment")
        if not self.config.is_two_step:
            raise InvalidTransition("Terms are accepted at checkout for this marketplace")
        if not assignment.is_active:
            raise InvalidTransition(f"Assignment is {assignment.status}")
        if assignment.agreed_at is None:
            raise InvalidTransition("Job has not been agreed yet")
        if assignment.provider_accepted_terms_at is not None:
            raise InvalidTransition("Terms already accepted")

        now = utc_now()
        with self.storage.transaction():
            updated = self.storage.update_assignment(
                replace(assignment, provider_accepted_terms_at=now, in_progress_at=now)
            )
            event = self.events.log_event(
                job_id, JobEventType.TERMS_ACCEPTED, actor.id, {"assignment_id": assignment.id}
            )
            if updated.is_in_progress:
                advance_job(self.storage, self.events, job_id, JobStatus.IN_PROGRESS, actor.id)
            self.outbox.enqueue(
                updated,
                actor.id,
                "The provider accepted the job terms. Work is now in progress.",
                MessageType.SYSTEM,
                event_id=event.id,
            )

        logger.info(f"Terms accepted | job={job_id} | assignment={assignment.id} | provider={actor.id}")
        return updated

    def get_assignment(self, actor: Actor, job_id: str) -> Assignment:
        """Participants only; anyone else gets NotFoundError."""
        return ScopedStorage(self.storage, actor).assignment(job_id)

    def payable_total(self, actor: Actor, job_id: str) -> Decimal:
        assignment = ScopedStorage(self.storage, actor).assignment(job_id)
        return compute_payable_total(self.storage, assignment)
