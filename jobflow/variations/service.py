"""Variation (scope change) workflow."""

import logging
from dataclasses import replace
from typing import Any, List, Optional

from jobflow.assignments.models import Assignment
from jobflow.authz import Actor, require_customer, require_provider
from jobflow.disputes.service import DisputeGuard
from jobflow.errors import InvalidTransition, ValidationError
from jobflow.events.models import JobEventType
from jobflow.events.service import EventLog
from jobflow.idempotency import remember, replay
from jobflow.invoices.models import LIVE_INVOICE_STATUSES
from jobflow.logging_config import log_transition
from jobflow.messaging.models import MessageType
from jobflow.messaging.outbox import NotificationOutbox
from jobflow.storage.base import WorkflowStorage, check_version
from jobflow.storage.scoped import ScopedStorage
from jobflow.types import format_money, new_id, to_money, utc_now
from jobflow.variations.models import Variation, VariationDecision, VariationStatus

logger = logging.getLogger(__name__)


def _ensure_open_for_changes(storage: WorkflowStorage, guard: DisputeGuard, assignment: Assignment) -> None:
    guard.ensure_not_disputed(assignment)
    if not assignment.is_active:
        raise InvalidTransition(f"Job is {assignment.status}; variations are closed")
    # The payable total is frozen once a completion invoice is live.
    if any(i.status in LIVE_INVOICE_STATUSES for i in storage.list_invoices(assignment.job_id)):
        raise InvalidTransition("A completion invoice has already been submitted for this job")


class VariationService:
    """Provider requests, customer approves or declines."""

    REQUEST_OPERATION = "request_variation"

    def __init__(
        self,
        storage: WorkflowStorage,
        events: EventLog,
        outbox: NotificationOutbox,
        guard: DisputeGuard,
    ):
        self.storage = storage
        self.events = events
        self.outbox = outbox
        self.guard = guard

    def request_variation(
        self,
        actor: Actor,
        job_id: str,
        title: str,
        description: str = "",
        amount: Any = None,
        idempotency_key: Optional[str] = None,
    ) -> Variation:
        """Propose a change of scope with an extra amount.

        Raises:
            NotFoundError: Actor is not a participant.
            AuthorizationDenied: Actor is not the assigned provider.
            InvalidTransition: Job is disputed or completed.
            ValidationError: Missing title, or amount not a positive number.
        """
        assignment = ScopedStorage(self.storage, actor).assignment(job_id)
        require_provider(actor, assignment, "request a variation")

        previous = replay(self.storage, actor, idempotency_key, self.REQUEST_OPERATION, self.storage.get_variation)
        if previous is not None:
            return previous

        _ensure_open_for_changes(self.storage, self.guard, assignment)
        try:
            variation = Variation(
                id=new_id(),
                job_id=job_id,
                assignment_id=assignment.id,
                provider_id=assignment.provider_id,
                customer_id=assignment.customer_id,
                title=title,
                description=description or "",
                amount=to_money(amount),
            )
        except ValueError as e:
            raise ValidationError(str(e))

        with self.storage.transaction():
            variation = self.storage.save_variation(variation)
            event = self.events.log_event(
                job_id,
                JobEventType.VARIATION_REQUESTED,
                actor.id,
                {"variation_id": variation.id, "title": variation.title, "amount": str(variation.amount)},
            )
            self.outbox.enqueue(
                assignment,
                actor.id,
                f"Requested a variation: {variation.title} ({format_money(variation.amount)})",
                MessageType.VARIATION,
                {"variation_id": variation.id, "amount": str(variation.amount)},
                variation_id=variation.id,
                event_id=event.id,
            )
            remember(self.storage, actor, idempotency_key, self.REQUEST_OPERATION, variation.id)

        logger.info(f"Variation requested | job={job_id} | variation={variation.id} | amount={variation.amount}")
        return variation

    def resolve_variation(
        self,
        actor: Actor,
        variation_id: str,
        decision: VariationDecision,
        expected_version: Optional[int] = None,
    ) -> Variation:
        """Customer approves or declines a pending variation.

        Declining leaves the job and assignment untouched.
        """
        try:
            decision = VariationDecision(decision)
        except ValueError:
            raise ValidationError(f"Invalid decision: {decision}")

        scoped = ScopedStorage(self.storage, actor)
        variation = scoped.variation(variation_id)
        assignment = scoped.assignment(variation.job_id)
        require_customer(actor, assignment, "resolve a variation")
        self.guard.ensure_not_disputed(assignment)
        check_version(variation, expected_version, "variation")
        if not variation.is_pending:
            raise InvalidTransition(f"Variation is already {variation.status}")
        approved = decision == VariationDecision.APPROVED
        if approved:
            _ensure_open_for_changes(self.storage, self.guard, assignment)

        new_status = VariationStatus.APPROVED if approved else VariationStatus.DECLINED
        with self.storage.transaction():
            updated = self.storage.update_variation(
                replace(variation, status=new_status.value, decided_at=utc_now())
            )
            event = self.events.log_event(
                variation.job_id,
                JobEventType.VARIATION_APPROVED if approved else JobEventType.VARIATION_DECLINED,
                actor.id,
                {"variation_id": variation.id, "title": variation.title, "amount": str(variation.amount)},
            )
            if approved:
                text = f"Variation APPROVED: {variation.title} ({format_money(variation.amount)})."
            else:
                text = f"Variation DECLINED: {variation.title}. The original agreement stands."
            self.outbox.enqueue(
                assignment,
                actor.id,
                text,
                MessageType.SYSTEM,
                {"variation_id": variation.id, "decision": decision.value},
                variation_id=variation.id,
                event_id=event.id,
            )

        log_transition(variation.job_id, "variation", variation.id, variation.status, updated.status, actor.id)
        logger.info(
            f"Variation resolved | job={variation.job_id} | variation={variation.id} | decision={decision.value}"
        )
        return updated

    def get_variation(self, actor: Actor, variation_id: str) -> Variation:
        return ScopedStorage(self.storage, actor).variation(variation_id)

    def list_variations(self, actor: Actor, job_id: str) -> List[Variation]:
        return ScopedStorage(self.storage, actor).variations(job_id)
