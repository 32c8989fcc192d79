"""
Dispute guard and dispute service.

Opening a dispute freezes the job: from then on no invoice or variation can
be created, edited, submitted, approved, voided or resolved. Resolution is
handled outside the engine.
"""

import logging
from dataclasses import replace
from typing import List, Optional

from jobflow.assignments.models import Assignment, AssignmentStatus
from jobflow.authz import Actor, is_customer_of
from jobflow.disputes.models import Dispute, DisputeStatus
from jobflow.errors import AuthorizationDenied, InvalidTransition, ValidationError
from jobflow.events.models import JobEventType
from jobflow.events.service import EventLog
from jobflow.idempotency import remember, replay
from jobflow.jobs.models import JobStatus
from jobflow.jobs.status import advance_job
from jobflow.logging_config import log_transition
from jobflow.messaging.models import MessageType
from jobflow.messaging.outbox import NotificationOutbox
from jobflow.storage.base import WorkflowStorage
from jobflow.storage.scoped import ScopedStorage
from jobflow.types import new_id

logger = logging.getLogger(__name__)

DISPUTE_LOCKED_MESSAGE = "Job is under dispute. Workflow actions are locked."
DISPUTE_OPENED_TEXT = "A dispute has been opened regarding this job. Workflow actions are now locked."


class DisputeGuard:
    """The lock check used by the invoice and variation services."""

    def __init__(self, storage: WorkflowStorage):
        self.storage = storage

    def is_locked(self, job_id: str) -> bool:
        assignment = self.storage.get_assignment(job_id)
        if assignment is not None and assignment.is_disputed:
            return True
        return bool(self.storage.list_disputes(job_id, status=DisputeStatus.OPEN.value))

    def ensure_not_disputed(self, assignment: Assignment) -> None:
        """Raise InvalidTransition if the assignment's job is frozen."""
        if assignment.is_disputed or self.storage.list_disputes(
            assignment.job_id, status=DisputeStatus.OPEN.value
        ):
            raise InvalidTransition(DISPUTE_LOCKED_MESSAGE, {"job_id": assignment.job_id})


class DisputeService:
    """Opens and lists disputes."""

    OPEN_OPERATION = "open_dispute"

    def __init__(
        self,
        storage: WorkflowStorage,
        events: EventLog,
        outbox: NotificationOutbox,
    ):
        self.storage = storage
        self.events = events
        self.outbox = outbox

    def open_dispute(
        self,
        actor: Actor,
        job_id: str,
        reason: str,
        description: str = "",
        idempotency_key: Optional[str] = None,
    ) -> Dispute:
        """Raise a dispute against the other party and freeze the job.

        Raises:
            NotFoundError: Actor is not a participant, or no assignment exists.
            AuthorizationDenied: The service identity cannot be a party.
            InvalidTransition: Job is already disputed or completed.
            ValidationError: Missing reason.
        """
        scoped = ScopedStorage(self.storage, actor)
        assignment = scoped.assignment(job_id)

        previous = replay(
            self.storage,
            actor,
            idempotency_key,
            self.OPEN_OPERATION,
            lambda dispute_id: next(
                (d for d in self.storage.list_disputes(job_id) if d.id == dispute_id), None
            ),
        )
        if previous is not None:
            return previous

        if actor.is_service:
            raise AuthorizationDenied("Disputes are raised by a job participant")
        if assignment.is_disputed:
            raise InvalidTransition("Job is already disputed")
        if not assignment.can_transition_to(AssignmentStatus.DISPUTED):
            raise InvalidTransition(f"Cannot dispute a job that is {assignment.status}")

        against = assignment.provider_id if is_customer_of(actor, assignment) else assignment.customer_id
        try:
            dispute = Dispute(
                id=new_id(),
                job_id=job_id,
                assignment_id=assignment.id,
                opened_by=actor.id,
                against_party=against,
                reason=reason,
                description=description or "",
            )
        except ValueError as e:
            raise ValidationError(str(e))

        with self.storage.transaction():
            dispute = self.storage.save_dispute(dispute)
            self.storage.update_assignment(replace(assignment, status=AssignmentStatus.DISPUTED.value))
            event = self.events.log_event(
                job_id,
                JobEventType.DISPUTE_OPENED,
                actor.id,
                {"dispute_id": dispute.id, "reason": dispute.reason, "against": against},
            )
            advance_job(self.storage, self.events, job_id, JobStatus.DISPUTED, actor.id)
            self.outbox.enqueue(
                assignment,
                actor.id,
                DISPUTE_OPENED_TEXT,
                MessageType.DISPUTE,
                {"dispute_id": dispute.id},
                event_id=event.id,
            )
            remember(self.storage, actor, idempotency_key, self.OPEN_OPERATION, dispute.id)

        log_transition(
            job_id, "assignment", assignment.id, assignment.status, AssignmentStatus.DISPUTED.value, actor.id
        )
        logger.warning(f"Dispute opened | job={job_id} | dispute={dispute.id} | by={actor.id}")
        return dispute

    def list_disputes(self, actor: Actor, job_id: str) -> List[Dispute]:
        return ScopedStorage(self.storage, actor).disputes(job_id)
