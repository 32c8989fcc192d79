"""
Notification outbox.

``NotificationOutbox.enqueue`` runs inside the caller's unit of work and only
writes a ``pending`` row. ``NotificationDispatcher`` delivers pending rows
after commit. A failed send leaves the row pending with ``attempts`` bumped;
after ``max_notification_attempts`` it is marked ``failed`` and left for an
operator.
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from jobflow.config import WorkflowConfig
from jobflow.errors import ConcurrencyConflict, NetworkFailure
from jobflow.logging_config import log_notification
from jobflow.messaging.messenger import Messenger
from jobflow.messaging.models import MessageType, Notification, NotificationStatus
from jobflow.storage.base import WorkflowStorage
from jobflow.types import new_id, utc_now

logger = logging.getLogger(__name__)


class NotificationOutbox:
    """Queues notifications alongside the state change that caused them."""

    def __init__(self, storage: WorkflowStorage, config: WorkflowConfig):
        self.storage = storage
        self.config = config

    def enqueue(
        self,
        assignment,
        sender_id: str,
        text: str,
        message_type: MessageType = MessageType.SYSTEM,
        payload: Optional[Dict[str, Any]] = None,
        invoice_id: Optional[str] = None,
        variation_id: Optional[str] = None,
        event_id: Optional[str] = None,
    ) -> Notification:
        notification = Notification(
            id=new_id(),
            job_id=assignment.job_id,
            sender_id=sender_id,
            customer_id=assignment.customer_id,
            provider_id=assignment.provider_id,
            text=text,
            message_type=message_type,
            payload=payload or {},
            deep_link=self.config.deep_link(assignment.job_id, invoice_id=invoice_id, variation_id=variation_id),
            event_id=event_id,
        )
        return self.storage.save_notification(notification)


@dataclass
class DispatchReport:
    sent: int = 0
    retrying: int = 0
    failed: int = 0
    skipped: int = 0


class NotificationDispatcher:
    """Delivers pending outbox rows through the messaging collaborator."""

    def __init__(self, storage: WorkflowStorage, messenger: Messenger, config: WorkflowConfig):
        self.storage = storage
        self.messenger = messenger
        self.config = config

    def dispatch_pending(self, job_id: Optional[str] = None, limit: int = 100) -> DispatchReport:
        """Try to deliver every pending notification (optionally for one job)."""
        report = DispatchReport()
        pending = self.storage.list_notifications(
            status=NotificationStatus.PENDING.value, job_id=job_id, limit=limit
        )
        for notification in pending:
            outcome = self._deliver(notification)
            setattr(report, outcome, getattr(report, outcome) + 1)
        if pending:
            logger.info(
                f"Dispatched outbox | sent={report.sent} | retrying={report.retrying} "
                f"| failed={report.failed} | skipped={report.skipped}"
            )
        return report

    def _deliver(self, notification: Notification) -> str:
        attempts = notification.attempts + 1
        try:
            conversation_id = self.messenger.get_or_create_conversation(
                notification.customer_id, notification.provider_id, notification.job_id
            )
            self.messenger.send_message(
                conversation_id,
                notification.sender_id,
                notification.rendered_text(),
                notification.message_type,
                dict(notification.payload, job_id=notification.job_id),
            )
        except NetworkFailure as e:
            status = (
                NotificationStatus.FAILED.value
                if attempts >= self.config.max_notification_attempts
                else NotificationStatus.PENDING.value
            )
            updated = replace(notification, attempts=attempts, status=status, last_error=e.code)
            outcome = "failed" if status == NotificationStatus.FAILED.value else "retrying"
            logger.warning(
                f"Notification send failed | id={notification.id} | job={notification.job_id} "
                f"| attempts={attempts} | status={status}"
            )
        else:
            updated = replace(
                notification,
                attempts=attempts,
                status=NotificationStatus.SENT.value,
                sent_at=utc_now(),
                last_error=None,
            )
            outcome = "sent"

        try:
            with self.storage.transaction():
                self.storage.update_notification(updated)
        except ConcurrencyConflict:
            # Another dispatcher got there first.
            logger.info(f"Notification already handled | id={notification.id}")
            return "skipped"
        log_notification(notification.job_id, notification.id, updated.status, attempts)
        return outcome
