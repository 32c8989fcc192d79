"""
Workflow engine facade.

Builds the services once, wires them to a storage backend, settlement
gateway and messenger, and exposes every workflow operation in one place.
Nothing here is global: the API and the tests each build their own engine.
"""

import logging
from decimal import Decimal
from typing import Any, List, Optional

from jobflow.assignments.models import Assignment
from jobflow.assignments.service import AssignmentService
from jobflow.authz import Actor
from jobflow.config import WorkflowConfig
from jobflow.disputes.models import Dispute
from jobflow.disputes.service import DisputeGuard, DisputeService
from jobflow.events.models import TimelineEntry
from jobflow.events.service import EventLog
from jobflow.invoices.models import Invoice
from jobflow.invoices.service import InvoiceService
from jobflow.messaging.messenger import InMemoryMessenger, Messenger
from jobflow.messaging.outbox import DispatchReport, NotificationDispatcher, NotificationOutbox
from jobflow.settlement.gateway import InMemorySettlementGateway, SettlementGateway
from jobflow.storage.base import WorkflowStorage
from jobflow.storage.memory import InMemoryWorkflowStorage
from jobflow.variations.models import Variation, VariationDecision
from jobflow.variations.service import VariationService

logger = logging.getLogger(__name__)


class WorkflowEngine:
    """Job lifecycle and escrow engine."""

    def __init__(
        self,
        storage: WorkflowStorage,
        settlement: SettlementGateway,
        messenger: Messenger,
        config: Optional[WorkflowConfig] = None,
    ):
        self.storage = storage
        self.settlement = settlement
        self.messenger = messenger
        self.config = config or WorkflowConfig()

        self.events = EventLog(storage)
        self.outbox = NotificationOutbox(storage, self.config)
        self.guard = DisputeGuard(storage)
        self.assignments = AssignmentService(storage, self.events, self.outbox, self.config)
        self.variations = VariationService(storage, self.events, self.outbox, self.guard)
        self.disputes = DisputeService(storage, self.events, self.outbox)
        self.invoices = InvoiceService(storage, self.events, self.outbox, self.guard, settlement, self.config)
        self.dispatcher = NotificationDispatcher(storage, messenger, self.config)
        logger.debug(f"Workflow engine ready | policy={self.config.transition_policy.value}")

    @classmethod
    def in_memory(cls, config: Optional[WorkflowConfig] = None) -> "WorkflowEngine":
        """Engine over in-memory collaborators, for tests and local development."""
        return cls(InMemoryWorkflowStorage(), InMemorySettlementGateway(), InMemoryMessenger(), config)

    # === Job Assignment Ledger ===

    def create_assignment(
        self,
        actor: Actor,
        job_id: str,
        customer_id: str,
        provider_id: str,
        accepted_quote_id: str,
        idempotency_key: Optional[str] = None,
    ) -> Assignment:
        return self.assignments.create_assignment(
            actor, job_id, customer_id, provider_id, accepted_quote_id, idempotency_key=idempotency_key
        )

    def accept_quote(
        self, actor: Actor, job_id: str, quote_id: str, idempotency_key: Optional[str] = None
    ) -> Assignment:
        return self.assignments.accept_quote(actor, job_id, quote_id, idempotency_key=idempotency_key)

    def accept_terms(self, actor: Actor, job_id: str, expected_version: Optional[int] = None) -> Assignment:
        return self.assignments.accept_terms(actor, job_id, expected_version=expected_version)

    def get_assignment(self, actor: Actor, job_id: str) -> Assignment:
        return self.assignments.get_assignment(actor, job_id)

    def payable_total(self, actor: Actor, job_id: str) -> Decimal:
        return self.assignments.payable_total(actor, job_id)

    # === Invoice Engine ===

    def create_invoice(self, actor: Actor, job_id: str, **kwargs: Any) -> Invoice:
        return self.invoices.create_invoice(actor, job_id, **kwargs)

    def update_invoice(
        self, actor: Actor, invoice_id: str, expected_version: Optional[int] = None, **fields: Any
    ) -> Invoice:
        return self.invoices.update_invoice(actor, invoice_id, expected_version=expected_version, **fields)

    def submit_invoice(
        self,
        actor: Actor,
        invoice_id: str,
        expected_version: Optional[int] = None,
        idempotency_key: Optional[str] = None,
    ) -> Invoice:
        return self.invoices.submit_invoice(
            actor, invoice_id, expected_version=expected_version, idempotency_key=idempotency_key
        )

    def approve_invoice(self, actor: Actor, invoice_id: str, expected_version: Optional[int] = None) -> Invoice:
        return self.invoices.approve_invoice(actor, invoice_id, expected_version=expected_version)

    def void_invoice(self, actor: Actor, invoice_id: str, expected_version: Optional[int] = None) -> Invoice:
        return self.invoices.void_invoice(actor, invoice_id, expected_version=expected_version)

    def get_invoice(self, actor: Actor, invoice_id: str) -> Invoice:
        return self.invoices.get_invoice(actor, invoice_id)

    def list_invoices(self, actor: Actor, job_id: str) -> List[Invoice]:
        return self.invoices.list_invoices(actor, job_id)

    # === Variation Workflow ===

    def request_variation(
        self,
        actor: Actor,
        job_id: str,
        title: str,
        description: str = "",
        amount: Any = None,
        idempotency_key: Optional[str] = None,
    ) -> Variation:
        return self.variations.request_variation(
            actor, job_id, title, description, amount, idempotency_key=idempotency_key
        )

    def resolve_variation(
        self,
        actor: Actor,
        variation_id: str,
        decision: VariationDecision,
        expected_version: Optional[int] = None,
    ) -> Variation:
        return self.variations.resolve_variation(actor, variation_id, decision, expected_version=expected_version)

    def get_variation(self, actor: Actor, variation_id: str) -> Variation:
        return self.variations.get_variation(actor, variation_id)

    def list_variations(self, actor: Actor, job_id: str) -> List[Variation]:
        return self.variations.list_variations(actor, job_id)

    # === Dispute Guard ===

    def open_dispute(
        self,
        actor: Actor,
        job_id: str,
        reason: str,
        description: str = "",
        idempotency_key: Optional[str] = None,
    ) -> Dispute:
        return self.disputes.open_dispute(actor, job_id, reason, description, idempotency_key=idempotency_key)

    def list_disputes(self, actor: Actor, job_id: str) -> List[Dispute]:
        return self.disputes.list_disputes(actor, job_id)

    def is_locked(self, job_id: str) -> bool:
        return self.guard.is_locked(job_id)

    # === Event Log ===

    def timeline(self, actor: Actor, job_id: str) -> List[TimelineEntry]:
        return self.events.timeline(actor, job_id)

    # === Notifications ===

    def dispatch_notifications(self, job_id: Optional[str] = None, limit: int = 100) -> DispatchReport:
        """Deliver queued notifications. Safe to call after every request."""
        return self.dispatcher.dispatch_pending(job_id=job_id, limit=limit)
