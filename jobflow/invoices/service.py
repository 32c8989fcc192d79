"""
Invoice engine.

The provider drafts a completion invoice, edits it and submits it; the
customer approves it, which releases the escrowed funds. The total is never
taken from the client: it is always the accepted quote price plus every
approved variation. With GST enabled the total is GST-inclusive and the tax
component is ``total * rate / (1 + rate)`` (one eleventh at 10%).
"""

import logging
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from jobflow.assignments.models import Assignment, AssignmentStatus
from jobflow.assignments.service import compute_payable_total
from jobflow.authz import Actor, require_customer, require_provider
from jobflow.config import WorkflowConfig
from jobflow.disputes.service import DisputeGuard
from jobflow.errors import InvalidTransition, ValidationError
from jobflow.events.models import JobEventType
from jobflow.events.service import EventLog
from jobflow.idempotency import remember, replay
from jobflow.invoices.models import LIVE_INVOICE_STATUSES, Invoice, InvoiceItem, InvoiceStatus
from jobflow.jobs.models import JobStatus
from jobflow.jobs.status import advance_job
from jobflow.logging_config import log_settlement, log_transition
from jobflow.messaging.models import MessageType
from jobflow.messaging.outbox import NotificationOutbox
from jobflow.settlement.gateway import SettlementGateway
from jobflow.storage.base import WorkflowStorage, check_version
from jobflow.storage.scoped import ScopedStorage
from jobflow.types import ZERO, format_money, new_id, parse_date, to_money, utc_now
from jobflow.variations.models import VariationStatus

logger = logging.getLogger(__name__)

NO_PAYOUT_ACCOUNT_MESSAGE = "Tradie has not connected their bank account yet."

# Draft fields the provider may edit.
EDITABLE_FIELDS = frozenset(
    {
        "items",
        "total",
        "gst_enabled",
        "issue_date",
        "due_date",
        "notes",
        "notes_inclusions",
        "notes_exclusions",
        "notes_warranty",
        "notes_payment_terms",
        "accompanying_message",
    }
)


def split_gst(total: Decimal, gst_enabled: bool, rate: Decimal) -> Tuple[Decimal, Decimal]:
    """Split a GST-inclusive total into (subtotal, tax)."""
    if not gst_enabled or rate == 0:
        return total, ZERO
    tax = to_money(total * rate / (1 + rate))
    return total - tax, tax


def _coerce_items(items: Iterable[Any]) -> List[InvoiceItem]:
    result = []
    for index, raw in enumerate(items):
        if isinstance(raw, InvoiceItem):
            item = raw
        elif isinstance(raw, dict):
            try:
                item = InvoiceItem(
                    description=raw.get("description", ""),
                    qty=raw.get("qty", 1),
                    unit_price=raw.get("unit_price", 0),
                    sort_order=raw.get("sort_order", index),
                )
            except ValueError as e:
                raise ValidationError(f"Item {index + 1}: {e}")
        else:
            raise ValidationError(f"Item {index + 1} is not a line item")
        result.append(item)
    return result


class InvoiceService:
    """Draft, submit, approve and void completion invoices."""

    CREATE_OPERATION = "create_invoice"
    SUBMIT_OPERATION = "submit_invoice"

    def __init__(
        self,
        storage: WorkflowStorage,
        events: EventLog,
        outbox: NotificationOutbox,
        guard: DisputeGuard,
        settlement: SettlementGateway,
        config: WorkflowConfig,
    ):
        self.storage = storage
        self.events = events
        self.outbox = outbox
        self.guard = guard
        self.settlement = settlement
        self.config = config

    # === Totals and items ===

    def default_items(self, assignment: Assignment) -> List[InvoiceItem]:
        """One line for the accepted quote plus one per approved variation."""
        items = [
            InvoiceItem(description="Agreed quote", qty=1, unit_price=assignment.quote_price, sort_order=0)
        ]
        approved = self.storage.list_variations(assignment.job_id, status=VariationStatus.APPROVED.value)
        for index, variation in enumerate(approved, start=1):
            items.append(
                InvoiceItem(
                    description=f"Variation: {variation.title}",
                    qty=1,
                    unit_price=variation.amount,
                    sort_order=index,
                )
            )
        return items

    def _resolve_items(
        self, assignment: Assignment, items: Optional[Iterable[Any]], total: Decimal
    ) -> List[InvoiceItem]:
        if not items:
            return self.default_items(assignment)
        resolved = _coerce_items(items)
        items_total = sum((i.line_total for i in resolved), ZERO)
        if items_total != total:
            raise ValidationError(
                f"Line items add up to {format_money(items_total)} but the job total is {format_money(total)}",
                {"items_total": str(items_total), "total": str(total)},
            )
        return resolved

    @staticmethod
    def _check_client_total(total: Any, payable: Decimal) -> None:
        if total is None:
            return
        try:
            supplied = to_money(total)
        except ValueError as e:
            raise ValidationError(str(e))
        if supplied != payable:
            raise ValidationError(
                f"Invoice total must equal the agreed price plus approved variations ({format_money(payable)})",
                {"expected_total": str(payable)},
            )

    @staticmethod
    def _ensure_invoiceable(assignment: Assignment) -> None:
        if not assignment.is_active:
            raise InvalidTransition(f"Job is {assignment.status}; invoices are closed")
        if not assignment.is_in_progress:
            raise InvalidTransition("Job is not in progress yet")

    # === Operations ===

    def create_invoice(
        self,
        actor: Actor,
        job_id: str,
        items: Optional[Iterable[Any]] = None,
        notes: str = "",
        gst_enabled: bool = False,
        total: Any = None,
        issue_date: Optional[date] = None,
        due_date: Optional[date] = None,
        notes_inclusions: str = "",
        notes_exclusions: str = "",
        notes_warranty: str = "",
        notes_payment_terms: str = "",
        accompanying_message: str = "",
        idempotency_key: Optional[str] = None,
    ) -> Invoice:
        """Create a draft completion invoice.

        Raises:
            NotFoundError: Actor is not a participant.
            AuthorizationDenied: Actor is not the assigned provider.
            InvalidTransition: Job is disputed, completed, or not started.
            ValidationError: Supplied total or items disagree with the job total.
        """
        assignment = ScopedStorage(self.storage, actor).assignment(job_id)
        require_provider(actor, assignment, "create an invoice")

        previous = replay(self.storage, actor, idempotency_key, self.CREATE_OPERATION, self.storage.get_invoice)
        if previous is not None:
            return previous

        self.guard.ensure_not_disputed(assignment)
        self._ensure_invoiceable(assignment)

        payable = compute_payable_total(self.storage, assignment)
        self._check_client_total(total, payable)
        line_items = self._resolve_items(assignment, items, payable)
        subtotal, tax = split_gst(payable, gst_enabled, self.config.gst_rate)

        try:
            invoice = Invoice(
                id=new_id(),
                job_id=job_id,
                assignment_id=assignment.id,
                provider_id=assignment.provider_id,
                customer_id=assignment.customer_id,
                invoice_number=self.storage.next_invoice_number(job_id),
                total=payable,
                subtotal=subtotal,
                tax=tax,
                gst_enabled=bool(gst_enabled),
                items=line_items,
                issue_date=parse_date(issue_date) or utc_now().date(),
                due_date=parse_date(due_date),
                notes=notes or "",
                notes_inclusions=notes_inclusions or "",
                notes_exclusions=notes_exclusions or "",
                notes_warranty=notes_warranty or "",
                notes_payment_terms=notes_payment_terms or "",
                accompanying_message=accompanying_message or "",
            )
        except ValueError as e:
            raise ValidationError(str(e))

        with self.storage.transaction():
            invoice = self.storage.save_invoice(invoice)
            self.events.log_event(
                job_id,
                JobEventType.INVOICE_CREATED,
                actor.id,
                {
                    "invoice_id": invoice.id,
                    "invoice_number": invoice.display_number(self.config.invoice_number_prefix),
                    "total": str(invoice.total),
                },
            )
            remember(self.storage, actor, idempotency_key, self.CREATE_OPERATION, invoice.id)

        logger.info(
            f"Invoice drafted | job={job_id} | invoice={invoice.id} | number={invoice.invoice_number} "
            f"| total={invoice.total}"
        )
        return invoice

    def update_invoice(
        self,
        actor: Actor,
        invoice_id: str,
        expected_version: Optional[int] = None,
        **fields: Any,
    ) -> Invoice:
        """Edit a draft. The total is recomputed; items are regenerated if omitted
        and the stored ones no longer add up."""
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot edit invoice fields: {', '.join(sorted(unknown))}")

        scoped = ScopedStorage(self.storage, actor)
        invoice = scoped.invoice(invoice_id)
        assignment = scoped.assignment(invoice.job_id)
        require_provider(actor, assignment, "edit an invoice")
        self.guard.ensure_not_disputed(assignment)
        check_version(invoice, expected_version, "invoice")
        if not invoice.is_draft:
            raise InvalidTransition(f"Invoice is {invoice.status} and can no longer be edited")

        payable = compute_payable_total(self.storage, assignment)
        self._check_client_total(fields.pop("total", None), payable)
        if fields.get("items"):
            line_items = self._resolve_items(assignment, fields.pop("items"), payable)
        else:
            fields.pop("items", None)
            line_items = invoice.items
            if sum((i.line_total for i in line_items), ZERO) != payable:
                line_items = self.default_items(assignment)

        gst_enabled = bool(fields.pop("gst_enabled", invoice.gst_enabled))
        subtotal, tax = split_gst(payable, gst_enabled, self.config.gst_rate)
        for key in ("issue_date", "due_date"):
            if key in fields:
                fields[key] = parse_date(fields[key])
        for key, value in list(fields.items()):
            if key.startswith("notes") or key == "accompanying_message":
                fields[key] = value or ""

        try:
            candidate = replace(
                invoice,
                items=line_items,
                total=payable,
                subtotal=subtotal,
                tax=tax,
                gst_enabled=gst_enabled,
                **fields,
            )
        except ValueError as e:
            raise ValidationError(str(e))

        with self.storage.transaction():
            updated = self.storage.update_invoice(candidate)
            self.events.log_event(
                invoice.job_id,
                JobEventType.INVOICE_UPDATED,
                actor.id,
                {"invoice_id": invoice.id, "total": str(updated.total)},
            )

        logger.info(f"Invoice updated | invoice={invoice.id} | version={updated.version}")
        return updated

    def submit_invoice(
        self,
        actor: Actor,
        invoice_id: str,
        expected_version: Optional[int] = None,
        idempotency_key: Optional[str] = None,
    ) -> Invoice:
        """Send a draft to the customer. The invoice is locked from here on.

        Raises:
            InvalidTransition: Not a draft, job disputed, or another invoice is live.
            ValidationError: Items no longer add up to the job total.
        """
        scoped = ScopedStorage(self.storage, actor)
        invoice = scoped.invoice(invoice_id)
        assignment = scoped.assignment(invoice.job_id)
        require_provider(actor, assignment, "submit an invoice")

        previous = replay(self.storage, actor, idempotency_key, self.SUBMIT_OPERATION, self.storage.get_invoice)
        if previous is not None:
            return previous

        self.guard.ensure_not_disputed(assignment)
        check_version(invoice, expected_version, "invoice")
        if not invoice.can_transition_to(InvoiceStatus.SUBMITTED):
            raise InvalidTransition(f"Invoice is {invoice.status} and cannot be submitted")
        self._ensure_invoiceable(assignment)
        live = [
            i for i in self.storage.list_invoices(invoice.job_id)
            if i.status in LIVE_INVOICE_STATUSES and i.id != invoice.id
        ]
        if live:
            raise InvalidTransition(
                "Another invoice has already been submitted for this job",
                {"invoice_id": live[0].id},
            )

        payable = compute_payable_total(self.storage, assignment)
        items_total = invoice.items_total
        if items_total != payable:
            raise ValidationError(
                f"Line items add up to {format_money(items_total)} but the job total is "
                f"{format_money(payable)}. Update the draft before sending.",
                {"items_total": str(items_total), "total": str(payable)},
            )
        subtotal, tax = split_gst(payable, invoice.gst_enabled, self.config.gst_rate)

        with self.storage.transaction():
            submitted = self.storage.update_invoice(
                replace(
                    invoice,
                    status=InvoiceStatus.SUBMITTED.value,
                    total=payable,
                    subtotal=subtotal,
                    tax=tax,
                    sent_at=utc_now(),
                )
            )
            event = self.events.log_event(
                invoice.job_id,
                JobEventType.INVOICE_SUBMITTED,
                actor.id,
                {
                    "invoice_id": invoice.id,
                    "invoice_number": invoice.display_number(self.config.invoice_number_prefix),
                    "total": str(payable),
                },
            )
            self.outbox.enqueue(
                assignment,
                actor.id,
                f"Completion invoice submitted: {format_money(payable)}",
                MessageType.INVOICE,
                self._message_payload(submitted),
                invoice_id=invoice.id,
                event_id=event.id,
            )
            remember(self.storage, actor, idempotency_key, self.SUBMIT_OPERATION, invoice.id)

        log_transition(invoice.job_id, "invoice", invoice.id, invoice.status, submitted.status, actor.id)
        logger.info(f"Invoice submitted | job={invoice.job_id} | invoice={invoice.id} | total={payable}")
        return submitted

    def _message_payload(self, invoice: Invoice) -> Dict[str, Any]:
        payload = {
            "invoice_id": invoice.id,
            "invoice_number": invoice.display_number(self.config.invoice_number_prefix),
            "total": str(invoice.total),
            "status": invoice.status,
        }
        if invoice.accompanying_message:
            payload["accompanying_message"] = invoice.accompanying_message
        return payload

    def approve_invoice(
        self,
        actor: Actor,
        invoice_id: str,
        expected_version: Optional[int] = None,
    ) -> Invoice:
        """Customer approves a submitted invoice and the funds are released.

        Approving an already-approved invoice returns it unchanged without a
        second settlement call.

        Raises:
            InvalidTransition: Not submitted, or the job is disputed.
            ValidationError: Provider has no payout account.
            NetworkFailure: Settlement provider unreachable; nothing was changed.
        """
        scoped = ScopedStorage(self.storage, actor)
        invoice = scoped.invoice(invoice_id)
        assignment = scoped.assignment(invoice.job_id)
        require_customer(actor, assignment, "approve an invoice")
        self.guard.ensure_not_disputed(assignment)

        if invoice.is_approved:
            logger.info(f"Invoice already approved | invoice={invoice.id}")
            return invoice

        check_version(invoice, expected_version, "invoice")
        if not invoice.can_transition_to(InvoiceStatus.APPROVED):
            raise InvalidTransition(f"Invoice is {invoice.status} and cannot be approved")
        payable = compute_payable_total(self.storage, assignment)
        if invoice.total != payable:
            raise InvalidTransition("Invoice total no longer matches the job total")

        destination = self.storage.get_payout_account(assignment.provider_id)
        if not destination and self.config.require_payout_account:
            raise ValidationError(NO_PAYOUT_ACCOUNT_MESSAGE)

        # Settlement runs first and is keyed by invoice id, so a retry after a
        # failed commit returns the original release.
        result = self.settlement.release(
            invoice.total,
            destination or "",
            {
                "job_id": invoice.job_id,
                "invoice_id": invoice.id,
                "assignment_id": assignment.id,
                "invoice_number": invoice.display_number(self.config.invoice_number_prefix),
            },
            idempotency_key=invoice.id,
        )
        log_settlement(invoice.job_id, invoice.id, str(result.amount), str(result.platform_fee), result.reference)

        now = utc_now()
        with self.storage.transaction():
            approved = self.storage.update_invoice(
                replace(
                    invoice,
                    status=InvoiceStatus.APPROVED.value,
                    approved_at=now,
                    settlement_reference=result.reference,
                )
            )
            self.storage.update_assignment(
                replace(assignment, status=AssignmentStatus.COMPLETED.value, completed_at=now)
            )
            event = self.events.log_event(
                invoice.job_id,
                JobEventType.INVOICE_APPROVED,
                actor.id,
                {
                    "invoice_id": invoice.id,
                    "amount": str(result.amount),
                    "platform_fee": str(result.platform_fee),
                    "net_amount": str(result.net_amount),
                    "settlement_reference": result.reference,
                },
            )
            advance_job(self.storage, self.events, invoice.job_id, JobStatus.COMPLETED, actor.id)
            self.outbox.enqueue(
                assignment,
                actor.id,
                "Invoice approved. Funds have been released.",
                MessageType.SYSTEM,
                self._message_payload(approved),
                invoice_id=invoice.id,
                event_id=event.id,
            )

        log_transition(invoice.job_id, "invoice", invoice.id, invoice.status, approved.status, actor.id)
        log_transition(
            invoice.job_id,
            "assignment",
            assignment.id,
            assignment.status,
            AssignmentStatus.COMPLETED.value,
            actor.id,
        )
        logger.info(
            f"Invoice approved | job={invoice.job_id} | invoice={invoice.id} | amount={result.amount} "
            f"| fee={result.platform_fee} | ref={result.reference}"
        )
        return approved

    def void_invoice(self, actor: Actor, invoice_id: str, expected_version: Optional[int] = None) -> Invoice:
        """Discard a draft."""
        scoped = ScopedStorage(self.storage, actor)
        invoice = scoped.invoice(invoice_id)
        assignment = scoped.assignment(invoice.job_id)
        require_provider(actor, assignment, "void an invoice")
        self.guard.ensure_not_disputed(assignment)
        check_version(invoice, expected_version, "invoice")
        if not invoice.can_transition_to(InvoiceStatus.VOID):
            raise InvalidTransition(f"Invoice is {invoice.status} and cannot be voided")

        with self.storage.transaction():
            voided = self.storage.update_invoice(replace(invoice, status=InvoiceStatus.VOID.value))
            self.events.log_event(
                invoice.job_id, JobEventType.INVOICE_VOIDED, actor.id, {"invoice_id": invoice.id}
            )

        log_transition(invoice.job_id, "invoice", invoice.id, invoice.status, voided.status, actor.id)
        return voided

    def get_invoice(self, actor: Actor, invoice_id: str) -> Invoice:
        return ScopedStorage(self.storage, actor).invoice(invoice_id)

    def list_invoices(self, actor: Actor, job_id: str) -> List[Invoice]:
        return ScopedStorage(self.storage, actor).invoices(job_id)
