"""
Invoice models.

Invoice lifecycle:
    draft -> submitted -> approved
                       -> disputed
    draft -> void

There is no "paid" state: approval is the moment funds are released.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional

from jobflow.types import ZERO, iso, parse_date, parse_datetime, to_money


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    DISPUTED = "disputed"
    VOID = "void"


VALID_INVOICE_TRANSITIONS = {
    InvoiceStatus.DRAFT: {InvoiceStatus.SUBMITTED, InvoiceStatus.VOID},
    InvoiceStatus.SUBMITTED: {InvoiceStatus.APPROVED, InvoiceStatus.DISPUTED},
    InvoiceStatus.APPROVED: set(),
    InvoiceStatus.DISPUTED: set(),
    InvoiceStatus.VOID: set(),
}

# Statuses that count as the job's live completion invoice.
LIVE_INVOICE_STATUSES = frozenset({InvoiceStatus.SUBMITTED.value, InvoiceStatus.APPROVED.value})

_STATUSES = {s.value for s in InvoiceStatus}

MAX_ITEM_DESCRIPTION = 500


@dataclass
class InvoiceItem:
    """A presentational invoice line. ``line_total`` is always qty * unit_price."""

    description: str
    qty: Decimal = Decimal("1")
    unit_price: Decimal = ZERO
    sort_order: int = 0
    line_total: Decimal = field(default=ZERO)

    def __post_init__(self):
        self.description = (self.description or "").strip()
        if not self.description:
            raise ValueError("Item description is required")
        if len(self.description) > MAX_ITEM_DESCRIPTION:
            raise ValueError(f"Item description too long (max {MAX_ITEM_DESCRIPTION} chars)")
        try:
            self.qty = Decimal(str(self.qty))
        except (InvalidOperation, TypeError, ValueError):
            raise ValueError(f"Quantity must be numeric, got {self.qty!r}")
        if not self.qty.is_finite() or self.qty <= 0:
            raise ValueError("Quantity must be positive")
        self.unit_price = to_money(self.unit_price)
        if self.unit_price < 0:
            raise ValueError("Unit price cannot be negative")
        self.line_total = to_money(self.qty * self.unit_price)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "description": self.description,
            "qty": str(self.qty),
            "unit_price": str(self.unit_price),
            "line_total": str(self.line_total),
            "sort_order": self.sort_order,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InvoiceItem":
        return cls(
            description=data["description"],
            qty=data.get("qty", 1),
            unit_price=data.get("unit_price", 0),
            sort_order=data.get("sort_order", 0),
        )


@dataclass
class Invoice:
    """A completion invoice for a job.

    ``total`` is owned by the engine: accepted quote price plus approved
    variations. With GST enabled the total is GST-inclusive and ``tax`` is the
    GST component of it.
    """

    id: str
    job_id: str
    assignment_id: str
    provider_id: str
    customer_id: str
    invoice_number: int
    total: Decimal
    subtotal: Decimal
    tax: Decimal = ZERO
    gst_enabled: bool = False
    status: str = "draft"
    items: List[InvoiceItem] = field(default_factory=list)
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    notes: str = ""
    notes_inclusions: str = ""
    notes_exclusions: str = ""
    notes_warranty: str = ""
    notes_payment_terms: str = ""
    accompanying_message: str = ""
    sent_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    settlement_reference: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 1

    def __post_init__(self):
        if isinstance(self.status, InvoiceStatus):
            self.status = self.status.value
        if self.status not in _STATUSES:
            raise ValueError(f"Invalid status: {self.status}")
        self.total = to_money(self.total)
        self.subtotal = to_money(self.subtotal)
        self.tax = to_money(self.tax)
        if self.total <= 0:
            raise ValueError("Invoice total must be positive")
        if self.subtotal + self.tax != self.total:
            raise ValueError("Subtotal plus tax must equal total")
        if self.invoice_number < 1:
            raise ValueError("Invoice number must be positive")
        if self.issue_date and self.due_date and self.due_date < self.issue_date:
            raise ValueError("Due date cannot be before issue date")

    @property
    def is_draft(self) -> bool:
        return self.status == InvoiceStatus.DRAFT.value

    @property
    def is_approved(self) -> bool:
        return self.status == InvoiceStatus.APPROVED.value

    @property
    def items_total(self) -> Decimal:
        return sum((item.line_total for item in self.items), ZERO)

    def can_transition_to(self, new_status: InvoiceStatus) -> bool:
        return InvoiceStatus(new_status) in VALID_INVOICE_TRANSITIONS[InvoiceStatus(self.status)]

    def display_number(self, prefix: str = "INV-") -> str:
        return f"{prefix}{self.invoice_number:04d}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "assignment_id": self.assignment_id,
            "provider_id": self.provider_id,
            "customer_id": self.customer_id,
            "invoice_number": self.invoice_number,
            "status": self.status,
            "items": [item.to_dict() for item in self.items],
            "subtotal": str(self.subtotal),
            "tax": str(self.tax),
            "total": str(self.total),
            "gst_enabled": self.gst_enabled,
            "issue_date": iso(self.issue_date),
            "due_date": iso(self.due_date),
            "notes": self.notes,
            "notes_inclusions": self.notes_inclusions,
            "notes_exclusions": self.notes_exclusions,
            "notes_warranty": self.notes_warranty,
            "notes_payment_terms": self.notes_payment_terms,
            "accompanying_message": self.accompanying_message,
            "sent_at": iso(self.sent_at),
            "approved_at": iso(self.approved_at),
            "settlement_reference": self.settlement_reference,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Invoice":
        return cls(
            id=data["id"],
            job_id=data["job_id"],
            assignment_id=data["assignment_id"],
            provider_id=data["provider_id"],
            customer_id=data["customer_id"],
            invoice_number=int(data["invoice_number"]),
            status=data.get("status", "draft"),
            items=[InvoiceItem.from_dict(i) for i in data.get("items") or []],
            subtotal=data["subtotal"],
            tax=data.get("tax", 0),
            total=data["total"],
            gst_enabled=bool(data.get("gst_enabled", False)),
            issue_date=parse_date(data.get("issue_date")),
            due_date=parse_date(data.get("due_date")),
            notes=data.get("notes") or "",
            notes_inclusions=data.get("notes_inclusions") or "",
            notes_exclusions=data.get("notes_exclusions") or "",
            notes_warranty=data.get("notes_warranty") or "",
            notes_payment_terms=data.get("notes_payment_terms") or "",
            accompanying_message=data.get("accompanying_message") or "",
            sent_at=parse_datetime(data.get("sent_at")),
            approved_at=parse_datetime(data.get("approved_at")),
            settlement_reference=data.get("settlement_reference"),
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
            version=data.get("version", 1),
        )
