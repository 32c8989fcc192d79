"""Pydantic models for API requests and responses."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, Field

# =============================================================================
# Assignment Models
# =============================================================================


class AcceptQuoteRequest(BaseModel):
    """Request to accept a quote and create the assignment."""
    quote_id: str = Field(..., min_length=1)


class VersionedRequest(BaseModel):
    """Body for state changes that carry the version the client last read."""
    expected_version: int | None = Field(default=None, ge=1)


class AssignmentResponse(BaseModel):
    """Assignment details."""
    id: str
    job_id: str
    customer_id: str
    provider_id: str
    accepted_quote_id: str
    quote_price: Decimal
    status: str
    agreed_at: datetime | None = None
    provider_accepted_terms_at: datetime | None = None
    in_progress_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    version: int


class PayableTotalResponse(BaseModel):
    """Accepted quote price plus approved variations."""
    job_id: str
    total: Decimal
    locked: bool


# =============================================================================
# Invoice Models
# =============================================================================


class InvoiceItemIn(BaseModel):
    """A line item supplied by the provider."""
    description: str = Field(..., min_length=1, max_length=500)
    qty: Decimal = Field(default=Decimal("1"), gt=0)
    unit_price: Decimal = Field(..., ge=0)


class InvoiceItemResponse(BaseModel):
    description: str
    qty: Decimal
    unit_price: Decimal
    line_total: Decimal
    sort_order: int = 0


class InvoiceCreate(BaseModel):
    """Request to draft a completion invoice.

    ``total`` is optional; when supplied it must match the job total.
    """
    items: list[InvoiceItemIn] | None = None
    total: Decimal | None = None
    gst_enabled: bool = False
    issue_date: date | None = None
    due_date: date | None = None
    notes: str = Field(default="", max_length=5000)
    notes_inclusions: str = Field(default="", max_length=5000)
    notes_exclusions: str = Field(default="", max_length=5000)
    notes_warranty: str = Field(default="", max_length=5000)
    notes_payment_terms: str = Field(default="", max_length=5000)
    accompanying_message: str = Field(default="", max_length=2000)


class InvoiceUpdate(BaseModel):
    """Partial edit of a draft invoice. Only supplied fields change."""
    expected_version: int | None = Field(default=None, ge=1)
    items: list[InvoiceItemIn] | None = None
    total: Decimal | None = None
    gst_enabled: bool | None = None
    issue_date: date | None = None
    due_date: date | None = None
    notes: str | None = Field(default=None, max_length=5000)
    notes_inclusions: str | None = Field(default=None, max_length=5000)
    notes_exclusions: str | None = Field(default=None, max_length=5000)
    notes_warranty: str | None = Field(default=None, max_length=5000)
    notes_payment_terms: str | None = Field(default=None, max_length=5000)
    accompanying_message: str | None = Field(default=None, max_length=2000)


class InvoiceResponse(BaseModel):
    """Invoice details."""
    id: str
    job_id: str
    assignment_id: str
    provider_id: str
    customer_id: str
    invoice_number: int
    status: str
    items: list[InvoiceItemResponse]
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    gst_enabled: bool
    issue_date: date | None = None
    due_date: date | None = None
    notes: str = ""
    notes_inclusions: str = ""
    notes_exclusions: str = ""
    notes_warranty: str = ""
    notes_payment_terms: str = ""
    accompanying_message: str = ""
    sent_at: datetime | None = None
    approved_at: datetime | None = None
    settlement_reference: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    version: int


# =============================================================================
# Variation Models
# =============================================================================


class VariationCreate(BaseModel):
    """Request for a change of scope."""
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=5000)
    amount: Decimal = Field(..., gt=0)


class VariationDecisionRequest(BaseModel):
    """Customer decision on a pending variation."""
    decision: Literal["approved", "declined"]
    expected_version: int | None = Field(default=None, ge=1)


class VariationResponse(BaseModel):
    """Variation details."""
    id: str
    job_id: str
    assignment_id: str
    provider_id: str
    customer_id: str
    title: str
    description: str
    amount: Decimal
    status: str
    decided_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    version: int


# =============================================================================
# Dispute Models
# =============================================================================


class DisputeCreate(BaseModel):
    """Request to open a dispute."""
    reason: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=5000)


class DisputeResponse(BaseModel):
    """Dispute details."""
    id: str
    job_id: str
    assignment_id: str
    opened_by: str
    against_party: str
    reason: str
    description: str
    status: str
    created_at: datetime | None = None


# =============================================================================
# Timeline Models
# =============================================================================


class TimelineEntryResponse(BaseModel):
    """One rendered event in a job's timeline."""
    event_id: str
    type: str
    title: str
    actor_id: str
    created_at: datetime | None = None
    payload: dict[str, Any] = Field(default_factory=dict)


class TimelineResponse(BaseModel):
    job_id: str
    locked: bool
    entries: list[TimelineEntryResponse]
