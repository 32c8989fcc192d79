"""Invoice engine.

Models:
- Invoice, InvoiceItem, InvoiceStatus
- VALID_INVOICE_TRANSITIONS, LIVE_INVOICE_STATUSES

Service:
- InvoiceService: create, update, submit, approve, void, read (service.py)
"""

from jobflow.invoices.models import (
    LIVE_INVOICE_STATUSES,
    VALID_INVOICE_TRANSITIONS,
    Invoice,
    InvoiceItem,
    InvoiceStatus,
)

__all__ = [
    "Invoice",
    "InvoiceItem",
    "InvoiceStatus",
    "VALID_INVOICE_TRANSITIONS",
    "LIVE_INVOICE_STATUSES",
]
