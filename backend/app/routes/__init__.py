"""API routes."""

from .webhooks import router as webhooks_router
from .workflow import assignments_router, disputes_router, invoices_router, variations_router

__all__ = [
    "assignments_router",
    "invoices_router",
    "variations_router",
    "disputes_router",
    "webhooks_router",
]
