"""Job workflow API routes."""

from .assignments import router as assignments_router
from .disputes import router as disputes_router
from .invoices import router as invoices_router
from .variations import router as variations_router

__all__ = ["assignments_router", "invoices_router", "variations_router", "disputes_router"]
