"""Variation workflow.

Models:
- Variation, VariationStatus, VariationDecision, VALID_VARIATION_TRANSITIONS

Service:
- VariationService: request, resolve, list (service.py)
"""

from jobflow.variations.models import (
    VALID_VARIATION_TRANSITIONS,
    Variation,
    VariationDecision,
    VariationStatus,
)

__all__ = [
    "Variation",
    "VariationStatus",
    "VariationDecision",
    "VALID_VARIATION_TRANSITIONS",
]
