"""Disputes.

Models:
- Dispute, DisputeStatus

Service:
- DisputeGuard: the workflow lock check (service.py)
- DisputeService: open and list disputes (service.py)
"""

from jobflow.disputes.models import Dispute, DisputeStatus

__all__ = [
    "Dispute",
    "DisputeStatus",
]
