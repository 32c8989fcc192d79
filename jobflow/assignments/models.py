"""
Assignment model.

An assignment binds exactly one (customer, provider, accepted quote) triple
to a job. ``quote_price`` is a snapshot of the accepted quote's price and is
the base of the job's payable total.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from jobflow.types import iso, parse_datetime, to_money


class AssignmentStatus(str, Enum):
    ACTIVE = "active"
    DISPUTED = "disputed"
    COMPLETED = "completed"


VALID_ASSIGNMENT_TRANSITIONS = {
    AssignmentStatus.ACTIVE: {AssignmentStatus.DISPUTED, AssignmentStatus.COMPLETED},
    AssignmentStatus.DISPUTED: set(),
    AssignmentStatus.COMPLETED: set(),
}

_STATUSES = {s.value for s in AssignmentStatus}


@dataclass
class Assignment:
    """The binding record for one job."""

    id: str
    job_id: str
    customer_id: str
    provider_id: str
    accepted_quote_id: str
    quote_price: Decimal
    status: str = "active"
    agreed_at: Optional[datetime] = None
    provider_accepted_terms_at: Optional[datetime] = None
    in_progress_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 1

    def __post_init__(self):
        if isinstance(self.status, AssignmentStatus):
            self.status = self.status.value
        if self.status not in _STATUSES:
            raise ValueError(f"Invalid status: {self.status}")
        if self.customer_id == self.provider_id:
            raise ValueError("Customer and provider must be different accounts")
        self.quote_price = to_money(self.quote_price)
        if self.quote_price <= 0:
            raise ValueError("Quote price must be positive")

    @property
    def is_disputed(self) -> bool:
        return self.status == AssignmentStatus.DISPUTED.value

    @property
    def is_active(self) -> bool:
        return self.status == AssignmentStatus.ACTIVE.value

    @property
    def is_in_progress(self) -> bool:
        """Both halves of the agreement are in place."""
        return (
            self.is_active
            and self.agreed_at is not None
            and self.provider_accepted_terms_at is not None
        )

    def can_transition_to(self, new_status: AssignmentStatus) -> bool:
        return AssignmentStatus(new_status) in VALID_ASSIGNMENT_TRANSITIONS[AssignmentStatus(self.status)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "customer_id": self.customer_id,
            "provider_id": self.provider_id,
            "accepted_quote_id": self.accepted_quote_id,
            "quote_price": str(self.quote_price),
            "status": self.status,
            "agreed_at": iso(self.agreed_at),
            "provider_accepted_terms_at": iso(self.provider_accepted_terms_at),
            "in_progress_at": iso(self.in_progress_at),
            "completed_at": iso(self.completed_at),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Assignment":
        return cls(
            id=data["id"],
            job_id=data["job_id"],
            customer_id=data["customer_id"],
            provider_id=data["provider_id"],
            accepted_quote_id=data["accepted_quote_id"],
            quote_price=data["quote_price"],
            status=data.get("status", "active"),
            agreed_at=parse_datetime(data.get("agreed_at")),
            provider_accepted_terms_at=parse_datetime(data.get("provider_accepted_terms_at")),
            in_progress_at=parse_datetime(data.get("in_progress_at")),
            completed_at=parse_datetime(data.get("completed_at")),
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
            version=data.get("version", 1),
        )
