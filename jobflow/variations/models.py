"""
Variation model.

A variation is a provider-proposed change of scope that the customer must
approve. Approved amounts are added to the job's payable total; a declined
variation leaves the original agreement untouched.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from jobflow.types import iso, parse_datetime, to_money


class VariationStatus(str, Enum):
    PENDING_CUSTOMER = "pending_customer"
    APPROVED = "approved"
    DECLINED = "declined"
    # No operation produces this status yet.
    CANCELLED = "cancelled"


class VariationDecision(str, Enum):
    """Decisions the customer may make on a pending variation."""

    APPROVED = "approved"
    DECLINED = "declined"


VALID_VARIATION_TRANSITIONS = {
    VariationStatus.PENDING_CUSTOMER: {
        VariationStatus.APPROVED,
        VariationStatus.DECLINED,
        VariationStatus.CANCELLED,
    },
    VariationStatus.APPROVED: set(),
    VariationStatus.DECLINED: set(),
    VariationStatus.CANCELLED: set(),
}

_STATUSES = {s.value for s in VariationStatus}

MAX_TITLE_LENGTH = 200


@dataclass
class Variation:
    """A scope/amount change request on an assigned job."""

    id: str
    job_id: str
    assignment_id: str
    provider_id: str
    customer_id: str
    title: str
    amount: Decimal
    description: str = ""
    status: str = "pending_customer"
    decided_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 1

    def __post_init__(self):
        self.title = (self.title or "").strip()
        if not self.title:
            raise ValueError("Variation title is required")
        if len(self.title) > MAX_TITLE_LENGTH:
            raise ValueError(f"Title too long (max {MAX_TITLE_LENGTH} chars)")
        self.amount = to_money(self.amount)
        if self.amount <= 0:
            raise ValueError("Variation amount must be positive")
        if isinstance(self.status, VariationStatus):
            self.status = self.status.value
        if self.status not in _STATUSES:
            raise ValueError(f"Invalid status: {self.status}")

    @property
    def is_pending(self) -> bool:
        return self.status == VariationStatus.PENDING_CUSTOMER.value

    @property
    def is_approved(self) -> bool:
        return self.status == VariationStatus.APPROVED.value

    def can_transition_to(self, new_status: VariationStatus) -> bool:
        return VariationStatus(new_status) in VALID_VARIATION_TRANSITIONS[VariationStatus(self.status)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "assignment_id": self.assignment_id,
            "provider_id": self.provider_id,
            "customer_id": self.customer_id,
            "title": self.title,
            "description": self.description,
            "amount": str(self.amount),
            "status": self.status,
            "decided_at": iso(self.decided_at),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Variation":
        return cls(
            id=data["id"],
            job_id=data["job_id"],
            assignment_id=data["assignment_id"],
            provider_id=data["provider_id"],
            customer_id=data["customer_id"],
            title=data["title"],
            description=data.get("description") or "",
            amount=data["amount"],
            status=data.get("status", "pending_customer"),
            decided_at=parse_datetime(data.get("decided_at")),
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
            version=data.get("version", 1),
        )
