"""Dispute model."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from jobflow.types import iso, parse_datetime


class DisputeStatus(str, Enum):
    # Resolution happens outside the engine; only "open" is produced here.
    OPEN = "open"


MAX_REASON_LENGTH = 200


@dataclass
class Dispute:
    """A dispute raised by one participant against the other."""

    id: str
    job_id: str
    assignment_id: str
    opened_by: str
    against_party: str
    reason: str
    description: str = ""
    status: str = "open"
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.reason = (self.reason or "").strip()
        if not self.reason:
            raise ValueError("Dispute reason is required")
        if len(self.reason) > MAX_REASON_LENGTH:
            raise ValueError(f"Reason too long (max {MAX_REASON_LENGTH} chars)")
        if self.opened_by == self.against_party:
            raise ValueError("A dispute must be raised against the other party")

    @property
    def is_open(self) -> bool:
        return self.status == DisputeStatus.OPEN.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "assignment_id": self.assignment_id,
            "opened_by": self.opened_by,
            "against_party": self.against_party,
            "reason": self.reason,
            "description": self.description,
            "status": self.status,
            "created_at": iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Dispute":
        return cls(
            id=data["id"],
            job_id=data["job_id"],
            assignment_id=data["assignment_id"],
            opened_by=data["opened_by"],
            against_party=data["against_party"],
            reason=data["reason"],
            description=data.get("description") or "",
            status=data.get("status", "open"),
            created_at=parse_datetime(data.get("created_at")),
        )
