"""
Job and quote models.

Jobs and quotes are created by the job board. The workflow engine reads
them, moves ``Job.status`` as the assignment progresses, and marks the
winning quote accepted.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from jobflow.types import iso, parse_datetime, to_money


class JobStatus(str, Enum):
    """Visible job lifecycle status."""

    OPEN = "open"
    AGREED = "agreed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DISPUTED = "disputed"
    CLOSED = "closed"


class QuoteStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


# Disputed jobs leave this machine only through the manual resolution process.
VALID_JOB_TRANSITIONS = {
    JobStatus.OPEN: {JobStatus.AGREED, JobStatus.IN_PROGRESS, JobStatus.CLOSED},
    JobStatus.AGREED: {JobStatus.IN_PROGRESS, JobStatus.DISPUTED, JobStatus.CLOSED},
    JobStatus.IN_PROGRESS: {JobStatus.COMPLETED, JobStatus.DISPUTED},
    JobStatus.DISPUTED: set(),
    JobStatus.COMPLETED: {JobStatus.CLOSED},
    JobStatus.CLOSED: set(),
}

_JOB_STATUSES = {s.value for s in JobStatus}
_QUOTE_STATUSES = {s.value for s in QuoteStatus}


@dataclass
class Job:
    """A posted job.

    Attributes:
        id: Job identifier
        customer_id: Account that posted the job
        title: Short summary
        status: Visible summary of the assignment state
        assigned_provider_id: Provider bound by the assignment, once any
        category_tags: Trade categories
        budget_min / budget_max: Budget range shown on the board
    """

    id: str
    customer_id: str
    title: str = ""
    status: str = "open"
    assigned_provider_id: Optional[str] = None
    category_tags: List[str] = field(default_factory=list)
    budget_min: Optional[Decimal] = None
    budget_max: Optional[Decimal] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    agreed_at: Optional[datetime] = None
    in_progress_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    disputed_at: Optional[datetime] = None
    version: int = 1

    def __post_init__(self):
        if not self.customer_id:
            raise ValueError("Job requires a customer")
        if isinstance(self.status, JobStatus):
            self.status = self.status.value
        if self.status not in _JOB_STATUSES:
            raise ValueError(f"Invalid status: {self.status}")
        if self.budget_min is not None:
            self.budget_min = to_money(self.budget_min)
        if self.budget_max is not None:
            self.budget_max = to_money(self.budget_max)
        if (
            self.budget_min is not None
            and self.budget_max is not None
            and self.budget_min > self.budget_max
        ):
            raise ValueError("Budget minimum exceeds maximum")

    def can_transition_to(self, new_status: JobStatus) -> bool:
        return JobStatus(new_status) in VALID_JOB_TRANSITIONS[JobStatus(self.status)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "title": self.title,
            "status": self.status,
            "assigned_provider_id": self.assigned_provider_id,
            "category_tags": list(self.category_tags),
            "budget_min": str(self.budget_min) if self.budget_min is not None else None,
            "budget_max": str(self.budget_max) if self.budget_max is not None else None,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
            "agreed_at": iso(self.agreed_at),
            "in_progress_at": iso(self.in_progress_at),
            "completed_at": iso(self.completed_at),
            "disputed_at": iso(self.disputed_at),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Job":
        return cls(
            id=data["id"],
            customer_id=data["customer_id"],
            title=data.get("title") or "",
            status=data.get("status", "open"),
            assigned_provider_id=data.get("assigned_provider_id"),
            category_tags=data.get("category_tags") or [],
            budget_min=data.get("budget_min"),
            budget_max=data.get("budget_max"),
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
            agreed_at=parse_datetime(data.get("agreed_at")),
            in_progress_at=parse_datetime(data.get("in_progress_at")),
            completed_at=parse_datetime(data.get("completed_at")),
            disputed_at=parse_datetime(data.get("disputed_at")),
            version=data.get("version", 1),
        )


@dataclass
class Quote:
    """A provider's priced offer on a job."""

    id: str
    job_id: str
    provider_id: str
    price: Decimal
    status: str = "pending"
    created_at: Optional[datetime] = None
    version: int = 1

    def __post_init__(self):
        self.price = to_money(self.price)
        if self.price <= 0:
            raise ValueError("Quote price must be positive")
        if isinstance(self.status, QuoteStatus):
            self.status = self.status.value
        if self.status not in _QUOTE_STATUSES:
            raise ValueError(f"Invalid status: {self.status}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "provider_id": self.provider_id,
            "price": str(self.price),
            "status": self.status,
            "created_at": iso(self.created_at),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Quote":
        return cls(
            id=data["id"],
            job_id=data["job_id"],
            provider_id=data["provider_id"],
            price=data["price"],
            status=data.get("status", "pending"),
            created_at=parse_datetime(data.get("created_at")),
            version=data.get("version", 1),
        )
