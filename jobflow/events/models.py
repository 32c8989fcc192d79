"""
Job event model.

Events are the append-only audit trail of a job. They describe what
happened; they are never replayed to rebuild state.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from jobflow.types import format_money, iso, parse_datetime, to_money


class JobEventType(str, Enum):
    QUOTE_ACCEPTED = "quote_accepted"
    TERMS_ACCEPTED = "terms_accepted"
    INVOICE_CREATED = "invoice_created"
    INVOICE_UPDATED = "invoice_updated"
    INVOICE_SUBMITTED = "invoice_submitted"
    INVOICE_APPROVED = "invoice_approved"
    INVOICE_VOIDED = "invoice_voided"
    VARIATION_REQUESTED = "variation_requested"
    VARIATION_APPROVED = "variation_approved"
    VARIATION_DECLINED = "variation_declined"
    DISPUTE_OPENED = "dispute_opened"
    STATUS_CHANGED = "status_changed"


_EVENT_TYPES = {t.value for t in JobEventType}

EVENT_TITLES = {
    JobEventType.QUOTE_ACCEPTED.value: "Job accepted & activated",
    JobEventType.TERMS_ACCEPTED.value: "Provider accepted the job terms",
    JobEventType.INVOICE_CREATED.value: "Invoice draft created",
    JobEventType.INVOICE_UPDATED.value: "Invoice draft updated",
    JobEventType.INVOICE_SUBMITTED.value: "Invoice sent",
    JobEventType.INVOICE_APPROVED.value: "Invoice approved & funds released",
    JobEventType.INVOICE_VOIDED.value: "Invoice draft voided",
    JobEventType.VARIATION_REQUESTED.value: "Variation requested",
    JobEventType.VARIATION_APPROVED.value: "Variation approved",
    JobEventType.VARIATION_DECLINED.value: "Variation declined",
    JobEventType.DISPUTE_OPENED.value: "Dispute opened",
    JobEventType.STATUS_CHANGED.value: "Job status changed",
}


@dataclass
class JobEvent:
    """One immutable entry in a job's timeline.

    ``sequence`` is assigned by storage on append and orders events that
    share a timestamp.
    """

    id: str
    job_id: str
    type: str
    actor_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    sequence: int = 0

    def __post_init__(self):
        if isinstance(self.type, JobEventType):
            self.type = self.type.value
        if self.type not in _EVENT_TYPES:
            raise ValueError(f"Invalid event type: {self.type}")
        if not self.actor_id:
            raise ValueError("Event requires an actor")

    @property
    def title(self) -> str:
        """Human-readable title for the timeline."""
        base = EVENT_TITLES[self.type]
        if self.type == JobEventType.INVOICE_SUBMITTED.value and "total" in self.payload:
            return f"{base} ({format_money(to_money(self.payload['total']))})"
        if self.type == JobEventType.STATUS_CHANGED.value and "status" in self.payload:
            return f"Job status changed to {self.payload['status']}"
        if self.type in (
            JobEventType.VARIATION_REQUESTED.value,
            JobEventType.VARIATION_APPROVED.value,
        ) and "amount" in self.payload:
            return f"{base} ({format_money(to_money(self.payload['amount']))})"
        return base

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "type": self.type,
            "actor_id": self.actor_id,
            "payload": dict(self.payload),
            "created_at": iso(self.created_at),
            "sequence": self.sequence,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobEvent":
        return cls(
            id=data["id"],
            job_id=data["job_id"],
            type=data["type"],
            actor_id=data["actor_id"],
            payload=data.get("payload") or {},
            created_at=parse_datetime(data.get("created_at")),
            sequence=data.get("sequence") or 0,
        )


@dataclass
class TimelineEntry:
    """Rendered view of an event."""

    event_id: str
    type: str
    title: str
    actor_id: str
    created_at: Optional[datetime]
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_event(cls, event: JobEvent) -> "TimelineEntry":
        return cls(
            event_id=event.id,
            type=event.type,
            title=event.title,
            actor_id=event.actor_id,
            created_at=event.created_at,
            payload=dict(event.payload),
        )
