"""
Notification outbox model.

Notifications are written in the same unit of work as the state change
that caused them and delivered to the messaging service afterwards, so a
messaging outage can delay a notification but never lose one or roll back
the workflow.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from jobflow.types import iso, parse_datetime


class MessageType(str, Enum):
    SYSTEM = "system"
    INVOICE = "invoice"
    VARIATION = "variation"
    DISPUTE = "dispute"


class NotificationStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


_MESSAGE_TYPES = {t.value for t in MessageType}
_STATUSES = {s.value for s in NotificationStatus}


@dataclass
class Notification:
    """A structured message queued for the job conversation."""

    id: str
    job_id: str
    sender_id: str
    customer_id: str
    provider_id: str
    text: str
    message_type: str = "system"
    payload: Dict[str, Any] = field(default_factory=dict)
    deep_link: Optional[str] = None
    event_id: Optional[str] = None
    status: str = "pending"
    attempts: int = 0
    last_error: Optional[str] = None
    created_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    version: int = 1

    def __post_init__(self):
        if isinstance(self.message_type, MessageType):
            self.message_type = self.message_type.value
        if self.message_type not in _MESSAGE_TYPES:
            raise ValueError(f"Invalid message type: {self.message_type}")
        if isinstance(self.status, NotificationStatus):
            self.status = self.status.value
        if self.status not in _STATUSES:
            raise ValueError(f"Invalid status: {self.status}")

    @property
    def is_pending(self) -> bool:
        return self.status == NotificationStatus.PENDING.value

    def rendered_text(self) -> str:
        """Message text with the deep link appended as a markdown link."""
        if not self.deep_link:
            return self.text
        label = {
            MessageType.INVOICE.value: "View Invoice",
            MessageType.VARIATION.value: "Review Details",
        }.get(self.message_type, "Open Job")
        return f"{self.text} [{label}]({self.deep_link})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "sender_id": self.sender_id,
            "customer_id": self.customer_id,
            "provider_id": self.provider_id,
            "text": self.text,
            "message_type": self.message_type,
            "payload": dict(self.payload),
            "deep_link": self.deep_link,
            "event_id": self.event_id,
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "created_at": iso(self.created_at),
            "sent_at": iso(self.sent_at),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Notification":
        return cls(
            id=data["id"],
            job_id=data["job_id"],
            sender_id=data["sender_id"],
            customer_id=data["customer_id"],
            provider_id=data["provider_id"],
            text=data["text"],
            message_type=data.get("message_type", "system"),
            payload=data.get("payload") or {},
            deep_link=data.get("deep_link"),
            event_id=data.get("event_id"),
            status=data.get("status", "pending"),
            attempts=data.get("attempts", 0),
            last_error=data.get("last_error"),
            created_at=parse_datetime(data.get("created_at")),
            sent_at=parse_datetime(data.get("sent_at")),
            version=data.get("version", 1),
        )
