"""Job conversation notifications.

Models:
- Notification: an outbox row
- MessageType, NotificationStatus

Collaborators:
- Messenger protocol, InMemoryMessenger, SupabaseMessenger (messenger.py)
- NotificationOutbox, NotificationDispatcher (outbox.py)
"""

from jobflow.messaging.messenger import InMemoryMessenger, Messenger, SentMessage, SupabaseMessenger
from jobflow.messaging.models import MessageType, Notification, NotificationStatus

__all__ = [
    "Notification",
    "MessageType",
    "NotificationStatus",
    "Messenger",
    "InMemoryMessenger",
    "SupabaseMessenger",
    "SentMessage",
]
