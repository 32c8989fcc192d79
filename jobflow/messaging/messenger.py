"""
Messaging collaborator.

Workflow notifications are posted into the conversation between the job's
customer and provider. The conversation is found (in either direction) or
created, linked to the job, and the message is inserted with its type and
payload.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

import httpx
from postgrest.exceptions import APIError
from supabase import Client

from jobflow.errors import NetworkFailure
from jobflow.types import new_id, utc_now

logger = logging.getLogger(__name__)

CONVERSATIONS_TABLE = "conversations"
MESSAGES_TABLE = "messages"
CONVERSATION_JOBS_TABLE = "conversation_jobs"


class Messenger(Protocol):
    """Protocol for the chat backend."""

    def get_or_create_conversation(self, customer_id: str, provider_id: str, job_id: str) -> str:
        """Return the conversation id for the pair, linked to the job."""
        ...

    def send_message(
        self,
        conversation_id: str,
        actor_id: str,
        text: str,
        message_type: str,
        payload: Dict[str, Any],
    ) -> str:
        """Post a message. Returns the message id.

        Raises:
            NetworkFailure: The messaging backend could not be reached.
        """
        ...


@dataclass
class SentMessage:
    id: str
    conversation_id: str
    sender_id: str
    text: str
    message_type: str
    payload: Dict[str, Any] = field(default_factory=dict)


class InMemoryMessenger:
    """Keeps conversations and messages in dicts. For tests and local development."""

    def __init__(self):
        self.conversations: Dict[frozenset, str] = {}
        self.conversation_jobs: Dict[str, set] = {}
        self.messages: List[SentMessage] = []
        self.fail_sends = 0

    def get_or_create_conversation(self, customer_id: str, provider_id: str, job_id: str) -> str:
        key = frozenset({customer_id, provider_id})
        conversation_id = self.conversations.get(key)
        if conversation_id is None:
            conversation_id = new_id()
            self.conversations[key] = conversation_id
        self.conversation_jobs.setdefault(conversation_id, set()).add(job_id)
        return conversation_id

    def send_message(
        self,
        conversation_id: str,
        actor_id: str,
        text: str,
        message_type: str,
        payload: Dict[str, Any],
    ) -> str:
        if self.fail_sends:
            self.fail_sends -= 1
            raise NetworkFailure("messaging")
        message = SentMessage(
            id=new_id(),
            conversation_id=conversation_id,
            sender_id=actor_id,
            text=text,
            message_type=message_type,
            payload=dict(payload),
        )
        self.messages.append(message)
        return message.id

    def messages_for(self, conversation_id: str) -> List[SentMessage]:
        return [m for m in self.messages if m.conversation_id == conversation_id]


class SupabaseMessenger:
    """``Messenger`` over the conversations / messages tables."""

    def __init__(self, client: Client):
        self.client = client

    def _execute(self, query) -> List[Dict[str, Any]]:
        try:
            return query.execute().data or []
        except (APIError, httpx.HTTPError) as e:
            logger.warning(f"Messaging call failed | error={type(e).__name__}")
            raise NetworkFailure("messaging") from e

    def _find_conversation(self, user1_id: str, user2_id: str) -> Optional[str]:
        rows = self._execute(
            self.client.table(CONVERSATIONS_TABLE)
            .select("id")
            .or_(
                f"and(user1_id.eq.{user1_id},user2_id.eq.{user2_id}),"
                f"and(user1_id.eq.{user2_id},user2_id.eq.{user1_id})"
            )
            .limit(1)
        )
        return rows[0]["id"] if rows else None

    def get_or_create_conversation(self, customer_id: str, provider_id: str, job_id: str) -> str:
        conversation_id = self._find_conversation(customer_id, provider_id)
        if conversation_id is None:
            rows = self._execute(
                self.client.table(CONVERSATIONS_TABLE).insert(
                    {"user1_id": customer_id, "user2_id": provider_id, "job_id": job_id}
                )
            )
            if not rows:
                raise NetworkFailure("messaging", "Conversation could not be created")
            conversation_id = rows[0]["id"]
            logger.info(f"Conversation created | id={conversation_id} | job={job_id}")
        self._execute(
            self.client.table(CONVERSATION_JOBS_TABLE).upsert(
                {"conversation_id": conversation_id, "job_id": job_id},
                on_conflict="conversation_id,job_id",
            )
        )
        return conversation_id

    def send_message(
        self,
        conversation_id: str,
        actor_id: str,
        text: str,
        message_type: str,
        payload: Dict[str, Any],
    ) -> str:
        rows = self._execute(
            self.client.table(MESSAGES_TABLE).insert(
                {
                    "conversation_id": conversation_id,
                    "sender_id": actor_id,
                    "text": text,
                    "type": message_type,
                    "meta": payload,
                    "created_at": utc_now().isoformat(),
                }
            )
        )
        return rows[0]["id"] if rows else ""
