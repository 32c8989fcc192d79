"""Client-supplied idempotency keys for mutating operations.

A key is scoped to the actor. Replaying a key returns the entity the first
call produced, without repeating any side effect. Reusing a key for a
different operation is a caller error.
"""

import logging
from typing import Callable, Optional, TypeVar

from jobflow.authz import Actor
from jobflow.errors import ValidationError
from jobflow.storage.base import IdempotencyRecord, WorkflowStorage

logger = logging.getLogger(__name__)

T = TypeVar("T")


def replay(
    storage: WorkflowStorage,
    actor: Actor,
    key: Optional[str],
    operation: str,
    load: Callable[[str], T],
) -> Optional[T]:
    """Return the earlier result for ``key``, or None if the key is new."""
    if not key:
        return None
    record = storage.get_idempotency_record(actor.id, key)
    if record is None:
        return None
    if record.operation != operation:
        raise ValidationError(
            "Idempotency key was already used for a different operation",
            {"operation": record.operation},
        )
    logger.info(f"Idempotent replay | op={operation} | actor={actor.id} | result={record.result_id}")
    return load(record.result_id)


def remember(storage: WorkflowStorage, actor: Actor, key: Optional[str], operation: str, result_id: str) -> None:
    """Record ``key``. Call inside the operation's unit of work."""
    if not key:
        return
    storage.save_idempotency_record(
        IdempotencyRecord(key=key, actor_id=actor.id, operation=operation, result_id=result_id)
    )
