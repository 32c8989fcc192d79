"""Workflow persistence backends."""

from jobflow.storage.base import IdempotencyRecord, WorkflowStorage
from jobflow.storage.memory import InMemoryWorkflowStorage
from jobflow.storage.scoped import ScopedStorage

__all__ = [
    "IdempotencyRecord",
    "InMemoryWorkflowStorage",
    "ScopedStorage",
    "WorkflowStorage",
]
