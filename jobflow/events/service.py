"""Append-only job event log and timeline."""

import logging
from typing import Any, Dict, List, Optional

from jobflow.authz import Actor
from jobflow.events.models import JobEvent, JobEventType, TimelineEntry
from jobflow.storage.base import WorkflowStorage
from jobflow.storage.scoped import ScopedStorage
from jobflow.types import new_id

logger = logging.getLogger(__name__)


class EventLog:
    """Writes and reads the job audit trail.

    ``log_event`` must be called inside the same ``storage.transaction()`` as
    the mutation it records.
    """

    def __init__(self, storage: WorkflowStorage):
        self.storage = storage

    def log_event(
        self,
        job_id: str,
        type: JobEventType,
        actor_id: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> JobEvent:
        event = JobEvent(id=new_id(), job_id=job_id, type=type, actor_id=actor_id, payload=payload or {})
        stored = self.storage.append_event(event)
        logger.debug(f"Event logged | job={job_id} | type={stored.type} | actor={actor_id}")
        return stored

    def status_changed(self, job_id: str, actor_id: str, from_status: str, to_status: str) -> JobEvent:
        return self.log_event(
            job_id,
            JobEventType.STATUS_CHANGED,
            actor_id,
            {"from": from_status, "status": to_status},
        )

    def timeline(self, actor: Actor, job_id: str) -> List[TimelineEntry]:
        """Events for a job, oldest first, rendered for display."""
        events = ScopedStorage(self.storage, actor).events(job_id)
        return [TimelineEntry.from_event(e) for e in events]
