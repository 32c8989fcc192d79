"""Job status moves driven by the assignment."""

from dataclasses import replace

from jobflow.errors import InvalidTransition, NotFoundError
from jobflow.events.service import EventLog
from jobflow.jobs.models import Job, JobStatus
from jobflow.logging_config import log_transition
from jobflow.storage.base import WorkflowStorage
from jobflow.types import utc_now

_STAMPS = {
    JobStatus.AGREED: "agreed_at",
    JobStatus.IN_PROGRESS: "in_progress_at",
    JobStatus.COMPLETED: "completed_at",
    JobStatus.DISPUTED: "disputed_at",
}


def advance_job(
    storage: WorkflowStorage,
    events: EventLog,
    job_id: str,
    to_status: JobStatus,
    actor_id: str,
    **changes,
) -> Job:
    """Move a job to ``to_status``, stamp the matching timestamp and log it.

    Must run inside a unit of work.
    """
    job = storage.get_job(job_id)
    if job is None:
        raise NotFoundError("Job not found")
    to_status = JobStatus(to_status)
    if job.status == to_status.value:
        return storage.update_job(replace(job, **changes)) if changes else job
    if not job.can_transition_to(to_status):
        raise InvalidTransition(f"Job cannot move from {job.status} to {to_status.value}")

    stamp = _STAMPS.get(to_status)
    if stamp and getattr(job, stamp) is None:
        changes.setdefault(stamp, utc_now())
    updated = storage.update_job(replace(job, status=to_status.value, **changes))
    events.status_changed(job_id, actor_id, job.status, to_status.value)
    log_transition(job_id, "job", job_id, job.status, to_status.value, actor_id)
    return updated
