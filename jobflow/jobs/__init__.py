"""Jobs and quotes as read and advanced by the workflow engine.

Models:
- Job, JobStatus, VALID_JOB_TRANSITIONS
- Quote, QuoteStatus
"""

from jobflow.jobs.models import VALID_JOB_TRANSITIONS, Job, JobStatus, Quote, QuoteStatus

__all__ = [
    "Job",
    "JobStatus",
    "Quote",
    "QuoteStatus",
    "VALID_JOB_TRANSITIONS",
]
