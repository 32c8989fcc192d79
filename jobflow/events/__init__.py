"""Job event log.

Models:
- JobEvent: one append-only audit entry
- JobEventType, EVENT_TITLES
- TimelineEntry: display view of an event

Service:
- EventLog (service.py)
"""

from jobflow.events.models import EVENT_TITLES, JobEvent, JobEventType, TimelineEntry

__all__ = [
    "JobEvent",
    "JobEventType",
    "TimelineEntry",
    "EVENT_TITLES",
]
