"""Job assignment ledger.

Models:
- Assignment: binds customer, provider and accepted quote to a job
- AssignmentStatus, VALID_ASSIGNMENT_TRANSITIONS

Service:
- AssignmentService: create, accept terms, read (service.py)
"""

from jobflow.assignments.models import VALID_ASSIGNMENT_TRANSITIONS, Assignment, AssignmentStatus

__all__ = [
    "Assignment",
    "AssignmentStatus",
    "VALID_ASSIGNMENT_TRANSITIONS",
]
