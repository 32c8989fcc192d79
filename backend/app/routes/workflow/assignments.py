"""Assignment routes.

Accepting a quote creates the assignment that every later workflow step
hangs off. Under the two-step policy the provider then accepts the terms.
"""

from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Header, Request, status

from ...auth import CurrentActor
from ...dependencies import Engine, dispatch_notifications
from ...logging_config import get_logger
from ...models import AcceptQuoteRequest, AssignmentResponse, PayableTotalResponse, VersionedRequest
from ...rate_limit import READ_LIMIT, WRITE_LIMIT, limiter

logger = get_logger("jobflow.api.assignments")
router = APIRouter(prefix="/jobs", tags=["workflow", "assignments"])


@router.get("/{job_id}/assignment", response_model=AssignmentResponse)
@limiter.limit(READ_LIMIT)
async def get_assignment(request: Request, job_id: str, actor: CurrentActor, engine: Engine):
    """Get the assignment for a job. Participants only."""
    assignment = engine.get_assignment(actor, job_id)
    return AssignmentResponse.model_validate(assignment.to_dict())


@router.post("/{job_id}/accept-quote", response_model=AssignmentResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(WRITE_LIMIT)
async def accept_quote(
    request: Request,
    job_id: str,
    body: AcceptQuoteRequest,
    actor: CurrentActor,
    engine: Engine,
    background_tasks: BackgroundTasks,
    idempotency_key: Annotated[str | None, Header(alias="Idempotency-Key")] = None,
):
    """
    Accept a provider's quote.

    Only the job's customer can accept. Creates the assignment and moves the
    job to in_progress (single-step) or agreed (two-step).
    """
    logger.info(f"POST /jobs/{job_id}/accept-quote | actor={actor.id} | quote={body.quote_id}")
    assignment = engine.accept_quote(actor, job_id, body.quote_id, idempotency_key=idempotency_key)
    background_tasks.add_task(dispatch_notifications, engine, job_id)
    return AssignmentResponse.model_validate(assignment.to_dict())


@router.post("/{job_id}/assignment/accept-terms", response_model=AssignmentResponse)
@limiter.limit(WRITE_LIMIT)
async def accept_terms(
    request: Request,
    job_id: str,
    actor: CurrentActor,
    engine: Engine,
    background_tasks: BackgroundTasks,
    body: VersionedRequest | None = None,
):
    """Provider accepts the job terms (two-step policy only)."""
    logger.info(f"POST /jobs/{job_id}/assignment/accept-terms | actor={actor.id}")
    expected_version = body.expected_version if body else None
    assignment = engine.accept_terms(actor, job_id, expected_version=expected_version)
    background_tasks.add_task(dispatch_notifications, engine, job_id)
    return AssignmentResponse.model_validate(assignment.to_dict())


@router.get("/{job_id}/payable-total", response_model=PayableTotalResponse)
@limiter.limit(READ_LIMIT)
async def get_payable_total(request: Request, job_id: str, actor: CurrentActor, engine: Engine):
    """Accepted quote price plus approved variations."""
    total = engine.payable_total(actor, job_id)
    return PayableTotalResponse(job_id=job_id, total=total, locked=engine.is_locked(job_id))
