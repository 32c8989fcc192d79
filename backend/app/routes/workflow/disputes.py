"""Dispute and timeline routes."""

from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Header, Request, status

from ...auth import CurrentActor
from ...dependencies import Engine, dispatch_notifications
from ...logging_config import get_logger
from ...models import DisputeCreate, DisputeResponse, TimelineEntryResponse, TimelineResponse
from ...rate_limit import READ_LIMIT, WRITE_LIMIT, limiter

logger = get_logger("jobflow.api.disputes")
router = APIRouter(prefix="/jobs", tags=["workflow", "disputes"])


@router.post("/{job_id}/disputes", response_model=DisputeResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(WRITE_LIMIT)
async def open_dispute(
    request: Request,
    job_id: str,
    body: DisputeCreate,
    actor: CurrentActor,
    engine: Engine,
    background_tasks: BackgroundTasks,
    idempotency_key: Annotated[str | None, Header(alias="Idempotency-Key")] = None,
):
    """
    Open a dispute against the other party.

    Either participant may open one. The job is locked from then on: no
    invoice, variation or fund release can proceed.
    """
    logger.info(f"POST /jobs/{job_id}/disputes | actor={actor.id}")
    dispute = engine.open_dispute(actor, job_id, body.reason, body.description, idempotency_key=idempotency_key)
    background_tasks.add_task(dispatch_notifications, engine, job_id)
    return DisputeResponse.model_validate(dispute.to_dict())


@router.get("/{job_id}/disputes", response_model=list[DisputeResponse])
@limiter.limit(READ_LIMIT)
async def list_disputes(request: Request, job_id: str, actor: CurrentActor, engine: Engine):
    return [DisputeResponse.model_validate(d.to_dict()) for d in engine.list_disputes(actor, job_id)]


@router.get("/{job_id}/timeline", response_model=TimelineResponse)
@limiter.limit(READ_LIMIT)
async def get_timeline(request: Request, job_id: str, actor: CurrentActor, engine: Engine):
    """The job's events in order, rendered for display."""
    entries = engine.timeline(actor, job_id)
    return TimelineResponse(
        job_id=job_id,
        locked=engine.is_locked(job_id),
        entries=[
            TimelineEntryResponse(
                event_id=e.event_id,
                type=e.type,
                title=e.title,
                actor_id=e.actor_id,
                created_at=e.created_at,
                payload=e.payload,
            )
            for e in entries
        ],
    )
