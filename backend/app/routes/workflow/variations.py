"""Variation routes."""

from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Header, Request, status

from ...auth import CurrentActor
from ...dependencies import Engine, dispatch_notifications
from ...logging_config import get_logger
from ...models import VariationCreate, VariationDecisionRequest, VariationResponse
from ...rate_limit import READ_LIMIT, WRITE_LIMIT, limiter

logger = get_logger("jobflow.api.variations")
router = APIRouter(tags=["workflow", "variations"])


@router.post("/jobs/{job_id}/variations", response_model=VariationResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(WRITE_LIMIT)
async def request_variation(
    request: Request,
    job_id: str,
    body: VariationCreate,
    actor: CurrentActor,
    engine: Engine,
    background_tasks: BackgroundTasks,
    idempotency_key: Annotated[str | None, Header(alias="Idempotency-Key")] = None,
):
    """Provider proposes a change of scope with an extra amount."""
    logger.info(f"POST /jobs/{job_id}/variations | actor={actor.id} | amount={body.amount}")
    variation = engine.request_variation(
        actor,
        job_id,
        body.title,
        body.description,
        body.amount,
        idempotency_key=idempotency_key,
    )
    background_tasks.add_task(dispatch_notifications, engine, job_id)
    return VariationResponse.model_validate(variation.to_dict())


@router.get("/jobs/{job_id}/variations", response_model=list[VariationResponse])
@limiter.limit(READ_LIMIT)
async def list_variations(request: Request, job_id: str, actor: CurrentActor, engine: Engine):
    return [VariationResponse.model_validate(v.to_dict()) for v in engine.list_variations(actor, job_id)]


@router.post("/variations/{variation_id}/decision", response_model=VariationResponse)
@limiter.limit(WRITE_LIMIT)
async def resolve_variation(
    request: Request,
    variation_id: str,
    body: VariationDecisionRequest,
    actor: CurrentActor,
    engine: Engine,
    background_tasks: BackgroundTasks,
):
    """Customer approves or declines a pending variation."""
    logger.info(f"POST /variations/{variation_id}/decision | actor={actor.id} | decision={body.decision}")
    variation = engine.resolve_variation(
        actor, variation_id, body.decision, expected_version=body.expected_version
    )
    background_tasks.add_task(dispatch_notifications, engine, variation.job_id)
    return VariationResponse.model_validate(variation.to_dict())
