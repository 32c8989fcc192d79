"""Dependency wiring: Supabase client and the workflow engine."""

from typing import Annotated

from fastapi import Depends

from jobflow.engine import WorkflowEngine
from jobflow.errors import WorkflowError
from jobflow.messaging.messenger import SupabaseMessenger
from jobflow.settlement.gateway import InMemorySettlementGateway, SettlementGateway
from jobflow.settlement.stripe_gateway import StripeSettlementGateway
from jobflow.storage.supabase import SupabaseWorkflowStorage
from supabase import Client, create_client

from .config import Settings, get_settings
from .logging_config import get_logger

logger = get_logger("jobflow.api.dependencies")

_supabase_client: Client | None = None
_engine: WorkflowEngine | None = None


def get_supabase_client(settings: Settings | None = None) -> Client:
    """Get cached Supabase client."""
    global _supabase_client
    if _supabase_client is None:
        if settings is None:
            settings = get_settings()
        # Prefer new secret key, fall back to legacy service_role_key
        api_key = settings.supabase_secret_key or settings.supabase_service_role_key
        if not api_key:
            raise ValueError("Either SUPABASE_SECRET_KEY or SUPABASE_SERVICE_ROLE_KEY must be set")
        _supabase_client = create_client(settings.supabase_url, api_key)
    return _supabase_client


def build_settlement_gateway(settings: Settings) -> SettlementGateway:
    if settings.stripe_secret_key:
        return StripeSettlementGateway(settings.stripe_secret_key, currency=settings.currency)
    if settings.debug:
        logger.warning("STRIPE_SECRET_KEY not set; using in-memory settlement (debug only)")
        return InMemorySettlementGateway()
    raise ValueError("STRIPE_SECRET_KEY must be set")


def build_engine(settings: Settings) -> WorkflowEngine:
    client = get_supabase_client(settings)
    return WorkflowEngine(
        storage=SupabaseWorkflowStorage(client),
        settlement=build_settlement_gateway(settings),
        messenger=SupabaseMessenger(client),
        config=settings.workflow_config(),
    )


def get_engine(settings: Annotated[Settings, Depends(get_settings)]) -> WorkflowEngine:
    """FastAPI dependency for the workflow engine (built once per process)."""
    global _engine
    if _engine is None:
        _engine = build_engine(settings)
        logger.info(f"Workflow engine built | policy={_engine.config.transition_policy.value}")
    return _engine


# Type alias for dependency injection
Engine = Annotated[WorkflowEngine, Depends(get_engine)]


def dispatch_notifications(engine: WorkflowEngine, job_id: str) -> None:
    """Background task: deliver the job's queued notifications.

    Runs after the response is sent. Undelivered rows stay in the outbox and
    are retried on the next dispatch for the job.
    """
    try:
        report = engine.dispatch_notifications(job_id=job_id)
    except WorkflowError as e:
        logger.warning(f"Notification dispatch failed | job={job_id} | {e.code}: {e.message}")
        return
    if report.retrying or report.failed:
        logger.warning(
            f"Notifications undelivered | job={job_id} | retrying={report.retrying} | failed={report.failed}"
        )
