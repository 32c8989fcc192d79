"""Payment provider webhooks.

A successful checkout payment is the canonical path for accepting a quote:
the assignment is created here as the trusted service identity, keyed by
the payment intent id so redelivered events are no-ops.
"""

from typing import Annotated

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request, status

from jobflow.authz import Actor
from jobflow.errors import (
    AssignmentConflict,
    AuthorizationDenied,
    InvalidTransition,
    NotFoundError,
    ValidationError,
)

from ..config import Settings, get_settings
from ..dependencies import Engine, dispatch_notifications
from ..logging_config import get_logger

logger = get_logger("jobflow.api.webhooks")
router = APIRouter(prefix="/webhooks", tags=["webhooks"])

CHECKOUT_EVENT = "payment_intent.succeeded"


def _verify_event(payload: bytes, signature: str | None, secret: str | None) -> dict:
    if not secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Webhook secret not configured",
        )
    if not signature:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing Stripe-Signature header")
    try:
        return stripe.Webhook.construct_event(payload, signature, secret)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload")
    except stripe.SignatureVerificationError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid signature")


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    engine: Engine,
    settings: Annotated[Settings, Depends(get_settings)],
):
    """
    Receive Stripe events.

    Only ``payment_intent.succeeded`` with job metadata is acted on; other
    events are acknowledged and ignored. Events that can never succeed are
    acknowledged too so Stripe stops redelivering them. Storage or network
    failures return 503 and Stripe retries.
    """
    payload = await request.body()
    event = _verify_event(payload, request.headers.get("stripe-signature"), settings.stripe_webhook_secret)

    event_type = event["type"]
    if event_type != CHECKOUT_EVENT:
        logger.debug(f"Ignoring Stripe event | type={event_type}")
        return {"received": True, "status": "ignored"}

    intent = event["data"]["object"]
    metadata = intent.get("metadata") or {}
    job_id = metadata.get("job_id")
    quote_id = metadata.get("quote_id") or metadata.get("proposal_id")
    if not job_id or not quote_id:
        logger.warning(f"Checkout payment without job metadata | intent={intent.get('id')}")
        return {"received": True, "status": "ignored"}

    logger.info(f"POST /webhooks/stripe | intent={intent['id']} | job={job_id} | quote={quote_id}")
    try:
        assignment = engine.accept_quote(Actor.service(), job_id, quote_id, idempotency_key=intent["id"])
    except AssignmentConflict as e:
        logger.info(f"Assignment already exists | job={job_id} | assignment={e.existing_assignment_id}")
        return {"received": True, "status": "duplicate"}
    except (NotFoundError, AuthorizationDenied, InvalidTransition, ValidationError) as e:
        logger.error(f"Checkout payment could not be applied | job={job_id} | {e.code}: {e.message}")
        return {"received": True, "status": "rejected", "code": e.code}

    dispatch_notifications(engine, job_id)
    return {"received": True, "status": "assigned", "assignment_id": assignment.id}
