"""Invoice routes.

Endpoints for drafting, submitting, approving and voiding completion
invoices. Approval releases the escrowed funds to the provider.
"""

from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Header, Request, status

from ...auth import CurrentActor
from ...dependencies import Engine, dispatch_notifications
from ...logging_config import get_logger
from ...models import InvoiceCreate, InvoiceResponse, InvoiceUpdate, VersionedRequest
from ...rate_limit import MONEY_LIMIT, READ_LIMIT, WRITE_LIMIT, limiter

logger = get_logger("jobflow.api.invoices")
router = APIRouter(tags=["workflow", "invoices"])


def _response(invoice) -> InvoiceResponse:
    return InvoiceResponse.model_validate(invoice.to_dict())


def _items(items) -> list[dict] | None:
    if items is None:
        return None
    return [item.model_dump() for item in items]


@router.post("/jobs/{job_id}/invoices", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(WRITE_LIMIT)
async def create_invoice(
    request: Request,
    job_id: str,
    body: InvoiceCreate,
    actor: CurrentActor,
    engine: Engine,
    idempotency_key: Annotated[str | None, Header(alias="Idempotency-Key")] = None,
):
    """
    Draft a completion invoice.

    Only the assigned provider can invoice, and only while the job is in
    progress. The total is the job's payable total; a supplied total that
    disagrees is rejected.
    """
    logger.info(f"POST /jobs/{job_id}/invoices | actor={actor.id}")
    invoice = engine.create_invoice(
        actor,
        job_id,
        items=_items(body.items),
        total=body.total,
        gst_enabled=body.gst_enabled,
        issue_date=body.issue_date,
        due_date=body.due_date,
        notes=body.notes,
        notes_inclusions=body.notes_inclusions,
        notes_exclusions=body.notes_exclusions,
        notes_warranty=body.notes_warranty,
        notes_payment_terms=body.notes_payment_terms,
        accompanying_message=body.accompanying_message,
        idempotency_key=idempotency_key,
    )
    return _response(invoice)


@router.get("/jobs/{job_id}/invoices", response_model=list[InvoiceResponse])
@limiter.limit(READ_LIMIT)
async def list_invoices(request: Request, job_id: str, actor: CurrentActor, engine: Engine):
    """List a job's invoices. Drafts are only listed for the provider."""
    return [_response(i) for i in engine.list_invoices(actor, job_id)]


@router.get("/invoices/{invoice_id}", response_model=InvoiceResponse)
@limiter.limit(READ_LIMIT)
async def get_invoice(request: Request, invoice_id: str, actor: CurrentActor, engine: Engine):
    return _response(engine.get_invoice(actor, invoice_id))


@router.patch("/invoices/{invoice_id}", response_model=InvoiceResponse)
@limiter.limit(WRITE_LIMIT)
async def update_invoice(
    request: Request,
    invoice_id: str,
    body: InvoiceUpdate,
    actor: CurrentActor,
    engine: Engine,
):
    """Edit a draft invoice."""
    logger.info(f"PATCH /invoices/{invoice_id} | actor={actor.id}")
    fields = body.model_dump(exclude_unset=True, exclude={"expected_version", "items"})
    if body.items is not None:
        fields["items"] = _items(body.items)
    invoice = engine.update_invoice(actor, invoice_id, expected_version=body.expected_version, **fields)
    return _response(invoice)


@router.post("/invoices/{invoice_id}/submit", response_model=InvoiceResponse)
@limiter.limit(WRITE_LIMIT)
async def submit_invoice(
    request: Request,
    invoice_id: str,
    actor: CurrentActor,
    engine: Engine,
    background_tasks: BackgroundTasks,
    body: VersionedRequest | None = None,
    idempotency_key: Annotated[str | None, Header(alias="Idempotency-Key")] = None,
):
    """Send a draft invoice to the customer."""
    logger.info(f"POST /invoices/{invoice_id}/submit | actor={actor.id}")
    invoice = engine.submit_invoice(
        actor,
        invoice_id,
        expected_version=body.expected_version if body else None,
        idempotency_key=idempotency_key,
    )
    background_tasks.add_task(dispatch_notifications, engine, invoice.job_id)
    return _response(invoice)


@router.post("/invoices/{invoice_id}/approve", response_model=InvoiceResponse)
@limiter.limit(MONEY_LIMIT)
async def approve_invoice(
    request: Request,
    invoice_id: str,
    actor: CurrentActor,
    engine: Engine,
    background_tasks: BackgroundTasks,
    body: VersionedRequest | None = None,
):
    """
    Approve a submitted invoice and release the funds.

    Only the customer can approve. Approving an already-approved invoice
    returns it unchanged; the funds are released once.
    """
    logger.info(f"POST /invoices/{invoice_id}/approve | actor={actor.id}")
    invoice = engine.approve_invoice(actor, invoice_id, expected_version=body.expected_version if body else None)
    background_tasks.add_task(dispatch_notifications, engine, invoice.job_id)
    return _response(invoice)


@router.post("/invoices/{invoice_id}/void", response_model=InvoiceResponse)
@limiter.limit(WRITE_LIMIT)
async def void_invoice(
    request: Request,
    invoice_id: str,
    actor: CurrentActor,
    engine: Engine,
    body: VersionedRequest | None = None,
):
    """Void a draft invoice."""
    logger.info(f"POST /invoices/{invoice_id}/void | actor={actor.id}")
    invoice = engine.void_invoice(actor, invoice_id, expected_version=body.expected_version if body else None)
    return _response(invoice)
