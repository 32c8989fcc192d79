"""
Supabase-backed workflow storage.

Reads go straight to PostgREST. Writes are collected as operations and
applied by the ``jobflow_apply_batch`` Postgres function (defined in
``backend/supabase/migrations/001_jobflow_schema.sql``), which runs them in
a single database transaction:

- ``insert``: insert ``row`` into ``table``.
- ``update``: update the row whose ``id`` matches and whose ``version`` equals
  ``expected_version``; zero rows affected raises SQLSTATE ``P0409`` with the
  table name in DETAIL and the row id in HINT.
- ``replace_children``: delete rows of ``table`` where ``parent_key`` equals
  ``parent_id``, then insert ``rows``.

Outside ``transaction()`` every write is committed on its own. Inside it,
the calling thread's writes are buffered until the block exits cleanly, so
reads made inside the block see the last committed state.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Dict, Iterator, List, Optional

import httpx
from postgrest.exceptions import APIError
from supabase import Client

from jobflow.assignments.models import Assignment
from jobflow.disputes.models import Dispute
from jobflow.errors import (
    AssignmentConflict,
    ConcurrencyConflict,
    NetworkFailure,
    StorageError,
    WorkflowError,
)
from jobflow.events.models import JobEvent
from jobflow.invoices.models import Invoice
from jobflow.jobs.models import Job, Quote
from jobflow.messaging.models import Notification
from jobflow.storage.base import IdempotencyRecord
from jobflow.types import utc_now
from jobflow.variations.models import Variation

logger = logging.getLogger(__name__)

# Table names
JOBS_TABLE = "jobs"
QUOTES_TABLE = "quotes"
ASSIGNMENTS_TABLE = "job_assignments"
INVOICES_TABLE = "invoices"
INVOICE_ITEMS_TABLE = "invoice_items"
VARIATIONS_TABLE = "job_variations"
DISPUTES_TABLE = "disputes"
EVENTS_TABLE = "job_events"
NOTIFICATIONS_TABLE = "notification_outbox"
IDEMPOTENCY_TABLE = "idempotency_keys"
USERS_TABLE = "users"

APPLY_BATCH_RPC = "jobflow_apply_batch"

_UNIQUE_VIOLATION = "23505"
_VERSION_MISMATCH = "P0409"

_ENTITY_NAMES = {
    JOBS_TABLE: "job",
    QUOTES_TABLE: "quote",
    ASSIGNMENTS_TABLE: "assignment",
    INVOICES_TABLE: "invoice",
    VARIATIONS_TABLE: "variation",
    NOTIFICATIONS_TABLE: "notification",
}


class SupabaseWorkflowStorage:
    """``WorkflowStorage`` over a supabase-py client.

    One instance is shared by every request and background task in the
    process, so the write buffer and nesting depth live in thread-local state:
    a unit of work only ever collects the writes made by its own thread.
    """

    def __init__(self, client: Client):
        self.client = client
        self._local = threading.local()

    # === Unit of work ===

    @property
    def _pending(self) -> Optional[List[Dict[str, Any]]]:
        return getattr(self._local, "pending", None)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Buffer this thread's writes and apply them in one RPC call on clean exit."""
        local = self._local
        if getattr(local, "depth", 0):
            local.depth += 1
            try:
                yield
            finally:
                local.depth -= 1
            return

        local.pending = []
        local.depth = 1
        try:
            yield
            ops, local.pending = local.pending, None
            if ops:
                self._apply(ops)
        finally:
            local.pending = None
            local.depth = 0

    def _write(self, op: Dict[str, Any]) -> None:
        pending = self._pending
        if pending is not None:
            pending.append(op)
        else:
            self._apply([op])

    def _apply(self, ops: List[Dict[str, Any]]) -> None:
        try:
            self.client.rpc(APPLY_BATCH_RPC, {"ops": ops}).execute()
        except APIError as e:
            raise self._map_api_error(e, ops) from e
        except httpx.HTTPError as e:
            logger.warning(f"Storage unreachable | ops={len(ops)} | error={type(e).__name__}")
            raise NetworkFailure("storage") from e
        logger.debug(f"Applied batch | ops={len(ops)}")

    @staticmethod
    def _map_api_error(error: APIError, ops: List[Dict[str, Any]]) -> WorkflowError:
        if error.code == _VERSION_MISMATCH:
            entity = _ENTITY_NAMES.get(error.details or "", "row")
            return ConcurrencyConflict(entity, error.hint or "unknown")
        if error.code == _UNIQUE_VIOLATION:
            for op in ops:
                if op["op"] == "insert" and op["table"] == ASSIGNMENTS_TABLE:
                    return AssignmentConflict(op["row"]["job_id"])
            return ConcurrencyConflict("row", "unknown")
        logger.error(f"Storage rejected batch | code={error.code} | message={error.message}")
        return StorageError()

    def _select(self, query) -> List[Dict[str, Any]]:
        try:
            result = query.execute()
        except APIError as e:
            logger.error(f"Storage query failed | code={e.code} | message={e.message}")
            raise StorageError() from e
        except httpx.HTTPError as e:
            logger.warning(f"Storage unreachable | error={type(e).__name__}")
            raise NetworkFailure("storage") from e
        return result.data or []

    def _get_one(self, table: str, column: str, value: str, columns: str = "*") -> Optional[Dict[str, Any]]:
        rows = self._select(self.client.table(table).select(columns).eq(column, value).limit(1))
        return rows[0] if rows else None

    # === Row helpers ===

    @staticmethod
    def _insert_row(entity) -> Any:
        now = utc_now()
        updates = {}
        if getattr(entity, "created_at", False) is None:
            updates["created_at"] = now
        if getattr(entity, "updated_at", False) is None:
            updates["updated_at"] = now
        return replace(entity, **updates) if updates else entity

    def _insert(self, table: str, entity):
        stored = self._insert_row(entity)
        self._write({"op": "insert", "table": table, "row": stored.to_dict()})
        return stored

    def _update(self, table: str, entity, row: Optional[Dict[str, Any]] = None):
        updates = {"version": entity.version + 1}
        if hasattr(entity, "updated_at"):
            updates["updated_at"] = utc_now()
        stored = replace(entity, **updates)
        if row is None:
            row = stored.to_dict()
        else:
            row.update(version=stored.version, updated_at=stored.to_dict().get("updated_at"))
        self._write(
            {
                "op": "update",
                "table": table,
                "id": entity.id,
                "expected_version": entity.version,
                "row": row,
            }
        )
        return stored

    # === Jobs & quotes ===

    def save_job(self, job: Job) -> Job:
        return self._insert(JOBS_TABLE, job)

    def get_job(self, job_id: str) -> Optional[Job]:
        row = self._get_one(JOBS_TABLE, "id", job_id)
        return Job.from_dict(row) if row else None

    def update_job(self, job: Job) -> Job:
        return self._update(JOBS_TABLE, job)

    def save_quote(self, quote: Quote) -> Quote:
        return self._insert(QUOTES_TABLE, quote)

    def get_quote(self, quote_id: str) -> Optional[Quote]:
        row = self._get_one(QUOTES_TABLE, "id", quote_id)
        return Quote.from_dict(row) if row else None

    def update_quote(self, quote: Quote) -> Quote:
        return self._update(QUOTES_TABLE, quote)

    # === Assignments ===

    def save_assignment(self, assignment: Assignment) -> Assignment:
        existing = self._get_one(ASSIGNMENTS_TABLE, "job_id", assignment.job_id, columns="id")
        if existing:
            raise AssignmentConflict(assignment.job_id, existing["id"])
        # The unique index on job_id still decides concurrent inserts.
        return self._insert(ASSIGNMENTS_TABLE, assignment)

    def get_assignment(self, job_id: str) -> Optional[Assignment]:
        row = self._get_one(ASSIGNMENTS_TABLE, "job_id", job_id)
        return Assignment.from_dict(row) if row else None

    def update_assignment(self, assignment: Assignment) -> Assignment:
        return self._update(ASSIGNMENTS_TABLE, assignment)

    # === Invoices ===

    @staticmethod
    def _invoice_from_row(row: Dict[str, Any]) -> Invoice:
        items = sorted(row.pop(INVOICE_ITEMS_TABLE, None) or [], key=lambda i: i.get("sort_order") or 0)
        row["items"] = items
        return Invoice.from_dict(row)

    def _item_rows(self, invoice: Invoice) -> Dict[str, Any]:
        return {
            "op": "replace_children",
            "table": INVOICE_ITEMS_TABLE,
            "parent_key": "invoice_id",
            "parent_id": invoice.id,
            "rows": [dict(item.to_dict(), invoice_id=invoice.id) for item in invoice.items],
        }

    def save_invoice(self, invoice: Invoice) -> Invoice:
        stored = self._insert_row(invoice)
        row = stored.to_dict()
        row.pop("items")
        self._write({"op": "insert", "table": INVOICES_TABLE, "row": row})
        self._write(self._item_rows(stored))
        return stored

    def get_invoice(self, invoice_id: str) -> Optional[Invoice]:
        row = self._get_one(INVOICES_TABLE, "id", invoice_id, columns=f"*, {INVOICE_ITEMS_TABLE}(*)")
        return self._invoice_from_row(row) if row else None

    def update_invoice(self, invoice: Invoice) -> Invoice:
        row = invoice.to_dict()
        row.pop("items")
        stored = self._update(INVOICES_TABLE, invoice, row=row)
        self._write(self._item_rows(stored))
        return stored

    def list_invoices(self, job_id: str, status: Optional[str] = None) -> List[Invoice]:
        query = self.client.table(INVOICES_TABLE).select(f"*, {INVOICE_ITEMS_TABLE}(*)").eq("job_id", job_id)
        if status is not None:
            query = query.eq("status", status)
        rows = self._select(query.order("invoice_number"))
        return [self._invoice_from_row(r) for r in rows]

    def next_invoice_number(self, job_id: str) -> int:
        rows = self._select(
            self.client.table(INVOICES_TABLE)
            .select("invoice_number")
            .eq("job_id", job_id)
            .order("invoice_number", desc=True)
            .limit(1)
        )
        return (rows[0]["invoice_number"] + 1) if rows else 1

    # === Variations ===

    def save_variation(self, variation: Variation) -> Variation:
        return self._insert(VARIATIONS_TABLE, variation)

    def get_variation(self, variation_id: str) -> Optional[Variation]:
        row = self._get_one(VARIATIONS_TABLE, "id", variation_id)
        return Variation.from_dict(row) if row else None

    def update_variation(self, variation: Variation) -> Variation:
        return self._update(VARIATIONS_TABLE, variation)

    def list_variations(self, job_id: str, status: Optional[str] = None) -> List[Variation]:
        query = self.client.table(VARIATIONS_TABLE).select("*").eq("job_id", job_id)
        if status is not None:
            query = query.eq("status", status)
        return [Variation.from_dict(r) for r in self._select(query.order("created_at"))]

    # === Disputes ===

    def save_dispute(self, dispute: Dispute) -> Dispute:
        return self._insert(DISPUTES_TABLE, dispute)

    def list_disputes(self, job_id: str, status: Optional[str] = None) -> List[Dispute]:
        query = self.client.table(DISPUTES_TABLE).select("*").eq("job_id", job_id)
        if status is not None:
            query = query.eq("status", status)
        return [Dispute.from_dict(r) for r in self._select(query.order("created_at"))]

    # === Events ===

    def append_event(self, event: JobEvent) -> JobEvent:
        stored = replace(event, created_at=event.created_at or utc_now())
        row = stored.to_dict()
        row.pop("sequence")  # bigserial
        self._write({"op": "insert", "table": EVENTS_TABLE, "row": row})
        return stored

    def list_events(self, job_id: str) -> List[JobEvent]:
        rows = self._select(
            self.client.table(EVENTS_TABLE).select("*").eq("job_id", job_id).order("created_at").order("sequence")
        )
        return [JobEvent.from_dict(r) for r in rows]

    # === Notification outbox ===

    def save_notification(self, notification: Notification) -> Notification:
        return self._insert(NOTIFICATIONS_TABLE, notification)

    def update_notification(self, notification: Notification) -> Notification:
        return self._update(NOTIFICATIONS_TABLE, notification)

    def list_notifications(
        self,
        status: Optional[str] = None,
        job_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[Notification]:
        query = self.client.table(NOTIFICATIONS_TABLE).select("*")
        if status is not None:
            query = query.eq("status", status)
        if job_id is not None:
            query = query.eq("job_id", job_id)
        rows = self._select(query.order("created_at").limit(limit))
        return [Notification.from_dict(r) for r in rows]

    # === Idempotency ===

    def get_idempotency_record(self, actor_id: str, key: str) -> Optional[IdempotencyRecord]:
        rows = self._select(
            self.client.table(IDEMPOTENCY_TABLE).select("*").eq("actor_id", actor_id).eq("key", key).limit(1)
        )
        return IdempotencyRecord.from_dict(rows[0]) if rows else None

    def save_idempotency_record(self, record: IdempotencyRecord) -> IdempotencyRecord:
        stored = replace(record, created_at=record.created_at or utc_now())
        self._write({"op": "insert", "table": IDEMPOTENCY_TABLE, "row": stored.to_dict()})
        return stored

    # === Payout accounts ===

    def get_payout_account(self, provider_id: str) -> Optional[str]:
        row = self._get_one(USERS_TABLE, "id", provider_id, columns="stripe_account_id")
        return row.get("stripe_account_id") if row else None
