"""Tests for the invoice engine."""

from decimal import Decimal

import pytest

from jobflow.assignments.models import AssignmentStatus
from jobflow.errors import (
    AuthorizationDenied,
    ConcurrencyConflict,
    InvalidTransition,
    NetworkFailure,
    NotFoundError,
    ValidationError,
)
from jobflow.invoices.models import InvoiceStatus
from jobflow.invoices.service import NO_PAYOUT_ACCOUNT_MESSAGE, split_gst
from jobflow.jobs.models import JobStatus


class TestGstSplit:
    def test_one_eleventh_at_ten_percent(self):
        subtotal, tax = split_gst(Decimal("1200.00"), True, Decimal("0.10"))
        assert tax == Decimal("109.09")
        assert subtotal == Decimal("1090.91")

    def test_disabled(self):
        assert split_gst(Decimal("1200.00"), False, Decimal("0.10")) == (Decimal("1200.00"), Decimal("0.00"))

    def test_zero_rate(self):
        assert split_gst(Decimal("550.00"), True, Decimal("0")) == (Decimal("550.00"), Decimal("0.00"))


class TestCreateInvoice:
    def test_draft_defaults_to_agreed_price(self, engine, job_id, provider):
        invoice = engine.create_invoice(provider, job_id)

        assert invoice.status == InvoiceStatus.DRAFT.value
        assert invoice.total == Decimal("1200.00")
        assert invoice.tax == Decimal("0.00")
        assert invoice.invoice_number == 1
        assert [i.description for i in invoice.items] == ["Agreed quote"]
        assert invoice.issue_date is not None

    def test_gst_inclusive_total(self, engine, job_id, provider):
        invoice = engine.create_invoice(provider, job_id, gst_enabled=True)

        assert invoice.total == Decimal("1200.00")
        assert invoice.tax == Decimal("109.09")
        assert invoice.subtotal == Decimal("1090.91")

    def test_approved_variations_included(self, engine, job_id, customer, provider):
        variation = engine.request_variation(provider, job_id, "Extra valve", amount="150")
        engine.resolve_variation(customer, variation.id, "approved")

        invoice = engine.create_invoice(provider, job_id)

        assert invoice.total == Decimal("1350.00")
        assert [i.description for i in invoice.items] == ["Agreed quote", "Variation: Extra valve"]

    def test_client_total_must_match(self, engine, job_id, provider):
        with pytest.raises(ValidationError) as exc_info:
            engine.create_invoice(provider, job_id, total="1500.00")
        assert exc_info.value.details == {"expected_total": "1200.00"}

    def test_matching_client_total_accepted(self, engine, job_id, provider):
        invoice = engine.create_invoice(provider, job_id, total="1200")
        assert invoice.total == Decimal("1200.00")

    def test_custom_items_must_add_up(self, engine, job_id, provider):
        items = [
            {"description": "Labour", "qty": 4, "unit_price": "150.00"},
            {"description": "Parts", "qty": 1, "unit_price": "500.00"},
        ]
        with pytest.raises(ValidationError):
            engine.create_invoice(provider, job_id, items=items)

    def test_custom_items_accepted(self, engine, job_id, provider):
        items = [
            {"description": "Labour", "qty": 4, "unit_price": "150.00"},
            {"description": "Parts", "qty": 2, "unit_price": "300.00"},
        ]

        invoice = engine.create_invoice(provider, job_id, items=items)

        assert [i.line_total for i in invoice.items] == [Decimal("600.00"), Decimal("600.00")]

    def test_bad_item_rejected(self, engine, job_id, provider):
        with pytest.raises(ValidationError):
            engine.create_invoice(provider, job_id, items=[{"description": "", "qty": 1, "unit_price": "1200"}])

    def test_customer_cannot_create(self, engine, job_id, customer):
        with pytest.raises(AuthorizationDenied):
            engine.create_invoice(customer, job_id)

    def test_outsider_cannot_create(self, engine, job_id, outsider):
        with pytest.raises(NotFoundError):
            engine.create_invoice(outsider, job_id)

    def test_numbers_increase_per_job(self, engine, job_id, provider):
        first = engine.create_invoice(provider, job_id)
        engine.void_invoice(provider, first.id)

        second = engine.create_invoice(provider, job_id)

        assert second.invoice_number == 2
        assert second.display_number() == "INV-0002"

    def test_idempotent_create(self, engine, job_id, provider):
        first = engine.create_invoice(provider, job_id, idempotency_key="draft-1")
        second = engine.create_invoice(provider, job_id, idempotency_key="draft-1")

        assert first.id == second.id
        assert len(engine.storage.list_invoices(job_id)) == 1


class TestDraftVisibility:
    def test_customer_cannot_see_draft(self, engine, job_id, customer, provider):
        draft = engine.create_invoice(provider, job_id)

        with pytest.raises(NotFoundError):
            engine.get_invoice(customer, draft.id)
        assert engine.list_invoices(customer, job_id) == []
        assert [i.id for i in engine.list_invoices(provider, job_id)] == [draft.id]

    def test_customer_sees_submitted(self, engine, submitted_invoice, customer):
        assert engine.get_invoice(customer, submitted_invoice.id).status == InvoiceStatus.SUBMITTED.value

    def test_outsider_sees_nothing(self, engine, submitted_invoice, outsider, job_id):
        with pytest.raises(NotFoundError):
            engine.get_invoice(outsider, submitted_invoice.id)
        with pytest.raises(NotFoundError):
            engine.list_invoices(outsider, job_id)

    def test_service_sees_draft(self, engine, job_id, provider, service):
        draft = engine.create_invoice(provider, job_id)
        assert engine.get_invoice(service, draft.id).id == draft.id


class TestUpdateInvoice:
    def test_edit_draft(self, engine, job_id, provider):
        draft = engine.create_invoice(provider, job_id)

        updated = engine.update_invoice(
            provider, draft.id, expected_version=draft.version, notes="Thanks!", gst_enabled=True
        )

        assert updated.version == draft.version + 1
        assert updated.notes == "Thanks!"
        assert updated.tax == Decimal("109.09")

    def test_stale_version(self, engine, job_id, provider):
        draft = engine.create_invoice(provider, job_id)
        engine.update_invoice(provider, draft.id, expected_version=1, notes="first")

        with pytest.raises(ConcurrencyConflict):
            engine.update_invoice(provider, draft.id, expected_version=1, notes="second")

    def test_unknown_field_rejected(self, engine, job_id, provider):
        draft = engine.create_invoice(provider, job_id)
        with pytest.raises(ValidationError):
            engine.update_invoice(provider, draft.id, status="approved")

    def test_submitted_invoice_locked(self, engine, submitted_invoice, provider):
        with pytest.raises(InvalidTransition):
            engine.update_invoice(provider, submitted_invoice.id, notes="too late")

    def test_stale_items_regenerated(self, engine, job_id, customer, provider):
        draft = engine.create_invoice(provider, job_id)
        variation = engine.request_variation(provider, job_id, "Extra valve", amount="100")
        engine.resolve_variation(customer, variation.id, "approved")

        updated = engine.update_invoice(provider, draft.id, notes="with variation")

        assert updated.total == Decimal("1300.00")
        assert updated.items_total == Decimal("1300.00")

    def test_due_date_before_issue_date(self, engine, job_id, provider):
        draft = engine.create_invoice(provider, job_id, issue_date="2026-03-10")
        with pytest.raises(ValidationError):
            engine.update_invoice(provider, draft.id, due_date="2026-03-01")


class TestSubmitInvoice:
    def test_submit_notifies_customer(self, engine, job_id, provider):
        draft = engine.create_invoice(provider, job_id, accompanying_message="All done")

        submitted = engine.submit_invoice(provider, draft.id)

        assert submitted.status == InvoiceStatus.SUBMITTED.value
        assert submitted.sent_at is not None
        notification = engine.storage.list_notifications(job_id=job_id)[-1]
        assert notification.text == "Completion invoice submitted: $1,200.00"
        assert notification.message_type == "invoice"
        assert notification.payload["accompanying_message"] == "All done"
        assert notification.deep_link == f"/jobs/{job_id}?invoice={draft.id}"

    def test_one_live_invoice_per_job(self, engine, submitted_invoice, job_id, provider):
        other = engine.create_invoice(provider, job_id)

        with pytest.raises(InvalidTransition) as exc_info:
            engine.submit_invoice(provider, other.id)
        assert exc_info.value.details == {"invoice_id": submitted_invoice.id}

    def test_resubmit_rejected(self, engine, submitted_invoice, provider):
        with pytest.raises(InvalidTransition):
            engine.submit_invoice(provider, submitted_invoice.id)

    def test_idempotent_submit(self, engine, job_id, provider):
        draft = engine.create_invoice(provider, job_id)

        first = engine.submit_invoice(provider, draft.id, idempotency_key="send-1")
        second = engine.submit_invoice(provider, draft.id, idempotency_key="send-1")

        assert first.version == second.version
        submitted_events = [e for e in engine.storage.list_events(job_id) if e.type == "invoice_submitted"]
        assert len(submitted_events) == 1

    def test_customer_cannot_submit(self, engine, job_id, provider, customer, service):
        draft = engine.create_invoice(provider, job_id)
        with pytest.raises(NotFoundError):
            engine.submit_invoice(customer, draft.id)
        with pytest.raises(AuthorizationDenied):
            engine.submit_invoice(service, draft.id)


class TestApproveInvoice:
    def test_approve_releases_funds(self, engine, submitted_invoice, customer, job_id, ids):
        approved = engine.approve_invoice(customer, submitted_invoice.id)

        assert approved.status == InvoiceStatus.APPROVED.value
        assert approved.approved_at is not None
        assert approved.settlement_reference.startswith("tr_")

        call = engine.settlement.calls[0]
        assert call.amount == Decimal("1200.00")
        assert call.destination_account == ids["payout_account"]
        assert call.idempotency_key == submitted_invoice.id
        assert call.metadata["job_id"] == job_id

        assert engine.storage.get_assignment(job_id).status == AssignmentStatus.COMPLETED.value
        assert engine.storage.get_job(job_id).status == JobStatus.COMPLETED.value
        approved_event = [e for e in engine.storage.list_events(job_id) if e.type == "invoice_approved"][0]
        assert approved_event.payload["platform_fee"] == "60.00"
        assert approved_event.payload["net_amount"] == "1140.00"

    def test_approve_twice_settles_once(self, engine, submitted_invoice, customer):
        first = engine.approve_invoice(customer, submitted_invoice.id)
        second = engine.approve_invoice(customer, submitted_invoice.id)

        assert first.settlement_reference == second.settlement_reference
        assert len(engine.settlement.calls) == 1

    def test_provider_cannot_approve(self, engine, submitted_invoice, provider):
        with pytest.raises(AuthorizationDenied):
            engine.approve_invoice(provider, submitted_invoice.id)

    def test_draft_cannot_be_approved_by_customer(self, engine, job_id, provider, customer):
        draft = engine.create_invoice(provider, job_id)
        with pytest.raises(NotFoundError):
            engine.approve_invoice(customer, draft.id)

    def test_settlement_outage_changes_nothing(self, engine, submitted_invoice, customer, job_id):
        engine.settlement.fail_with_network_error()
        events_before = len(engine.storage.list_events(job_id))

        with pytest.raises(NetworkFailure):
            engine.approve_invoice(customer, submitted_invoice.id)

        assert engine.storage.get_invoice(submitted_invoice.id).status == InvoiceStatus.SUBMITTED.value
        assert engine.storage.get_assignment(job_id).status == AssignmentStatus.ACTIVE.value
        assert len(engine.storage.list_events(job_id)) == events_before

        # A manual retry goes through
        approved = engine.approve_invoice(customer, submitted_invoice.id)
        assert approved.status == InvoiceStatus.APPROVED.value
        assert engine.settlement.released_keys == [submitted_invoice.id]

    def test_missing_payout_account(self, engine, post_job, customer, ids):
        from jobflow import Actor

        job, quote = post_job(engine, provider_id=ids["other_provider"])
        engine.accept_quote(customer, job.id, quote.id)
        other = Actor.from_account_type(ids["other_provider"], "tradie")
        invoice = engine.submit_invoice(other, engine.create_invoice(other, job.id).id)

        with pytest.raises(ValidationError) as exc_info:
            engine.approve_invoice(customer, invoice.id)

        assert exc_info.value.message == NO_PAYOUT_ACCOUNT_MESSAGE
        assert engine.settlement.calls == []

    def test_stale_version(self, engine, submitted_invoice, customer):
        with pytest.raises(ConcurrencyConflict):
            engine.approve_invoice(customer, submitted_invoice.id, expected_version=1)


class TestVoidInvoice:
    def test_void_draft(self, engine, job_id, provider):
        draft = engine.create_invoice(provider, job_id)

        voided = engine.void_invoice(provider, draft.id)

        assert voided.status == InvoiceStatus.VOID.value
        assert engine.storage.list_events(job_id)[-1].type == "invoice_voided"

    def test_cannot_void_submitted(self, engine, submitted_invoice, provider):
        with pytest.raises(InvalidTransition):
            engine.void_invoice(provider, submitted_invoice.id)
