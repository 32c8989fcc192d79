"""Tests for entity validation and money helpers."""

from decimal import Decimal

import pytest

from jobflow.assignments.models import Assignment, AssignmentStatus
from jobflow.disputes.models import Dispute
from jobflow.invoices.models import Invoice, InvoiceItem, InvoiceStatus
from jobflow.jobs.models import Job, JobStatus, Quote
from jobflow.types import format_money, parse_date, to_money
from jobflow.variations.models import Variation, VariationStatus


class TestMoney:
    @pytest.mark.parametrize(
        "value,expected",
        [("10", "10.00"), (10.005, "10.01"), ("1199.999", "1200.00"), (Decimal("3.1"), "3.10")],
    )
    def test_to_money_quantizes(self, value, expected):
        assert to_money(value) == Decimal(expected)

    @pytest.mark.parametrize("value", [None, True, "ten", "NaN", "Infinity"])
    def test_to_money_rejects(self, value):
        with pytest.raises(ValueError):
            to_money(value)

    def test_format_money(self):
        assert format_money(Decimal("1200")) == "$1,200.00"

    def test_parse_date_accepts_timestamps(self):
        assert parse_date("2026-03-10T09:30:00Z").isoformat() == "2026-03-10"


class TestJob:
    def test_budget_range_checked(self):
        with pytest.raises(ValueError):
            Job(id="j", customer_id="c", budget_min="500", budget_max="100")

    def test_disputed_is_terminal_here(self):
        job = Job(id="j", customer_id="c", status="disputed")
        assert not any(job.can_transition_to(s) for s in JobStatus)

    def test_quote_price_positive(self):
        with pytest.raises(ValueError):
            Quote(id="q", job_id="j", provider_id="p", price="0")


class TestAssignment:
    def test_parties_must_differ(self):
        with pytest.raises(ValueError):
            Assignment(
                id="a", job_id="j", customer_id="u1", provider_id="u1", accepted_quote_id="q", quote_price="100"
            )

    def test_in_progress_needs_both_halves(self):
        assignment = Assignment(
            id="a", job_id="j", customer_id="c", provider_id="p", accepted_quote_id="q", quote_price="100"
        )
        assert not assignment.is_in_progress

    def test_transitions(self):
        assignment = Assignment(
            id="a", job_id="j", customer_id="c", provider_id="p", accepted_quote_id="q", quote_price="100"
        )
        assert assignment.can_transition_to(AssignmentStatus.DISPUTED)
        assert assignment.can_transition_to(AssignmentStatus.COMPLETED)
        assert not assignment.can_transition_to(AssignmentStatus.ACTIVE)

    def test_dict_round_trip(self):
        assignment = Assignment(
            id="a", job_id="j", customer_id="c", provider_id="p", accepted_quote_id="q", quote_price="99.5"
        )
        restored = Assignment.from_dict(assignment.to_dict())
        assert restored == assignment


class TestInvoice:
    def _invoice(self, **overrides):
        fields = dict(
            id="i",
            job_id="j",
            assignment_id="a",
            provider_id="p",
            customer_id="c",
            invoice_number=1,
            total="1100",
            subtotal="1000",
            tax="100",
        )
        fields.update(overrides)
        return Invoice(**fields)

    def test_subtotal_plus_tax_must_equal_total(self):
        with pytest.raises(ValueError):
            self._invoice(tax="99")

    def test_lifecycle(self):
        invoice = self._invoice()
        assert invoice.can_transition_to(InvoiceStatus.SUBMITTED)
        assert invoice.can_transition_to(InvoiceStatus.VOID)
        assert not invoice.can_transition_to(InvoiceStatus.APPROVED)
        assert not self._invoice(status="approved").can_transition_to(InvoiceStatus.VOID)

    def test_item_line_total(self):
        item = InvoiceItem(description="Labour", qty="2.5", unit_price="80")
        assert item.line_total == Decimal("200.00")

    @pytest.mark.parametrize("qty", ["0", "-1", "x"])
    def test_item_qty_positive(self, qty):
        with pytest.raises(ValueError):
            InvoiceItem(description="Labour", qty=qty, unit_price="80")

    def test_dict_round_trip_keeps_items(self):
        invoice = self._invoice(items=[InvoiceItem(description="Labour", qty=1, unit_price="1100")])
        restored = Invoice.from_dict(invoice.to_dict())
        assert restored.items[0].line_total == Decimal("1100.00")
        assert restored.display_number() == "INV-0001"


class TestVariationAndDispute:
    def test_variation_amount_positive(self):
        with pytest.raises(ValueError):
            Variation(
                id="v", job_id="j", assignment_id="a", provider_id="p", customer_id="c", title="t", amount="-1"
            )

    def test_resolved_variation_is_final(self):
        variation = Variation(
            id="v",
            job_id="j",
            assignment_id="a",
            provider_id="p",
            customer_id="c",
            title="t",
            amount="10",
            status=VariationStatus.DECLINED,
        )
        assert not variation.can_transition_to(VariationStatus.APPROVED)

    def test_dispute_against_self_rejected(self):
        with pytest.raises(ValueError):
            Dispute(id="d", job_id="j", assignment_id="a", opened_by="c", against_party="c", reason="x")

    def test_dispute_reason_length(self):
        with pytest.raises(ValueError):
            Dispute(id="d", job_id="j", assignment_id="a", opened_by="c", against_party="p", reason="x" * 201)
