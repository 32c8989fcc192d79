"""Tests for the job workflow API routes."""

from jobflow.invoices.models import InvoiceStatus
from jobflow.jobs.models import JobStatus


def _create_invoice(client, job_id, headers, **body):
    return client.post(f"/api/v1/jobs/{job_id}/invoices", json=body, headers=headers)


def _submitted_invoice(client, job_id, provider_headers):
    created = _create_invoice(client, job_id, provider_headers)
    assert created.status_code == 201, created.text
    invoice_id = created.json()["id"]
    submitted = client.post(f"/api/v1/invoices/{invoice_id}/submit", headers=provider_headers)
    assert submitted.status_code == 200, submitted.text
    return invoice_id


class TestAuthentication:
    """Every workflow route requires a valid bearer token."""

    def test_missing_token_rejected(self, client, job):
        response = client.get(f"/api/v1/jobs/{job['job_id']}/assignment")
        assert response.status_code == 401

    def test_invalid_token_rejected(self, client, job):
        response = client.get(
            f"/api/v1/jobs/{job['job_id']}/assignment",
            headers={"Authorization": "Bearer not-a-real-token"},
        )
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid or expired token"

    def test_root_is_public(self, client):
        assert client.get("/").json()["status"] == "ok"


class TestAcceptQuote:
    """Tests for POST /jobs/{id}/accept-quote."""

    def test_customer_accepts_quote(self, client, engine, job, parties, customer_headers):
        response = client.post(
            f"/api/v1/jobs/{job['job_id']}/accept-quote",
            json={"quote_id": job["quote_id"]},
            headers=customer_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["customer_id"] == parties["customer"]
        assert data["provider_id"] == parties["provider"]
        assert data["quote_price"] == "1200.00"
        assert data["status"] == "active"
        assert engine.storage.get_job(job["job_id"]).status == JobStatus.IN_PROGRESS.value

    def test_acceptance_notifies_conversation(self, client, engine, job, customer_headers):
        client.post(
            f"/api/v1/jobs/{job['job_id']}/accept-quote",
            json={"quote_id": job["quote_id"]},
            headers=customer_headers,
        )

        texts = [m.text for m in engine.messenger.messages]
        assert any(t.startswith("Quote accepted") for t in texts)

    def test_provider_cannot_accept(self, client, job, provider_headers):
        response = client.post(
            f"/api/v1/jobs/{job['job_id']}/accept-quote",
            json={"quote_id": job["quote_id"]},
            headers=provider_headers,
        )
        assert response.status_code == 404

    def test_second_acceptance_conflicts(self, client, assigned_job, customer_headers):
        response = client.post(
            f"/api/v1/jobs/{assigned_job['job_id']}/accept-quote",
            json={"quote_id": assigned_job["quote_id"]},
            headers=customer_headers,
        )

        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "assignment_conflict"
        assert body["details"]["assignment_id"] == assigned_job["assignment_id"]

    def test_idempotency_key_replays(self, client, job, customer_headers):
        headers = {**customer_headers, "Idempotency-Key": "checkout-1"}
        url = f"/api/v1/jobs/{job['job_id']}/accept-quote"

        first = client.post(url, json={"quote_id": job["quote_id"]}, headers=headers)
        second = client.post(url, json={"quote_id": job["quote_id"]}, headers=headers)

        assert first.status_code == 201
        assert second.status_code == 201
        assert first.json()["id"] == second.json()["id"]

    def test_accept_terms_not_used_in_single_step(self, client, assigned_job, provider_headers):
        response = client.post(
            f"/api/v1/jobs/{assigned_job['job_id']}/assignment/accept-terms",
            headers=provider_headers,
        )
        assert response.status_code == 409
        assert response.json()["code"] == "invalid_transition"


class TestAssignmentVisibility:
    def test_participants_see_assignment(self, client, assigned_job, customer_headers, provider_headers):
        for headers in (customer_headers, provider_headers):
            response = client.get(f"/api/v1/jobs/{assigned_job['job_id']}/assignment", headers=headers)
            assert response.status_code == 200

    def test_outsider_gets_not_found(self, client, assigned_job, outsider_headers):
        job_id = assigned_job["job_id"]
        for path in ("assignment", "invoices", "variations", "disputes", "timeline", "payable-total"):
            response = client.get(f"/api/v1/jobs/{job_id}/{path}", headers=outsider_headers)
            assert response.status_code == 404, path

    def test_payable_total(self, client, assigned_job, customer_headers):
        response = client.get(f"/api/v1/jobs/{assigned_job['job_id']}/payable-total", headers=customer_headers)

        assert response.status_code == 200
        assert response.json() == {"job_id": assigned_job["job_id"], "total": "1200.00", "locked": False}


class TestInvoices:
    """Tests for the invoice routes."""

    def test_provider_creates_draft(self, client, assigned_job, provider_headers):
        response = _create_invoice(client, assigned_job["job_id"], provider_headers, gst_enabled=True)

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == InvoiceStatus.DRAFT.value
        assert data["total"] == "1200.00"
        assert data["tax"] == "109.09"
        assert data["subtotal"] == "1090.91"
        assert data["invoice_number"] == 1

    def test_customer_cannot_create(self, client, assigned_job, customer_headers):
        response = _create_invoice(client, assigned_job["job_id"], customer_headers)
        assert response.status_code == 403
        assert response.json()["code"] == "forbidden"

    def test_mismatched_total_rejected(self, client, assigned_job, provider_headers):
        response = _create_invoice(client, assigned_job["job_id"], provider_headers, total="999.00")
        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"

    def test_draft_hidden_from_customer(self, client, assigned_job, provider_headers, customer_headers):
        invoice_id = _create_invoice(client, assigned_job["job_id"], provider_headers).json()["id"]

        assert client.get(f"/api/v1/invoices/{invoice_id}", headers=customer_headers).status_code == 404
        listed = client.get(f"/api/v1/jobs/{assigned_job['job_id']}/invoices", headers=customer_headers)
        assert listed.json() == []

    def test_edit_draft(self, client, assigned_job, provider_headers):
        invoice_id = _create_invoice(client, assigned_job["job_id"], provider_headers).json()["id"]

        response = client.patch(
            f"/api/v1/invoices/{invoice_id}",
            json={"notes_warranty": "12 months parts and labour", "expected_version": 1},
            headers=provider_headers,
        )

        assert response.status_code == 200
        assert response.json()["notes_warranty"] == "12 months parts and labour"
        assert response.json()["version"] == 2

    def test_stale_version_conflicts(self, client, assigned_job, provider_headers):
        invoice_id = _create_invoice(client, assigned_job["job_id"], provider_headers).json()["id"]

        response = client.post(
            f"/api/v1/invoices/{invoice_id}/void",
            json={"expected_version": 7},
            headers=provider_headers,
        )

        assert response.status_code == 409
        assert response.json()["code"] == "version_conflict"

    def test_submit_and_approve_releases_funds(
        self, client, engine, assigned_job, provider_headers, customer_headers
    ):
        invoice_id = _submitted_invoice(client, assigned_job["job_id"], provider_headers)

        response = client.post(f"/api/v1/invoices/{invoice_id}/approve", headers=customer_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == InvoiceStatus.APPROVED.value
        assert data["settlement_reference"].startswith("tr_")
        assert engine.settlement.released_keys == [invoice_id]
        assert engine.storage.get_job(assigned_job["job_id"]).status == JobStatus.COMPLETED.value
        texts = [m.text for m in engine.messenger.messages]
        assert any(t.startswith("Invoice approved. Funds have been released.") for t in texts)

    def test_approve_twice_releases_once(self, client, engine, assigned_job, provider_headers, customer_headers):
        invoice_id = _submitted_invoice(client, assigned_job["job_id"], provider_headers)

        first = client.post(f"/api/v1/invoices/{invoice_id}/approve", headers=customer_headers)
        second = client.post(f"/api/v1/invoices/{invoice_id}/approve", headers=customer_headers)

        assert first.status_code == 200
        assert second.status_code == 200
        assert second.json()["settlement_reference"] == first.json()["settlement_reference"]
        assert len(engine.settlement.released_keys) == 1

    def test_provider_cannot_approve(self, client, assigned_job, provider_headers):
        invoice_id = _submitted_invoice(client, assigned_job["job_id"], provider_headers)

        response = client.post(f"/api/v1/invoices/{invoice_id}/approve", headers=provider_headers)
        assert response.status_code == 403

    def test_settlement_outage_is_retryable(
        self, client, engine, assigned_job, provider_headers, customer_headers
    ):
        invoice_id = _submitted_invoice(client, assigned_job["job_id"], provider_headers)
        engine.settlement.fail_with_network_error()

        response = client.post(f"/api/v1/invoices/{invoice_id}/approve", headers=customer_headers)

        assert response.status_code == 503
        assert response.json()["retryable"] is True
        assert response.headers["Retry-After"] == "5"
        assert engine.storage.get_invoice(invoice_id).status == InvoiceStatus.SUBMITTED.value

        retry = client.post(f"/api/v1/invoices/{invoice_id}/approve", headers=customer_headers)
        assert retry.status_code == 200


class TestVariations:
    """Tests for the variation routes."""

    def test_approved_variation_raises_total(
        self, client, assigned_job, provider_headers, customer_headers
    ):
        job_id = assigned_job["job_id"]
        created = client.post(
            f"/api/v1/jobs/{job_id}/variations",
            json={"title": "Extra tempering valve", "amount": "300.00"},
            headers=provider_headers,
        )
        assert created.status_code == 201
        assert created.json()["status"] == "pending_customer"

        decided = client.post(
            f"/api/v1/variations/{created.json()['id']}/decision",
            json={"decision": "approved"},
            headers=customer_headers,
        )

        assert decided.status_code == 200
        assert decided.json()["status"] == "approved"
        total = client.get(f"/api/v1/jobs/{job_id}/payable-total", headers=customer_headers)
        assert total.json()["total"] == "1500.00"

    def test_declined_variation_keeps_total(self, client, assigned_job, provider_headers, customer_headers):
        job_id = assigned_job["job_id"]
        created = client.post(
            f"/api/v1/jobs/{job_id}/variations",
            json={"title": "Extra tempering valve", "amount": "300.00"},
            headers=provider_headers,
        )

        client.post(
            f"/api/v1/variations/{created.json()['id']}/decision",
            json={"decision": "declined"},
            headers=customer_headers,
        )

        total = client.get(f"/api/v1/jobs/{job_id}/payable-total", headers=customer_headers)
        assert total.json()["total"] == "1200.00"

    def test_non_positive_amount_rejected(self, client, assigned_job, provider_headers):
        response = client.post(
            f"/api/v1/jobs/{assigned_job['job_id']}/variations",
            json={"title": "Nothing", "amount": "0"},
            headers=provider_headers,
        )
        assert response.status_code == 422

    def test_unknown_decision_rejected(self, client, assigned_job, provider_headers, customer_headers):
        created = client.post(
            f"/api/v1/jobs/{assigned_job['job_id']}/variations",
            json={"title": "Extra valve", "amount": "50"},
            headers=provider_headers,
        )

        response = client.post(
            f"/api/v1/variations/{created.json()['id']}/decision",
            json={"decision": "maybe"},
            headers=customer_headers,
        )
        assert response.status_code == 422


class TestDisputes:
    """Tests for the dispute and timeline routes."""

    def test_dispute_locks_job(self, client, engine, assigned_job, parties, provider_headers, customer_headers):
        job_id = assigned_job["job_id"]

        response = client.post(
            f"/api/v1/jobs/{job_id}/disputes",
            json={"reason": "Work not finished", "description": "Valve still leaking"},
            headers=customer_headers,
        )

        assert response.status_code == 201
        assert response.json()["against_party"] == parties["provider"]
        assert engine.storage.get_job(job_id).status == JobStatus.DISPUTED.value

        blocked = client.post(
            f"/api/v1/jobs/{job_id}/variations",
            json={"title": "Extra", "amount": "10"},
            headers=provider_headers,
        )
        assert blocked.status_code == 409
        assert blocked.json()["detail"] == "Job is under dispute. Workflow actions are locked."

        invoice = _create_invoice(client, job_id, provider_headers)
        assert invoice.status_code == 409

    def test_timeline_shows_lock(self, client, assigned_job, customer_headers):
        job_id = assigned_job["job_id"]
        client.post(f"/api/v1/jobs/{job_id}/disputes", json={"reason": "No show"}, headers=customer_headers)

        response = client.get(f"/api/v1/jobs/{job_id}/timeline", headers=customer_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["locked"] is True
        types = [e["type"] for e in data["entries"]]
        assert types[0] == "quote_accepted"
        assert "dispute_opened" in types

    def test_second_dispute_rejected(self, client, assigned_job, provider_headers, customer_headers):
        job_id = assigned_job["job_id"]
        client.post(f"/api/v1/jobs/{job_id}/disputes", json={"reason": "No show"}, headers=customer_headers)

        response = client.post(f"/api/v1/jobs/{job_id}/disputes", json={"reason": "Also"}, headers=provider_headers)

        assert response.status_code == 409
        listed = client.get(f"/api/v1/jobs/{job_id}/disputes", headers=provider_headers)
        assert len(listed.json()) == 1
