"""Tests for the notification outbox and dispatcher."""

import pytest

from jobflow import WorkflowConfig, WorkflowEngine
from jobflow.messaging.models import MessageType, Notification, NotificationStatus


class TestNotification:
    def test_rendered_text_appends_link(self):
        notification = Notification(
            id="n1",
            job_id="job-1",
            sender_id="prov-1",
            customer_id="cust-1",
            provider_id="prov-1",
            text="Completion invoice submitted: $1,200.00",
            message_type=MessageType.INVOICE,
            deep_link="/jobs/job-1?invoice=inv-1",
        )
        assert notification.rendered_text() == (
            "Completion invoice submitted: $1,200.00 [View Invoice](/jobs/job-1?invoice=inv-1)"
        )

    def test_rendered_text_without_link(self):
        notification = Notification(
            id="n1", job_id="job-1", sender_id="s", customer_id="c", provider_id="p", text="Hello"
        )
        assert notification.rendered_text() == "Hello"

    def test_invalid_type_rejected(self):
        with pytest.raises(ValueError):
            Notification(
                id="n1", job_id="j", sender_id="s", customer_id="c", provider_id="p", text="x", message_type="sms"
            )


class TestDispatch:
    def test_pending_rows_delivered(self, engine, job_id, ids):
        report = engine.dispatch_notifications(job_id=job_id)

        assert report.sent == 1
        assert engine.storage.list_notifications(status="pending") == []
        message = engine.messenger.messages[0]
        assert message.sender_id == ids["customer"]
        assert message.text.startswith("Quote accepted:")
        assert message.text.endswith(f"[Open Job](/jobs/{job_id})")
        assert message.payload["job_id"] == job_id

    def test_one_conversation_per_pair(self, engine, post_job, customer, job_id):
        job, quote = post_job(engine)
        engine.accept_quote(customer, job.id, quote.id)

        engine.dispatch_notifications()

        conversation_id = engine.messenger.messages[0].conversation_id
        assert {m.conversation_id for m in engine.messenger.messages} == {conversation_id}
        assert engine.messenger.conversation_jobs[conversation_id] == {job_id, job.id}

    def test_outage_leaves_row_pending(self, engine, job_id):
        engine.messenger.fail_sends = 1

        report = engine.dispatch_notifications(job_id=job_id)

        assert report.retrying == 1
        pending = engine.storage.list_notifications(status="pending", job_id=job_id)
        assert pending[0].attempts == 1
        assert pending[0].last_error == "network_failure"

        assert engine.dispatch_notifications(job_id=job_id).sent == 1
        sent = engine.storage.list_notifications(status="sent", job_id=job_id)[0]
        assert sent.attempts == 2
        assert sent.last_error is None

    def test_gives_up_after_max_attempts(self, post_job, customer):
        engine = WorkflowEngine.in_memory(WorkflowConfig(max_notification_attempts=2))
        job, quote = post_job(engine)
        engine.accept_quote(customer, job.id, quote.id)
        engine.messenger.fail_sends = 5

        first = engine.dispatch_notifications()
        second = engine.dispatch_notifications()
        third = engine.dispatch_notifications()

        assert (first.retrying, second.failed, third.sent) == (1, 1, 0)
        failed = engine.storage.list_notifications(status=NotificationStatus.FAILED.value)
        assert len(failed) == 1
        assert failed[0].attempts == 2

    def test_workflow_unaffected_by_messaging_outage(self, engine, job_id, provider):
        engine.messenger.fail_sends = 10
        engine.dispatch_notifications()

        invoice = engine.create_invoice(provider, job_id)
        submitted = engine.submit_invoice(provider, invoice.id)

        assert submitted.status == "submitted"

    def test_concurrent_dispatch_skips_handled_row(self, engine, job_id):
        from dataclasses import replace

        stale = engine.storage.list_notifications(job_id=job_id)[0]
        engine.storage.update_notification(replace(stale, attempts=1))

        assert engine.dispatcher._deliver(stale) == "skipped"
        assert engine.messenger.messages[0].text.startswith("Quote accepted:")
