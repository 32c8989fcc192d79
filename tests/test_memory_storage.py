"""Tests for InMemoryWorkflowStorage and ScopedStorage."""

import threading
from dataclasses import replace

import pytest

from jobflow import Actor
from jobflow.assignments.models import Assignment
from jobflow.errors import AssignmentConflict, ConcurrencyConflict, NotFoundError
from jobflow.jobs.models import Job
from jobflow.messaging.models import Notification
from jobflow.storage.base import IdempotencyRecord
from jobflow.storage.memory import InMemoryWorkflowStorage
from jobflow.storage.scoped import ScopedStorage


@pytest.fixture
def storage():
    return InMemoryWorkflowStorage()


def _assignment(job_id="job-1", **overrides):
    fields = dict(
        id=f"asg-{job_id}",
        job_id=job_id,
        customer_id="cust-1",
        provider_id="prov-1",
        accepted_quote_id="quote-1",
        quote_price="800",
    )
    fields.update(overrides)
    return Assignment(**fields)


class TestRows:
    def test_save_stamps_timestamps(self, storage):
        job = storage.save_job(Job(id="job-1", customer_id="cust-1"))
        assert job.created_at is not None
        assert job.version == 1

    def test_returned_copies_are_detached(self, storage):
        storage.save_job(Job(id="job-1", customer_id="cust-1", category_tags=["plumbing"]))

        job = storage.get_job("job-1")
        job.category_tags.append("electrical")

        assert storage.get_job("job-1").category_tags == ["plumbing"]

    def test_update_bumps_version(self, storage):
        job = storage.save_job(Job(id="job-1", customer_id="cust-1"))

        updated = storage.update_job(replace(job, title="Fix tap"))

        assert updated.version == 2
        assert storage.get_job("job-1").title == "Fix tap"

    def test_stale_update_rejected(self, storage):
        job = storage.save_job(Job(id="job-1", customer_id="cust-1"))
        storage.update_job(replace(job, title="first"))

        with pytest.raises(ConcurrencyConflict) as exc_info:
            storage.update_job(replace(job, title="second"))

        assert exc_info.value.details["current_version"] == 2
        assert storage.get_job("job-1").title == "first"

    def test_update_missing_row(self, storage):
        with pytest.raises(NotFoundError):
            storage.update_job(Job(id="ghost", customer_id="cust-1"))

    def test_one_assignment_per_job(self, storage):
        first = storage.save_assignment(_assignment())

        with pytest.raises(AssignmentConflict) as exc_info:
            storage.save_assignment(_assignment(id="asg-other"))

        assert exc_info.value.existing_assignment_id == first.id

    def test_idempotency_records_keyed_by_actor(self, storage):
        storage.save_idempotency_record(IdempotencyRecord("k1", "user-a", "open_dispute", "d-1"))

        assert storage.get_idempotency_record("user-a", "k1").result_id == "d-1"
        assert storage.get_idempotency_record("user-b", "k1") is None


class TestTransaction:
    def test_commit(self, storage):
        with storage.transaction():
            storage.save_job(Job(id="job-1", customer_id="cust-1"))
        assert storage.get_job("job-1") is not None

    def test_rollback_restores_every_table(self, storage):
        storage.save_job(Job(id="job-1", customer_id="cust-1"))

        with pytest.raises(RuntimeError):
            with storage.transaction():
                job = storage.get_job("job-1")
                storage.update_job(replace(job, title="changed"))
                storage.save_assignment(_assignment())
                raise RuntimeError("boom")

        assert storage.get_job("job-1").title == ""
        assert storage.get_job("job-1").version == 1
        assert storage.get_assignment("job-1") is None

    def test_nested_block_joins_outer(self, storage):
        with pytest.raises(RuntimeError):
            with storage.transaction():
                with storage.transaction():
                    storage.save_job(Job(id="job-1", customer_id="cust-1"))
                raise RuntimeError("boom")

        assert storage.get_job("job-1") is None

    def test_other_thread_waits_for_unit_of_work(self, storage):
        note = storage.save_notification(
            Notification(id="note-1", job_id="job-1", sender_id="p", customer_id="c", provider_id="p", text="Hi")
        )

        def mark_sent():
            with storage.transaction():
                storage.update_notification(replace(note, status="sent"))

        worker = threading.Thread(target=mark_sent)
        with pytest.raises(RuntimeError):
            with storage.transaction():
                storage.save_job(Job(id="job-1", customer_id="cust-1"))
                worker.start()
                worker.join(timeout=0.2)
                assert worker.is_alive()
                raise RuntimeError("boom")
        worker.join()

        assert storage.get_job("job-1") is None
        assert storage.list_notifications(job_id="job-1")[0].status == "sent"


class TestScopedStorage:
    @pytest.fixture
    def seeded(self, storage):
        storage.save_job(Job(id="job-1", customer_id="cust-1", assigned_provider_id="prov-1"))
        storage.save_assignment(_assignment())
        return storage

    @pytest.mark.parametrize("actor_id", ["cust-1", "prov-1"])
    def test_participants_see_assignment(self, seeded, actor_id):
        scoped = ScopedStorage(seeded, Actor(id=actor_id))
        assert scoped.assignment("job-1").id == "asg-job-1"
        assert scoped.job("job-1").id == "job-1"

    def test_outsider_told_not_found(self, seeded):
        scoped = ScopedStorage(seeded, Actor(id="someone-else"))

        with pytest.raises(NotFoundError):
            scoped.assignment("job-1")
        with pytest.raises(NotFoundError):
            scoped.job("job-1")
        with pytest.raises(NotFoundError):
            scoped.events("job-1")

    def test_missing_and_hidden_look_the_same(self, seeded):
        scoped = ScopedStorage(seeded, Actor(id="someone-else"))

        with pytest.raises(NotFoundError) as hidden:
            scoped.assignment("job-1")
        with pytest.raises(NotFoundError) as missing:
            scoped.assignment("job-404")

        assert hidden.value.message == missing.value.message

    def test_service_sees_everything(self, seeded):
        assert ScopedStorage(seeded, Actor.service()).assignment("job-1").id == "asg-job-1"
