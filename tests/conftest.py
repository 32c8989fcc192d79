"""
Pytest fixtures for jobflow tests.

Every test gets an in-memory engine, a posted job with one pending quote,
and actors for the customer, the provider and an unrelated user.
"""

import pytest

from jobflow import Actor, WorkflowConfig, WorkflowEngine
from jobflow.config import TransitionPolicy
from jobflow.jobs.models import Job, Quote
from jobflow.types import new_id

CUSTOMER_ID = "cust-0001"
PROVIDER_ID = "prov-0001"
OTHER_PROVIDER_ID = "prov-0002"
OUTSIDER_ID = "user-0099"
PAYOUT_ACCOUNT = "acct_test_0001"


@pytest.fixture(autouse=True)
def isolated_data_dir(tmp_path, monkeypatch):
    """Point the workflow log trail at a temp directory."""
    data_dir = tmp_path / "jobflow"
    monkeypatch.setenv("JOBFLOW_DATA_DIR", str(data_dir))
    return data_dir


@pytest.fixture
def config():
    return WorkflowConfig()


@pytest.fixture
def engine(config):
    engine = WorkflowEngine.in_memory(config)
    engine.storage.set_payout_account(PROVIDER_ID, PAYOUT_ACCOUNT)
    return engine


@pytest.fixture
def two_step_engine():
    engine = WorkflowEngine.in_memory(WorkflowConfig(transition_policy=TransitionPolicy.TWO_STEP))
    engine.storage.set_payout_account(PROVIDER_ID, PAYOUT_ACCOUNT)
    return engine


@pytest.fixture
def customer():
    return Actor.from_account_type(CUSTOMER_ID, "customer")


@pytest.fixture
def provider():
    return Actor.from_account_type(PROVIDER_ID, "tradie")


@pytest.fixture
def outsider():
    return Actor.from_account_type(OUTSIDER_ID, "dual")


@pytest.fixture
def service():
    return Actor.service()


def _post_job(engine, price="1200.00", provider_id=PROVIDER_ID, title="Replace hot water system"):
    job = engine.storage.save_job(Job(id=new_id(), customer_id=CUSTOMER_ID, title=title))
    quote = engine.storage.save_quote(Quote(id=new_id(), job_id=job.id, provider_id=provider_id, price=price))
    return job, quote


@pytest.fixture
def post_job():
    """Save an open job and a pending quote on it. Returns (job, quote)."""
    return _post_job


@pytest.fixture
def posted(engine):
    return _post_job(engine)


@pytest.fixture
def ids():
    return {
        "customer": CUSTOMER_ID,
        "provider": PROVIDER_ID,
        "other_provider": OTHER_PROVIDER_ID,
        "outsider": OUTSIDER_ID,
        "payout_account": PAYOUT_ACCOUNT,
    }


@pytest.fixture
def assignment(engine, posted, customer):
    """Quote accepted under the single-step policy; the job is in progress."""
    job, quote = posted
    return engine.accept_quote(customer, job.id, quote.id)


@pytest.fixture
def job_id(assignment):
    return assignment.job_id


@pytest.fixture
def submitted_invoice(engine, job_id, provider):
    invoice = engine.create_invoice(provider, job_id)
    return engine.submit_invoice(provider, invoice.id)
