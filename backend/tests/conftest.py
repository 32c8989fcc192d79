"""Pytest configuration and fixtures."""

import os
import secrets
import sys

import pytest

# Generate a unique test secret for this test run to prevent token forgery
_TEST_JWT_SECRET = f"test-only-{secrets.token_urlsafe(32)}"
TEST_WEBHOOK_SECRET = "whsec_test_only"

# For unit tests, set mock values ONLY if not running integration tests
if not os.environ.get("RUN_INTEGRATION"):
    os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
    os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
    os.environ.setdefault("JWT_SECRET_KEY", _TEST_JWT_SECRET)
    os.environ.setdefault("STRIPE_WEBHOOK_SECRET", TEST_WEBHOOK_SECRET)
else:
    # For integration tests, load from .env
    from pathlib import Path

    from dotenv import load_dotenv

    env_path = Path(__file__).parent.parent / ".env"

    # Safety check: require explicit confirmation for integration tests
    if not os.environ.get("CONFIRM_INTEGRATION_CREDENTIALS"):
        print(
            "\nWARNING: Integration tests will use REAL credentials from .env.\n"
            "Set CONFIRM_INTEGRATION_CREDENTIALS=yes to proceed.\n",
            file=sys.stderr,
        )
        pytest.exit(
            "Integration tests require CONFIRM_INTEGRATION_CREDENTIALS=yes",
            returncode=1,
        )
    load_dotenv(env_path, override=True)

from app.dependencies import get_engine  # noqa: E402
from app.main import app  # noqa: E402
from app.rate_limit import limiter  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from jobflow import WorkflowEngine  # noqa: E402
from jobflow.jobs.models import Job, Quote  # noqa: E402
from jobflow.types import new_id  # noqa: E402

# Clearly invalid test IDs that cannot collide with production IDs
CUSTOMER_ID = "usr_TEST_customer_0001"
PROVIDER_ID = "usr_TEST_provider_0001"
OUTSIDER_ID = "usr_TEST_outsider_0001"
PAYOUT_ACCOUNT = "acct_TEST_0001"


@pytest.fixture(autouse=True)
def isolated_data_dir(tmp_path, monkeypatch):
    """Keep workflow log files out of the home directory."""
    monkeypatch.setenv("JOBFLOW_DATA_DIR", str(tmp_path / "jobflow"))


@pytest.fixture(autouse=True)
def reset_rate_limits():
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def engine():
    """In-memory engine wired into the app in place of the Supabase one."""
    engine = WorkflowEngine.in_memory()
    engine.storage.set_payout_account(PROVIDER_ID, PAYOUT_ACCOUNT)
    app.dependency_overrides[get_engine] = lambda: engine
    yield engine
    app.dependency_overrides.pop(get_engine, None)


@pytest.fixture
def client(engine):
    """Create a test client."""
    return TestClient(app)


@pytest.fixture
def job(engine):
    """An open job with one pending $1,200 quote."""
    job = engine.storage.save_job(Job(id=new_id(), customer_id=CUSTOMER_ID, title="Replace hot water system"))
    quote = engine.storage.save_quote(Quote(id=new_id(), job_id=job.id, provider_id=PROVIDER_ID, price="1200.00"))
    return {"job_id": job.id, "quote_id": quote.id}


def make_headers(user_id: str, account_type: str) -> dict:
    from app.auth import create_access_token
    from app.config import get_settings

    token = create_access_token(user_id, get_settings(), account_type=account_type)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def customer_headers():
    return make_headers(CUSTOMER_ID, "customer")


@pytest.fixture
def provider_headers():
    return make_headers(PROVIDER_ID, "tradie")


@pytest.fixture
def outsider_headers():
    return make_headers(OUTSIDER_ID, "dual")


@pytest.fixture
def assigned_job(client, job, customer_headers):
    """A job whose quote has been accepted (in progress, single-step)."""
    response = client.post(
        f"/api/v1/jobs/{job['job_id']}/accept-quote",
        json={"quote_id": job["quote_id"]},
        headers=customer_headers,
    )
    assert response.status_code == 201, response.text
    return {**job, "assignment_id": response.json()["id"]}


@pytest.fixture
def parties():
    return {"customer": CUSTOMER_ID, "provider": PROVIDER_ID, "outsider": OUTSIDER_ID}
