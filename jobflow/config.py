"""Configuration for the job workflow engine."""

import os
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional


class TransitionPolicy(str, Enum):
    """How a job moves from quote acceptance to in_progress.

    SINGLE_STEP: creating the assignment (checkout) puts the job straight
        into in_progress.
    TWO_STEP: creating the assignment puts the job into agreed; the provider
        must accept the terms before it becomes in_progress.
    """

    SINGLE_STEP = "single_step"
    TWO_STEP = "two_step"


@dataclass
class WorkflowConfig:
    """Engine settings.

    Attributes:
        transition_policy: agreed -> in_progress policy (see TransitionPolicy).
        gst_rate: GST rate applied when an invoice has GST enabled. Contract
            values are GST-inclusive.
        currency: ISO currency code passed to the settlement gateway.
        app_base_url: Prefix for deep links sent in notifications. Empty for
            relative links.
        max_notification_attempts: Outbox sends before a notification is
            marked failed.
        require_payout_account: Refuse approval when the provider has no
            payout account on file.
    """

    transition_policy: TransitionPolicy = TransitionPolicy.SINGLE_STEP
    gst_rate: Decimal = Decimal("0.10")
    currency: str = "aud"
    app_base_url: str = ""
    max_notification_attempts: int = 5
    require_payout_account: bool = True
    invoice_number_prefix: str = "INV-"

    def __post_init__(self):
        if isinstance(self.transition_policy, str) and not isinstance(self.transition_policy, TransitionPolicy):
            try:
                self.transition_policy = TransitionPolicy(self.transition_policy)
            except ValueError:
                raise ValueError(f"Invalid transition policy: {self.transition_policy}")
        self.gst_rate = Decimal(str(self.gst_rate))
        if self.gst_rate < 0 or self.gst_rate >= 1:
            raise ValueError("GST rate must be between 0 and 1")
        if self.max_notification_attempts < 1:
            raise ValueError("max_notification_attempts must be at least 1")
        self.currency = self.currency.lower()
        self.app_base_url = self.app_base_url.rstrip("/")

    @property
    def is_two_step(self) -> bool:
        return self.transition_policy == TransitionPolicy.TWO_STEP

    def deep_link(self, job_id: str, invoice_id: Optional[str] = None, variation_id: Optional[str] = None) -> str:
        """Link back into the job workspace."""
        link = f"{self.app_base_url}/jobs/{job_id}"
        if invoice_id:
            link += f"?invoice={invoice_id}"
        elif variation_id:
            link += f"?variation={variation_id}"
        return link

    @classmethod
    def from_env(cls) -> "WorkflowConfig":
        """Build a config from JOBFLOW_* environment variables."""
        kwargs = {}
        if os.environ.get("JOBFLOW_TRANSITION_POLICY"):
            kwargs["transition_policy"] = os.environ["JOBFLOW_TRANSITION_POLICY"]
        if os.environ.get("JOBFLOW_GST_RATE"):
            kwargs["gst_rate"] = Decimal(os.environ["JOBFLOW_GST_RATE"])
        if os.environ.get("JOBFLOW_CURRENCY"):
            kwargs["currency"] = os.environ["JOBFLOW_CURRENCY"]
        if os.environ.get("JOBFLOW_APP_BASE_URL"):
            kwargs["app_base_url"] = os.environ["JOBFLOW_APP_BASE_URL"]
        if os.environ.get("JOBFLOW_MAX_NOTIFICATION_ATTEMPTS"):
            kwargs["max_notification_attempts"] = int(os.environ["JOBFLOW_MAX_NOTIFICATION_ATTEMPTS"])
        if os.environ.get("JOBFLOW_REQUIRE_PAYOUT_ACCOUNT"):
            kwargs["require_payout_account"] = os.environ["JOBFLOW_REQUIRE_PAYOUT_ACCOUNT"].lower() in (
                "1",
                "true",
                "yes",
            )
        return cls(**kwargs)
