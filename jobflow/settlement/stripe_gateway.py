"""
Stripe Connect settlement.

Funds are collected on the platform account at checkout. Approval releases
the net amount (after the platform fee) to the provider's connected account
with a transfer; the invoice id is passed as Stripe's idempotency key so a
retried approval can never pay twice.
"""

import logging
from decimal import Decimal
from typing import Dict

import stripe

from jobflow.errors import NetworkFailure, ValidationError
from jobflow.settlement.fees import platform_fee
from jobflow.settlement.gateway import SettlementResult

logger = logging.getLogger(__name__)


def to_minor_units(amount: Decimal) -> int:
    """Dollars to cents."""
    return int((amount * 100).to_integral_value())


class StripeSettlementGateway:
    """``SettlementGateway`` backed by Stripe transfers."""

    def __init__(self, api_key: str, currency: str = "aud"):
        if not api_key:
            raise ValueError("Stripe API key is required")
        self.api_key = api_key
        self.currency = currency.lower()

    def release(
        self,
        amount: Decimal,
        destination_account: str,
        metadata: Dict[str, str],
        idempotency_key: str,
    ) -> SettlementResult:
        fee = platform_fee(amount)
        try:
            transfer = stripe.Transfer.create(
                amount=to_minor_units(fee.net_amount),
                currency=self.currency,
                destination=destination_account,
                metadata=metadata,
                transfer_group=metadata.get("job_id"),
                idempotency_key=f"release-{idempotency_key}",
                api_key=self.api_key,
            )
        except (stripe.APIConnectionError, stripe.RateLimitError) as e:
            logger.warning(f"Stripe unreachable | key={idempotency_key} | error={type(e).__name__}")
            raise NetworkFailure("settlement") from e
        except stripe.InvalidRequestError as e:
            logger.error(f"Stripe rejected transfer | key={idempotency_key} | code={e.code}")
            raise ValidationError("Payment provider rejected the release") from e
        except stripe.StripeError as e:
            logger.error(f"Stripe error | key={idempotency_key} | error={type(e).__name__}")
            raise NetworkFailure("settlement", "Payment provider error") from e

        logger.info(
            f"Transfer created | id={transfer['id']} | net={fee.net_amount} | fee={fee.fee} "
            f"| destination={destination_account}"
        )
        return SettlementResult(
            reference=transfer["id"],
            amount=fee.amount,
            platform_fee=fee.fee,
            net_amount=fee.net_amount,
            fee_label=fee.label,
        )
