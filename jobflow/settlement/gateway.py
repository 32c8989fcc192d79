"""
Settlement gateway protocol.

Releasing funds is the one side effect of the workflow that cannot be
rolled back, so every call carries an idempotency key (the invoice id).
Repeating a call with the same key must return the original result without
moving money twice.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol

from jobflow.errors import NetworkFailure
from jobflow.settlement.fees import platform_fee
from jobflow.types import new_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SettlementResult:
    """Outcome of a fund release."""

    reference: str
    amount: Decimal
    platform_fee: Decimal
    net_amount: Decimal
    fee_label: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reference": self.reference,
            "amount": str(self.amount),
            "platform_fee": str(self.platform_fee),
            "net_amount": str(self.net_amount),
            "fee_label": self.fee_label,
        }


class SettlementGateway(Protocol):
    """Protocol for payment settlement backends."""

    def release(
        self,
        amount: Decimal,
        destination_account: str,
        metadata: Dict[str, str],
        idempotency_key: str,
    ) -> SettlementResult:
        """Release ``amount`` (less the platform fee) to the destination account.

        Raises:
            NetworkFailure: The payment provider could not be reached.
        """
        ...


@dataclass
class SettlementCall:
    amount: Decimal
    destination_account: str
    metadata: Dict[str, str]
    idempotency_key: str


class InMemorySettlementGateway:
    """Records releases instead of moving money. For tests and local development.

    Set ``fail_next`` to make the next call raise ``NetworkFailure``.
    """

    def __init__(self):
        self.calls: List[SettlementCall] = []
        self._results: Dict[str, SettlementResult] = {}
        self.fail_next: Optional[Exception] = None

    def release(
        self,
        amount: Decimal,
        destination_account: str,
        metadata: Dict[str, str],
        idempotency_key: str,
    ) -> SettlementResult:
        self.calls.append(SettlementCall(amount, destination_account, dict(metadata), idempotency_key))
        if self.fail_next is not None:
            error, self.fail_next = self.fail_next, None
            raise error
        if idempotency_key in self._results:
            return self._results[idempotency_key]

        fee = platform_fee(amount)
        result = SettlementResult(
            reference=f"tr_{new_id().replace('-', '')[:24]}",
            amount=fee.amount,
            platform_fee=fee.fee,
            net_amount=fee.net_amount,
            fee_label=fee.label,
        )
        self._results[idempotency_key] = result
        logger.debug(f"Recorded release | key={idempotency_key} | amount={amount}")
        return result

    @property
    def released_keys(self) -> List[str]:
        """Idempotency keys that produced a release."""
        return list(self._results)

    def fail_with_network_error(self) -> None:
        self.fail_next = NetworkFailure("settlement")
