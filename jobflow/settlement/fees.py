"""Platform fee schedule.

Tiers (inclusive upper bounds):

    amount <= 500       flat $25
    amount <= 2,000     5%
    amount <= 5,000     4%
    amount <= 15,000    3%
    above 15,000        flat $500 (capped)
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from jobflow.types import to_money

FEE_TIERS = (
    (Decimal("500"), None, Decimal("25.00"), "Flat Service Fee"),
    (Decimal("2000"), Decimal("0.05"), None, "Platform Fee (5%)"),
    (Decimal("5000"), Decimal("0.04"), None, "Platform Fee (4%)"),
    (Decimal("15000"), Decimal("0.03"), None, "Platform Fee (3%)"),
)
FEE_CAP = Decimal("500.00")
FEE_CAP_LABEL = "Capped Platform Fee"


@dataclass(frozen=True)
class FeeQuote:
    amount: Decimal
    fee: Decimal
    label: str

    @property
    def net_amount(self) -> Decimal:
        return self.amount - self.fee


def platform_fee(amount: Any) -> FeeQuote:
    """Compute the platform fee withheld from a released amount.

    Raises:
        ValueError: If the amount is not a positive number.
    """
    amount = to_money(amount)
    if amount <= 0:
        raise ValueError("Amount must be positive")
    for upper, rate, flat, label in FEE_TIERS:
        if amount <= upper:
            fee = flat if flat is not None else to_money(amount * rate)
            # A flat fee never exceeds the amount itself.
            return FeeQuote(amount=amount, fee=min(fee, amount), label=label)
    return FeeQuote(amount=amount, fee=FEE_CAP, label=FEE_CAP_LABEL)
