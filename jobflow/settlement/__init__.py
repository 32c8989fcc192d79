"""Payment settlement for approved invoices.

- fees.py: tiered platform fee schedule
- gateway.py: SettlementGateway protocol and in-memory gateway
- stripe_gateway.py: Stripe Connect transfers
"""

from jobflow.settlement.fees import FeeQuote, platform_fee
from jobflow.settlement.gateway import (
    InMemorySettlementGateway,
    SettlementCall,
    SettlementGateway,
    SettlementResult,
)

__all__ = [
    "FeeQuote",
    "platform_fee",
    "SettlementGateway",
    "SettlementResult",
    "SettlementCall",
    "InMemorySettlementGateway",
]
