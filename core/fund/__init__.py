"""Pooled fund accounting.

Valuation (GAV, NAV, performance index, share price), share issuance and
cash or in-kind redemption over pluggable ledger, custody and price feeds.
"""

from .events import (
    EventLog,
    FeesCrystallized,
    FundEvent,
    Refunded,
    SharesIssued,
    SharesRedeemed,
    SharesRedeemedInKind,
)
from .interfaces import AssetRegistry, Authorizer, CustodyAdapter, Ledger, PaymentGateway, PriceFeed
from .issuance import IssuanceEngine, IssuanceResult
from .manager import FundConfig, FundManager
from .memory import (
    InMemoryAssetRegistry,
    InMemoryCustody,
    InMemoryLedger,
    InMemoryPaymentGateway,
    OwnerOnlyAuthorizer,
    RegisteredAsset,
    StaticPriceFeed,
)
from .redemption import InKindRedemptionResult, RedemptionEngine, RedemptionResult
from .state import Fund
from .transaction import FundTransaction
from .valuation import ValuationEngine

__all__ = [
    # State
    "Fund",
    "FundTransaction",
    # Engines
    "ValuationEngine",
    "IssuanceEngine",
    "IssuanceResult",
    "RedemptionEngine",
    "RedemptionResult",
    "InKindRedemptionResult",
    # Manager
    "FundConfig",
    "FundManager",
    # Events
    "EventLog",
    "FundEvent",
    "SharesIssued",
    "SharesRedeemed",
    "SharesRedeemedInKind",
    "Refunded",
    "FeesCrystallized",
    # Interfaces
    "Ledger",
    "AssetRegistry",
    "PriceFeed",
    "CustodyAdapter",
    "PaymentGateway",
    "Authorizer",
    # In-memory collaborators
    "InMemoryLedger",
    "InMemoryAssetRegistry",
    "RegisteredAsset",
    "StaticPriceFeed",
    "InMemoryCustody",
    "InMemoryPaymentGateway",
    "OwnerOnlyAuthorizer",
]
