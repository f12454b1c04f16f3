from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping, Optional


@dataclass(frozen=True)
class PriceQuote:
    asset: str
    price: int  # base units per whole asset unit
    precision: int


@dataclass(frozen=True)
class AssetHolding:
    asset: str
    quantity: int
    precision: int


@dataclass(frozen=True)
class AnalyticsSnapshot:
    nav: int
    delta: int
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class FeeState:
    last_accrual: datetime
    high_water_mark: int = 0
    carried: int = 0  # fee owed from before the last clock restart


@dataclass(frozen=True)
class FeeBreakdown:
    management: int
    performance: int

    @property
    def total(self) -> int:
        return self.management + self.performance


@dataclass(frozen=True)
class NavBreakdown:
    gav: int
    fees: FeeBreakdown

    @property
    def nav(self) -> int:
        return self.gav - self.fees.total


@dataclass(frozen=True)
class FundStateRecord:
    fund_id: str
    total_shares: int
    sum_invested: int
    sum_withdrawn: int
    share_price: int
    nav: int
    delta: int
    snapshot_at: Optional[datetime] = None
    balances: Mapping[str, int] = field(default_factory=dict)
    updated_at: Optional[datetime] = None
    management_fee: Optional[FeeState] = None
    performance_fee: Optional[FeeState] = None
