"""Fund aggregate.

Holds the share totals, flow counters and the latest analytics snapshot of one
fund. Engines receive the aggregate explicitly; there is no module-level state.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Mapping, Optional

from core.fixed_point import BASE_UNIT
from core.types import AnalyticsSnapshot, FeeState, FundStateRecord


@dataclass(frozen=True)
class FundCheckpoint:
    """Immutable copy of the aggregate, used to roll back a failed operation."""

    total_shares: int
    sum_invested: int
    sum_withdrawn: int
    share_price: int
    analytics: AnalyticsSnapshot


@dataclass
class Fund:
    """Pooled fund aggregate.

    Invariants:
    - total_shares equals the ledger's total supply after every operation
    - sum_invested and sum_withdrawn never decrease
    """

    fund_id: str = "default"
    base_unit: int = BASE_UNIT
    total_shares: int = 0
    sum_invested: int = 0
    sum_withdrawn: int = 0
    share_price: int = 0
    analytics: Optional[AnalyticsSnapshot] = None

    def __post_init__(self) -> None:
        if self.share_price == 0:
            self.share_price = self.base_unit
        if self.analytics is None:
            self.analytics = AnalyticsSnapshot(nav=0, delta=self.base_unit)

    def checkpoint(self) -> FundCheckpoint:
        return FundCheckpoint(
            total_shares=self.total_shares,
            sum_invested=self.sum_invested,
            sum_withdrawn=self.sum_withdrawn,
            share_price=self.share_price,
            analytics=self.analytics,
        )

    def restore(self, checkpoint: FundCheckpoint) -> None:
        self.total_shares = checkpoint.total_shares
        self.sum_invested = checkpoint.sum_invested
        self.sum_withdrawn = checkpoint.sum_withdrawn
        self.share_price = checkpoint.share_price
        self.analytics = checkpoint.analytics

    def to_record(
        self,
        balances: Optional[Mapping[str, int]] = None,
        *,
        management_fee: Optional[FeeState] = None,
        performance_fee: Optional[FeeState] = None,
    ) -> FundStateRecord:
        return FundStateRecord(
            fund_id=self.fund_id,
            total_shares=self.total_shares,
            sum_invested=self.sum_invested,
            sum_withdrawn=self.sum_withdrawn,
            share_price=self.share_price,
            nav=self.analytics.nav,
            delta=self.analytics.delta,
            snapshot_at=self.analytics.timestamp,
            balances=dict(balances or {}),
            updated_at=datetime.now(timezone.utc),
            management_fee=management_fee,
            performance_fee=performance_fee,
        )

    @classmethod
    def from_record(cls, record: FundStateRecord, *, base_unit: int = BASE_UNIT) -> Fund:
        return cls(
            fund_id=record.fund_id,
            base_unit=base_unit,
            total_shares=record.total_shares,
            sum_invested=record.sum_invested,
            sum_withdrawn=record.sum_withdrawn,
            share_price=record.share_price,
            analytics=AnalyticsSnapshot(nav=record.nav, delta=record.delta, timestamp=record.snapshot_at),
        )
