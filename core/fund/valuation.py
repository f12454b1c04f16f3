"""Fund valuation: GAV, NAV, performance index and share price."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Mapping, Optional

from core.errors import PrecisionMismatch, PriceFeedUnavailable
from core.fees.model import FeeStrategy, NoFee, elapsed_seconds
from core.fixed_point import checked_add, mul_div
from core.types import AnalyticsSnapshot, FeeBreakdown, NavBreakdown

from .interfaces import AssetRegistry, CustodyAdapter, PriceFeed
from .state import Fund

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ValuationEngine:
    """Marks a fund to market.

    ``calc_gav``, ``calc_fees``, ``calc_breakdown`` and ``calc_nav`` are pure queries. ``calc_delta``
    and ``calc_share_price`` commit a new analytics snapshot on every call and
    must only run inside a serialized fund operation.
    """

    def __init__(
        self,
        fund: Fund,
        *,
        registry: AssetRegistry,
        price_feeds: Mapping[str, PriceFeed],
        custody: CustodyAdapter,
        management_fee: Optional[FeeStrategy] = None,
        performance_fee: Optional[FeeStrategy] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._fund = fund
        self._registry = registry
        self._price_feeds = price_feeds
        self._custody = custody
        self.management_fee: FeeStrategy = management_fee or NoFee()
        self.performance_fee: FeeStrategy = performance_fee or NoFee()
        self._clock = clock or utc_now

    @property
    def fund(self) -> Fund:
        return self._fund

    @property
    def fee_strategies(self) -> tuple[FeeStrategy, FeeStrategy]:
        return (self.management_fee, self.performance_fee)

    def now(self) -> datetime:
        return self._clock()

    def calc_gav(self) -> int:
        """Gross asset value in base units.

        Base currency counts 1:1; every registered asset adds
        ``quantity * price // 10**precision``.

        Raises:
            PrecisionMismatch: If a holding and its quote disagree on precision
            PriceFeedUnavailable: If a registered feed id cannot be resolved
        """
        gav = self._custody.available()
        base_asset = self._custody.base_asset

        for index in range(self._registry.num_assets()):
            asset = self._registry.asset_at(index)
            if asset == base_asset:
                continue

            feed_id = self._registry.price_feed_at(index)
            feed = self._price_feeds.get(feed_id)
            if feed is None:
                raise PriceFeedUnavailable(f"Price feed {feed_id!r} for {asset} is not configured")

            quote = feed.get_price(asset)
            holding = self._custody.holding(asset)
            if holding.precision != quote.precision:
                raise PrecisionMismatch(
                    f"{asset}: holding precision {holding.precision} != quote precision {quote.precision}"
                )
            if holding.quantity == 0:
                continue

            gav = checked_add(gav, mul_div(holding.quantity, quote.price, 10**holding.precision))

        return gav

    def calc_fees(self, gav: int, now: Optional[datetime] = None) -> FeeBreakdown:
        """Fees accrued since each strategy's last crystallization.

        The management fee applies to GAV; the performance fee applies to what is
        left after it. Each is capped so NAV never goes negative.
        """
        now = now or self.now()
        management = min(
            self.management_fee.accrue(elapsed_seconds(self.management_fee.state, now), nav=gav),
            gav,
        )
        remaining = gav - management
        performance = min(
            self.performance_fee.accrue(elapsed_seconds(self.performance_fee.state, now), nav=remaining),
            remaining,
        )
        return FeeBreakdown(management=management, performance=performance)

    def calc_breakdown(self) -> NavBreakdown:
        """GAV and the fees accrued against it, from a single GAV computation."""
        gav = self.calc_gav()
        return NavBreakdown(gav=gav, fees=self.calc_fees(gav))

    def calc_nav(self) -> int:
        """Net asset value: GAV minus accrued management and performance fees."""
        return self.calc_breakdown().nav

    def record_flow(self, now: datetime, *, nav_before: int, nav_after: int) -> None:
        """Tell the fee strategies about a subscription or redemption.

        Must run before the flow reaches custody. When NAV was zero, the fees still
        owed on the current GAV are measured and handed over with the flow.
        """
        owed = FeeBreakdown(management=0, performance=0)
        if nav_before == 0:
            owed = self.calc_fees(self.calc_gav(), now)
        self.management_fee.on_flow(now, nav_before=nav_before, nav_after=nav_after, owed=owed.management)
        self.performance_fee.on_flow(now, nav_before=nav_before, nav_after=nav_after, owed=owed.performance)

    def calc_delta(self) -> int:
        """Mark to market and return the chain-linked performance index.

        Resets to one base unit when either the previous or the current NAV is
        zero. Always replaces the fund's analytics snapshot.
        """
        nav = self.calc_nav()
        previous = self._fund.analytics

        if previous.nav == 0 or nav == 0:
            delta = self._fund.base_unit
        else:
            delta = mul_div(previous.delta, nav, previous.nav)

        self._fund.analytics = AnalyticsSnapshot(nav=nav, delta=delta, timestamp=self.now())
        logger.debug(f"Fund {self._fund.fund_id} marked to market: nav={nav} delta={delta}")
        return delta

    def calc_share_price(self) -> int:
        """Price of one whole share in base units (mark-to-market)."""
        price = self.calc_delta()
        self._fund.share_price = price
        return price
