"""Tests for fund valuation (GAV, NAV, performance index, share price)."""

from decimal import Decimal
from unittest.mock import Mock

import pytest

from core.errors import PrecisionMismatch, PriceFeedUnavailable
from core.fees.model import LinearTimeFee, PerformanceFee
from core.fixed_point import BASE_UNIT as U
from core.fund.valuation import ValuationEngine
from core.types import AnalyticsSnapshot, FeeState


def _with_btc(registry, price_feed, custody, quantity: int, price: int) -> None:
    registry.register("BTC", "static")
    price_feed.set_price("BTC", price, precision=8)
    custody.set_holding("BTC", quantity, precision=8)


class TestCalcGav:
    """Tests for gross asset value."""

    def test_empty_fund_is_zero(self, valuation) -> None:
        assert valuation.calc_gav() == 0

    def test_base_currency_counts_one_to_one(self, valuation, custody) -> None:
        custody.set_holding("USD", 10 * U)
        assert valuation.calc_gav() == 10 * U

    def test_registered_assets_are_priced(self, valuation, registry, price_feed, custody) -> None:
        custody.set_holding("USD", 10 * U)
        _with_btc(registry, price_feed, custody, quantity=50_000_000, price=40_000 * U)

        assert valuation.calc_gav() == 10 * U + 20_000 * U

    def test_registered_base_asset_is_skipped(self, valuation, registry, custody) -> None:
        custody.set_holding("USD", 5 * U)
        registry.register("USD", "static")

        assert valuation.calc_gav() == 5 * U

    def test_precision_mismatch_raises_even_for_zero_holding(self, valuation, registry, price_feed) -> None:
        registry.register("BTC", "static")
        price_feed.set_price("BTC", 40_000 * U, precision=8)

        with pytest.raises(PrecisionMismatch, match="BTC"):
            valuation.calc_gav()

    def test_unknown_feed_raises(self, valuation, registry) -> None:
        registry.register("ETH", "chainlink")

        with pytest.raises(PriceFeedUnavailable, match="chainlink"):
            valuation.calc_gav()

    def test_missing_quote_raises(self, valuation, registry) -> None:
        registry.register("ETH", "static")

        with pytest.raises(PriceFeedUnavailable, match="ETH"):
            valuation.calc_gav()

    def test_is_idempotent_and_pure(self, valuation, fund, registry, price_feed, custody) -> None:
        custody.set_holding("USD", 3 * U)
        _with_btc(registry, price_feed, custody, quantity=10**8, price=2 * U)
        before = fund.checkpoint()

        assert valuation.calc_gav() == valuation.calc_gav() == 5 * U
        assert fund.checkpoint() == before


class TestCalcNav:
    """Tests for net asset value."""

    def test_nav_without_fees_equals_gav(self, valuation, custody) -> None:
        custody.set_holding("USD", 7 * U)
        assert valuation.calc_nav() == 7 * U

    def test_management_fee_reduces_nav(self, fund, registry, price_feed, custody, clock) -> None:
        custody.set_holding("USD", 100 * U)
        engine = ValuationEngine(
            fund,
            registry=registry,
            price_feeds={"static": price_feed},
            custody=custody,
            management_fee=LinearTimeFee(rate_per_second=U // 100, state=FeeState(last_accrual=clock())),
            clock=clock,
        )
        clock.advance(100)

        assert engine.calc_nav() == 99 * U

    def test_nav_never_negative(self, fund, registry, price_feed, custody, clock) -> None:
        custody.set_holding("USD", U)
        engine = ValuationEngine(
            fund,
            registry=registry,
            price_feeds={"static": price_feed},
            custody=custody,
            management_fee=LinearTimeFee(rate_per_second=U, state=FeeState(last_accrual=clock())),
            performance_fee=PerformanceFee(rate=Decimal("0.5"), state=FeeState(last_accrual=clock())),
            clock=clock,
        )
        clock.advance(3600)

        assert engine.calc_nav() == 0

    def test_performance_fee_applies_after_management_fee(self, fund, registry, price_feed, custody, clock) -> None:
        custody.set_holding("USD", 150 * U)
        engine = ValuationEngine(
            fund,
            registry=registry,
            price_feeds={"static": price_feed},
            custody=custody,
            management_fee=LinearTimeFee(rate_per_second=U, state=FeeState(last_accrual=clock())),
            performance_fee=PerformanceFee(
                rate=Decimal("0.2"),
                state=FeeState(last_accrual=clock(), high_water_mark=100 * U),
            ),
            clock=clock,
        )
        clock.advance(10)

        fees = engine.calc_fees(engine.calc_gav())

        assert fees.management == 10 * U
        assert fees.performance == 8 * U
        assert engine.calc_nav() == 132 * U

        breakdown = engine.calc_breakdown()
        assert breakdown.gav == 150 * U
        assert breakdown.fees == fees
        assert breakdown.nav == 132 * U


class TestRecordFlow:
    """Tests for handing subscriptions and redemptions to the fee strategies."""

    def test_owed_fee_is_carried_when_nav_is_zero(self, fund, registry, price_feed, custody, clock) -> None:
        management = LinearTimeFee(rate_per_second=U, state=FeeState(last_accrual=clock()))
        engine = ValuationEngine(
            fund,
            registry=registry,
            price_feeds={"static": price_feed},
            custody=custody,
            management_fee=management,
            clock=clock,
        )
        custody.set_holding("USD", 3 * U)
        clock.advance(5)

        engine.record_flow(clock(), nav_before=0, nav_after=10 * U)

        # 5U accrued, capped at the 3U GAV
        assert management.state == FeeState(last_accrual=clock(), carried=3 * U)

    def test_live_fund_does_not_revalue(self, valuation, monkeypatch) -> None:
        monkeypatch.setattr(valuation, "calc_gav", Mock(side_effect=AssertionError("GAV queried")))

        valuation.record_flow(valuation.now(), nav_before=5 * U, nav_after=10 * U)


class TestCalcDelta:
    """Tests for the chain-linked performance index."""

    def test_gav_doubling_doubles_delta(self, valuation, fund, custody) -> None:
        fund.total_shares = 10 * U
        fund.analytics = AnalyticsSnapshot(nav=10 * U, delta=U)
        custody.set_holding("USD", 20 * U)

        assert valuation.calc_delta() == 2 * U
        assert fund.analytics.nav == 20 * U

    def test_previous_nav_zero_resets_to_base_unit(self, valuation, fund, custody) -> None:
        fund.analytics = AnalyticsSnapshot(nav=0, delta=5 * U)
        custody.set_holding("USD", 20 * U)

        assert valuation.calc_delta() == U

    def test_current_nav_zero_resets_to_base_unit(self, valuation, fund) -> None:
        fund.analytics = AnalyticsSnapshot(nav=10 * U, delta=3 * U)

        assert valuation.calc_delta() == U
        assert fund.analytics.nav == 0

    def test_commits_snapshot_with_clock_time(self, valuation, fund, custody, clock) -> None:
        fund.analytics = AnalyticsSnapshot(nav=4 * U, delta=U)
        custody.set_holding("USD", 5 * U)

        delta = valuation.calc_delta()

        assert fund.analytics == AnalyticsSnapshot(nav=5 * U, delta=delta, timestamp=clock())

    def test_chain_links_across_marks(self, valuation, fund, custody) -> None:
        fund.analytics = AnalyticsSnapshot(nav=10 * U, delta=U)
        custody.set_holding("USD", 15 * U)
        valuation.calc_delta()
        custody.set_holding("USD", 30 * U)

        assert valuation.calc_delta() == 3 * U


class TestCalcSharePrice:
    """Tests for the mark-to-market share price."""

    def test_empty_fund_price_is_one(self, valuation, fund) -> None:
        assert valuation.calc_share_price() == U
        assert fund.share_price == U

    def test_caches_price_on_fund(self, valuation, fund, custody) -> None:
        fund.analytics = AnalyticsSnapshot(nav=10 * U, delta=U)
        custody.set_holding("USD", 25 * U)

        price = valuation.calc_share_price()

        assert price == fund.share_price == 25 * U // 10

    def test_failed_query_leaves_snapshot_untouched(self, valuation, fund, registry, price_feed) -> None:
        fund.analytics = AnalyticsSnapshot(nav=10 * U, delta=2 * U)
        registry.register("BTC", "static")
        price_feed.set_price("BTC", U, precision=8)

        with pytest.raises(PrecisionMismatch):
            valuation.calc_share_price()

        assert fund.analytics == AnalyticsSnapshot(nav=10 * U, delta=2 * U)
