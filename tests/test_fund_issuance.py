"""Tests for share issuance."""

from decimal import Decimal

import pytest

from core.errors import ArithmeticOverflow, ExternalTransferFailed, InsufficientPayment, InvalidArgument
from core.fees.model import PerformanceFee
from core.fixed_point import BASE_UNIT as U
from core.fixed_point import MAX_AMOUNT
from core.fund.events import Refunded, SharesIssued
from core.fund.issuance import IssuanceEngine
from core.fund.valuation import ValuationEngine
from core.types import FeeState


def _raise_gav_to_20(registry, price_feed, custody) -> None:
    # 10 USD already in custody plus 1 BTC worth 10.
    registry.register("BTC", "static")
    price_feed.set_price("BTC", 10 * U, precision=8)
    custody.set_holding("BTC", 10**8, precision=8)


class TestInvest:
    """Tests for IssuanceEngine.invest."""

    def test_first_investment_into_empty_fund(self, issuance, fund, ledger, custody) -> None:
        result = issuance.invest("alice", 10 * U, 10 * U)

        assert result.price == U
        assert result.cost == 10 * U
        assert result.refund == 0
        assert ledger.balance_of("alice") == 10 * U
        assert fund.total_shares == 10 * U
        assert fund.sum_invested == 10 * U
        assert fund.analytics.nav == 10 * U
        assert fund.share_price == U
        assert custody.available() == 10 * U
        assert [type(e) for e in result.events] == [SharesIssued]

    def test_excess_payment_is_refunded(self, issuance, payments, custody) -> None:
        result = issuance.invest("alice", 12 * U, 10 * U)

        assert result.refund == 2 * U
        assert payments.sent == {"alice": 2 * U}
        assert custody.available() == 10 * U
        refunds = [e for e in result.events if isinstance(e, Refunded)]
        assert refunds == [Refunded(to="alice", amount=2 * U, timestamp=refunds[0].timestamp)]

    def test_investment_at_higher_price(self, issuance, fund, ledger, registry, price_feed, custody) -> None:
        issuance.invest("alice", 10 * U, 10 * U)
        _raise_gav_to_20(registry, price_feed, custody)

        result = issuance.invest("bob", 20 * U, 5 * U)

        assert result.price == 2 * U
        assert result.cost == 10 * U
        assert ledger.balance_of("bob") == 5 * U
        assert fund.total_shares == 15 * U
        assert fund.analytics.nav == 30 * U

    def test_underpayment_mutates_nothing(self, issuance, fund, ledger, payments, registry, price_feed, custody) -> None:
        issuance.invest("alice", 10 * U, 10 * U)
        _raise_gav_to_20(registry, price_feed, custody)
        before = fund.checkpoint()

        with pytest.raises(InsufficientPayment):
            issuance.invest("bob", 15 * U, 10 * U)

        assert ledger.balance_of("bob") == 0
        assert ledger.total_supply() == 10 * U
        assert fund.checkpoint() == before
        assert payments.sent == {}
        assert custody.available() == 10 * U

    @pytest.mark.parametrize("payment, shares", [(0, U), (U, 0), (-U, U)])
    def test_non_positive_arguments_raise(self, issuance, payment, shares) -> None:
        with pytest.raises(InvalidArgument):
            issuance.invest("alice", payment, shares)

    def test_order_below_one_base_unit_raises(self, issuance, fund, ledger, custody) -> None:
        issuance.invest("alice", 10 * U, 10 * U)
        custody.set_holding("USD", 5 * U)

        with pytest.raises(InvalidArgument, match="base unit"):
            issuance.invest("bob", U, 1)

        assert ledger.balance_of("bob") == 0

    def test_share_overflow_raises_without_minting(self, issuance, fund, ledger) -> None:
        fund.total_shares = MAX_AMOUNT

        with pytest.raises(ArithmeticOverflow):
            issuance.invest("alice", U, U)

        assert ledger.total_supply() == 0
        assert fund.total_shares == MAX_AMOUNT

    def test_failed_refund_rolls_back(self, issuance, fund, ledger, payments, custody) -> None:
        payments.blocked_recipients.add("alice")
        before = fund.checkpoint()

        with pytest.raises(ExternalTransferFailed, match="Refund"):
            issuance.invest("alice", 12 * U, 10 * U)

        assert ledger.balance_of("alice") == 0
        assert ledger.total_supply() == 0
        assert fund.checkpoint() == before
        assert custody.available() == 0

    def test_failed_deposit_rolls_back(self, issuance, fund, ledger, custody, payments) -> None:
        custody.accept_deposits = False
        before = fund.checkpoint()

        with pytest.raises(ExternalTransferFailed, match="deposit"):
            issuance.invest("alice", 10 * U, 10 * U)

        assert ledger.total_supply() == 0
        assert fund.checkpoint() == before
        assert payments.sent == {"alice": 10 * U}

    def test_failed_deposit_after_refund_returns_whole_payment(self, issuance, fund, ledger, custody, payments) -> None:
        custody.accept_deposits = False
        before = fund.checkpoint()

        with pytest.raises(ExternalTransferFailed, match="deposit"):
            issuance.invest("alice", 12 * U, 10 * U)

        assert ledger.balance_of("alice") == 0
        assert fund.checkpoint() == before
        assert custody.available() == 0
        # 2U refund plus the 10U cost sent back
        assert payments.sent == {"alice": 12 * U}

    def test_sum_invested_is_monotonic(self, issuance, fund) -> None:
        seen = []
        for payment in (3 * U, 5 * U, 7 * U):
            issuance.invest("alice", payment, payment)
            seen.append(fund.sum_invested)

        assert seen == sorted(seen)
        assert seen[-1] == 15 * U


class TestInvestWithPerformanceFee:
    """Capital inflows are never charged as performance."""

    def test_inflow_is_not_a_gain(self, fund, ledger, registry, price_feed, custody, payments, clock) -> None:
        performance = PerformanceFee(rate=Decimal("0.2"), state=FeeState(last_accrual=clock()))
        valuation = ValuationEngine(
            fund,
            registry=registry,
            price_feeds={"static": price_feed},
            custody=custody,
            performance_fee=performance,
            clock=clock,
        )
        issuance = IssuanceEngine(valuation, ledger=ledger, custody=custody, payments=payments)

        issuance.invest("alice", 10 * U, 10 * U)
        assert performance.high_water_mark == 10 * U
        assert valuation.calc_nav() == 10 * U

        issuance.invest("bob", 10 * U, 10 * U)
        assert performance.high_water_mark == 20 * U
        assert valuation.calc_nav() == 20 * U

    def test_failed_invest_restores_fee_state(self, fund, ledger, registry, price_feed, custody, payments, clock) -> None:
        performance = PerformanceFee(rate=Decimal("0.2"), state=FeeState(last_accrual=clock()))
        valuation = ValuationEngine(
            fund,
            registry=registry,
            price_feeds={"static": price_feed},
            custody=custody,
            performance_fee=performance,
            clock=clock,
        )
        issuance = IssuanceEngine(valuation, ledger=ledger, custody=custody, payments=payments)
        custody.accept_deposits = False

        with pytest.raises(ExternalTransferFailed):
            issuance.invest("alice", 10 * U, 10 * U)

        assert performance.high_water_mark == 0
