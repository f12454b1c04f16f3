"""Share issuance (invest)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from core.errors import ExternalTransferFailed, InsufficientPayment, InvalidArgument
from core.fixed_point import checked_add, mul_div

from .events import FundEvent, Refunded, SharesIssued
from .interfaces import CustodyAdapter, Ledger, PaymentGateway
from .transaction import FundTransaction
from .valuation import ValuationEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuanceResult:
    investor: str
    shares: int
    price: int
    cost: int
    refund: int
    events: tuple[FundEvent, ...]


class IssuanceEngine:
    """Converts an attached payment into an exact number of new shares.

    An order is a limit order: the investor gets exactly ``wanted_shares`` at the
    current share price, or nothing at all. There are no partial fills.
    """

    def __init__(
        self,
        valuation: ValuationEngine,
        *,
        ledger: Ledger,
        custody: CustodyAdapter,
        payments: PaymentGateway,
    ) -> None:
        self._valuation = valuation
        self._ledger = ledger
        self._custody = custody
        self._payments = payments

    def invest(self, investor: str, payment: int, wanted_shares: int) -> IssuanceResult:
        """Issue ``wanted_shares`` to ``investor`` against ``payment``.

        The part of the payment above the cost is refunded through the payment
        gateway and the cost is forwarded to custody. If the deposit fails, the
        cost is sent back through the gateway too, so a failed operation never
        keeps any part of the payment.

        Args:
            investor: Receiving owner id
            payment: Attached payment in base units
            wanted_shares: Exact number of share units requested

        Returns:
            IssuanceResult with price, cost, refund and the events to publish

        Raises:
            InvalidArgument: If payment or wanted_shares is not positive, or the cost rounds to zero
            InsufficientPayment: If the payment does not cover the cost
            ArithmeticOverflow: If share totals would overflow
            ExternalTransferFailed: If the refund or the custody deposit fails
        """
        if payment <= 0:
            raise InvalidArgument("payment must be positive")
        if wanted_shares <= 0:
            raise InvalidArgument("wanted_shares must be positive")

        fund = self._valuation.fund

        with FundTransaction(fund, self._valuation.fee_strategies) as tx:
            price = self._valuation.calc_share_price()
            cost = mul_div(price, wanted_shares, fund.base_unit)
            if cost == 0:
                raise InvalidArgument(f"Order for {wanted_shares} share units costs less than one base unit")
            if cost > payment:
                raise InsufficientPayment(f"Cost {cost} exceeds payment {payment} at price {price}")

            refund = payment - cost
            now = self._valuation.now()
            nav_before = fund.analytics.nav
            nav_after = checked_add(nav_before, cost)
            total_shares = checked_add(fund.total_shares, wanted_shares)
            sum_invested = checked_add(fund.sum_invested, cost)

            self._ledger.mint(investor, wanted_shares)
            tx.on_rollback(
                f"burn {wanted_shares} shares minted to {investor}",
                lambda: self._ledger.burn(investor, wanted_shares),
            )

            fund.total_shares = total_shares
            fund.sum_invested = sum_invested
            fund.analytics = replace(fund.analytics, nav=nav_after)
            self._valuation.record_flow(now, nav_before=nav_before, nav_after=nav_after)

            events: list[FundEvent] = [SharesIssued(investor=investor, shares=wanted_shares, price=price)]

            if refund > 0:
                if not self._payments.send(investor, refund):
                    raise ExternalTransferFailed(f"Refund of {refund} to {investor} failed")
                events.append(Refunded(to=investor, amount=refund))

            tx.on_rollback(
                f"return cost {cost} to {investor}",
                lambda: self._return_payment(investor, cost),
            )

            if not self._custody.deposit(cost):
                raise ExternalTransferFailed(f"Custody deposit of {cost} failed")

        logger.info(
            f"Fund {fund.fund_id}: issued {wanted_shares} shares to {investor} at {price} "
            f"(cost={cost}, refund={refund})"
        )
        return IssuanceResult(
            investor=investor,
            shares=wanted_shares,
            price=price,
            cost=cost,
            refund=refund,
            events=tuple(events),
        )

    def _return_payment(self, investor: str, amount: int) -> None:
        if not self._payments.send(investor, amount):
            raise ExternalTransferFailed(f"Returning {amount} to {investor} failed")
