"""Share redemption: cash at the current share price, or in kind as a pro-rata slice."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from core.errors import (
    ExternalTransferFailed,
    InsufficientBalance,
    InsufficientLiquidity,
    InsufficientPayout,
    InvalidArgument,
    Unauthorized,
)
from core.fixed_point import checked_add, checked_sub, mul_div, saturating_sub

from .events import FundEvent, Refunded, SharesRedeemed, SharesRedeemedInKind
from .interfaces import AssetRegistry, Authorizer, CustodyAdapter, Ledger
from .transaction import FundTransaction
from .valuation import ValuationEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RedemptionResult:
    owner: str
    shares: int
    price: int
    payout: int
    events: tuple[FundEvent, ...]


@dataclass(frozen=True)
class InKindRedemptionResult:
    owner: str
    shares: int
    assets: dict[str, int]
    events: tuple[FundEvent, ...]


class RedemptionEngine:
    """Burns shares against cash or a slice of the custodied assets.

    Shares are only burned after the payout has been delivered.
    """

    def __init__(
        self,
        valuation: ValuationEngine,
        *,
        ledger: Ledger,
        custody: CustodyAdapter,
        registry: AssetRegistry,
        authorizer: Authorizer,
    ) -> None:
        self._valuation = valuation
        self._ledger = ledger
        self._custody = custody
        self._registry = registry
        self._authorizer = authorizer

    def _check_balance(self, owner: str, shares: int) -> None:
        balance = self._ledger.balance_of(owner)
        if balance < shares:
            raise InsufficientBalance(f"{owner} holds {balance} shares, cannot redeem {shares}")

    def redeem(self, owner: str, offered_shares: int, wanted_amount: int) -> RedemptionResult:
        """Redeem ``offered_shares`` for at least ``wanted_amount`` of base currency.

        The full value of the shares at the current price is paid out in one
        transfer. Anything above ``wanted_amount`` is reported as a refund.

        Raises:
            InvalidArgument: If either argument is not positive
            InsufficientBalance: If the owner holds fewer shares than offered
            InsufficientLiquidity: If custody cannot cover the requested amount or the payout
            InsufficientPayout: If the shares are worth less than ``wanted_amount``
            ExternalTransferFailed: If the payout transfer fails (no shares are burned)
        """
        if offered_shares <= 0:
            raise InvalidArgument("offered_shares must be positive")
        if wanted_amount <= 0:
            raise InvalidArgument("wanted_amount must be positive")
        self._check_balance(owner, offered_shares)

        fund = self._valuation.fund

        with FundTransaction(fund, self._valuation.fee_strategies):
            price = self._valuation.calc_share_price()

            available = self._custody.available()
            if wanted_amount > available:
                raise InsufficientLiquidity(f"Requested {wanted_amount} but custody holds {available}")

            payout = mul_div(price, offered_shares, fund.base_unit)
            if wanted_amount > payout:
                raise InsufficientPayout(
                    f"{offered_shares} shares are worth {payout} at price {price}, below {wanted_amount}"
                )
            if payout > available:
                raise InsufficientLiquidity(f"Payout {payout} exceeds custody balance {available}")

            now = self._valuation.now()
            nav_before = fund.analytics.nav
            nav_after = saturating_sub(nav_before, payout)
            total_shares = checked_sub(fund.total_shares, offered_shares)
            sum_withdrawn = checked_add(fund.sum_withdrawn, payout)

            fund.total_shares = total_shares
            fund.sum_withdrawn = sum_withdrawn
            fund.analytics = replace(fund.analytics, nav=nav_after)
            self._valuation.record_flow(now, nav_before=nav_before, nav_after=nav_after)

            if not self._custody.transfer_out(owner, payout):
                raise ExternalTransferFailed(f"Payout of {payout} to {owner} failed")
            self._ledger.burn(owner, offered_shares)

            events: list[FundEvent] = [SharesRedeemed(owner=owner, shares=offered_shares, price=price)]
            if payout > wanted_amount:
                events.append(Refunded(to=owner, amount=payout - wanted_amount))

        logger.info(
            f"Fund {fund.fund_id}: redeemed {offered_shares} shares from {owner} at {price} (payout={payout})"
        )
        return RedemptionResult(
            owner=owner,
            shares=offered_shares,
            price=price,
            payout=payout,
            events=tuple(events),
        )

    def _custodied_assets(self) -> list[str]:
        base_asset = self._custody.base_asset
        assets = [base_asset]
        for index in range(self._registry.num_assets()):
            asset = self._registry.asset_at(index)
            if asset not in assets:
                assets.append(asset)
        return assets

    def redeem_in_kind(self, caller: str, owner: str, num_shares: int) -> InKindRedemptionResult:
        """Burn ``num_shares`` and hand the owner the same fraction of every asset.

        No price is involved: each custodied asset, base currency included, is
        split as ``holding * num_shares // total_shares``. Holdings are gross, so
        the slice includes its share of fees accrued but not yet crystallized; call
        ``crystallize_fees`` first to settle them.

        Raises:
            Unauthorized: If ``caller`` may not act for ``owner``
            InvalidArgument: If num_shares is not positive
            InsufficientBalance: If the owner holds fewer shares
            ExternalTransferFailed: If the asset batch transfer fails
        """
        if not self._authorizer.is_authorized(caller, action="redeem_in_kind", owner=owner):
            raise Unauthorized(f"{caller} may not redeem in kind for {owner}")
        if num_shares <= 0:
            raise InvalidArgument("num_shares must be positive")
        self._check_balance(owner, num_shares)

        fund = self._valuation.fund
        total_before = fund.total_shares

        with FundTransaction(fund, self._valuation.fee_strategies):
            quantities: dict[str, int] = {}
            for asset in self._custodied_assets():
                share = mul_div(self._custody.holding(asset).quantity, num_shares, total_before)
                if share > 0:
                    quantities[asset] = share

            now = self._valuation.now()
            nav_before = fund.analytics.nav
            nav_slice = mul_div(nav_before, num_shares, total_before)
            nav_after = nav_before - nav_slice

            fund.total_shares = checked_sub(total_before, num_shares)
            fund.sum_withdrawn = checked_add(fund.sum_withdrawn, nav_slice)
            fund.analytics = replace(fund.analytics, nav=nav_after)
            self._valuation.record_flow(now, nav_before=nav_before, nav_after=nav_after)

            if quantities and not self._custody.transfer_assets_out(owner, quantities):
                raise ExternalTransferFailed(f"In-kind transfer to {owner} failed")
            self._ledger.burn(owner, num_shares)

        logger.info(f"Fund {fund.fund_id}: redeemed {num_shares} shares in kind for {owner}: {quantities}")
        event = SharesRedeemedInKind(owner=owner, shares=num_shares, assets=dict(quantities))
        return InKindRedemptionResult(
            owner=owner,
            shares=num_shares,
            assets=quantities,
            events=(event,),
        )
