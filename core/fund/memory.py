"""In-memory collaborators for the fund engine.

Paper implementations of the ledger, registry, price feed, custody and payment
interfaces. Used by the API's demo wiring and by tests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

from core.errors import InsufficientBalance, InvalidArgument, PriceFeedUnavailable
from core.fixed_point import DEFAULT_DECIMALS, checked_add, checked_sub
from core.types import AssetHolding, PriceQuote

logger = logging.getLogger(__name__)


class InMemoryLedger:
    """Share balances per owner plus a running total supply."""

    def __init__(self, initial_balances: Optional[Mapping[str, int]] = None) -> None:
        self._balances: dict[str, int] = {}
        self._total_supply = 0
        if initial_balances:
            for owner, amount in initial_balances.items():
                if amount > 0:
                    self.mint(owner, amount)

    def balance_of(self, owner: str) -> int:
        return self._balances.get(owner, 0)

    def total_supply(self) -> int:
        return self._total_supply

    def balances(self) -> dict[str, int]:
        """Return all non-zero balances."""
        return {owner: amount for owner, amount in self._balances.items() if amount > 0}

    def mint(self, owner: str, amount: int) -> None:
        if amount <= 0:
            raise InvalidArgument("Mint amount must be positive")
        # Both checks run before either value is written.
        new_total = checked_add(self._total_supply, amount)
        new_balance = checked_add(self.balance_of(owner), amount)
        self._total_supply = new_total
        self._balances[owner] = new_balance

    def burn(self, owner: str, amount: int) -> None:
        if amount <= 0:
            raise InvalidArgument("Burn amount must be positive")
        balance = self.balance_of(owner)
        if balance < amount:
            raise InsufficientBalance(f"Insufficient shares for {owner}: have {balance}, need {amount}")
        self._balances[owner] = balance - amount
        self._total_supply = checked_sub(self._total_supply, amount)


@dataclass(frozen=True)
class RegisteredAsset:
    asset: str
    price_feed: str


class InMemoryAssetRegistry:
    """Ordered list of registered assets and their price feed ids."""

    def __init__(self, assets: Iterable[RegisteredAsset] = ()) -> None:
        self._assets: list[RegisteredAsset] = list(assets)

    def register(self, asset: str, price_feed: str) -> None:
        if any(a.asset == asset for a in self._assets):
            raise ValueError(f"Asset already registered: {asset}")
        self._assets.append(RegisteredAsset(asset=asset, price_feed=price_feed))

    def num_assets(self) -> int:
        return len(self._assets)

    def asset_at(self, index: int) -> str:
        return self._assets[index].asset

    def price_feed_at(self, index: int) -> str:
        return self._assets[index].price_feed


class StaticPriceFeed:
    """Price feed backed by a dict of quotes (set by operators or tests)."""

    def __init__(self, quotes: Optional[Mapping[str, PriceQuote]] = None) -> None:
        self._quotes: dict[str, PriceQuote] = dict(quotes or {})

    def set_price(self, asset: str, price: int, precision: int = DEFAULT_DECIMALS) -> None:
        if price < 0:
            raise ValueError("price must be non-negative")
        self._quotes[asset] = PriceQuote(asset=asset, price=price, precision=precision)

    def get_price(self, asset: str) -> PriceQuote:
        quote = self._quotes.get(asset)
        if quote is None:
            raise PriceFeedUnavailable(f"No quote for {asset}")
        return quote


@dataclass
class InMemoryCustody:
    """Custody of the base currency and other assets.

    Recipients listed in ``blocked_recipients`` reject every transfer, which
    models a counterparty that cannot receive funds.
    """

    base_asset: str = "USD"
    base_precision: int = DEFAULT_DECIMALS
    holdings: dict[str, AssetHolding] = field(default_factory=dict)
    blocked_recipients: set[str] = field(default_factory=set)
    accept_deposits: bool = True
    delivered: dict[str, dict[str, int]] = field(default_factory=dict)

    def holding(self, asset: str) -> AssetHolding:
        existing = self.holdings.get(asset)
        if existing is not None:
            return existing
        precision = self.base_precision if asset == self.base_asset else DEFAULT_DECIMALS
        return AssetHolding(asset=asset, quantity=0, precision=precision)

    def set_holding(self, asset: str, quantity: int, precision: int = DEFAULT_DECIMALS) -> None:
        if quantity < 0:
            raise ValueError("quantity must be non-negative")
        self.holdings[asset] = AssetHolding(asset=asset, quantity=quantity, precision=precision)

    def available(self) -> int:
        return self.holding(self.base_asset).quantity

    def deposit(self, amount: int) -> bool:
        if amount <= 0 or not self.accept_deposits:
            logger.warning(f"Custody rejected deposit of {amount}")
            return False
        current = self.holding(self.base_asset)
        self.holdings[self.base_asset] = AssetHolding(
            asset=self.base_asset,
            quantity=checked_add(current.quantity, amount),
            precision=current.precision,
        )
        return True

    def transfer_out(self, recipient: str, amount: int) -> bool:
        return self.transfer_assets_out(recipient, {self.base_asset: amount})

    def transfer_assets_out(self, recipient: str, quantities: Mapping[str, int]) -> bool:
        if recipient in self.blocked_recipients:
            logger.warning(f"Custody transfer to blocked recipient {recipient} rejected")
            return False
        for asset, quantity in quantities.items():
            if quantity < 0 or self.holding(asset).quantity < quantity:
                logger.warning(f"Custody cannot deliver {quantity} {asset}")
                return False

        received = self.delivered.setdefault(recipient, {})
        for asset, quantity in quantities.items():
            if quantity == 0:
                continue
            current = self.holding(asset)
            self.holdings[asset] = AssetHolding(
                asset=asset,
                quantity=current.quantity - quantity,
                precision=current.precision,
            )
            received[asset] = received.get(asset, 0) + quantity
        return True


@dataclass
class InMemoryPaymentGateway:
    """Returns unspent payments to their senders."""

    blocked_recipients: set[str] = field(default_factory=set)
    sent: dict[str, int] = field(default_factory=dict)

    def send(self, recipient: str, amount: int) -> bool:
        if amount <= 0 or recipient in self.blocked_recipients:
            logger.warning(f"Payment gateway rejected {amount} to {recipient}")
            return False
        self.sent[recipient] = self.sent.get(recipient, 0) + amount
        return True


@dataclass
class OwnerOnlyAuthorizer:
    """Allows an owner to act for themselves, plus any configured operators."""

    operators: set[str] = field(default_factory=set)

    def is_authorized(self, caller: str, *, action: str, owner: str) -> bool:
        return caller == owner or caller in self.operators
