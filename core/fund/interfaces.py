from __future__ import annotations

from typing import Mapping, Protocol

from core.types import AssetHolding, PriceQuote


class Ledger(Protocol):
    def balance_of(self, owner: str) -> int:
        """Return the share balance of an owner (0 if unknown)."""

    def total_supply(self) -> int:
        """Return the sum of all share balances."""

    def mint(self, owner: str, amount: int) -> None:
        """Credit shares. Must reject results above MAX_AMOUNT."""

    def burn(self, owner: str, amount: int) -> None:
        """Debit shares. Must reject burning more than the owner holds."""


class AssetRegistry(Protocol):
    def num_assets(self) -> int:
        """Number of registered (non-base) assets."""

    def asset_at(self, index: int) -> str:
        """Asset id at a registry index."""

    def price_feed_at(self, index: int) -> str:
        """Price feed id for the asset at a registry index."""


class PriceFeed(Protocol):
    def get_price(self, asset: str) -> PriceQuote:
        """Return the latest quote for an asset in base units per whole asset."""


class CustodyAdapter(Protocol):
    @property
    def base_asset(self) -> str:
        """Id of the base currency held 1:1."""

    def deposit(self, amount: int) -> bool:
        """Accept base currency into custody."""

    def available(self) -> int:
        """Base currency available for payouts."""

    def transfer_out(self, recipient: str, amount: int) -> bool:
        """Send base currency to a recipient."""

    def holding(self, asset: str) -> AssetHolding:
        """Quantity and precision held for an asset."""

    def transfer_assets_out(self, recipient: str, quantities: Mapping[str, int]) -> bool:
        """Send several assets to a recipient as one all-or-nothing batch."""


class PaymentGateway(Protocol):
    def send(self, recipient: str, amount: int) -> bool:
        """Return unspent payment to its sender."""


class Authorizer(Protocol):
    def is_authorized(self, caller: str, *, action: str, owner: str) -> bool:
        """Decide whether caller may perform action on behalf of owner."""
