from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Protocol

from core.fixed_point import DEFAULT_DECIMALS, checked_add, checked_mul, to_base_units
from core.types import FeeState

SECONDS_PER_YEAR = 365 * 24 * 60 * 60


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def elapsed_seconds(state: FeeState, now: datetime) -> int:
    """Whole seconds since the strategy's last accrual (never negative)."""
    return max(0, int((now - state.last_accrual).total_seconds()))


class FeeStrategy(Protocol):
    """Fee accrual policy consulted by the valuation engine.

    ``accrue`` is a pure query. ``on_flow`` and ``crystallize`` advance the
    strategy's own state and are only called from serialized fund operations.
    """

    state: FeeState

    def accrue(self, elapsed_seconds: int, *, nav: int) -> int:
        """Fee owed for an interval, given the pre-fee value it applies to."""

    def on_flow(self, now: datetime, *, nav_before: int, nav_after: int, owed: int = 0) -> None:
        """Adjust state for a subscription or redemption.

        ``owed`` is the fee this strategy could collect right before the flow. It
        is only measured when ``nav_before`` is zero.
        """

    def crystallize(self, now: datetime, *, nav: int) -> int:
        """Realize the fee owed at ``now`` and return it."""


@dataclass
class NoFee:
    """Zero fee."""

    state: FeeState = field(default_factory=lambda: FeeState(last_accrual=_utc_now()))

    def accrue(self, elapsed_seconds: int, *, nav: int) -> int:
        return 0

    def on_flow(self, now: datetime, *, nav_before: int, nav_after: int, owed: int = 0) -> None:
        return None

    def crystallize(self, now: datetime, *, nav: int) -> int:
        self.state = replace(self.state, last_accrual=now)
        return 0


@dataclass
class LinearTimeFee:
    """Management fee charged linearly in time.

    ``fee = elapsed_seconds * rate_per_second``; no compounding inside an interval.
    When the fund's NAV is zero the clock is restarted on the next flow, so an
    idle fund never owes fees for the time it was empty. Whatever was still owed
    at that point is carried over until it is crystallized.
    """

    rate_per_second: int
    state: FeeState = field(default_factory=lambda: FeeState(last_accrual=_utc_now()))

    def __post_init__(self) -> None:
        if self.rate_per_second < 0:
            raise ValueError("rate_per_second must be non-negative")

    @classmethod
    def from_annual_amount(
        cls,
        annual_amount: Decimal,
        *,
        decimals: int = DEFAULT_DECIMALS,
        start: datetime | None = None,
    ) -> LinearTimeFee:
        """Build from a yearly fee expressed in whole base-currency units."""
        rate = to_base_units(annual_amount, decimals) // SECONDS_PER_YEAR
        return cls(rate_per_second=rate, state=FeeState(last_accrual=start or _utc_now()))

    def accrue(self, elapsed_seconds: int, *, nav: int) -> int:
        if elapsed_seconds <= 0 or self.rate_per_second == 0:
            return self.state.carried
        return checked_add(self.state.carried, checked_mul(elapsed_seconds, self.rate_per_second))

    def on_flow(self, now: datetime, *, nav_before: int, nav_after: int, owed: int = 0) -> None:
        if nav_before == 0:
            self.state = replace(self.state, last_accrual=now, carried=owed)

    def crystallize(self, now: datetime, *, nav: int) -> int:
        fee = min(self.accrue(elapsed_seconds(self.state, now), nav=nav), nav)
        self.state = replace(self.state, last_accrual=now, carried=0)
        return fee


@dataclass
class PerformanceFee:
    """Performance fee above a high-water mark.

    ``fee = max(0, nav - high_water_mark) * rate``. Subscriptions raise the mark by
    the new capital and redemptions shrink it pro rata, so only investment gains are
    charged. The mark moves to the post-fee NAV when a positive fee is crystallized.
    """

    rate: Decimal
    state: FeeState = field(default_factory=lambda: FeeState(last_accrual=_utc_now()))

    def __post_init__(self) -> None:
        self.rate = Decimal(self.rate)
        if not (Decimal("0") <= self.rate < Decimal("1")):
            raise ValueError("performance fee rate must be in [0, 1)")
        self._rate_num, self._rate_den = self.rate.as_integer_ratio()

    @property
    def high_water_mark(self) -> int:
        return self.state.high_water_mark

    def accrue(self, elapsed_seconds: int, *, nav: int) -> int:
        gain = nav - self.state.high_water_mark
        if gain <= 0 or self._rate_num == 0:
            return 0
        return checked_mul(gain, self._rate_num) // self._rate_den

    def on_flow(self, now: datetime, *, nav_before: int, nav_after: int, owed: int = 0) -> None:
        # Nothing is owed when NAV is zero: the fee is below the gain, which is at most NAV.
        hwm = self.state.high_water_mark
        if nav_before == 0:
            hwm = nav_after
        elif nav_after >= nav_before:
            hwm = checked_add(hwm, nav_after - nav_before)
        else:
            hwm = checked_mul(hwm, nav_after) // nav_before
        self.state = replace(self.state, high_water_mark=hwm)

    def crystallize(self, now: datetime, *, nav: int) -> int:
        fee = min(self.accrue(elapsed_seconds(self.state, now), nav=nav), nav)
        if fee > 0:
            self.state = FeeState(last_accrual=now, high_water_mark=nav - fee)
        else:
            self.state = replace(self.state, last_accrual=now)
        return fee
