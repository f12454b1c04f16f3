"""Fund manager - central coordinator.

Wires the valuation, issuance and redemption engines to their collaborators,
serializes every operation and publishes events after commit.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Mapping, Optional

from core.errors import ExternalTransferFailed, InsufficientLiquidity
from core.fees.model import FeeStrategy, LinearTimeFee, NoFee, PerformanceFee
from core.fixed_point import DEFAULT_DECIMALS, base_unit, from_base_units
from core.persistence.interfaces import FundEventStore, FundStateStore
from core.types import FeeBreakdown, FeeState, NavBreakdown

from .events import EventLog, EventType, FeesCrystallized, FundEvent
from .interfaces import AssetRegistry, Authorizer, CustodyAdapter, Ledger, PaymentGateway, PriceFeed
from .issuance import IssuanceEngine, IssuanceResult
from .memory import (
    InMemoryAssetRegistry,
    InMemoryCustody,
    InMemoryLedger,
    InMemoryPaymentGateway,
    OwnerOnlyAuthorizer,
    StaticPriceFeed,
)
from .redemption import InKindRedemptionResult, RedemptionEngine, RedemptionResult
from .state import Fund
from .transaction import FundTransaction
from .valuation import Clock, ValuationEngine, utc_now

logger = logging.getLogger(__name__)


@dataclass
class FundConfig:
    """Fund configuration."""

    fund_id: str = "default"
    base_asset: str = "USD"
    decimals: int = DEFAULT_DECIMALS
    management_fee_annual: Decimal = Decimal("0")  # whole base-currency units per year
    performance_fee_rate: Decimal = Decimal("0")  # e.g. 0.20 = 20% of gains
    fee_recipient: str = "manager"
    operators: set[str] = field(default_factory=set)
    database_url: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> FundConfig:
        """Build from FUND_* environment variables and DATABASE_URL."""
        env = os.environ if environ is None else environ
        operators = {op.strip() for op in env.get("FUND_OPERATORS", "").split(",") if op.strip()}
        return cls(
            fund_id=env.get("FUND_ID", "default"),
            base_asset=env.get("FUND_BASE_ASSET", "USD"),
            decimals=int(env.get("FUND_DECIMALS", str(DEFAULT_DECIMALS))),
            management_fee_annual=Decimal(env.get("FUND_MANAGEMENT_FEE_ANNUAL", "0")),
            performance_fee_rate=Decimal(env.get("FUND_PERFORMANCE_FEE_RATE", "0")),
            fee_recipient=env.get("FUND_FEE_RECIPIENT", "manager"),
            operators=operators,
            database_url=env.get("DATABASE_URL") or None,
        )

    @property
    def base_unit(self) -> int:
        return base_unit(self.decimals)

    def build_fee_strategies(
        self,
        start: datetime,
        *,
        management_state: Optional[FeeState] = None,
        performance_state: Optional[FeeState] = None,
    ) -> tuple[FeeStrategy, FeeStrategy]:
        """Build the configured fee strategies, resuming from saved states when given."""
        management_state = management_state or FeeState(last_accrual=start)
        performance_state = performance_state or FeeState(last_accrual=start)

        management: FeeStrategy = NoFee(state=management_state)
        if self.management_fee_annual > 0:
            fee = LinearTimeFee.from_annual_amount(self.management_fee_annual, decimals=self.decimals)
            management = LinearTimeFee(rate_per_second=fee.rate_per_second, state=management_state)
        performance: FeeStrategy = NoFee(state=performance_state)
        if self.performance_fee_rate > 0:
            performance = PerformanceFee(rate=self.performance_fee_rate, state=performance_state)
        return management, performance


class FundManager:
    """Single entrypoint for one fund.

    Thread-safety: every public method holds the same re-entrant lock, so
    mutating operations are fully serialized and queries never observe a
    half-applied operation.
    """

    def __init__(
        self,
        config: Optional[FundConfig] = None,
        *,
        ledger: Ledger,
        registry: AssetRegistry,
        price_feeds: Mapping[str, PriceFeed],
        custody: CustodyAdapter,
        payments: PaymentGateway,
        authorizer: Authorizer,
        management_fee: Optional[FeeStrategy] = None,
        performance_fee: Optional[FeeStrategy] = None,
        fund: Optional[Fund] = None,
        state_store: Optional[FundStateStore] = None,
        event_store: Optional[FundEventStore] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._config = config or FundConfig()
        self._clock = clock or utc_now
        self._fund = fund or Fund(fund_id=self._config.fund_id, base_unit=self._config.base_unit)
        self._ledger = ledger
        self._custody = custody
        self._state_store = state_store
        self._event_store = event_store
        self._lock = threading.RLock()
        self._events = EventLog()
        self._owners: set[str] = set()

        if management_fee is None or performance_fee is None:
            default_management, default_performance = self._config.build_fee_strategies(self._clock())
            management_fee = management_fee or default_management
            performance_fee = performance_fee or default_performance

        self._valuation = ValuationEngine(
            self._fund,
            registry=registry,
            price_feeds=price_feeds,
            custody=custody,
            management_fee=management_fee,
            performance_fee=performance_fee,
            clock=self._clock,
        )
        self._issuance = IssuanceEngine(self._valuation, ledger=ledger, custody=custody, payments=payments)
        self._redemption = RedemptionEngine(
            self._valuation,
            ledger=ledger,
            custody=custody,
            registry=registry,
            authorizer=authorizer,
        )

    @classmethod
    def in_memory(
        cls,
        config: Optional[FundConfig] = None,
        *,
        state_store: Optional[FundStateStore] = None,
        event_store: Optional[FundEventStore] = None,
        clock: Optional[Clock] = None,
    ) -> FundManager:
        """Build a fund backed by the in-memory collaborators.

        When a state store holds a record for the fund, totals, analytics,
        balances and fee states are restored from it.
        """
        config = config or FundConfig()
        clock = clock or utc_now
        record = state_store.load_fund_state(fund_id=config.fund_id) if state_store else None
        management_fee, performance_fee = config.build_fee_strategies(
            clock(),
            management_state=record.management_fee if record else None,
            performance_state=record.performance_fee if record else None,
        )

        ledger = InMemoryLedger(initial_balances=record.balances if record else None)
        fund = Fund.from_record(record, base_unit=config.base_unit) if record else None
        price_feed = StaticPriceFeed()
        manager = cls(
            config,
            ledger=ledger,
            registry=InMemoryAssetRegistry(),
            price_feeds={"static": price_feed},
            custody=InMemoryCustody(base_asset=config.base_asset, base_precision=config.decimals),
            payments=InMemoryPaymentGateway(),
            authorizer=OwnerOnlyAuthorizer(operators=set(config.operators)),
            management_fee=management_fee,
            performance_fee=performance_fee,
            fund=fund,
            state_store=state_store,
            event_store=event_store,
            clock=clock,
        )
        if record:
            manager._owners.update(record.balances)
            logger.info(f"Fund {config.fund_id}: restored state with {record.total_shares} shares outstanding")
        return manager

    # ========== Properties ==========

    @property
    def config(self) -> FundConfig:
        return self._config

    @property
    def fund(self) -> Fund:
        return self._fund

    @property
    def valuation(self) -> ValuationEngine:
        return self._valuation

    @property
    def custody(self) -> CustodyAdapter:
        return self._custody

    @property
    def event_log(self) -> EventLog:
        return self._events

    @property
    def state_store(self) -> Optional[FundStateStore]:
        return self._state_store

    # ========== Mutating Operations ==========

    def invest(self, investor: str, payment: int, wanted_shares: int) -> IssuanceResult:
        """Issue exactly ``wanted_shares`` against ``payment`` (see IssuanceEngine.invest)."""
        with self._lock:
            try:
                result = self._issuance.invest(investor, payment, wanted_shares)
            except Exception as e:
                logger.warning(f"Fund {self._fund.fund_id}: invest by {investor} rejected: {e}")
                raise
            self._owners.add(investor)
            self._commit(list(result.events))
            return result

    def redeem(self, owner: str, offered_shares: int, wanted_amount: int) -> RedemptionResult:
        """Redeem shares for cash (see RedemptionEngine.redeem)."""
        with self._lock:
            try:
                result = self._redemption.redeem(owner, offered_shares, wanted_amount)
            except Exception as e:
                logger.warning(f"Fund {self._fund.fund_id}: redeem by {owner} rejected: {e}")
                raise
            self._commit(list(result.events))
            return result

    def redeem_in_kind(self, caller: str, owner: str, num_shares: int) -> InKindRedemptionResult:
        """Redeem shares for a pro-rata slice of every asset (see RedemptionEngine.redeem_in_kind)."""
        with self._lock:
            try:
                result = self._redemption.redeem_in_kind(caller, owner, num_shares)
            except Exception as e:
                logger.warning(f"Fund {self._fund.fund_id}: in-kind redeem for {owner} rejected: {e}")
                raise
            self._commit(list(result.events))
            return result

    def crystallize_fees(self, recipient: Optional[str] = None) -> FeeBreakdown:
        """Pay accrued fees out of custody and reset the strategies.

        NAV is unchanged: GAV and the accrued liability fall by the same amount.

        Raises:
            InsufficientLiquidity: If custody cannot cover the fees
            ExternalTransferFailed: If the fee transfer fails
        """
        recipient = recipient or self._config.fee_recipient
        with self._lock:
            with FundTransaction(self._fund, self._valuation.fee_strategies):
                now = self._clock()
                gav = self._valuation.calc_gav()
                management = self._valuation.management_fee.crystallize(now, nav=gav)
                performance = self._valuation.performance_fee.crystallize(now, nav=gav - management)
                fees = FeeBreakdown(management=management, performance=performance)

                if fees.total > 0:
                    available = self._custody.available()
                    if fees.total > available:
                        raise InsufficientLiquidity(f"Fees {fees.total} exceed custody balance {available}")
                    if not self._custody.transfer_out(recipient, fees.total):
                        raise ExternalTransferFailed(f"Fee transfer of {fees.total} to {recipient} failed")

            logger.info(
                f"Fund {self._fund.fund_id}: crystallized fees management={management} performance={performance}"
            )
            self._commit(
                [FeesCrystallized(recipient=recipient, management=management, performance=performance)]
            )
            return fees

    # ========== Queries ==========

    def calc_gav(self) -> int:
        with self._lock:
            return self._valuation.calc_gav()

    def calc_nav(self) -> int:
        with self._lock:
            return self._valuation.calc_nav()

    def calc_fees(self) -> FeeBreakdown:
        with self._lock:
            return self._valuation.calc_breakdown().fees

    def calc_breakdown(self) -> NavBreakdown:
        """GAV, accrued fees and NAV from one consistent view."""
        with self._lock:
            return self._valuation.calc_breakdown()

    def calc_share_price(self) -> int:
        """Mark to market and return the share price (replaces the analytics snapshot)."""
        with self._lock:
            price = self._valuation.calc_share_price()
            self._commit([])
            return price

    def balance_of(self, owner: str) -> int:
        with self._lock:
            return self._ledger.balance_of(owner)

    def balances(self) -> dict[str, int]:
        """Non-zero balances of every owner this manager has seen."""
        with self._lock:
            result = {owner: self._ledger.balance_of(owner) for owner in sorted(self._owners)}
            return {owner: amount for owner, amount in result.items() if amount > 0}

    def events(self, event_type: Optional[EventType] = None, limit: Optional[int] = None) -> list[FundEvent]:
        with self._lock:
            return self._events.get_events(event_type=event_type, limit=limit)

    def event_history(self, event_type: Optional[EventType] = None, limit: int = 100) -> list[dict[str, Any]]:
        """Serialized events, oldest first.

        Read from the event store when one is configured, so events survive a
        restart; otherwise from the in-memory log.
        """
        with self._lock:
            if self._event_store is not None:
                return list(
                    self._event_store.get_fund_events(fund_id=self._fund.fund_id, event_type=event_type, limit=limit)
                )
            return [event.to_dict() for event in self._events.get_events(event_type=event_type, limit=limit)]

    def subscribe(self, listener: Callable[[FundEvent], None]) -> None:
        with self._lock:
            self._events.subscribe(listener)

    def is_consistent(self) -> bool:
        """True when the ledger's total supply matches the fund's share total."""
        with self._lock:
            return self._ledger.total_supply() == self._fund.total_shares

    # ========== Persistence ==========

    def persist(self) -> None:
        """Write the current fund state to the configured state store."""
        with self._lock:
            if self._state_store is None:
                return
            record = self._fund.to_record(
                self.balances(),
                management_fee=self._valuation.management_fee.state,
                performance_fee=self._valuation.performance_fee.state,
            )
            self._state_store.save_fund_state(record=record)

    def _commit(self, events: list[FundEvent]) -> None:
        self._events.publish(events)
        if self._event_store is not None:
            for event in events:
                self._event_store.log_fund_event(fund_id=self._fund.fund_id, event=event)
        self.persist()

    # ========== Summary ==========

    def get_summary(self) -> dict[str, Any]:
        """Get fund summary with amounts as decimal strings."""
        decimals = self._config.decimals
        with self._lock:
            fund = self._fund
            return {
                "fund_id": fund.fund_id,
                "base_asset": self._config.base_asset,
                "total_shares": str(from_base_units(fund.total_shares, decimals)),
                "share_price": str(from_base_units(fund.share_price, decimals)),
                "nav": str(from_base_units(fund.analytics.nav, decimals)),
                "delta": str(from_base_units(fund.analytics.delta, decimals)),
                "snapshot_at": fund.analytics.timestamp.isoformat() if fund.analytics.timestamp else None,
                "sum_invested": str(from_base_units(fund.sum_invested, decimals)),
                "sum_withdrawn": str(from_base_units(fund.sum_withdrawn, decimals)),
                "custody_available": str(from_base_units(self._custody.available(), decimals)),
                "holders": len(self.balances()),
            }
