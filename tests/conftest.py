"""Shared test fixtures for pytest.

Provides in-memory fund collaborators, a controllable clock and a mocked
database engine.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from core.fund.issuance import IssuanceEngine
from core.fund.manager import FundConfig, FundManager
from core.fund.memory import (
    InMemoryAssetRegistry,
    InMemoryCustody,
    InMemoryLedger,
    InMemoryPaymentGateway,
    OwnerOnlyAuthorizer,
    StaticPriceFeed,
)
from core.fund.redemption import RedemptionEngine
from core.fund.state import Fund
from core.fund.valuation import ValuationEngine

START = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fund() -> Fund:
    return Fund(fund_id="test")


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger()


@pytest.fixture
def registry() -> InMemoryAssetRegistry:
    return InMemoryAssetRegistry()


@pytest.fixture
def price_feed() -> StaticPriceFeed:
    return StaticPriceFeed()


@pytest.fixture
def custody() -> InMemoryCustody:
    return InMemoryCustody(base_asset="USD")


@pytest.fixture
def payments() -> InMemoryPaymentGateway:
    return InMemoryPaymentGateway()


@pytest.fixture
def authorizer() -> OwnerOnlyAuthorizer:
    return OwnerOnlyAuthorizer(operators={"operator"})


@pytest.fixture
def valuation(fund, registry, price_feed, custody, clock) -> ValuationEngine:
    return ValuationEngine(
        fund,
        registry=registry,
        price_feeds={"static": price_feed},
        custody=custody,
        clock=clock,
    )


@pytest.fixture
def issuance(valuation, ledger, custody, payments) -> IssuanceEngine:
    return IssuanceEngine(valuation, ledger=ledger, custody=custody, payments=payments)


@pytest.fixture
def redemption(valuation, ledger, custody, registry, authorizer) -> RedemptionEngine:
    return RedemptionEngine(
        valuation,
        ledger=ledger,
        custody=custody,
        registry=registry,
        authorizer=authorizer,
    )


@pytest.fixture
def manager(ledger, registry, price_feed, custody, payments, authorizer, clock) -> FundManager:
    return FundManager(
        FundConfig(fund_id="test"),
        ledger=ledger,
        registry=registry,
        price_feeds={"static": price_feed},
        custody=custody,
        payments=payments,
        authorizer=authorizer,
        clock=clock,
    )


@pytest.fixture
def mock_db_engine() -> Mock:
    """Mock SQLAlchemy engine for testing database operations."""
    mock_engine = Mock()
    mock_conn = Mock()
    mock_result = Mock()
    mock_result.rowcount = 1
    mock_result.fetchone.return_value = None
    mock_result.fetchall.return_value = []
    mock_conn.execute.return_value = mock_result
    mock_engine.begin.return_value.__enter__ = Mock(return_value=mock_conn)
    mock_engine.begin.return_value.__exit__ = Mock(return_value=False)
    return mock_engine
