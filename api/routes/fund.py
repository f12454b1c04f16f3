"""API routes for fund accounting.

Amounts cross the HTTP boundary as decimal strings in whole units and are
converted to base units with the fund's configured precision.
"""

from __future__ import annotations

import logging
import threading
from decimal import Decimal
from typing import Any, Literal, Optional

from fastapi import APIRouter, HTTPException, Path, Query
from pydantic import BaseModel, Field

from core.errors import (
    ArithmeticOverflow,
    ExternalTransferFailed,
    FundError,
    InsufficientBalance,
    InsufficientLiquidity,
    InsufficientPayment,
    InsufficientPayout,
    InvalidArgument,
    PrecisionMismatch,
    PriceFeedUnavailable,
    Unauthorized,
)
from core.fixed_point import from_base_units, to_base_units
from core.fund.manager import FundConfig, FundManager
from core.storage.postgres.config import PostgresConfig
from core.storage.postgres.stores import PostgresStores

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/fund", tags=["fund"])

_fund_manager: FundManager | None = None
_fund_manager_lock = threading.Lock()

ERROR_STATUS: dict[type[FundError], int] = {
    InvalidArgument: 400,
    ArithmeticOverflow: 400,
    Unauthorized: 403,
    InsufficientBalance: 409,
    InsufficientPayment: 409,
    InsufficientPayout: 409,
    InsufficientLiquidity: 409,
    ExternalTransferFailed: 502,
    PriceFeedUnavailable: 503,
    PrecisionMismatch: 500,
}


def _get_fund_manager() -> FundManager:
    """Get or initialize the fund manager singleton.

    Uses in-memory collaborators. When DATABASE_URL is set, fund state and
    events are persisted to PostgreSQL.
    """
    global _fund_manager
    with _fund_manager_lock:
        if _fund_manager is None:
            config = FundConfig.from_env()
            stores: PostgresStores | None = None
            if config.database_url:
                stores = PostgresStores(config=PostgresConfig(database_url=config.database_url))
                stores.ensure_schema()
            _fund_manager = FundManager.in_memory(config, state_store=stores, event_store=stores)
            logger.info(f"Fund manager initialized for fund {config.fund_id} (persistent={stores is not None})")
        return _fund_manager


def _error_to_http(exc: FundError) -> HTTPException:
    status_code = 400
    for error_type, code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            status_code = code
            break
    return HTTPException(status_code=status_code, detail={"error": exc.code, "message": exc.message})


def _units(manager: FundManager, amount: Decimal) -> int:
    try:
        return to_base_units(amount, manager.config.decimals)
    except (ValueError, ArithmeticError) as e:
        raise HTTPException(
            status_code=400,
            detail={"error": "validation_error", "message": str(e)},
        ) from e


def _amount(manager: FundManager, value: int) -> str:
    return str(from_base_units(value, manager.config.decimals))


class InvestRequest(BaseModel):
    investor: str = Field(..., min_length=1)
    payment: Decimal = Field(..., gt=0, description="Attached payment in whole base-currency units")
    shares: Decimal = Field(..., gt=0, description="Exact number of shares wanted")


class RedeemRequest(BaseModel):
    owner: str = Field(..., min_length=1)
    shares: Decimal = Field(..., gt=0)
    wanted_amount: Decimal = Field(..., gt=0, description="Minimum acceptable payout")


class RedeemInKindRequest(BaseModel):
    caller: str = Field(..., min_length=1)
    owner: str = Field(..., min_length=1)
    shares: Decimal = Field(..., gt=0)


class CrystallizeRequest(BaseModel):
    recipient: Optional[str] = Field(None, min_length=1)


@router.get("/summary")
async def get_summary() -> dict[str, Any]:
    """Get the fund summary from the last mark-to-market."""
    return _get_fund_manager().get_summary()


@router.get("/gav")
async def get_gav() -> dict[str, Any]:
    """Gross asset value (pure query)."""
    manager = _get_fund_manager()
    try:
        gav = manager.calc_gav()
    except FundError as e:
        raise _error_to_http(e) from e
    return {"gav": _amount(manager, gav)}


@router.get("/nav")
async def get_nav() -> dict[str, Any]:
    """Net asset value after accrued fees (pure query)."""
    manager = _get_fund_manager()
    try:
        breakdown = manager.calc_breakdown()
    except FundError as e:
        raise _error_to_http(e) from e
    return {
        "gav": _amount(manager, breakdown.gav),
        "nav": _amount(manager, breakdown.nav),
        "management_fee": _amount(manager, breakdown.fees.management),
        "performance_fee": _amount(manager, breakdown.fees.performance),
    }


@router.get("/share-price")
async def get_share_price() -> dict[str, Any]:
    """Mark the fund to market and return the share price."""
    manager = _get_fund_manager()
    try:
        price = manager.calc_share_price()
    except FundError as e:
        raise _error_to_http(e) from e
    return {"share_price": _amount(manager, price), "nav": _amount(manager, manager.fund.analytics.nav)}


@router.get("/balances/{owner}")
async def get_balance(owner: str = Path(..., description="Shareholder id")) -> dict[str, Any]:
    manager = _get_fund_manager()
    return {"owner": owner, "shares": _amount(manager, manager.balance_of(owner))}


@router.get("/events")
async def list_events(
    event_type: Optional[
        Literal["shares_issued", "shares_redeemed", "shares_redeemed_in_kind", "refunded", "fees_crystallized"]
    ] = Query(None, description="Filter by event type"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum number of events"),
) -> dict[str, Any]:
    """List recent fund events (oldest first).

    Served from PostgreSQL when DATABASE_URL is set, so history survives restarts.
    """
    events = _get_fund_manager().event_history(event_type=event_type, limit=limit)
    return {"events": events, "count": len(events)}


@router.post("/invest")
async def invest(request: InvestRequest) -> dict[str, Any]:
    """Buy an exact number of shares; the unspent payment is refunded."""
    manager = _get_fund_manager()
    payment = _units(manager, request.payment)
    shares = _units(manager, request.shares)

    try:
        result = manager.invest(request.investor, payment, shares)
    except FundError as e:
        raise _error_to_http(e) from e

    return {
        "success": True,
        "investor": result.investor,
        "shares": _amount(manager, result.shares),
        "price": _amount(manager, result.price),
        "cost": _amount(manager, result.cost),
        "refund": _amount(manager, result.refund),
    }


@router.post("/redeem")
async def redeem(request: RedeemRequest) -> dict[str, Any]:
    """Redeem shares for base currency at the current share price."""
    manager = _get_fund_manager()
    shares = _units(manager, request.shares)
    wanted = _units(manager, request.wanted_amount)

    try:
        result = manager.redeem(request.owner, shares, wanted)
    except FundError as e:
        raise _error_to_http(e) from e

    return {
        "success": True,
        "owner": result.owner,
        "shares": _amount(manager, result.shares),
        "price": _amount(manager, result.price),
        "payout": _amount(manager, result.payout),
    }


@router.post("/redeem-in-kind")
async def redeem_in_kind(request: RedeemInKindRequest) -> dict[str, Any]:
    """Redeem shares for a pro-rata slice of every custodied asset.

    Asset quantities are returned in raw quantity units.
    """
    manager = _get_fund_manager()
    shares = _units(manager, request.shares)

    try:
        result = manager.redeem_in_kind(request.caller, request.owner, shares)
    except FundError as e:
        raise _error_to_http(e) from e

    return {
        "success": True,
        "owner": result.owner,
        "shares": _amount(manager, result.shares),
        "assets": {asset: str(quantity) for asset, quantity in result.assets.items()},
    }


@router.post("/fees/crystallize")
async def crystallize_fees(request: CrystallizeRequest) -> dict[str, Any]:
    """Pay accrued fees out of custody."""
    manager = _get_fund_manager()
    try:
        fees = manager.crystallize_fees(request.recipient)
    except FundError as e:
        raise _error_to_http(e) from e

    return {
        "success": True,
        "recipient": request.recipient or manager.config.fee_recipient,
        "management_fee": _amount(manager, fees.management),
        "performance_fee": _amount(manager, fees.performance),
        "total": _amount(manager, fees.total),
    }
