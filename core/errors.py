"""Fund engine error hierarchy.

Every failure of a mutating fund operation surfaces as a FundError subclass
after the operation has been rolled back.
"""

from __future__ import annotations


class FundError(Exception):
    """Base exception for fund engine errors."""

    code = "fund_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidArgument(FundError, ValueError):
    """Zero or negative amounts, or an order below one base unit."""

    code = "invalid_argument"


class InsufficientBalance(FundError):
    """Owner tried to redeem more shares than held."""

    code = "insufficient_balance"


class InsufficientPayment(FundError):
    """Attached payment does not cover the cost of the requested shares."""

    code = "insufficient_payment"


class InsufficientPayout(FundError):
    """Redemption value is below the amount the owner asked for."""

    code = "insufficient_payout"


class InsufficientLiquidity(FundError):
    """Custody cannot cover a cash payout."""

    code = "insufficient_liquidity"


class ArithmeticOverflow(FundError, ArithmeticError):
    """Checked arithmetic left the [0, MAX_AMOUNT] range."""

    code = "arithmetic_overflow"


class ExternalTransferFailed(FundError):
    """A payment, refund or custody transfer did not succeed."""

    code = "external_transfer_failed"


class PrecisionMismatch(FundError):
    """Holding and price quote disagree on precision (configuration fault)."""

    code = "precision_mismatch"


class PriceFeedUnavailable(FundError):
    """No price feed could be resolved for a registered asset."""

    code = "price_feed_unavailable"


class Unauthorized(FundError):
    """Caller is not allowed to act for the given owner."""

    code = "unauthorized"
