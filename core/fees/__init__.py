"""Fee accrual strategies.

Management (time-linear) and performance (high-water mark) fees.
"""

from .model import (
    SECONDS_PER_YEAR,
    FeeStrategy,
    LinearTimeFee,
    NoFee,
    PerformanceFee,
    elapsed_seconds,
)

__all__ = [
    "SECONDS_PER_YEAR",
    "FeeStrategy",
    "LinearTimeFee",
    "NoFee",
    "PerformanceFee",
    "elapsed_seconds",
]
