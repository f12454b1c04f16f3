"""All-or-nothing scope for mutating fund operations.

On any exception the registered compensations run in reverse order, then the
fund aggregate and the fee strategies are restored to their entry state.
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Callable, Optional, Sequence

from core.fees.model import FeeStrategy

from .state import Fund

logger = logging.getLogger(__name__)


class FundTransaction:
    def __init__(self, fund: Fund, fee_strategies: Sequence[FeeStrategy] = ()) -> None:
        self._fund = fund
        self._fee_strategies = list(fee_strategies)
        self._compensations: list[tuple[str, Callable[[], None]]] = []

    def __enter__(self) -> FundTransaction:
        self._checkpoint = self._fund.checkpoint()
        self._fee_states = [strategy.state for strategy in self._fee_strategies]
        return self

    def on_rollback(self, description: str, action: Callable[[], None]) -> None:
        """Register an undo step for an effect outside the fund aggregate."""
        self._compensations.append((description, action))

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> bool:
        if exc_type is None:
            return False

        for description, action in reversed(self._compensations):
            try:
                action()
            except Exception:
                # Keep undoing; the original error is re-raised below.
                logger.exception(f"Fund {self._fund.fund_id}: compensation failed: {description}")

        self._fund.restore(self._checkpoint)
        for strategy, state in zip(self._fee_strategies, self._fee_states):
            strategy.state = state

        logger.warning(f"Fund {self._fund.fund_id}: operation rolled back ({exc_type.__name__}: {exc})")
        return False
