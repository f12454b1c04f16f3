from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Protocol, Sequence

from core.types import FundStateRecord

if TYPE_CHECKING:
    from core.fund.events import FundEvent


class FundStateStore(Protocol):
    def save_fund_state(self, *, record: FundStateRecord) -> None:
        """Insert or replace the persisted state of a fund, balances included."""

    def load_fund_state(self, *, fund_id: str) -> Optional[FundStateRecord]:
        """Fetch the latest persisted state of a fund (None when never saved)."""


class FundEventStore(Protocol):
    def log_fund_event(self, *, fund_id: str, event: FundEvent) -> None:
        """Append an event emitted by a committed fund operation."""

    def get_fund_events(
        self,
        *,
        fund_id: str,
        event_type: str | None = None,
        limit: int = 100,
    ) -> Sequence[dict]:
        """Fetch the most recent events of a fund as dicts (oldest first)."""
