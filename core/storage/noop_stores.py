from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Sequence

from core.persistence.interfaces import FundEventStore, FundStateStore
from core.types import FundStateRecord

if TYPE_CHECKING:
    from core.fund.events import FundEvent


class NoopFundStateStore(FundStateStore):
    def save_fund_state(self, *, record: FundStateRecord) -> None:
        raise NotImplementedError("NoopFundStateStore")

    def load_fund_state(self, *, fund_id: str) -> Optional[FundStateRecord]:
        raise NotImplementedError("NoopFundStateStore")


class NoopFundEventStore(FundEventStore):
    def log_fund_event(self, *, fund_id: str, event: FundEvent) -> None:
        raise NotImplementedError("NoopFundEventStore")

    def get_fund_events(
        self,
        *,
        fund_id: str,
        event_type: str | None = None,
        limit: int = 100,
    ) -> Sequence[dict]:
        raise NotImplementedError("NoopFundEventStore")
