"""Fund events.

Engines return the events of an operation; the manager publishes them to the
event log only after the operation has committed.

All timestamps use timezone-aware UTC datetimes.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Literal, Mapping, Optional

EventType = Literal[
    "shares_issued",
    "shares_redeemed",
    "shares_redeemed_in_kind",
    "refunded",
    "fees_crystallized",
]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class FundEvent:
    """Base class for events emitted by fund operations."""

    event_type: EventType = field(init=False)
    timestamp: datetime = field(default_factory=_utc_now, kw_only=True)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        result = asdict(self)
        result["timestamp"] = self.timestamp.isoformat()
        return result


@dataclass(frozen=True)
class SharesIssued(FundEvent):
    investor: str
    shares: int
    price: int
    event_type: EventType = field(default="shares_issued", init=False)


@dataclass(frozen=True)
class SharesRedeemed(FundEvent):
    owner: str
    shares: int
    price: int
    event_type: EventType = field(default="shares_redeemed", init=False)


@dataclass(frozen=True)
class SharesRedeemedInKind(FundEvent):
    owner: str
    shares: int
    assets: Mapping[str, int]
    event_type: EventType = field(default="shares_redeemed_in_kind", init=False)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["assets"] = dict(self.assets)
        return result


@dataclass(frozen=True)
class Refunded(FundEvent):
    to: str
    amount: int
    event_type: EventType = field(default="refunded", init=False)


@dataclass(frozen=True)
class FeesCrystallized(FundEvent):
    recipient: str
    management: int
    performance: int
    event_type: EventType = field(default="fees_crystallized", init=False)


EventListener = Callable[[FundEvent], None]


class EventLog:
    """In-memory event log with optional listeners.

    Thread-safety: relies on the caller (FundManager) serializing writes.
    """

    def __init__(self, max_events: int = 10000) -> None:
        self._events: list[FundEvent] = []
        self._max_events = max_events
        self._listeners: list[EventListener] = []

    def subscribe(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def publish(self, events: list[FundEvent]) -> None:
        """Record events and forward them to listeners in order."""
        for event in events:
            self._events.append(event)
            for listener in self._listeners:
                listener(event)

        if len(self._events) > self._max_events:
            self._events = self._events[-self._max_events :]

    def get_events(
        self,
        event_type: Optional[EventType] = None,
        limit: Optional[int] = None,
    ) -> list[FundEvent]:
        result = self._events
        if event_type:
            result = [e for e in result if e.event_type == event_type]
        if limit is not None:
            result = result[-limit:]
        return list(result)

    def __len__(self) -> int:
        return len(self._events)
