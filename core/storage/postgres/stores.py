from __future__ import annotations

import json
from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional, Sequence

from core.persistence.interfaces import FundEventStore, FundStateStore
from core.storage.postgres.config import PostgresConfig
from core.types import FeeState, FundStateRecord

if TYPE_CHECKING:
    from core.fund.events import FundEvent

SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS fund_state (
        fund_id TEXT PRIMARY KEY,
        total_shares NUMERIC(78, 0) NOT NULL,
        sum_invested NUMERIC(78, 0) NOT NULL,
        sum_withdrawn NUMERIC(78, 0) NOT NULL,
        share_price NUMERIC(78, 0) NOT NULL,
        nav NUMERIC(78, 0) NOT NULL,
        delta NUMERIC(78, 0) NOT NULL,
        snapshot_at TIMESTAMPTZ,
        management_fee_state JSONB,
        performance_fee_state JSONB,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS fund_balances (
        fund_id TEXT NOT NULL REFERENCES fund_state (fund_id) ON DELETE CASCADE,
        owner TEXT NOT NULL,
        shares NUMERIC(78, 0) NOT NULL,
        PRIMARY KEY (fund_id, owner)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS fund_events (
        id BIGSERIAL PRIMARY KEY,
        fund_id TEXT NOT NULL,
        event_type TEXT NOT NULL,
        event_time TIMESTAMPTZ NOT NULL,
        payload JSONB NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_fund_events_fund_time ON fund_events (fund_id, event_time)",
)


def _fee_state_to_json(state: Optional[FeeState]) -> Optional[str]:
    if state is None:
        return None
    # 256-bit amounts are stored as strings.
    return json.dumps(
        {
            "last_accrual": state.last_accrual.isoformat(),
            "high_water_mark": str(state.high_water_mark),
            "carried": str(state.carried),
        }
    )


def _fee_state_from_json(value: Any) -> Optional[FeeState]:
    if value is None:
        return None
    data = value if isinstance(value, dict) else json.loads(value)
    return FeeState(
        last_accrual=datetime.fromisoformat(data["last_accrual"]),
        high_water_mark=int(data.get("high_water_mark", 0)),
        carried=int(data.get("carried", 0)),
    )


class PostgresStores(FundStateStore, FundEventStore):
    """Single entrypoint for a PostgreSQL-backed persistence layer.

    Fund state and balances are written in one transaction, so a reader never
    sees totals that disagree with the balances.
    """

    def __init__(self, *, config: PostgresConfig) -> None:
        self._config = config
        self._engine: Any | None = None

    def _require_sqlalchemy(self) -> tuple[Any, Any]:
        try:
            from sqlalchemy import create_engine, text  # type: ignore[import-not-found]
        except Exception as exc:  # pragma: no cover
            raise RuntimeError(
                "SQLAlchemy is required for PostgresStores. Install the package dependencies."
            ) from exc

        return create_engine, text

    def _get_engine(self) -> Any:
        if self._engine is None:
            create_engine, _ = self._require_sqlalchemy()
            # Do not log the URL (it may contain secrets).
            self._engine = create_engine(self._config.database_url, echo=False, pool_pre_ping=True)
        return self._engine

    def ensure_schema(self) -> None:
        """Create the fund tables if they do not exist."""
        engine = self._get_engine()
        _, text = self._require_sqlalchemy()

        with engine.begin() as conn:
            for statement in SCHEMA_STATEMENTS:
                conn.execute(text(statement))

    # ---- FundStateStore

    def save_fund_state(self, *, record: FundStateRecord) -> None:
        engine = self._get_engine()
        _, text = self._require_sqlalchemy()

        upsert = text(
            """
            INSERT INTO fund_state (
                fund_id, total_shares, sum_invested, sum_withdrawn,
                share_price, nav, delta, snapshot_at,
                management_fee_state, performance_fee_state, updated_at
            )
            VALUES (
                :fund_id, :total_shares, :sum_invested, :sum_withdrawn,
                :share_price, :nav, :delta, :snapshot_at,
                CAST(:management_fee_state AS JSONB), CAST(:performance_fee_state AS JSONB),
                COALESCE(:updated_at, NOW())
            )
            ON CONFLICT (fund_id) DO UPDATE SET
                total_shares = EXCLUDED.total_shares,
                sum_invested = EXCLUDED.sum_invested,
                sum_withdrawn = EXCLUDED.sum_withdrawn,
                share_price = EXCLUDED.share_price,
                nav = EXCLUDED.nav,
                delta = EXCLUDED.delta,
                snapshot_at = EXCLUDED.snapshot_at,
                management_fee_state = EXCLUDED.management_fee_state,
                performance_fee_state = EXCLUDED.performance_fee_state,
                updated_at = EXCLUDED.updated_at
            """
        )
        clear_balances = text("DELETE FROM fund_balances WHERE fund_id = :fund_id")
        insert_balance = text(
            """
            INSERT INTO fund_balances (fund_id, owner, shares)
            VALUES (:fund_id, :owner, :shares)
            """
        )

        with engine.begin() as conn:
            conn.execute(
                upsert,
                {
                    "fund_id": record.fund_id,
                    "total_shares": record.total_shares,
                    "sum_invested": record.sum_invested,
                    "sum_withdrawn": record.sum_withdrawn,
                    "share_price": record.share_price,
                    "nav": record.nav,
                    "delta": record.delta,
                    "snapshot_at": record.snapshot_at,
                    "management_fee_state": _fee_state_to_json(record.management_fee),
                    "performance_fee_state": _fee_state_to_json(record.performance_fee),
                    "updated_at": record.updated_at,
                },
            )
            conn.execute(clear_balances, {"fund_id": record.fund_id})
            rows = [
                {"fund_id": record.fund_id, "owner": owner, "shares": shares}
                for owner, shares in sorted(record.balances.items())
                if shares > 0
            ]
            if rows:
                conn.execute(insert_balance, rows)

    def load_fund_state(self, *, fund_id: str) -> Optional[FundStateRecord]:
        engine = self._get_engine()
        _, text = self._require_sqlalchemy()

        state_stmt = text(
            """
            SELECT total_shares, sum_invested, sum_withdrawn,
                   share_price, nav, delta, snapshot_at, updated_at,
                   management_fee_state, performance_fee_state
            FROM fund_state
            WHERE fund_id = :fund_id
            """
        )
        balances_stmt = text(
            """
            SELECT owner, shares
            FROM fund_balances
            WHERE fund_id = :fund_id
            ORDER BY owner
            """
        )

        with engine.begin() as conn:
            row = conn.execute(state_stmt, {"fund_id": fund_id}).fetchone()
            if row is None:
                return None
            balance_rows = conn.execute(balances_stmt, {"fund_id": fund_id}).fetchall()

        # NUMERIC columns come back as Decimal.
        return FundStateRecord(
            fund_id=fund_id,
            total_shares=int(row[0]),
            sum_invested=int(row[1]),
            sum_withdrawn=int(row[2]),
            share_price=int(row[3]),
            nav=int(row[4]),
            delta=int(row[5]),
            snapshot_at=row[6],
            balances={str(owner): int(shares) for owner, shares in balance_rows},
            updated_at=row[7],
            management_fee=_fee_state_from_json(row[8]),
            performance_fee=_fee_state_from_json(row[9]),
        )

    # ---- FundEventStore

    def log_fund_event(self, *, fund_id: str, event: FundEvent) -> None:
        engine = self._get_engine()
        _, text = self._require_sqlalchemy()

        stmt = text(
            """
            INSERT INTO fund_events (fund_id, event_type, event_time, payload)
            VALUES (:fund_id, :event_type, :event_time, CAST(:payload AS JSONB))
            """
        )

        with engine.begin() as conn:
            conn.execute(
                stmt,
                {
                    "fund_id": fund_id,
                    "event_type": event.event_type,
                    "event_time": event.timestamp,
                    "payload": json.dumps(event.to_dict()),
                },
            )

    def get_fund_events(
        self,
        *,
        fund_id: str,
        event_type: str | None = None,
        limit: int = 100,
    ) -> Sequence[dict]:
        engine = self._get_engine()
        _, text = self._require_sqlalchemy()

        conditions = ["fund_id = :fund_id"]
        params: dict[str, object] = {"fund_id": fund_id, "limit": limit}
        if event_type is not None:
            conditions.append("event_type = :event_type")
            params["event_type"] = event_type

        stmt = text(
            f"""
            SELECT payload
            FROM fund_events
            WHERE {" AND ".join(conditions)}
            ORDER BY id DESC
            LIMIT :limit
            """
        )

        with engine.begin() as conn:
            rows = conn.execute(stmt, params).fetchall()

        events: list[dict] = []
        for (payload,) in reversed(rows):
            events.append(payload if isinstance(payload, dict) else json.loads(payload))
        return events
