"""Append-only history of every booking and maintenance event.

``append_event`` only adds the row to the caller's session. The caller commits
it together with the asset mutation it describes, so either both are stored
or neither is.
"""
from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Any, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from crud import utcnow
from models import HistoryEvent
from orm import HistoryEventORM

EVENT_TYPES = frozenset(
    {
        "loan_created",
        "loan_returned",
        "reservation_created",
        "reservation_cancelled",
        "reservation_fulfilled",
        "maintenance_started",
        "maintenance_ended",
        "asset_archived",
    }
)


def _event_to_schema(e: HistoryEventORM) -> HistoryEvent:
    return HistoryEvent(
        seq=e.seq,
        asset_id=e.asset_id,
        event_type=e.event_type,  # type: ignore
        record_id=e.record_id,
        holder_name=e.holder_name,
        start_date=e.start_date,
        end_date=e.end_date,
        actor=e.actor,
        occurred_at=e.occurred_at,
        snapshot=e.snapshot or {},
    )


def _jsonable(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def snapshot_of(row: Any, fields: Iterable[str]) -> dict[str, Any]:
    return {f: _jsonable(getattr(row, f)) for f in fields}


def append_event(
    db: Session,
    *,
    event_type: str,
    asset_id: str,
    actor: str,
    record_id: Optional[str] = None,
    holder_name: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    snapshot: Optional[dict[str, Any]] = None,
    occurred_at: Optional[datetime] = None,
) -> HistoryEventORM:
    if event_type not in EVENT_TYPES:
        raise ValueError(f"unknown history event type: {event_type}")

    e = HistoryEventORM(
        asset_id=asset_id,
        event_type=event_type,
        record_id=record_id,
        holder_name=holder_name,
        start_date=start_date,
        end_date=end_date,
        actor=actor,
        occurred_at=occurred_at or utcnow(),
        snapshot=snapshot or {},
    )
    db.add(e)
    return e


def _period_bounds(from_date: Optional[date], to_date: Optional[date]):
    lower = datetime.combine(from_date, time.min) if from_date else None
    # to_date is inclusive: everything before the following midnight
    upper = datetime.combine(to_date + timedelta(days=1), time.min) if to_date else None
    return lower, upper


def _query(
    db: Session,
    *,
    asset_id: Optional[str],
    from_date: Optional[date],
    to_date: Optional[date],
    event_types: Optional[Iterable[str]],
) -> list[HistoryEvent]:
    stmt = select(HistoryEventORM)
    if asset_id:
        stmt = stmt.where(HistoryEventORM.asset_id == asset_id)

    lower, upper = _period_bounds(from_date, to_date)
    if lower is not None:
        stmt = stmt.where(HistoryEventORM.occurred_at >= lower)
    if upper is not None:
        stmt = stmt.where(HistoryEventORM.occurred_at < upper)

    if event_types:
        stmt = stmt.where(HistoryEventORM.event_type.in_(list(event_types)))

    stmt = stmt.order_by(HistoryEventORM.occurred_at.asc(), HistoryEventORM.seq.asc())
    return [_event_to_schema(e) for e in db.execute(stmt).scalars().all()]


def query_by_asset(
    db: Session,
    asset_id: str,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
) -> list[HistoryEvent]:
    return _query(db, asset_id=asset_id, from_date=from_date, to_date=to_date, event_types=None)


def query_by_period(
    db: Session,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    event_types: Optional[Iterable[str]] = None,
) -> list[HistoryEvent]:
    return _query(db, asset_id=None, from_date=from_date, to_date=to_date, event_types=event_types)
