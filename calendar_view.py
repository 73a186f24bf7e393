"""Read-only calendar projection over loan records and active reservations."""
from __future__ import annotations

import calendar
from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from errors import ValidationError
from models import CalendarEvent, DayBucket, MonthView
from orm import AssetORM, LoanORM, ReservationORM


def month_bounds(year: int, month: int) -> tuple[date, date]:
    if not 1 <= month <= 12:
        raise ValidationError(f"month must be between 1 and 12, got {month}")
    if not 1 <= year <= 9999:
        raise ValidationError(f"year out of range: {year}")
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def _loan_event(loan: LoanORM, asset_name: Optional[str], month_end: date) -> CalendarEvent:
    if loan.actual_return_date is not None:
        kind = "completed"
        # returned before it started: shown on its start day only
        effective_end = max(loan.actual_return_date.date(), loan.start_date)
    else:
        # an open loan is drawn up to the end of the displayed month
        kind = "active"
        effective_end = month_end
    return CalendarEvent(
        kind=kind,
        record_type="loan",
        record_id=loan.id,
        asset_id=loan.asset_id,
        asset_name=asset_name or loan.asset_name_snapshot,
        holder_name=loan.holder_name,
        start_date=loan.start_date,
        effective_end=effective_end,
        actual_return_date=loan.actual_return_date,
    )


def _reservation_event(r: ReservationORM, asset_name: Optional[str]) -> CalendarEvent:
    return CalendarEvent(
        kind="reserved",
        record_type="reservation",
        record_id=r.id,
        asset_id=r.asset_id,
        asset_name=asset_name,
        holder_name=r.holder_name,
        start_date=r.start_date,
        effective_end=r.end_date,
    )


def _events_between(db: Session, first: date, last: date, month_end: date) -> list[CalendarEvent]:
    """Every loan and reservation whose window touches ``[first, last]``."""
    first_midnight = datetime.combine(first, time.min)

    loan_rows = db.execute(
        select(LoanORM, AssetORM.name)
        .join(AssetORM, AssetORM.id == LoanORM.asset_id, isouter=True)
        .where(
            LoanORM.start_date <= last,
            or_(
                LoanORM.actual_return_date.is_(None),
                LoanORM.actual_return_date >= first_midnight,
                LoanORM.start_date >= first,
            ),
        )
        .order_by(LoanORM.start_date.asc(), LoanORM.created_at.asc())
    ).all()

    reservation_rows = db.execute(
        select(ReservationORM, AssetORM.name)
        .join(AssetORM, AssetORM.id == ReservationORM.asset_id, isouter=True)
        .where(ReservationORM.start_date <= last, ReservationORM.end_date >= first)
        .order_by(ReservationORM.start_date.asc(), ReservationORM.created_at.asc())
    ).all()

    events = [_loan_event(loan, name, month_end) for loan, name in loan_rows]
    events.extend(_reservation_event(r, name) for r, name in reservation_rows)
    return events


def is_active_on(event: CalendarEvent, day: date) -> bool:
    return event.start_date <= day <= event.effective_end


def get_month_view(db: Session, year: int, month: int) -> MonthView:
    first, last = month_bounds(year, month)
    events = _events_between(db, first, last, last)

    days = []
    day = first
    while day <= last:
        days.append(DayBucket(day=day, events=[e for e in events if is_active_on(e, day)]))
        day += timedelta(days=1)

    return MonthView(year=year, month=month, days=days)


def get_day_detail(db: Session, day: date) -> list[CalendarEvent]:
    _, month_end = month_bounds(day.year, day.month)
    return [e for e in _events_between(db, day, day, month_end) if is_active_on(e, day)]
