"""Interval conflict checks for loans and reservations.

Every booking window is a whole-day, inclusive ``[start, end]`` range. An
unreturned loan has no end: it blocks every date from its start onwards.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from errors import InvalidRangeError
from models import BlockingRecord
from orm import LoanORM, ReservationORM

logger = logging.getLogger("app.conflicts")

Conflict = BlockingRecord


def as_day(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def validate_range(start_date: date | datetime, end_date: date | datetime) -> tuple[date, date]:
    start, end = as_day(start_date), as_day(end_date)
    if start > end:
        raise InvalidRangeError(f"start_date {start} is after end_date {end}")
    return start, end


def windows_overlap(a_start: date, a_end: Optional[date], b_start: date, b_end: Optional[date]) -> bool:
    """True when two inclusive-day windows share at least one day. ``None`` ends are open."""
    a_before_b_end = b_end is None or a_start <= b_end
    b_before_a_end = a_end is None or b_start <= a_end
    return a_before_b_end and b_before_a_end


def _active_loan_conflict(
    db: Session, asset_id: str, end: date, excluding_record_id: Optional[str]
) -> Optional[Conflict]:
    # open-ended window [loan.start, inf) overlaps [start, end] iff loan.start <= end
    stmt = (
        select(LoanORM)
        .where(
            LoanORM.asset_id == asset_id,
            LoanORM.actual_return_date.is_(None),
            LoanORM.start_date <= end,
        )
        .order_by(LoanORM.start_date.asc())
        .execution_options(populate_existing=True)
    )
    if excluding_record_id:
        stmt = stmt.where(LoanORM.id != excluding_record_id)
    loan = db.execute(stmt.limit(1)).scalars().first()
    if loan is None:
        return None
    return Conflict(
        kind="loan",
        record_id=loan.id,
        holder_name=loan.holder_name,
        start_date=loan.start_date,
        end_date=None,
    )


def _reservation_conflict(
    db: Session, asset_id: str, start: date, end: date, excluding_record_id: Optional[str]
) -> Optional[Conflict]:
    stmt = (
        select(ReservationORM)
        .where(
            ReservationORM.asset_id == asset_id,
            ReservationORM.start_date <= end,
            ReservationORM.end_date >= start,
        )
        .order_by(ReservationORM.start_date.asc(), ReservationORM.created_at.asc())
        .execution_options(populate_existing=True)
    )
    if excluding_record_id:
        stmt = stmt.where(ReservationORM.id != excluding_record_id)
    reservation = db.execute(stmt.limit(1)).scalars().first()
    if reservation is None:
        return None
    return Conflict(
        kind="reservation",
        record_id=reservation.id,
        holder_name=reservation.holder_name,
        start_date=reservation.start_date,
        end_date=reservation.end_date,
    )


def check_conflict(
    db: Session,
    asset_id: str,
    start_date: date | datetime,
    end_date: date | datetime,
    excluding_record_id: Optional[str] = None,
) -> Optional[Conflict]:
    """Return the first booking on ``asset_id`` that overlaps ``[start_date, end_date]``.

    The active loan is checked before reservations, and reservations are
    checked in ``start_date`` order, so the result is stable for a given
    state. ``excluding_record_id`` ignores one loan or reservation, which lets
    an operation re-check a window against everything but its own record.

    Raises InvalidRangeError when ``start_date > end_date``. Never writes.
    """
    start, end = validate_range(start_date, end_date)

    conflict = _active_loan_conflict(db, asset_id, end, excluding_record_id)
    if conflict is None:
        conflict = _reservation_conflict(db, asset_id, start, end, excluding_record_id)

    if conflict is not None:
        logger.info(
            "conflict asset_id=%s window=%s..%s blocking_kind=%s blocking_id=%s",
            asset_id,
            start,
            end,
            conflict.kind,
            conflict.record_id,
        )
    return conflict
