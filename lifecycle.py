"""Asset lifecycle and booking operations.

This module is the only writer of ``AssetORM.status``. Each booking operation
runs its read-check-write sequence under the asset's lock (see locks.py) and
stores the asset mutation together with its history event in one commit.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

import config
import crud
import ledger
from conflicts import check_conflict, validate_range
from crud import new_id, persist, utcnow
from errors import (
    AlreadyReturnedError,
    AssetUnavailableError,
    ConflictError,
    IllegalTransitionError,
    InvalidRangeError,
    StateError,
    ValidationError,
)
from locks import asset_lock
from models import Asset, BlockingRecord, Loan, Reservation
from orm import AssetORM, LoanORM, ReservationORM

logger = logging.getLogger("app.lifecycle")


class AssetStatus(str, Enum):
    AVAILABLE = "available"
    LOANED = "loaned"
    RESERVED_PENDING = "reserved_pending"
    REMASTERING = "remastering"
    OUT_OF_SERVICE = "out_of_service"


TRANSITIONS: dict[AssetStatus, frozenset[AssetStatus]] = {
    AssetStatus.AVAILABLE: frozenset(
        {
            AssetStatus.LOANED,
            AssetStatus.RESERVED_PENDING,
            AssetStatus.REMASTERING,
            AssetStatus.OUT_OF_SERVICE,
        }
    ),
    AssetStatus.RESERVED_PENDING: frozenset({AssetStatus.LOANED, AssetStatus.AVAILABLE}),
    AssetStatus.LOANED: frozenset({AssetStatus.AVAILABLE, AssetStatus.RESERVED_PENDING}),
    AssetStatus.REMASTERING: frozenset({AssetStatus.AVAILABLE}),
    AssetStatus.OUT_OF_SERVICE: frozenset({AssetStatus.AVAILABLE}),
}

MAINTENANCE_STATUSES = frozenset({AssetStatus.REMASTERING, AssetStatus.OUT_OF_SERVICE})

LOAN_SNAPSHOT_FIELDS = (
    "id",
    "asset_id",
    "asset_name_snapshot",
    "holder_name",
    "reason",
    "start_date",
    "end_date_expected",
    "actual_return_date",
    "notes",
    "created_by",
    "returned_by",
)
RESERVATION_SNAPSHOT_FIELDS = (
    "id",
    "asset_id",
    "holder_name",
    "start_date",
    "end_date",
    "notes",
    "created_by",
    "created_at",
)


def parse_status(value: str | AssetStatus) -> AssetStatus:
    try:
        return AssetStatus(value)
    except ValueError:
        raise ValidationError(f"unknown asset status: {value!r}") from None


def can_transition(current: str | AssetStatus, target: str | AssetStatus) -> bool:
    return parse_status(target) in TRANSITIONS[parse_status(current)]


def transition(asset: AssetORM, target: str | AssetStatus, *, now: Optional[datetime] = None) -> None:
    current = parse_status(asset.status)
    target = parse_status(target)
    if target not in TRANSITIONS[current]:
        logger.warning(
            "illegal transition asset_id=%s from=%s to=%s", asset.id, current.value, target.value
        )
        raise IllegalTransitionError(
            f"asset {asset.id} cannot go from {current.value} to {target.value}"
        )
    asset.status = target.value
    asset.updated_at = now or utcnow()
    logger.info("status asset_id=%s from=%s to=%s", asset.id, current.value, target.value)


def _require_text(value: Optional[str], field: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"{field} is required")
    return value


def _ensure_bookable(asset: AssetORM) -> None:
    if parse_status(asset.status) in MAINTENANCE_STATUSES:
        raise AssetUnavailableError(f"asset {asset.id} is {asset.status} and cannot be booked")


def _due_reservation(
    db: Session, asset_id: str, day: date, *, excluding_id: Optional[str] = None
) -> Optional[ReservationORM]:
    stmt = select(ReservationORM).where(
        ReservationORM.asset_id == asset_id,
        ReservationORM.start_date <= day,
        ReservationORM.end_date >= day,
    )
    if excluding_id:
        stmt = stmt.where(ReservationORM.id != excluding_id)
    return db.execute(stmt.limit(1)).scalars().first()


def _settle_booking_status(
    db: Session,
    asset: AssetORM,
    day: date,
    *,
    now: Optional[datetime] = None,
    pending: Optional[ReservationORM] = None,
    excluding_id: Optional[str] = None,
) -> None:
    """Re-derive ``available`` / ``reserved_pending`` from the reservations due on ``day``.

    Loaned and maintenance assets are left alone. ``pending`` is a reservation
    added to the session but not flushed yet; ``excluding_id`` one deleted but
    not flushed yet.
    """
    if asset.active_loan_id or parse_status(asset.status) in MAINTENANCE_STATUSES:
        return

    due = pending is not None and pending.start_date <= day <= pending.end_date
    if not due:
        due = _due_reservation(db, asset.id, day, excluding_id=excluding_id) is not None

    target = AssetStatus.RESERVED_PENDING if due else AssetStatus.AVAILABLE
    if parse_status(asset.status) != target:
        transition(asset, target, now=now)


def _active_loan_blocking(db: Session, asset: AssetORM) -> Optional[BlockingRecord]:
    if not asset.active_loan_id:
        return None
    loan = db.get(LoanORM, asset.active_loan_id)
    if loan is None or loan.actual_return_date is not None:
        return None
    return BlockingRecord(
        kind="loan",
        record_id=loan.id,
        holder_name=loan.holder_name,
        start_date=loan.start_date,
        end_date=None,
    )


def _conflict_message(blocking: BlockingRecord) -> str:
    until = blocking.end_date.isoformat() if blocking.end_date else "return"
    return (
        f"window overlaps {blocking.kind} {blocking.record_id} held by "
        f"{blocking.holder_name} from {blocking.start_date.isoformat()} until {until}"
    )


# ---------- Loans ----------
def create_loan(
    db: Session,
    asset_id: str,
    *,
    holder_name: str,
    start_date: date,
    end_date_expected: date,
    created_by: str,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
    reservation_id: Optional[str] = None,
    now: Optional[datetime] = None,
    commit: bool = True,
) -> Loan:
    """Hand ``asset_id`` to ``holder_name`` for ``[start_date, end_date_expected]``.

    With ``reservation_id`` the loan fulfils that reservation: its own window
    is ignored by the conflict check and it leaves the active set.
    """
    holder_name = _require_text(holder_name, "holder_name")
    start, end = validate_range(start_date, end_date_expected)
    now = now or utcnow()

    with asset_lock(asset_id):
        asset = crud.require_asset(db, asset_id)
        _ensure_bookable(asset)

        fulfilled: Optional[ReservationORM] = None
        if reservation_id:
            fulfilled = crud.require_reservation(db, reservation_id)
            if fulfilled.asset_id != asset_id:
                raise ValidationError(
                    f"reservation {reservation_id} belongs to asset {fulfilled.asset_id}, not {asset_id}"
                )

        blocking = check_conflict(db, asset_id, start, end, excluding_record_id=reservation_id)
        if blocking is None:
            # at most one active loan per asset, even outside the candidate window
            blocking = _active_loan_blocking(db, asset)
        if blocking is not None:
            logger.warning("loan rejected asset_id=%s holder=%s reason=conflict", asset_id, holder_name)
            raise ConflictError(_conflict_message(blocking), blocking)

        loan = LoanORM(
            id=new_id(),
            asset_id=asset.id,
            asset_name_snapshot=asset.name,
            holder_name=holder_name,
            reason=reason,
            start_date=start,
            end_date_expected=end,
            actual_return_date=None,
            notes=notes,
            created_by=created_by,
            returned_by=None,
            created_at=now,
        )
        db.add(loan)

        transition(asset, AssetStatus.LOANED, now=now)
        asset.current_holder = holder_name
        asset.active_loan_id = loan.id

        if fulfilled is not None:
            ledger.append_event(
                db,
                event_type="reservation_fulfilled",
                asset_id=asset.id,
                actor=created_by,
                record_id=fulfilled.id,
                holder_name=fulfilled.holder_name,
                start_date=fulfilled.start_date,
                end_date=fulfilled.end_date,
                snapshot={
                    **ledger.snapshot_of(fulfilled, RESERVATION_SNAPSHOT_FIELDS),
                    "loan_id": loan.id,
                },
                occurred_at=now,
            )
            db.delete(fulfilled)

        ledger.append_event(
            db,
            event_type="loan_created",
            asset_id=asset.id,
            actor=created_by,
            record_id=loan.id,
            holder_name=holder_name,
            start_date=start,
            end_date=end,
            snapshot=ledger.snapshot_of(loan, LOAN_SNAPSHOT_FIELDS),
            occurred_at=now,
        )
        persist(db, commit=commit)

    logger.info(
        "loan created loan_id=%s asset_id=%s holder=%s window=%s..%s",
        loan.id,
        asset_id,
        holder_name,
        start,
        end,
    )
    return crud.loan_to_schema(loan)


def return_loan(
    db: Session,
    loan_id: str,
    *,
    returned_by: str,
    now: Optional[datetime] = None,
    commit: bool = True,
) -> Loan:
    """Close an active loan.

    The asset goes back to ``available``, or to ``reserved_pending`` when a
    reservation already covers the return day.
    """
    now = now or utcnow()
    asset_id = crud.require_loan(db, loan_id).asset_id

    with asset_lock(asset_id):
        loan = crud.require_loan(db, loan_id)
        if loan.actual_return_date is not None:
            raise AlreadyReturnedError(
                f"loan {loan_id} was already returned on {loan.actual_return_date.isoformat()}"
            )
        asset = crud.require_asset(db, asset_id, include_archived=True)

        loan.actual_return_date = now
        loan.returned_by = returned_by

        if asset.active_loan_id in (None, loan.id):
            asset.active_loan_id = None
            asset.current_holder = None

        due = _due_reservation(db, asset.id, now.date())
        target = AssetStatus.RESERVED_PENDING if due is not None else AssetStatus.AVAILABLE
        transition(asset, target, now=now)

        ledger.append_event(
            db,
            event_type="loan_returned",
            asset_id=asset.id,
            actor=returned_by,
            record_id=loan.id,
            holder_name=loan.holder_name,
            start_date=loan.start_date,
            end_date=now.date(),
            snapshot=ledger.snapshot_of(loan, LOAN_SNAPSHOT_FIELDS),
            occurred_at=now,
        )
        persist(db, commit=commit)

    logger.info("loan returned loan_id=%s asset_id=%s status=%s", loan_id, asset_id, target.value)
    return crud.loan_to_schema(loan)


# ---------- Reservations ----------
def create_reservation(
    db: Session,
    asset_id: str,
    *,
    holder_name: str,
    start_date: date,
    end_date: date,
    created_by: str,
    notes: Optional[str] = None,
    today: Optional[date] = None,
    now: Optional[datetime] = None,
    commit: bool = True,
) -> Reservation:
    holder_name = _require_text(holder_name, "holder_name")
    start, end = validate_range(start_date, end_date)
    now = now or utcnow()
    today = today or now.date()

    earliest = today - timedelta(days=config.reservation_grace_days())
    if start < earliest:
        raise InvalidRangeError(f"start_date {start} is in the past (earliest allowed {earliest})")

    with asset_lock(asset_id):
        asset = crud.require_asset(db, asset_id)
        _ensure_bookable(asset)

        blocking = check_conflict(db, asset_id, start, end)
        if blocking is not None:
            logger.warning(
                "reservation rejected asset_id=%s holder=%s reason=conflict", asset_id, holder_name
            )
            raise ConflictError(_conflict_message(blocking), blocking)

        r = ReservationORM(
            id=new_id(),
            asset_id=asset.id,
            holder_name=holder_name,
            start_date=start,
            end_date=end,
            notes=notes,
            created_by=created_by,
            created_at=now,
        )
        db.add(r)

        ledger.append_event(
            db,
            event_type="reservation_created",
            asset_id=asset.id,
            actor=created_by,
            record_id=r.id,
            holder_name=holder_name,
            start_date=start,
            end_date=end,
            snapshot=ledger.snapshot_of(r, RESERVATION_SNAPSHOT_FIELDS),
            occurred_at=now,
        )
        _settle_booking_status(db, asset, today, now=now, pending=r)
        persist(db, commit=commit)

    logger.info(
        "reservation created reservation_id=%s asset_id=%s holder=%s window=%s..%s",
        r.id,
        asset_id,
        holder_name,
        start,
        end,
    )
    return crud.reservation_to_schema(r)


def cancel_reservation(
    db: Session,
    reservation_id: str,
    *,
    cancelled_by: str,
    today: Optional[date] = None,
    now: Optional[datetime] = None,
    commit: bool = True,
) -> None:
    now = now or utcnow()
    today = today or now.date()
    asset_id = crud.require_reservation(db, reservation_id).asset_id

    with asset_lock(asset_id):
        r = crud.require_reservation(db, reservation_id)
        asset = crud.require_asset(db, asset_id, include_archived=True)

        ledger.append_event(
            db,
            event_type="reservation_cancelled",
            asset_id=asset.id,
            actor=cancelled_by,
            record_id=r.id,
            holder_name=r.holder_name,
            start_date=r.start_date,
            end_date=r.end_date,
            snapshot=ledger.snapshot_of(r, RESERVATION_SNAPSHOT_FIELDS),
            occurred_at=now,
        )
        db.delete(r)
        _settle_booking_status(db, asset, today, now=now, excluding_id=reservation_id)
        persist(db, commit=commit)

    logger.info("reservation cancelled reservation_id=%s asset_id=%s", reservation_id, asset_id)


def sync_status(
    db: Session,
    asset_id: str,
    *,
    today: Optional[date] = None,
    commit: bool = True,
) -> Asset:
    """Re-derive the booking status of an idle asset for ``today``.

    Reservations become due (or lapse) with the calendar rather than with a
    write; collaborators call this to pick that up.
    """
    now = utcnow()
    today = today or now.date()
    with asset_lock(asset_id):
        asset = crud.require_asset(db, asset_id)
        _settle_booking_status(db, asset, today, now=now)
        persist(db, commit=commit)
    return crud.asset_to_schema(asset)


def refresh_statuses(db: Session, *, today: Optional[date] = None, commit: bool = True) -> int:
    """Settle every idle asset whose stored status disagrees with the reservations due ``today``.

    Returns how many assets changed. Read endpoints call this first so that
    listings and counts never show a lapsed ``reserved_pending``.
    """
    today = today or utcnow().date()
    due_ids = set(
        db.execute(
            select(ReservationORM.asset_id).where(
                ReservationORM.start_date <= today,
                ReservationORM.end_date >= today,
            )
        ).scalars()
    )
    idle = db.execute(
        select(AssetORM.id, AssetORM.status).where(
            AssetORM.archived_at.is_(None),
            AssetORM.active_loan_id.is_(None),
            AssetORM.status.in_([AssetStatus.AVAILABLE.value, AssetStatus.RESERVED_PENDING.value]),
        )
    ).all()

    stale = [
        asset_id
        for asset_id, status in idle
        if (status == AssetStatus.RESERVED_PENDING.value) != (asset_id in due_ids)
    ]
    for asset_id in stale:
        sync_status(db, asset_id, today=today, commit=commit)
    if stale:
        logger.info("statuses refreshed day=%s changed=%d", today, len(stale))
    return len(stale)


# ---------- Maintenance / retirement ----------
def start_maintenance(
    db: Session,
    asset_id: str,
    status: str,
    *,
    actor: str,
    reason: Optional[str] = None,
    today: Optional[date] = None,
    now: Optional[datetime] = None,
    commit: bool = True,
) -> Asset:
    """Take an available asset out of the booking cycle. Its reservations are kept."""
    target = parse_status(status)
    if target not in MAINTENANCE_STATUSES:
        raise ValidationError(f"{target.value} is not a maintenance status")
    now = now or utcnow()
    today = today or now.date()

    with asset_lock(asset_id):
        asset = crud.require_asset(db, asset_id)
        # a reservation that lapsed since the last write no longer holds the asset
        _settle_booking_status(db, asset, today, now=now)
        transition(asset, target, now=now)
        ledger.append_event(
            db,
            event_type="maintenance_started",
            asset_id=asset.id,
            actor=actor,
            snapshot={"status": target.value, "reason": reason},
            occurred_at=now,
        )
        persist(db, commit=commit)

    return crud.asset_to_schema(asset)


def end_maintenance(
    db: Session,
    asset_id: str,
    *,
    actor: str,
    today: Optional[date] = None,
    now: Optional[datetime] = None,
    commit: bool = True,
) -> Asset:
    now = now or utcnow()
    today = today or now.date()

    with asset_lock(asset_id):
        asset = crud.require_asset(db, asset_id)
        previous = parse_status(asset.status)
        if previous not in MAINTENANCE_STATUSES:
            raise IllegalTransitionError(f"asset {asset_id} is {previous.value}, not in maintenance")

        transition(asset, AssetStatus.AVAILABLE, now=now)
        _settle_booking_status(db, asset, today, now=now)
        ledger.append_event(
            db,
            event_type="maintenance_ended",
            asset_id=asset.id,
            actor=actor,
            snapshot={"status": previous.value, "resumed_as": asset.status},
            occurred_at=now,
        )
        persist(db, commit=commit)

    return crud.asset_to_schema(asset)


def archive_asset(
    db: Session,
    asset_id: str,
    *,
    actor: str,
    today: Optional[date] = None,
    now: Optional[datetime] = None,
    commit: bool = True,
) -> Asset:
    """Retire an asset. History keeps referencing it, so the row is only flagged."""
    now = now or utcnow()
    today = today or now.date()

    with asset_lock(asset_id):
        asset = crud.require_asset(db, asset_id)
        if asset.active_loan_id:
            raise StateError(f"asset {asset_id} is loaned and cannot be archived")

        upcoming = db.execute(
            select(ReservationORM.id)
            .where(ReservationORM.asset_id == asset_id, ReservationORM.end_date >= today)
            .limit(1)
        ).first()
        if upcoming is not None:
            raise StateError(f"asset {asset_id} still has upcoming reservations")

        _settle_booking_status(db, asset, today, now=now)
        asset.archived_at = now
        asset.updated_at = now
        ledger.append_event(
            db,
            event_type="asset_archived",
            asset_id=asset.id,
            actor=actor,
            snapshot={"name": asset.name, "serial_number": asset.serial_number},
            occurred_at=now,
        )
        persist(db, commit=commit)

    logger.info("asset archived asset_id=%s", asset_id)
    return crud.asset_to_schema(asset)
