from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from typing import Optional
from uuid import uuid4

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from errors import NotFoundError, StorageError
from models import Asset, AssetIn, AssetStats, AssetUpdate, Loan, Reservation
from orm import AssetORM, LoanORM, ReservationORM

logger = logging.getLogger("app.registry")

STATUS_NAMES = ("available", "loaned", "reserved_pending", "remastering", "out_of_service")

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def today() -> date:
    return utcnow().date()

def new_id() -> str:
    return str(uuid4())

def persist(db: Session, *, commit: bool) -> None:
    """Commit (or flush) the unit of work; storage failures roll everything back."""
    try:
        if commit:
            db.commit()
        else:
            db.flush()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("storage failure commit=%s error=%s", commit, exc)
        raise StorageError(f"storage failure: {exc}") from exc

def asset_to_schema(a: AssetORM) -> Asset:
    return Asset(
        id=a.id,
        name=a.name,
        serial_number=a.serial_number,
        notes=a.notes,
        status=a.status,  # type: ignore
        current_holder=a.current_holder,
        active_loan_id=a.active_loan_id,
        created_at=a.created_at,
        updated_at=a.updated_at,
        archived_at=a.archived_at,
    )

def loan_to_schema(l: LoanORM) -> Loan:
    return Loan(
        id=l.id,
        asset_id=l.asset_id,
        asset_name_snapshot=l.asset_name_snapshot,
        holder_name=l.holder_name,
        reason=l.reason,
        start_date=l.start_date,
        end_date_expected=l.end_date_expected,
        actual_return_date=l.actual_return_date,
        notes=l.notes,
        created_by=l.created_by,
        returned_by=l.returned_by,
        created_at=l.created_at,
    )

def reservation_to_schema(r: ReservationORM) -> Reservation:
    return Reservation(
        id=r.id,
        asset_id=r.asset_id,
        holder_name=r.holder_name,
        start_date=r.start_date,
        end_date=r.end_date,
        notes=r.notes,
        created_by=r.created_by,
        created_at=r.created_at,
    )


# ---------- Asset ----------
def get_asset(db: Session, asset_id: str) -> Optional[Asset]:
    row = db.get(AssetORM, asset_id)
    return asset_to_schema(row) if row else None


def require_asset(db: Session, asset_id: str, *, include_archived: bool = False) -> AssetORM:
    """Load an asset row fresh from the database or raise NotFoundError."""
    row = db.get(AssetORM, asset_id, populate_existing=True)
    if not row or (row.archived_at is not None and not include_archived):
        raise NotFoundError(f"asset {asset_id} not found")
    return row


def create_asset(db: Session, body: AssetIn, *, commit: bool = True) -> Asset:
    now = utcnow()
    a = AssetORM(
        id=new_id(),
        name=body.name.strip(),
        serial_number=(body.serial_number or "").strip() or None,
        notes=body.notes,
        status="available",
        current_holder=None,
        active_loan_id=None,
        created_at=now,
        updated_at=now,
    )
    db.add(a)
    persist(db, commit=commit)
    if commit:
        db.refresh(a)
    logger.info("asset provisioned asset_id=%s name=%s", a.id, a.name)
    return asset_to_schema(a)


def update_asset(db: Session, asset_id: str, body: AssetUpdate, *, commit: bool = True) -> Asset:
    # status is owned by lifecycle.py; only descriptive fields change here
    a = require_asset(db, asset_id)

    data = body.model_dump(exclude_unset=True)
    for k, v in data.items():
        setattr(a, k, v)
    a.updated_at = utcnow()

    persist(db, commit=commit)
    if commit:
        db.refresh(a)
    return asset_to_schema(a)


def list_assets(
    db: Session,
    *,
    status: str | None = None,
    include_archived: bool = False,
    limit: int = 500,
    offset: int = 0,
) -> list[Asset]:
    stmt = select(AssetORM)
    if status:
        stmt = stmt.where(AssetORM.status == status)
    if not include_archived:
        stmt = stmt.where(AssetORM.archived_at.is_(None))
    stmt = stmt.order_by(AssetORM.name.asc()).limit(limit).offset(offset)
    return [asset_to_schema(a) for a in db.execute(stmt).scalars().all()]


def asset_stats(db: Session, *, on_day: date | None = None) -> AssetStats:
    on_day = on_day or today()
    rows = db.execute(
        select(AssetORM.status, func.count())
        .where(AssetORM.archived_at.is_(None))
        .group_by(AssetORM.status)
    ).all()
    counts = {name: 0 for name in STATUS_NAMES}
    for status, count in rows:
        counts[status] = int(count)

    overdue = db.execute(
        select(LoanORM)
        .where(LoanORM.actual_return_date.is_(None), LoanORM.end_date_expected < on_day)
        .order_by(LoanORM.end_date_expected.asc())
    ).scalars().all()

    return AssetStats(
        total=sum(counts.values()),
        overdue=[loan_to_schema(l) for l in overdue],
        **counts,
    )

# ---------- Loan ----------
def get_loan(db: Session, loan_id: str) -> Optional[Loan]:
    row = db.get(LoanORM, loan_id)
    return loan_to_schema(row) if row else None


def require_loan(db: Session, loan_id: str) -> LoanORM:
    row = db.get(LoanORM, loan_id, populate_existing=True)
    if not row:
        raise NotFoundError(f"loan {loan_id} not found")
    return row


def get_active_loan(db: Session, asset_id: str) -> Optional[Loan]:
    stmt = (
        select(LoanORM)
        .where(LoanORM.asset_id == asset_id, LoanORM.actual_return_date.is_(None))
        .order_by(LoanORM.start_date.desc())
        .limit(1)
    )
    row = db.execute(stmt).scalars().first()
    return loan_to_schema(row) if row else None

# ---------- Reservation ----------
def require_reservation(db: Session, reservation_id: str) -> ReservationORM:
    row = db.get(ReservationORM, reservation_id, populate_existing=True)
    if not row:
        raise NotFoundError(f"reservation {reservation_id} not found")
    return row


def list_reservations(db: Session, *, asset_id: str | None = None) -> list[Reservation]:
    stmt = select(ReservationORM)
    if asset_id:
        stmt = stmt.where(ReservationORM.asset_id == asset_id)
    stmt = stmt.order_by(ReservationORM.start_date.asc(), ReservationORM.created_at.asc())
    return [reservation_to_schema(r) for r in db.execute(stmt).scalars().all()]
