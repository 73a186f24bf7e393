from datetime import date, datetime
from typing import Any

from sqlalchemy import JSON, Date, DateTime, ForeignKey, Index, Integer, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from db import Base
from errors import StorageError

class AssetORM(Base):
    __tablename__ = "loan_assets"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    serial_number: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String, nullable=False, default="available", index=True)
    current_holder: Mapped[str | None] = mapped_column(String, nullable=True)
    active_loan_id: Mapped[str | None] = mapped_column(String, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    archived_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

class LoanORM(Base):
    __tablename__ = "loan_records"
    __table_args__ = (
        Index("ix_loan_records_asset_window", "asset_id", "start_date", "end_date_expected"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    asset_id: Mapped[str] = mapped_column(String, ForeignKey("loan_assets.id"), nullable=False)
    asset_name_snapshot: Mapped[str] = mapped_column(String, nullable=False)

    holder_name: Mapped[str] = mapped_column(String, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date_expected: Mapped[date] = mapped_column(Date, nullable=False)
    actual_return_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str] = mapped_column(String, nullable=False)
    returned_by: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class ReservationORM(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        Index("ix_reservations_asset_window", "asset_id", "start_date", "end_date"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    asset_id: Mapped[str] = mapped_column(String, ForeignKey("loan_assets.id"), nullable=False)

    holder_name: Mapped[str] = mapped_column(String, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class HistoryEventORM(Base):
    __tablename__ = "history_events"
    __table_args__ = (
        Index("ix_history_events_asset_time", "asset_id", "occurred_at"),
    )

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    asset_id: Mapped[str] = mapped_column(String, nullable=False)
    event_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
    record_id: Mapped[str | None] = mapped_column(String, nullable=True)

    holder_name: Mapped[str | None] = mapped_column(String, nullable=True)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    actor: Mapped[str] = mapped_column(String, nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)


@event.listens_for(HistoryEventORM, "before_update")
def _refuse_ledger_update(mapper, connection, target):
    raise StorageError(f"history event {target.seq} is append-only")


@event.listens_for(HistoryEventORM, "before_delete")
def _refuse_ledger_delete(mapper, connection, target):
    raise StorageError(f"history event {target.seq} is append-only")
