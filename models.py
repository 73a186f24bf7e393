from pydantic import BaseModel, Field
from typing import Any, Optional, Literal
from datetime import date, datetime

Status = Literal["available", "loaned", "reserved_pending", "remastering", "out_of_service"]
MaintenanceStatus = Literal["remastering", "out_of_service"]
EventType = Literal[
    "loan_created",
    "loan_returned",
    "reservation_created",
    "reservation_cancelled",
    "reservation_fulfilled",
    "maintenance_started",
    "maintenance_ended",
    "asset_archived",
]
CalendarKind = Literal["reserved", "active", "completed"]

class AssetIn(BaseModel):
    name: str = Field(min_length=1)
    serial_number: Optional[str] = None
    notes: Optional[str] = None

class AssetUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    serial_number: Optional[str] = None
    notes: Optional[str] = None

class Asset(AssetIn):
    id: str
    status: Status = "available"
    current_holder: Optional[str] = None
    active_loan_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    archived_at: Optional[datetime] = None

class MaintenanceIn(BaseModel):
    status: MaintenanceStatus
    reason: Optional[str] = None

class LoanIn(BaseModel):
    asset_id: str
    holder_name: str
    reason: Optional[str] = None
    start_date: date
    end_date_expected: date
    notes: Optional[str] = None
    reservation_id: Optional[str] = None

class Loan(BaseModel):
    id: str
    asset_id: str
    asset_name_snapshot: str
    holder_name: str
    reason: Optional[str] = None
    start_date: date
    end_date_expected: date
    actual_return_date: Optional[datetime] = None
    notes: Optional[str] = None
    created_by: str
    returned_by: Optional[str] = None
    created_at: datetime

class LoanCreated(Loan):
    loan_id: str

class AssetStats(BaseModel):
    total: int
    available: int
    loaned: int
    reserved_pending: int
    remastering: int
    out_of_service: int
    overdue: list[Loan]

class ReservationIn(BaseModel):
    asset_id: str
    holder_name: str
    start_date: date
    end_date: date
    notes: Optional[str] = None

class Reservation(BaseModel):
    id: str
    asset_id: str
    holder_name: str
    start_date: date
    end_date: date
    notes: Optional[str] = None
    created_by: str
    created_at: datetime

class ReservationCreated(Reservation):
    reservation_id: str

class BlockingRecord(BaseModel):
    """The booking that prevents a candidate window from being committed."""
    kind: Literal["loan", "reservation"]
    record_id: str
    holder_name: str
    start_date: date
    # None for an unreturned loan: it blocks every date from start_date on
    end_date: Optional[date] = None

class HistoryEvent(BaseModel):
    seq: int
    asset_id: str
    event_type: EventType
    record_id: Optional[str] = None
    holder_name: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    actor: str
    occurred_at: datetime
    snapshot: dict[str, Any] = {}

class CalendarEvent(BaseModel):
    kind: CalendarKind
    record_type: Literal["loan", "reservation"]
    record_id: str
    asset_id: str
    asset_name: Optional[str] = None
    holder_name: str
    start_date: date
    effective_end: date
    actual_return_date: Optional[datetime] = None

class DayBucket(BaseModel):
    day: date
    events: list[CalendarEvent]

class MonthView(BaseModel):
    year: int
    month: int
    days: list[DayBucket]

class Ok(BaseModel):
    ok: bool = True
