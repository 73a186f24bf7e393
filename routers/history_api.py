from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

import ledger
from dependencies import get_db
from filter_helpers import blank_to_none, normalize_event_types, parse_day
from models import HistoryEvent

router = APIRouter()


@router.get("/history", response_model=list[HistoryEvent])
def history_api(
    asset_id: Optional[str] = None,
    from_: Optional[str] = Query(default=None, alias="from"),
    to: Optional[str] = None,
    event_type: Optional[list[str]] = Query(default=None),
    db: Session = Depends(get_db),
):
    from_date = parse_day(from_, "from")
    to_date = parse_day(to, "to")
    asset_id = blank_to_none(asset_id)

    if asset_id:
        events = ledger.query_by_asset(db, asset_id, from_date, to_date)
        wanted = normalize_event_types(event_type)
        if wanted:
            events = [e for e in events if e.event_type in wanted]
        return events

    return ledger.query_by_period(db, from_date, to_date, normalize_event_types(event_type))
