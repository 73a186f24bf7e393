from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

import calendar_view
from dependencies import get_db
from models import CalendarEvent, MonthView

router = APIRouter()


@router.get("/calendar/day/{day}", response_model=list[CalendarEvent])
def day_detail_api(
    day: date,
    db: Session = Depends(get_db),
):
    return calendar_view.get_day_detail(db, day)


@router.get("/calendar/{year}/{month}", response_model=MonthView)
def month_view_api(
    year: int,
    month: int,
    db: Session = Depends(get_db),
):
    return calendar_view.get_month_view(db, year, month)
