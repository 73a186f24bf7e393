from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

import crud
import lifecycle
from dependencies import get_actor, get_db
from filter_helpers import blank_to_none
from models import Ok, Reservation, ReservationCreated, ReservationIn

router = APIRouter()


@router.get("/reservations", response_model=list[Reservation])
def list_reservations_api(
    asset_id: Optional[str] = None,
    db: Session = Depends(get_db),
):
    return crud.list_reservations(db, asset_id=blank_to_none(asset_id))


@router.post("/reservations", response_model=ReservationCreated, status_code=201)
def create_reservation_api(
    body: ReservationIn,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
):
    reservation = lifecycle.create_reservation(
        db,
        body.asset_id,
        holder_name=body.holder_name,
        start_date=body.start_date,
        end_date=body.end_date,
        notes=body.notes,
        created_by=actor,
    )
    return ReservationCreated(reservation_id=reservation.id, **reservation.model_dump())


@router.delete("/reservations/{reservation_id}", response_model=Ok)
def cancel_reservation_api(
    reservation_id: str,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
):
    lifecycle.cancel_reservation(db, reservation_id, cancelled_by=actor)
    return Ok()
