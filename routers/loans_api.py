from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

import crud
import lifecycle
from dependencies import get_actor, get_db
from errors import NotFoundError
from models import Loan, LoanCreated, LoanIn, Ok

router = APIRouter()


@router.post("/loans", response_model=LoanCreated, status_code=201)
def create_loan_api(
    body: LoanIn,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
):
    loan = lifecycle.create_loan(
        db,
        body.asset_id,
        holder_name=body.holder_name,
        reason=body.reason,
        start_date=body.start_date,
        end_date_expected=body.end_date_expected,
        notes=body.notes,
        reservation_id=body.reservation_id,
        created_by=actor,
    )
    return LoanCreated(loan_id=loan.id, **loan.model_dump())


@router.get("/loans/{loan_id}", response_model=Loan)
def get_loan_api(
    loan_id: str,
    db: Session = Depends(get_db),
):
    loan = crud.get_loan(db, loan_id)
    if not loan:
        raise NotFoundError(f"loan {loan_id} not found")
    return loan


@router.post("/loans/{loan_id}/return", response_model=Ok)
def return_loan_api(
    loan_id: str,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
):
    lifecycle.return_loan(db, loan_id, returned_by=actor)
    return Ok()
