from datetime import date, datetime

import pytest
from sqlalchemy import select

import ledger
import lifecycle
from errors import StorageError
from orm import HistoryEventORM


def _loan_and_return(db, asset_id):
    loan = lifecycle.create_loan(
        db,
        asset_id,
        holder_name="Alice",
        start_date=date(2024, 3, 1),
        end_date_expected=date(2024, 3, 5),
        created_by="desk",
        now=datetime(2024, 3, 1, 9, 0),
    )
    lifecycle.return_loan(db, loan.id, returned_by="desk", now=datetime(2024, 3, 4, 17, 30))
    return loan


def test_events_carry_record_snapshots(db_session, make_asset):
    pc = make_asset("PC-1")
    loan = _loan_and_return(db_session, pc.id)

    created, returned = ledger.query_by_asset(db_session, pc.id)
    assert created.event_type == "loan_created"
    assert created.record_id == loan.id
    assert created.actor == "desk"
    assert created.holder_name == "Alice"
    assert (created.start_date, created.end_date) == (date(2024, 3, 1), date(2024, 3, 5))
    assert created.snapshot["asset_name_snapshot"] == "PC-1"
    assert created.snapshot["actual_return_date"] is None

    assert returned.event_type == "loan_returned"
    assert returned.end_date == date(2024, 3, 4)
    assert returned.snapshot["actual_return_date"].startswith("2024-03-04")
    assert created.seq < returned.seq


def test_query_by_period_is_inclusive_and_filterable(db_session, make_asset):
    pc1 = make_asset("PC-1")
    pc2 = make_asset("PC-2")
    _loan_and_return(db_session, pc1.id)
    lifecycle.create_reservation(
        db_session,
        pc2.id,
        holder_name="Carol",
        start_date=date(2024, 4, 10),
        end_date=date(2024, 4, 12),
        created_by="desk",
        today=date(2024, 3, 20),
        now=datetime(2024, 3, 20, 8, 0),
    )

    everything = ledger.query_by_period(db_session)
    assert [e.event_type for e in everything] == ["loan_created", "loan_returned", "reservation_created"]

    first_day = ledger.query_by_period(db_session, to_date=date(2024, 3, 1))
    assert [e.event_type for e in first_day] == ["loan_created"]

    middle = ledger.query_by_period(db_session, from_date=date(2024, 3, 2), to_date=date(2024, 3, 4))
    assert [e.event_type for e in middle] == ["loan_returned"]

    reservations = ledger.query_by_period(db_session, event_types=["reservation_created"])
    assert [e.asset_id for e in reservations] == [pc2.id]

    assert ledger.query_by_asset(db_session, pc2.id, from_date=date(2024, 3, 21)) == []


def test_ledger_rows_are_append_only(db_session, make_asset):
    pc = make_asset()
    _loan_and_return(db_session, pc.id)

    row = db_session.execute(select(HistoryEventORM).limit(1)).scalars().first()
    row.actor = "someone else"
    with pytest.raises(StorageError):
        db_session.commit()
    db_session.rollback()

    row = db_session.execute(select(HistoryEventORM).limit(1)).scalars().first()
    db_session.delete(row)
    with pytest.raises(StorageError):
        db_session.commit()
    db_session.rollback()

    assert len(ledger.query_by_asset(db_session, pc.id)) == 2


def test_unknown_event_type_rejected(db_session):
    with pytest.raises(ValueError):
        ledger.append_event(db_session, event_type="loan_extended", asset_id="x", actor="desk")
