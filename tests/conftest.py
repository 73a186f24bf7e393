import os
import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# ---- テスト用DBパス: db.py が import される前に差し替える ----
_TMP_DIR = Path(tempfile.mkdtemp(prefix="loanpc_test_"))
os.environ["APP_DB_PATH"] = str(_TMP_DIR / "test_loans.db")
os.environ.pop("APP_RESERVATION_GRACE_DAYS", None)


@pytest.fixture(scope="session")
def app_module():
    import main

    return main


@pytest.fixture()
def client(app_module):
    with TestClient(app_module.app) as c:
        yield c


@pytest.fixture()
def db_session(app_module):
    from db import SessionLocal

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def clean_db(app_module, db_session):
    # 各テスト前にテーブルを全消し（Core の delete は台帳の追記専用ガードを通らない）
    from sqlalchemy import delete
    from orm import AssetORM, HistoryEventORM, LoanORM, ReservationORM

    db_session.execute(delete(HistoryEventORM))
    db_session.execute(delete(ReservationORM))
    db_session.execute(delete(LoanORM))
    db_session.execute(delete(AssetORM))
    db_session.commit()
    yield


@pytest.fixture()
def make_asset(db_session):
    import crud
    from models import AssetIn

    def _make(name="PC-1", serial_number=None):
        return crud.create_asset(db_session, AssetIn(name=name, serial_number=serial_number))

    return _make
