from collections.abc import Generator
from typing import Optional

from fastapi import Header
from sqlalchemy.orm import Session

from db import SessionLocal

DEFAULT_ACTOR = "system"


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_actor(x_actor: Optional[str] = Header(default=None)) -> str:
    # authentication lives in front of this service; it forwards the user name
    actor = (x_actor or "").strip()
    return actor or DEFAULT_ACTOR
