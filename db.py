import os
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

ROOT_DIR = Path(__file__).resolve().parent
DEFAULT_DB_PATH = ROOT_DIR / "data" / "loans.db"


def resolve_db_path() -> Path:
    """``APP_DB_PATH`` if set, else ``data/loans.db``; relative paths hang off the project root."""
    db_path = Path(os.getenv("APP_DB_PATH") or DEFAULT_DB_PATH).expanduser()
    if not db_path.is_absolute():
        db_path = (ROOT_DIR / db_path).resolve()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return db_path


DB_PATH = resolve_db_path()
DATABASE_URL = f"sqlite:///{DB_PATH.as_posix()}"

# booking writes are serialized per asset in locks.py; the timeout covers
# writers on different assets waiting for SQLite's file lock
engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False, "timeout": 15},
)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


class Base(DeclarativeBase):
    pass
