import db


def test_db_path_from_env_creates_parent_dir(monkeypatch, tmp_path):
    target = tmp_path / "nested" / "loans.db"
    monkeypatch.setenv("APP_DB_PATH", str(target))

    assert db.resolve_db_path() == target
    assert target.parent.is_dir()


def test_engine_points_at_configured_file():
    assert db.DATABASE_URL.endswith("test_loans.db")
