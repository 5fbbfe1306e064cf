from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

import pytest


ROOT_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = ROOT_DIR / "src"

for path in (ROOT_DIR, SRC_DIR):
    value = str(path)
    if path.exists() and value not in sys.path:
        sys.path.insert(0, value)

# Keep the import-time default database and runtime secrets out of the repository.
os.environ.setdefault("RUNTIME_DIR", tempfile.mkdtemp(prefix="seda-tests-runtime-"))
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-session-middleware")

import app.db as app_db  # noqa: E402
from app.config import Settings, get_settings  # noqa: E402
from app.models import User  # noqa: E402


@pytest.fixture()
def session_factory(tmp_path):
    db_path = tmp_path / "seda_test.db"
    app_db.configure_database(f"sqlite:///{db_path.as_posix()}")
    assert app_db.engine is not None
    app_db.init_schema()
    yield app_db.SessionLocal
    if app_db.engine is not None:
        app_db.engine.dispose()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def settings() -> Settings:
    get_settings.cache_clear()
    value = Settings()
    value.verification_code_length = 8
    value.verification_code_expiry_days = 7
    value.verification_rate_limit_per_day = 3
    value.verification_rate_limit_window_hours = 24
    value.crawler_max_retries = 3
    value.crawl_cache_ttl_hours = 24
    return value


@pytest.fixture()
def make_user(db):
    counter = {"n": 0}

    def _make(username: str = "", *, email: str = "", is_admin: bool = False) -> User:
        counter["n"] += 1
        name = username or f"artist{counter['n']}"
        user = User(username=name, email=email or f"{name}@example.org", is_admin=is_admin)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make
