"""Pytest configuration.

The API modules read their configuration at import time, so the environment
is pointed at a throwaway SQLite database before anything from
``expense_tracker.backend`` is imported. Each test then gets its own SQLite
file through the ``db_engine`` fixture, wired into the app by overriding the
``get_db`` dependency.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

_IMPORT_DB = Path(tempfile.mkdtemp(prefix="expense-tracker-tests-")) / "import.db"
os.environ["DATABASE_URL"] = f"sqlite+pysqlite:///{_IMPORT_DB}"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["BCRYPT_ROUNDS"] = "4"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from expense_tracker.backend.database import Base, get_db  # noqa: E402
from expense_tracker.backend.main import app  # noqa: E402
from expense_tracker.frontend.storage import FileSlotStorage  # noqa: E402


@pytest.fixture
def db_engine(tmp_path: Path):
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'expenses.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def _get_test_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_test_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def register(client):
    """Create an account and return its auth payload ({id, name, email, token})."""

    def _register(email: str = "asha@example.com", name: str = "Asha", password: str = "secret123"):
        resp = client.post(
            "/auth/register", json={"name": name, "email": email, "password": password}
        )
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _register


@pytest.fixture
def slot_storage(tmp_path: Path) -> FileSlotStorage:
    return FileSlotStorage(tmp_path / "ui-state")
