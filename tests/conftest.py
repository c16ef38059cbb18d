from __future__ import annotations

import os
import tempfile
from pathlib import Path

# Settings are read at import time, so the environment must be in place
# before any application module is imported.
_TMP_DIR = Path(tempfile.mkdtemp(prefix="usermgr_test_"))
os.environ["DATABASE_URL"] = f"sqlite:///{(_TMP_DIR / 'test.sqlite').as_posix()}"
os.environ["SECRET_KEY"] = "test-secret-0123456789abcdef0123456789abcdef0123456789"
os.environ["ACCESS_TOKEN_EXPIRE_MINUTES"] = "15"
os.environ["REFRESH_TOKEN_EXPIRE_DAYS"] = "7"
os.environ["LOG_DIR"] = str(_TMP_DIR / "log")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from core.security import create_password_hash  # noqa: E402
from database import Base, SessionLocal, engine  # noqa: E402
from models.user import User  # noqa: E402

DEFAULT_PASSWORD = "Passw0rd!"


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    def _make(
        email: str = "user@example.com",
        password: str = DEFAULT_PASSWORD,
        role: str = "user",
        first_name: str = "Test",
        last_name: str = "User",
        temporary: bool = False,
    ) -> User:
        user = User(
            email=email,
            password=create_password_hash(password),
            role=role,
            first_name=first_name,
            last_name=last_name,
            is_password_temporary=temporary,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def client() -> TestClient:
    from main import app

    with TestClient(app) as c:
        yield c


@pytest.fixture
def login(client):
    """Log in through the API and return the Authorization header."""

    def _login(email: str, password: str = DEFAULT_PASSWORD) -> dict[str, str]:
        r = client.post("/auth/login", json={"email": email, "password": password})
        assert r.status_code == 200
        data = r.json()
        assert "access_token" in data, data
        return {"Authorization": f"Bearer {data['access_token']}"}

    return _login


@pytest.fixture
def admin_headers(make_user, login) -> dict[str, str]:
    make_user(email="admin@example.com", role="admin", first_name="Ada", last_name="Admin")
    return login("admin@example.com")
