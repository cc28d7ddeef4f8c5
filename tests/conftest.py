import os

from cryptography.fernet import Fernet

# Must be set before artchat.config / artchat.db are imported
os.environ["ENV"] = "test"
os.environ.setdefault("TOKEN_SECRET_KEY", Fernet.generate_key().decode())
os.environ["REDIS_ENABLED"] = "false"
os.environ["PRESENCE_SWEEP_ENABLED"] = "false"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from artchat.db import Base, SessionLocal, engine, get_db  # noqa: E402
from artchat.main import create_app  # noqa: E402
import artchat.models  # noqa: E402,F401

pytest_plugins = [
    "tests.fixtures.user_fixtures",
    "tests.fixtures.message_fixtures",
    "tests.fixtures.realtime_fixtures",
]


@pytest.fixture(scope="function")
def db():
    """Fresh schema per test on the shared in-memory engine."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def app(db):
    return create_app(testing=True)


@pytest.fixture
def client(app, db):
    """Client with db override and testing mode (no sweeper, no Redis)."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
