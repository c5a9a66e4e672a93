import os
import sys
import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, Session, create_engine
from sqlalchemy.pool import StaticPool

# The app's own engine is only used by the startup hook; keep it in memory.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("APP_TIMEZONE", "UTC")

ROOT_DIR = os.path.dirname(os.path.dirname(__file__))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

from main import app, get_session  # noqa: E402
import storage  # noqa: E402


test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@pytest.fixture(scope="function")
def db_engine():
    """Fresh schema in the shared in-memory database for each test."""
    SQLModel.metadata.drop_all(test_engine)
    SQLModel.metadata.create_all(test_engine)
    return test_engine


@pytest.fixture
def session(db_engine):
    """Plain SQLModel session for storage-level tests."""
    with Session(db_engine) as s:
        yield s


@pytest.fixture(scope="function")
def client(db_engine):
    """Return a TestClient wired to a fresh in-memory database for each test."""

    def override_get_session():
        with Session(db_engine) as s:
            yield s

    app.dependency_overrides[get_session] = override_get_session

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def api_helpers(client, db_engine):
    """
    Common API utilities shared across test modules.
    Every helper takes optional headers so tests can act as another owner.
    """

    def create_category(name="Food", type_="expense", headers=None, **extra):
        payload = {"name": name, "type": type_, "icon": "tag", "color": "#123456"}
        payload.update(extra)
        res = client.post("/api/categories", json=payload, headers=headers or {})
        assert res.status_code == 201, res.text
        return res.json()["id"]

    def create_transaction(category_id, amount, date=None, description=None, headers=None):
        payload = {"category_id": category_id, "amount": amount}
        if date is not None:
            payload["date"] = date
        if description is not None:
            payload["description"] = description
        res = client.post("/api/transactions", json=payload, headers=headers or {})
        assert res.status_code == 201, res.text
        return res.json()

    def owner_headers(username: str) -> dict:
        """Create (or reuse) a user directly in the database and return its header."""
        with Session(db_engine) as s:
            user = storage.ensure_user(s, username)
            return {"X-User-Id": str(user.id)}

    return {
        "create_category": create_category,
        "create_transaction": create_transaction,
        "owner_headers": owner_headers,
    }
