from pathlib import Path
import os
import shutil
import tempfile
import pytest

# Point the app at a throwaway database before anything imports it.
_DB_DIR = tempfile.mkdtemp(prefix="levelcert-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{Path(_DB_DIR) / 'test.db'}"

from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402
from levelcert.database import engine, create_db_and_tables  # noqa: E402
from levelcert.main import app  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def test_database():
    """Create the schema once and drop the temp directory afterwards."""
    create_db_and_tables()
    yield
    engine.dispose()
    shutil.rmtree(_DB_DIR, ignore_errors=True)


@pytest.fixture(autouse=True)
def clean_tables():
    """Empty every table after each test, children first."""
    yield
    with engine.begin() as conn:
        for table in reversed(SQLModel.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def make_user(client):
    """Register a user and return the `user` payload from the response."""
    def _make(employee_id="1234567", name="Alice", avatar=None):
        body = {"employeeId": employee_id, "name": name}
        if avatar is not None:
            body["avatar"] = avatar
        r = client.post("/api/register", json=body)
        assert r.status_code == 200, r.text
        return r.json()["user"]
    return _make


def identity(user):
    """The identity fields every authenticated request carries."""
    return {"userId": user["id"], "employeeId": user["employeeId"]}
