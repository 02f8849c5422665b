from __future__ import annotations

import os
import tempfile
from pathlib import Path

import pytest

_DB_DIR = Path(tempfile.mkdtemp(prefix="parentwise-tests-"))

# Must be in place before parentwise.config is first imported.
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR / 'parentwise.db'}"
os.environ["AUTH_SECRET"] = "test-secret"
os.environ["AUTH_URL"] = "http://localhost:3000"
os.environ["ENVIRONMENT"] = "test"
for _name in ("OPENAI_API_KEY", "GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET", "EMAIL_SERVER_HOST"):
    os.environ.pop(_name, None)

from fastapi.testclient import TestClient  # noqa: E402

from parentwise.db import TABLES, get_connection  # noqa: E402
from parentwise.main import app  # noqa: E402


@pytest.fixture(autouse=True)
def reset_state(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr("parentwise.security.BCRYPT_ROUNDS", 4)
    with get_connection() as conn:
        for table in TABLES:
            conn.execute(f"DELETE FROM {table}")
        conn.commit()
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def client() -> TestClient:
    with TestClient(app) as test_client:
        yield test_client
