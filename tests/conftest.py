# =============================================================================
# tests/conftest.py - Pytest Configuration
# =============================================================================
# Key features:
# - Sets required environment variables before the app is imported
# - Replaces the db helper with a scripted fake so handlers run without
#   PostgreSQL
# - Provides a bearer-token user override and a throwaway PostgreSQL server
#   for the end-to-end tests
# =============================================================================

import os
from collections import deque
from contextlib import contextmanager
from datetime import datetime, timezone

os.environ["JWT_SECRET"] = "test-secret"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient

from src.api import db
from src.api.auth_utils import get_optional_user
from src.api.main import app

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

ALICE = {"id": 1, "username": "alice", "created_at": NOW}
BOB = {"id": 2, "username": "bob", "created_at": NOW}


# =============================================================================
# Scripted database fake
# =============================================================================

class FakeCursor:
    """Stands in for the dict cursor yielded by db.transaction()."""

    def __init__(self, fake):
        self._fake = fake
        self._result = None

    def execute(self, query, params=None):
        self._result = self._fake._next(query, params)

    def fetchone(self):
        if isinstance(self._result, list):
            return self._result[0] if self._result else None
        return self._result

    def fetchall(self):
        return list(self._result or [])


class FakeDB:
    """
    Answers db helper calls from a queue of canned results.

    Every statement (helper call or cursor.execute inside a transaction)
    consumes the next queued result; queued exceptions are raised instead.
    """

    def __init__(self):
        self.results = deque()
        self.calls = []
        self.commits = 0
        self.rollbacks = 0

    def queue(self, *results):
        self.results.extend(results)

    def _next(self, query, params):
        self.calls.append((" ".join(query.split()), params))
        if not self.results:
            raise AssertionError(f"Unexpected query: {query}")
        result = self.results.popleft()
        if isinstance(result, BaseException):
            raise result
        return result

    def fetch_one(self, query, params=None):
        return self._next(query, params)

    def fetch_all(self, query, params=None):
        return self._next(query, params)

    def execute(self, query, params=None):
        return self._next(query, params)

    def execute_returning_one(self, query, params=None):
        return self._next(query, params)

    @contextmanager
    def transaction(self):
        try:
            yield FakeCursor(self)
        except Exception:
            self.rollbacks += 1
            raise
        self.commits += 1

    @property
    def queries(self):
        return [query for query, _ in self.calls]


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def fake_db(monkeypatch):
    """Route every db helper used by the app to a FakeDB."""
    fake = FakeDB()
    for name in ("fetch_one", "fetch_all", "execute", "execute_returning_one", "transaction"):
        monkeypatch.setattr(db, name, getattr(fake, name))
    yield fake
    assert not fake.results, f"Queued results never consumed: {list(fake.results)}"


@pytest.fixture
def client():
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def login_as():
    """Make every endpoint see the given user as the bearer-token holder."""

    def _login(user):
        app.dependency_overrides[get_optional_user] = lambda: user
        return user

    yield _login
    app.dependency_overrides.pop(get_optional_user, None)


@pytest.fixture
def as_alice(login_as):
    return login_as(ALICE)


@pytest.fixture(scope="session")
def postgres_url(tmp_path_factory):
    """
    URL of a disposable PostgreSQL database.

    TEST_POSTGRES_URL wins when set; otherwise an embedded server is started
    in a temporary data directory and stopped at the end of the session.
    """
    url = os.getenv("TEST_POSTGRES_URL")
    if url:
        return url

    import pgserver

    server = pgserver.get_server(tmp_path_factory.mktemp("pgdata"), cleanup_mode="stop")
    return server.get_uri()


def post_row(**overrides):
    row = {
        "id": 10,
        "author_id": ALICE["id"],
        "post_type_id": 3,
        "title": "Hello",
        "content": "World",
        "created_at": NOW,
        "updated_at": None,
        "author_username": "alice",
        "post_type_name": "Tech",
    }
    row.update(overrides)
    return row


def comment_row(**overrides):
    row = {
        "id": 20,
        "post_id": 10,
        "author_id": ALICE["id"],
        "content": "Nice!",
        "created_at": NOW,
        "updated_at": None,
        "author_username": "alice",
    }
    row.update(overrides)
    return row
