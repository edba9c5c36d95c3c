# tests/conftest.py
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from cronmetrics.config import DatabaseConfig, SecurityConfig, Settings
from cronmetrics.db import Database
from cronmetrics.main import create_app
from cronmetrics.services.store import JobStore
from cronmetrics.utils.apikey import generate_api_key

ADMIN_KEY = "test-admin-key-0123456789"
NOW = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock that only moves when told to"""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database=DatabaseConfig(url=f"sqlite:///{tmp_path / 'cronmetrics.db'}"),
        security=SecurityConfig(admin_api_keys=[ADMIN_KEY]),
    )


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def db(settings):
    database = Database(settings.database)
    database.init_schema()
    yield database
    database.dispose()


@pytest.fixture
def store(db):
    return JobStore(db)


@pytest.fixture
def make_job(store):
    def _make(name="backup", host="db1", **kwargs):
        kwargs.setdefault("api_key", generate_api_key())
        return store.create_job(name=name, host=host, **kwargs)
    return _make


@pytest.fixture
def app(settings, clock, db):
    return create_app(settings, clock=clock, db=db)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {ADMIN_KEY}"}


@pytest.fixture
def job_headers():
    def _headers(job):
        return {"X-API-Key": job.api_key}
    return _headers
