import pytest
from sqlalchemy import inspect

from cronmetrics.config import DatabaseConfig
from cronmetrics.db import Database
from cronmetrics.errors import Conflict
from cronmetrics.models import Job
from cronmetrics.services.store import JobStore


@pytest.mark.parametrize("auto_migrate", [False, True])
def test_init_schema(tmp_path, auto_migrate):
    db = Database(DatabaseConfig(url=f"sqlite:///{tmp_path / 'schema.db'}", auto_migrate=auto_migrate))
    try:
        db.init_schema()
        inspector = inspect(db.engine)
        assert {"jobs", "job_results"} <= set(inspector.get_table_names())
        assert "uq_jobs_name_host_live" in {ix["name"] for ix in inspector.get_indexes("jobs")}

        # the partial unique index behaves the same either way
        store = JobStore(db)
        first = store.create_job("a", "h", api_key="cm_a")
        with pytest.raises(Conflict):
            store.create_job("a", "h", api_key="cm_b")
        store.update_job(first.id, status="retired")
        store.create_job("a", "h", api_key="cm_c")
    finally:
        db.dispose()


def test_init_schema_is_idempotent(tmp_path):
    db = Database(DatabaseConfig(url=f"sqlite:///{tmp_path / 'again.db'}"))
    try:
        db.init_schema()
        db.init_schema()
    finally:
        db.dispose()


def test_sqlite_parent_directory_is_created(tmp_path):
    path = tmp_path / "nested" / "dir" / "cm.db"
    db = Database(DatabaseConfig(url=f"sqlite:///{path}"))
    try:
        db.init_schema()
        assert path.exists()
    finally:
        db.dispose()


def test_session_scope_rolls_back(db):
    with pytest.raises(RuntimeError):
        with db.session_scope() as s:
            s.add(Job(name="x", host="h", labels={}, status="active", automatic_failure_threshold=60))
            s.flush()
            raise RuntimeError("boom")

    with db.session_scope() as s:
        assert s.query(Job).count() == 0
