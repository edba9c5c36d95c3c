"""
Tests for result ingestion
"""

from datetime import datetime, timedelta, timezone

import pytest

from cronmetrics.errors import Conflict, Forbidden, InvalidInput, NotFound
from cronmetrics.services.ingest import Caller, ResultIngestor, Submission, parse_timestamp
from cronmetrics.services.prometheus_metrics import ServiceMetrics
from cronmetrics.services.status import DerivedStatus, ResultStatus, derive


@pytest.fixture
def metrics():
    return ServiceMetrics()


@pytest.fixture
def ingestor(store, clock, metrics):
    return ResultIngestor(store, clock=clock, metrics=metrics)


@pytest.fixture
def job(make_job):
    return make_job("sync_db", "web1", automatic_failure_threshold=3600)


def submit(job, **kwargs):
    fields = {"job_name": job.name, "host": job.host, "status": "success"}
    fields.update(kwargs)
    return Submission(**fields)


class TestValidation:

    @pytest.mark.parametrize("kwargs", [
        {"status": "succeeded"},
        {"status": ""},
        {"status": None},
        {"job_name": ""},
        {"host": None},
        {"duration": -1},
        {"duration": "fast"},
        {"duration": float("nan")},
        {"duration": float("inf")},
        {"duration": "-Infinity"},
        {"timestamp": "yesterday"},
        {"timestamp": ""},
        {"labels": {"env": 1}},
    ])
    def test_invalid_submissions(self, ingestor, job, kwargs):
        with pytest.raises(InvalidInput):
            ingestor.ingest(submit(job, **kwargs), Caller(job_id=job.id))

    def test_invalid_input_is_checked_before_lookup(self, ingestor):
        with pytest.raises(InvalidInput):
            ingestor.ingest(Submission(job_name="ghost", host="h", status="maybe"), Caller(job_id=1))

    def test_zero_duration_is_valid(self, ingestor, job):
        result = ingestor.ingest(submit(job, duration=0), Caller(job_id=job.id))
        assert result.duration == 0.0

    def test_non_finite_duration_leaves_job_untouched(self, ingestor, store, job):
        with pytest.raises(InvalidInput, match="finite"):
            ingestor.ingest(submit(job, duration=float("nan")), Caller(job_id=job.id))
        assert store.latest_result(job.id) is None
        assert store.get_by_id(job.id).last_reported_at is None


class TestIdentity:

    def test_unknown_job(self, ingestor, job):
        with pytest.raises(NotFound):
            ingestor.ingest(Submission(job_name="ghost", host="web1", status="success"), Caller(job_id=job.id))

    def test_credential_bound_to_other_job(self, ingestor, store, job, make_job):
        other = make_job("cleanup", "web2")
        with pytest.raises(Forbidden):
            ingestor.ingest(submit(job), Caller(job_id=other.id))
        # nothing was written
        assert store.recent_results(job.id) == []
        assert store.get_by_id(job.id).last_reported_at is None

    def test_retired_job(self, ingestor, store, job):
        store.update_job(job.id, status="retired")
        with pytest.raises(Conflict):
            ingestor.ingest(submit(job), Caller(job_id=job.id))

    def test_admin_caller_may_report_for_any_job(self, ingestor, job):
        result = ingestor.ingest(submit(job), Caller(is_admin=True))
        assert result.job_id == job.id


class TestRecording:

    def test_defaults_to_receipt_time(self, ingestor, store, clock, job):
        result = ingestor.ingest(submit(job, duration=3.5), Caller(job_id=job.id))
        assert result.timestamp == clock.now.replace(tzinfo=None)
        snap = store.snapshot(store.get_by_id(job.id))
        assert snap.last_reported_at == clock.now
        assert derive(clock.now, snap).status is DerivedStatus.SUCCESS

    def test_explicit_timestamp_and_labels(self, ingestor, store, job):
        result = ingestor.ingest(
            submit(job, timestamp="2024-01-15T11:00:00Z", labels={"run": "42"}, output="ok"),
            Caller(job_id=job.id),
        )
        assert result.timestamp == datetime(2024, 1, 15, 11, 0, 0)
        assert result.labels == {"run": "42"}
        assert result.output == "ok"
        assert store.snapshot(store.get_by_id(job.id)).last_labels == {"run": "42"}

    def test_out_of_order_result_is_stored_but_does_not_change_status(self, ingestor, store, clock, job):
        caller = Caller(job_id=job.id)
        ingestor.ingest(submit(job, status="success"), caller)
        older = (clock.now - timedelta(minutes=30)).isoformat()
        ingestor.ingest(submit(job, status="failure", timestamp=older), caller)

        snap = store.snapshot(store.get_by_id(job.id))
        assert snap.last_reported_at == clock.now
        assert snap.last_status is ResultStatus.SUCCESS
        assert len(store.recent_results(job.id)) == 2
        assert store.latest_result(job.id).status == "success"

    def test_newer_result_takes_over(self, ingestor, store, clock, job):
        caller = Caller(job_id=job.id)
        ingestor.ingest(submit(job, status="success", timestamp="2024-01-15T10:00:00+00:00"), caller)
        ingestor.ingest(submit(job, status="failure", timestamp="2024-01-15T11:00:00+00:00"), caller)

        snap = store.snapshot(store.get_by_id(job.id))
        assert snap.last_status is ResultStatus.FAILURE
        assert derive(clock.now, snap).status is DerivedStatus.FAILURE

    def test_counts_accepted_and_rejected(self, ingestor, metrics, job):
        ingestor.ingest(submit(job), Caller(job_id=job.id))
        with pytest.raises(NotFound):
            ingestor.ingest(Submission(job_name="ghost", host="h", status="success"), Caller(job_id=job.id))

        registry = metrics.registry
        assert registry.get_sample_value("cronmetrics_results_ingested_total", {"status": "success"}) == 1
        assert registry.get_sample_value("cronmetrics_results_rejected_total", {"reason": "NotFound"}) == 1


class TestParseTimestamp:

    def test_zulu(self):
        assert parse_timestamp("2024-01-15T12:00:00Z") == datetime(2024, 1, 15, 12, tzinfo=timezone.utc)

    def test_offset_is_normalized_to_utc(self):
        assert parse_timestamp("2024-01-15T14:00:00+02:00") == datetime(2024, 1, 15, 12, tzinfo=timezone.utc)

    def test_naive_is_utc(self):
        assert parse_timestamp("2024-01-15T12:00:00") == datetime(2024, 1, 15, 12, tzinfo=timezone.utc)

    def test_nanosecond_fraction_is_truncated(self):
        assert parse_timestamp("2024-01-15T12:00:50.123456789Z") == datetime(
            2024, 1, 15, 12, 0, 50, 123456, tzinfo=timezone.utc)

    def test_short_fraction(self):
        assert parse_timestamp("2024-01-15T12:00:50.5Z") == datetime(
            2024, 1, 15, 12, 0, 50, 500000, tzinfo=timezone.utc)

    def test_datetime_passthrough(self):
        value = datetime(2024, 1, 15, 12, tzinfo=timezone.utc)
        assert parse_timestamp(value) == value

    @pytest.mark.parametrize("value", ["", "not a date", "2024-13-45T00:00:00Z", 12345])
    def test_rejects(self, value):
        with pytest.raises(InvalidInput):
            parse_timestamp(value)
