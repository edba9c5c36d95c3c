"""
SQLAlchemy-backed job store.

The store owns Job and JobResult persistence. The scrape path reads through
`list_active`, a keyset-paginated stream of JobSnapshot values; ingestion
writes through `record_result`, which appends the result and advances the
watermark in a single transaction.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from sqlalchemy import String, case, cast, func, or_, select, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from ..db import Database
from ..errors import Conflict, NotFound, StoreUnavailable
from ..models.job import Job, JobResult
from ..utils.clock import ensure_utc, to_db, utcnow
from .status import JobSnapshot, Lifecycle, ResultStatus

logger = logging.getLogger("cronmetrics.store")

DEFAULT_PAGE_SIZE = 25

_UPDATABLE = frozenset([
    "name", "host", "api_key", "automatic_failure_threshold", "labels", "status",
])


@dataclass(frozen=True)
class ResultEntry:
    """A validated result about to be appended"""
    status: ResultStatus
    timestamp: datetime
    duration: float = 0.0
    labels: Mapping[str, str] = field(default_factory=dict)
    output: Optional[str] = None


@dataclass
class JobSearchCriteria:
    query: str = ""
    name: str = ""
    host: str = ""
    status: str = ""
    labels: Dict[str, str] = field(default_factory=dict)
    last_reported_before: Optional[datetime] = None
    last_reported_after: Optional[datetime] = None
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE


@dataclass
class JobSearchResult:
    jobs: List[Job]
    total_count: int
    page: int
    page_size: int
    total_pages: int
    has_next: bool
    has_previous: bool
    search_query: str = ""


def _labels_match(labels: Optional[Mapping[str, str]], filters: Mapping[str, str]) -> bool:
    labels = labels or {}
    return all(labels.get(k) == v for k, v in filters.items())


class JobStore:
    """Database operations for jobs and their results"""

    def __init__(self, db: Database, batch_size: Optional[int] = None):
        self.db = db
        self.batch_size = batch_size or db.cfg.batch_size

    @contextmanager
    def _guard(self, action: str):
        try:
            yield
        except (OperationalError, InterfaceError, PoolTimeoutError) as e:
            logger.error("store unavailable during %s: %s", action, e,
                         extra={"component": "store", "action": action})
            raise StoreUnavailable(f"job store unavailable ({action})") from e

    @contextmanager
    def _session(self, session: Optional[Session], action: str):
        if session is not None:
            yield session
            return
        with self._guard(action), self.db.session_scope() as s:
            yield s

    # ------------------------------------------------------------------
    # Job CRUD
    # ------------------------------------------------------------------

    def create_job(
        self,
        name: str,
        host: str,
        api_key: Optional[str] = None,
        automatic_failure_threshold: int = 3600,
        labels: Optional[Mapping[str, str]] = None,
        status: str = Lifecycle.ACTIVE.value,
    ) -> Job:
        now = to_db(utcnow())
        job = Job(
            name=name,
            host=host,
            api_key=api_key,
            automatic_failure_threshold=automatic_failure_threshold,
            labels=dict(labels or {}),
            status=status,
            last_reported_at=None,
            created_at=now,
            updated_at=now,
        )
        try:
            with self._session(None, "create_job") as s:
                s.add(job)
                s.flush()
        except IntegrityError as e:
            raise Conflict(f"job already exists: {name}@{host}") from e

        logger.info("job created successfully", extra={
            "component": "store", "job_id": job.id, "job_name": name, "host": host, "status": status,
        })
        return job

    def get(self, name: str, host: str) -> Optional[Job]:
        """Live job for (name, host); the newest retired one when none is live"""
        stmt = (
            select(Job)
            .where(Job.name == name, Job.host == host)
            .order_by(case((Job.status == Lifecycle.RETIRED.value, 1), else_=0), Job.id.desc())
            .limit(1)
        )
        with self._session(None, "get_job") as s:
            return s.execute(stmt).scalars().first()

    def get_by_id(self, job_id: int) -> Optional[Job]:
        with self._session(None, "get_job_by_id") as s:
            return s.get(Job, job_id)

    def get_by_api_key(self, api_key: str) -> Optional[Job]:
        if not api_key:
            return None
        with self._session(None, "get_job_by_api_key") as s:
            return s.execute(select(Job).where(Job.api_key == api_key)).scalars().first()

    def list_jobs(self, label_filters: Optional[Mapping[str, str]] = None) -> List[Job]:
        with self._session(None, "list_jobs") as s:
            jobs = list(s.execute(select(Job).order_by(Job.id)).scalars())
        if label_filters:
            jobs = [j for j in jobs if _labels_match(j.labels, label_filters)]
        return jobs

    def search_jobs(self, criteria: Optional[JobSearchCriteria] = None) -> JobSearchResult:
        criteria = criteria or JobSearchCriteria()
        page = criteria.page if criteria.page > 0 else 1
        page_size = criteria.page_size if criteria.page_size > 0 else DEFAULT_PAGE_SIZE

        conditions = []
        if criteria.query:
            term = f"%{criteria.query}%"
            conditions.append(or_(
                Job.name.like(term), Job.host.like(term), cast(Job.labels, String).like(term)
            ))
        if criteria.name:
            conditions.append(Job.name.like(f"%{criteria.name}%"))
        if criteria.host:
            conditions.append(Job.host.like(f"%{criteria.host}%"))
        if criteria.status:
            conditions.append(Job.status == criteria.status)
        if criteria.last_reported_before:
            conditions.append(Job.last_reported_at < to_db(criteria.last_reported_before))
        if criteria.last_reported_after:
            conditions.append(Job.last_reported_at > to_db(criteria.last_reported_after))

        offset = (page - 1) * page_size
        with self._session(None, "search_jobs") as s:
            if criteria.labels:
                # label values live in a JSON column; filter before paginating
                matched = [
                    j for j in s.execute(select(Job).where(*conditions).order_by(Job.id)).scalars()
                    if _labels_match(j.labels, criteria.labels)
                ]
                total = len(matched)
                jobs = matched[offset:offset + page_size]
            else:
                total = s.execute(select(func.count()).select_from(Job).where(*conditions)).scalar_one()
                jobs = list(s.execute(
                    select(Job).where(*conditions).order_by(Job.id).limit(page_size).offset(offset)
                ).scalars())

        total_pages = (total + page_size - 1) // page_size
        return JobSearchResult(
            jobs=jobs,
            total_count=total,
            page=page,
            page_size=page_size,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_previous=page > 1,
            search_query=criteria.query,
        )

    def update_job(self, job_id: int, **changes: Any) -> Job:
        unknown = set(changes) - _UPDATABLE
        if unknown:
            raise ValueError(f"cannot update fields: {sorted(unknown)}")
        try:
            with self._session(None, "update_job") as s:
                job = s.get(Job, job_id)
                if job is None:
                    raise NotFound(f"job not found with ID: {job_id}")
                for key, value in changes.items():
                    setattr(job, key, dict(value) if key == "labels" else value)
                job.updated_at = to_db(utcnow())
                s.flush()
        except IntegrityError as e:
            raise Conflict("another live job already uses this name, host or api key") from e

        logger.info("job updated successfully", extra={
            "component": "store", "job_id": job_id, "fields": sorted(changes),
        })
        return job

    def delete_job(self, job_id: int) -> None:
        with self._session(None, "delete_job") as s:
            job = s.get(Job, job_id)
            if job is None:
                raise NotFound(f"job not found with ID: {job_id}")
            s.delete(job)

        logger.info("job deleted successfully", extra={"component": "store", "job_id": job_id})

    # ------------------------------------------------------------------
    # Scrape path
    # ------------------------------------------------------------------

    @staticmethod
    def _snapshot(row) -> JobSnapshot:
        return JobSnapshot(
            id=row.id,
            name=row.name,
            host=row.host,
            automatic_failure_threshold=row.automatic_failure_threshold,
            lifecycle=Lifecycle(row.status),
            labels=dict(row.labels or {}),
            last_reported_at=ensure_utc(row.last_reported_at),
            last_status=ResultStatus(row.last_status) if row.last_status else None,
            last_duration=row.last_duration,
            last_labels=dict(row.last_labels or {}),
        )

    def snapshot(self, job: Job) -> JobSnapshot:
        return self._snapshot(job)

    def list_active(self) -> Iterator[JobSnapshot]:
        """Stream non-retired jobs in id order, one batch per round trip"""
        stmt = select(
            Job.id, Job.name, Job.host, Job.automatic_failure_threshold, Job.status,
            Job.labels, Job.last_reported_at, Job.last_status, Job.last_duration, Job.last_labels,
        ).where(Job.status != Lifecycle.RETIRED.value).order_by(Job.id).limit(self.batch_size)

        last_id = 0
        while True:
            with self._session(None, "list_active") as s:
                rows = s.execute(stmt.where(Job.id > last_id)).all()
            for row in rows:
                yield self._snapshot(row)
            if len(rows) < self.batch_size:
                return
            last_id = rows[-1].id

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def latest_result(self, job_id: int) -> Optional[JobResult]:
        results = self.recent_results(job_id, limit=1)
        return results[0] if results else None

    def recent_results(self, job_id: int, limit: int = 10) -> List[JobResult]:
        stmt = (
            select(JobResult)
            .where(JobResult.job_id == job_id)
            .order_by(JobResult.timestamp.desc(), JobResult.id.desc())
            .limit(limit)
        )
        with self._session(None, "recent_results") as s:
            return list(s.execute(stmt).scalars())

    def append_result(self, job_id: int, entry: ResultEntry, session: Optional[Session] = None) -> JobResult:
        result = JobResult(
            job_id=job_id,
            status=entry.status.value,
            labels=dict(entry.labels),
            duration=entry.duration,
            output=entry.output,
            timestamp=to_db(entry.timestamp),
            created_at=to_db(utcnow()),
        )
        with self._session(session, "append_result") as s:
            s.add(result)
            s.flush()
        return result

    def advance_watermark(self, job_id: int, entry: ResultEntry, session: Optional[Session] = None) -> bool:
        """Compare-and-set: move last_reported_at forward, never backward.

        The latest outcome columns move with it, so an older, late-arriving
        result changes neither the watermark nor the derived status.
        """
        ts = to_db(entry.timestamp)
        stmt = (
            update(Job)
            .where(Job.id == job_id, or_(Job.last_reported_at.is_(None), Job.last_reported_at <= ts))
            .values(
                last_reported_at=ts,
                last_status=entry.status.value,
                last_duration=entry.duration,
                last_labels=dict(entry.labels),
                updated_at=to_db(utcnow()),
            )
            .execution_options(synchronize_session=False)
        )
        with self._session(session, "advance_watermark") as s:
            return s.execute(stmt).rowcount == 1

    def record_result(self, job_id: int, entry: ResultEntry) -> Tuple[JobResult, bool]:
        """Append a result and advance the watermark, all or nothing"""
        with self._session(None, "record_result") as s:
            result = self.append_result(job_id, entry, session=s)
            advanced = self.advance_watermark(job_id, entry, session=s)
        return result, advanced
