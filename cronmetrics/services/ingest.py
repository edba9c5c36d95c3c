"""
Result ingestion: validate a submission, check which job it belongs to and
whether the caller may report for it, then record it.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional

from ..errors import Conflict, CronMetricsError, Forbidden, InvalidInput, NotFound
from ..models.job import JobResult
from ..utils.clock import ensure_utc, utcnow
from .status import Lifecycle, ResultStatus
from .store import JobStore, ResultEntry

logger = logging.getLogger("cronmetrics.ingest")

# fromisoformat wants exactly 3 or 6 fractional digits before Python 3.11
_FRACTION = re.compile(r"\.(\d+)")


@dataclass
class Caller:
    """Who is submitting: the job a per-job key is bound to, or an admin"""
    job_id: Optional[int] = None
    is_admin: bool = False


@dataclass
class Submission:
    job_name: Optional[str] = None
    host: Optional[str] = None
    status: Optional[str] = None
    duration: Any = None
    timestamp: Any = None  # datetime or RFC 3339 string; receipt time when absent
    labels: Dict[str, str] = field(default_factory=dict)
    output: Optional[str] = None


def parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(f"invalid timestamp: {value!r}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        return ensure_utc(datetime.fromisoformat(text))
    except ValueError as e:
        raise InvalidInput(f"invalid timestamp: {value!r}") from e


def _validate(sub: Submission, now: datetime) -> ResultEntry:
    missing = [name for name in ("job_name", "host", "status") if not getattr(sub, name)]
    if missing:
        raise InvalidInput(f"missing required fields: {', '.join(missing)}")

    try:
        status = ResultStatus(sub.status)
    except ValueError:
        raise InvalidInput(f"status must be 'success' or 'failure', got {sub.status!r}") from None

    duration = 0.0
    if sub.duration is not None:
        if isinstance(sub.duration, bool):
            raise InvalidInput("duration must be a number of seconds")
        try:
            duration = float(sub.duration)
        except (TypeError, ValueError):
            raise InvalidInput("duration must be a number of seconds") from None
        if not math.isfinite(duration):
            raise InvalidInput("duration must be a finite number of seconds")
        if duration < 0:
            raise InvalidInput("duration cannot be negative")

    labels = sub.labels or {}
    if not isinstance(labels, Mapping) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in labels.items()
    ):
        raise InvalidInput("labels must map strings to strings")

    timestamp = now if sub.timestamp is None else parse_timestamp(sub.timestamp)

    return ResultEntry(
        status=status,
        timestamp=timestamp,
        duration=duration,
        labels=dict(labels),
        output=sub.output,
    )


class ResultIngestor:
    def __init__(self, store: JobStore, clock: Callable[[], datetime] = utcnow, metrics=None):
        self.store = store
        self.clock = clock
        self.metrics = metrics

    def ingest(self, submission: Submission, caller: Caller) -> JobResult:
        try:
            result, advanced = self._ingest(submission, caller)
        except CronMetricsError as e:
            if self.metrics is not None:
                self.metrics.record_rejection(type(e).__name__)
            raise
        if self.metrics is not None:
            self.metrics.record_ingest(result.status)
        return result

    def _ingest(self, submission: Submission, caller: Caller):
        entry = _validate(submission, ensure_utc(self.clock()))

        job = self.store.get(submission.job_name, submission.host)
        if job is None:
            raise NotFound(f"job not found: {submission.job_name}@{submission.host}")

        if not caller.is_admin and caller.job_id != job.id:
            logger.warning("credential does not match job", extra={
                "component": "ingest", "job_id": job.id, "caller_job_id": caller.job_id,
            })
            raise Forbidden("API key does not match the specified job")

        if job.status == Lifecycle.RETIRED.value:
            raise Conflict(f"job is retired: {job.name}@{job.host}")

        result, advanced = self.store.record_result(job.id, entry)

        logger.info("job result recorded", extra={
            "component": "ingest",
            "job_id": job.id,
            "job_name": job.name,
            "host": job.host,
            "status": entry.status.value,
            "duration": entry.duration,
            "watermark_advanced": advanced,
        })
        return result, advanced
