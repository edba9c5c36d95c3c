"""
Threshold evaluation: derive a job's alerting status from stored state and
the current time.

The evaluation is pure. It reads a JobSnapshot and a wall-clock instant and
never touches the store; the same inputs always give the same answer.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Mapping, Optional

WARNING_RATIO = 0.8


class Lifecycle(str, Enum):
    ACTIVE = "active"
    MAINTENANCE = "maintenance"
    PAUSED = "paused"
    RETIRED = "retired"


class ResultStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class DerivedStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    MISSED_DEADLINE = "missed_deadline"
    MAINTENANCE = "maintenance"

    @property
    def metric_value(self) -> int:
        return _METRIC_VALUES[self]


_METRIC_VALUES = {
    DerivedStatus.SUCCESS: 1,
    DerivedStatus.FAILURE: 0,
    DerivedStatus.MISSED_DEADLINE: 0,
    DerivedStatus.MAINTENANCE: -1,
}

_SUPPRESSED = frozenset([Lifecycle.MAINTENANCE, Lifecycle.PAUSED, Lifecycle.RETIRED])


@dataclass(frozen=True)
class JobSnapshot:
    """Read-only view of a job row as the scrape path needs it"""
    id: int
    name: str
    host: str
    automatic_failure_threshold: int
    lifecycle: Lifecycle
    labels: Mapping[str, str] = field(default_factory=dict)
    last_reported_at: Optional[datetime] = None  # aware UTC
    last_status: Optional[ResultStatus] = None
    last_duration: Optional[float] = None
    last_labels: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class StatusEvaluation:
    status: DerivedStatus
    elapsed_seconds: Optional[float] = None
    warning_ratio: Optional[float] = None

    @property
    def metric_value(self) -> int:
        return self.status.metric_value

    @property
    def approaching_deadline(self) -> bool:
        return self.warning_ratio is not None and WARNING_RATIO <= self.warning_ratio <= 1.0


def derive(now: datetime, job: JobSnapshot) -> StatusEvaluation:
    """Evaluate one job at `now`.

    Precedence: lifecycle suppression, then never-reported, then freshness,
    then the recorded outcome of the latest result.
    """
    if job.lifecycle in _SUPPRESSED:
        return StatusEvaluation(DerivedStatus.MAINTENANCE)

    if job.last_reported_at is None:
        return StatusEvaluation(DerivedStatus.MISSED_DEADLINE)

    # future timestamps (clock skew) count as just reported
    elapsed = max(0.0, (now - job.last_reported_at).total_seconds())
    ratio = elapsed / job.automatic_failure_threshold

    if elapsed > job.automatic_failure_threshold:
        status = DerivedStatus.MISSED_DEADLINE
    elif job.last_status is ResultStatus.SUCCESS:
        status = DerivedStatus.SUCCESS
    elif job.last_status is ResultStatus.FAILURE:
        status = DerivedStatus.FAILURE
    else:
        # a watermark without an outcome only comes from legacy rows
        status = DerivedStatus.MISSED_DEADLINE

    return StatusEvaluation(status, elapsed_seconds=elapsed, warning_ratio=ratio)
