"""
Status aggregation for a scrape: one MetricRecord per non-retired job, in
job id order.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterator, Optional

from .status import DerivedStatus, JobSnapshot, StatusEvaluation, derive
from .store import JobStore


@dataclass(frozen=True)
class MetricRecord:
    job_id: int
    job_name: str
    host: str
    evaluation: StatusEvaluation
    # job labels sorted by key; reserved-name handling is left to the renderer
    labels: Dict[str, str] = field(default_factory=dict)
    last_reported_at: Optional[datetime] = None
    last_duration: Optional[float] = None
    result_labels: Dict[str, str] = field(default_factory=dict)

    @property
    def status(self) -> DerivedStatus:
        return self.evaluation.status

    @property
    def metric_value(self) -> int:
        return self.evaluation.metric_value

    @property
    def has_result(self) -> bool:
        return self.last_duration is not None


def _sorted_labels(labels) -> Dict[str, str]:
    return {k: labels[k] for k in sorted(labels)}


def to_record(now: datetime, job: JobSnapshot) -> MetricRecord:
    return MetricRecord(
        job_id=job.id,
        job_name=job.name,
        host=job.host,
        evaluation=derive(now, job),
        labels=_sorted_labels(job.labels),
        last_reported_at=job.last_reported_at,
        last_duration=job.last_duration,
        result_labels=_sorted_labels(job.last_labels),
    )


class StatusAggregator:
    def __init__(self, store: JobStore):
        self.store = store

    def collect(self, now: datetime) -> Iterator[MetricRecord]:
        for job in self.store.list_active():
            yield to_record(now, job)
