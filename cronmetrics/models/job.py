from sqlalchemy import (
    Column, Integer, String, Float, DateTime, JSON, Text, ForeignKey, Index, func, text,
)
from sqlalchemy.orm import relationship

from ..db import Base


class Job(Base):
    __tablename__ = "jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    host = Column(String(255), nullable=False)
    api_key = Column(String(128), nullable=True, unique=True)  # per-job credential
    automatic_failure_threshold = Column(Integer, nullable=False, default=3600)  # seconds
    labels = Column(JSON, nullable=False, default=dict)
    status = Column(String(16), nullable=False, default="active")  # active|maintenance|paused|retired
    last_reported_at = Column(DateTime, nullable=True)  # watermark, naive UTC

    # outcome of the latest result by timestamp; moves together with the watermark
    last_status = Column(String(16), nullable=True)
    last_duration = Column(Float, nullable=True)
    last_labels = Column(JSON, nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())
    updated_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())

    results = relationship(
        "JobResult", back_populates="job", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        # (name, host) is unique among non-retired jobs only
        Index(
            "uq_jobs_name_host_live", "name", "host", unique=True,
            sqlite_where=text("status != 'retired'"),
            postgresql_where=text("status != 'retired'"),
        ),
        Index("idx_jobs_status", "status"),
        Index("idx_jobs_last_reported", "last_reported_at"),
    )


class JobResult(Base):
    __tablename__ = "job_results"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(Integer, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(16), nullable=False)  # success|failure
    labels = Column(JSON, nullable=False, default=dict)
    duration = Column(Float, nullable=False, default=0.0)  # seconds
    output = Column(Text, nullable=True)
    timestamp = Column(DateTime, nullable=False)  # naive UTC
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())

    job = relationship("Job", back_populates="results")

    __table_args__ = (
        Index("idx_job_results_job_ts", "job_id", "timestamp"),
        Index("idx_job_results_status", "status"),
    )
