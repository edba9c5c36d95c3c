from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from ..services.exposition import RESERVED_LABELS, is_valid_label_name
from ..services.status import Lifecycle
from ..utils.apikey import validate_api_key_format
from ..utils.clock import ensure_utc


def _check_label_keys(labels: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
    if labels is None:
        return None
    for key in labels:
        if not is_valid_label_name(key):
            raise ValueError(f"invalid label name: {key!r}")
        if key in RESERVED_LABELS:
            raise ValueError(f"label name is reserved: {key!r}")
    return labels


def _check_api_key(api_key: Optional[str]) -> Optional[str]:
    if api_key is not None and not validate_api_key_format(api_key):
        raise ValueError("api_key must be cm_ followed by 52 base32 characters")
    return api_key


class JobCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Job name")
    host: str = Field(..., min_length=1, max_length=255, description="Host the job runs on")
    automatic_failure_threshold: int = Field(
        3600, ge=1, description="Seconds without a report before the job counts as missed"
    )
    labels: Dict[str, str] = Field(default_factory=dict, description="Extra Prometheus labels")
    status: Lifecycle = Field(Lifecycle.ACTIVE, description="Lifecycle: active, maintenance, paused or retired")
    api_key: Optional[str] = Field(None, description="Per-job API key; generated when omitted")

    @field_validator("labels")
    @classmethod
    def check_labels(cls, v):
        return _check_label_keys(v)

    @field_validator("api_key")
    @classmethod
    def check_api_key(cls, v):
        return _check_api_key(v)


class JobUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    host: Optional[str] = Field(None, min_length=1, max_length=255)
    automatic_failure_threshold: Optional[int] = Field(None, ge=1)
    labels: Optional[Dict[str, str]] = Field(None, description="Replaces the job's labels")
    status: Optional[Lifecycle] = None
    api_key: Optional[str] = None

    @field_validator("labels")
    @classmethod
    def check_labels(cls, v):
        return _check_label_keys(v)

    @field_validator("api_key")
    @classmethod
    def check_api_key(cls, v):
        return _check_api_key(v)


class JobOut(BaseModel):
    id: int
    name: str
    host: str
    api_key: Optional[str] = None
    automatic_failure_threshold: int
    labels: Dict[str, str]
    status: str
    last_reported_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @field_validator("last_reported_at", "created_at", "updated_at")
    @classmethod
    def as_utc(cls, v):
        return ensure_utc(v)


class JobSearchOut(BaseModel):
    jobs: List[JobOut]
    total_count: int
    page: int
    page_size: int
    total_pages: int
    has_next: bool
    has_previous: bool
    search_query: str = ""


class JobStatusOut(BaseModel):
    id: int
    name: str
    host: str
    lifecycle: str
    status: str = Field(..., description="Derived status: success, failure, missed_deadline or maintenance")
    metric_value: int
    last_reported_at: Optional[datetime] = None
    elapsed_seconds: Optional[float] = None
    warning_ratio: Optional[float] = None
    approaching_deadline: bool = False


class JobResultIn(BaseModel):
    # value checks happen in the ingestor
    job_name: Optional[str] = None
    host: Optional[str] = None
    status: Optional[str] = None
    duration: Optional[float] = None
    timestamp: Optional[str] = Field(None, description="RFC 3339; receipt time when omitted")
    labels: Optional[Dict[str, str]] = None
    output: Optional[str] = None


class JobResultOut(BaseModel):
    id: int
    job_id: int
    status: str
    duration: float
    labels: Dict[str, str] = Field(default_factory=dict)
    output: Optional[str] = None
    timestamp: datetime
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @field_validator("timestamp", "created_at")
    @classmethod
    def as_utc(cls, v):
        return ensure_utc(v)
