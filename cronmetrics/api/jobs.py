"""
Job administration API (admin key required)
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from ..auth import require_admin
from ..errors import NotFound
from ..schemas.job import (
    JobCreate, JobOut, JobResultOut, JobSearchOut, JobStatusOut, JobUpdate,
)
from ..services.status import derive
from ..services.store import DEFAULT_PAGE_SIZE, JobSearchCriteria, JobStore
from ..utils.apikey import generate_api_key, mask_api_key

logger = logging.getLogger("cronmetrics.api.jobs")

router = APIRouter(prefix="/api/job", tags=["Jobs"], dependencies=[Depends(require_admin)])

LABEL_PARAM_PREFIX = "label."


def _store(request: Request) -> JobStore:
    return request.app.state.store


def label_filters(request: Request) -> Dict[str, str]:
    """`label.<key>=<value>` query parameters as exact-match filters"""
    return {
        key[len(LABEL_PARAM_PREFIX):]: value
        for key, value in request.query_params.items()
        if key.startswith(LABEL_PARAM_PREFIX) and len(key) > len(LABEL_PARAM_PREFIX)
    }


def _get_or_404(store: JobStore, job_id: int):
    job = store.get_by_id(job_id)
    if job is None:
        raise NotFound(f"job not found with ID: {job_id}")
    return job


@router.post("", response_model=JobOut, status_code=201)
def create_job(body: JobCreate, request: Request):
    """Register a job; an API key is generated unless one is supplied"""
    job = _store(request).create_job(
        name=body.name,
        host=body.host,
        api_key=body.api_key or generate_api_key(),
        automatic_failure_threshold=body.automatic_failure_threshold,
        labels=body.labels,
        status=body.status.value,
    )
    logger.info("job registered", extra={"job_id": job.id, "api_key": mask_api_key(job.api_key)})
    return job


@router.get("", response_model=List[JobOut])
def list_jobs(request: Request):
    return _store(request).list_jobs(label_filters(request))


@router.get("/search", response_model=JobSearchOut)
def search_jobs(
    request: Request,
    q: str = Query("", description="Substring of name, host or labels"),
    name: str = Query("", description="Substring of the job name"),
    host: str = Query("", description="Substring of the host"),
    status: str = Query("", description="Exact lifecycle"),
    last_reported_before: Optional[datetime] = Query(None),
    last_reported_after: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=100, description="Page size"),
):
    result = _store(request).search_jobs(JobSearchCriteria(
        query=q,
        name=name,
        host=host,
        status=status,
        labels=label_filters(request),
        last_reported_before=last_reported_before,
        last_reported_after=last_reported_after,
        page=page,
        page_size=page_size,
    ))
    return JobSearchOut(
        jobs=[JobOut.model_validate(j) for j in result.jobs],
        total_count=result.total_count,
        page=result.page,
        page_size=result.page_size,
        total_pages=result.total_pages,
        has_next=result.has_next,
        has_previous=result.has_previous,
        search_query=result.search_query,
    )


@router.get("/{job_id}", response_model=JobOut)
def get_job(job_id: int, request: Request):
    return _get_or_404(_store(request), job_id)


@router.put("/{job_id}", response_model=JobOut)
def update_job(job_id: int, body: JobUpdate, request: Request):
    changes = {k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None}
    if "status" in changes:
        changes["status"] = changes["status"].value
    return _store(request).update_job(job_id, **changes)


@router.delete("/{job_id}", status_code=204)
def delete_job(job_id: int, request: Request):
    _store(request).delete_job(job_id)
    return Response(status_code=204)


@router.get("/{job_id}/status", response_model=JobStatusOut)
def job_status(job_id: int, request: Request):
    """Derived status as the next scrape would report it"""
    store = _store(request)
    job = _get_or_404(store, job_id)
    snapshot = store.snapshot(job)
    evaluation = derive(request.app.state.clock(), snapshot)
    return JobStatusOut(
        id=job.id,
        name=job.name,
        host=job.host,
        lifecycle=job.status,
        status=evaluation.status.value,
        metric_value=evaluation.metric_value,
        last_reported_at=snapshot.last_reported_at,
        elapsed_seconds=evaluation.elapsed_seconds,
        warning_ratio=evaluation.warning_ratio,
        approaching_deadline=evaluation.approaching_deadline,
    )


@router.get("/{job_id}/results", response_model=List[JobResultOut])
def job_results(job_id: int, request: Request, limit: int = Query(10, ge=1, le=1000)):
    store = _store(request)
    _get_or_404(store, job_id)
    return store.recent_results(job_id, limit=limit)
