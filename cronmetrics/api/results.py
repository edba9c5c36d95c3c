"""
Job result submission, authenticated with the job's own API key
"""

from fastapi import APIRouter, Depends, Request

from ..auth import require_job_caller
from ..schemas.job import JobResultIn
from ..services.ingest import Caller, Submission

router = APIRouter(tags=["Results"])


@router.post("/api/job-result", status_code=201)
def submit_job_result(body: JobResultIn, request: Request, caller: Caller = Depends(require_job_caller)):
    request.app.state.ingestor.ingest(
        Submission(
            job_name=body.job_name,
            host=body.host,
            status=body.status,
            duration=body.duration,
            timestamp=body.timestamp,
            labels=body.labels or {},
            output=body.output,
        ),
        caller,
    )
    return {}
