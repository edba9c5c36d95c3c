from .job import Job, JobResult

__all__ = ["Job", "JobResult"]
