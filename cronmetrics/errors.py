"""
Error taxonomy shared by the core, the store and the HTTP layer.

Every error carries the HTTP status the transport answers with; client-caused
errors are never retried and the core performs no retries of its own.
"""


class CronMetricsError(Exception):
    status_code = 500

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail or self.__class__.__name__


class InvalidInput(CronMetricsError):
    """Malformed payload: missing field, negative duration, bad timestamp."""
    status_code = 400


class Unauthorized(CronMetricsError):
    status_code = 401


class Forbidden(CronMetricsError):
    """Credential is bound to a different job than the one named."""
    status_code = 403


class NotFound(CronMetricsError):
    status_code = 404


class Conflict(CronMetricsError):
    """Action against a retired job, or a duplicate (name, host)."""
    status_code = 409


class StoreUnavailable(CronMetricsError):
    """Transient backing-store failure."""
    status_code = 503
