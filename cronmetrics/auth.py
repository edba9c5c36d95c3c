# cronmetrics/auth.py
import logging
from typing import Optional

from fastapi import Request

from .errors import Unauthorized
from .services.ingest import Caller
from .utils.apikey import matches_any

log = logging.getLogger("cronmetrics.auth")


def _strip(tok: Optional[str]) -> Optional[str]:
    if not tok:
        return None
    tok = tok.strip()
    if tok.lower().startswith("bearer "):
        return tok[7:].strip() or None
    return tok or None


def extract_api_key(request: Request) -> Optional[str]:
    """X-API-Key first, then Authorization (Bearer or raw token)"""
    return _strip(request.headers.get("X-API-Key")) or _strip(request.headers.get("Authorization"))


def require_admin(request: Request) -> Caller:
    settings = request.app.state.settings
    if settings.dev:
        return Caller(is_admin=True)

    token = extract_api_key(request)
    if not token:
        raise Unauthorized("missing API key")
    if not matches_any(token, settings.security.admin_api_keys):
        log.warning("AUTH: invalid admin key for %s", request.url.path, extra={"component": "auth"})
        raise Unauthorized("invalid API key")
    return Caller(is_admin=True)


def require_job_caller(request: Request) -> Caller:
    """Resolve a per-job key to the job it is bound to"""
    token = extract_api_key(request)
    if not token:
        raise Unauthorized("missing API key")

    job = request.app.state.store.get_by_api_key(token)
    if job is None:
        log.warning("AUTH: unknown job key for %s", request.url.path, extra={"component": "auth"})
        raise Unauthorized("invalid API key")
    return Caller(job_id=job.id)
