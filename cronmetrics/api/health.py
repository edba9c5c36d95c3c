"""
Health check endpoint - no authentication required
"""

from fastapi import APIRouter, Request

from .. import __version__

router = APIRouter()


@router.get("/health", include_in_schema=False)
def health(request: Request):
    now = request.app.state.clock()
    return {
        "status": "healthy",
        "timestamp": now.strftime("%Y-%m-%dT%H:%M:%SZ"),
        "version": __version__,
    }
