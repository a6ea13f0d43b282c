"""Shared FastAPI dependencies."""

from fastapi import HTTPException, Request

from marketpulse.core import MonitoringCore


def get_core(request: Request) -> MonitoringCore:
    """The monitoring core created by the app lifespan.

    Raises:
        HTTPException: 503 if the core is not initialized
    """
    core = getattr(request.app.state, "core", None)
    if core is None:
        raise HTTPException(status_code=503, detail="Monitoring core not initialized")
    return core
