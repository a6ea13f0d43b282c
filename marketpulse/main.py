# marketpulse/main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from marketpulse.api.alerts import router as alerts_router
from marketpulse.api.channels import router as channels_router
from marketpulse.api.monitoring import router as monitoring_router
from marketpulse.api.websocket import router as websocket_router
from marketpulse.config import settings
from marketpulse.core import MonitoringCore
from marketpulse.db.database import async_session
from marketpulse.errors import ConfigurationError, MetricQueryError


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # Startup
    core = MonitoringCore(async_session, settings)
    app.state.core = core
    await core.start()
    yield
    # Shutdown
    await core.stop()
    app.state.core = None


app = FastAPI(title="MarketPulse", version="0.1.0", lifespan=lifespan)

# Include routers
app.include_router(monitoring_router)
app.include_router(alerts_router)
app.include_router(channels_router)
app.include_router(websocket_router)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(MetricQueryError)
async def metric_query_error_handler(request: Request, exc: MetricQueryError):
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.get("/health")
async def health():
    return {"status": "healthy"}
