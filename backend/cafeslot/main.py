# backend/cafeslot/main.py
"""
cafeslot API

Gaming-cafe station reservations: availability, booking lifecycle,
station assignment and session reconciliation.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
from typing import AsyncGenerator, Dict

from fastapi import APIRouter, FastAPI, Request, Response
from fastapi.responses import JSONResponse

from . import models  # noqa: F401
from .core.config import settings
from .core.exceptions import DomainException
from .database import Base, engine
from .monitoring.prometheus_metrics import prometheus_metrics
from .routes.v1 import reconciliation, reservations, stations, venues

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

API_TITLE = "cafeslot API"
API_VERSION = "1.0.0"


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown."""
    logger.info(f"{API_TITLE} starting up...")
    logger.info(f"Environment: {settings.environment}")
    if settings.is_sqlite:
        # No migrations for the local SQLite store
        Base.metadata.create_all(bind=engine)
        logger.info("SQLite schema ensured")
    yield
    logger.info(f"{API_TITLE} shutting down...")


app = FastAPI(
    title=API_TITLE,
    description="Station availability, reservations and session reconciliation",
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=app_lifespan,
)


@app.exception_handler(DomainException)
async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    """Domain errors raised outside a route's try block (e.g. in dependencies)."""
    http_exc = exc.to_http_exception()
    return JSONResponse(
        status_code=http_exc.status_code,
        content={"detail": http_exc.detail},
        headers=getattr(http_exc, "headers", None),
    )


# Create API v1 router
api_v1 = APIRouter(prefix="/api/v1")
api_v1.include_router(venues.router, prefix="/venues")
api_v1.include_router(reservations.router, prefix="/reservations")
api_v1.include_router(stations.router, prefix="/stations")
api_v1.include_router(reconciliation.router, prefix="/reconciliation")
app.include_router(api_v1)


@app.get("/health", include_in_schema=False)
def health_check() -> Dict[str, str]:
    return {
        "status": "healthy",
        "service": "cafeslot-api",
        "version": API_VERSION,
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }


@app.get("/metrics", include_in_schema=False)
def metrics_endpoint() -> Response:
    """Prometheus scrape endpoint."""
    return Response(
        content=prometheus_metrics.get_metrics(),
        media_type=prometheus_metrics.get_content_type(),
    )
