"""
FastAPI application entry point.

Run with:
    uvicorn quakemap.app.main:app --reload --port 8000

Or from the project root:
    python -m quakemap.app.main
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# ── Core infrastructure ──
from quakemap.app.core.config import settings
from quakemap.app.core.logging_config import setup_logging, get_logger
from quakemap.app.core.errors import register_error_handlers
from quakemap.app.core.middleware import RequestLoggingMiddleware
from quakemap.app.core.health import HealthStatus, run_health_check

# ── API routers ──
from quakemap.app.api.v1.seismic import get_controller, reset_controller
from quakemap.app.api.v1.seismic import router as seismic_router

# ── Initialise logging ──
setup_logging()
logger = get_logger(__name__)


# ── Application lifespan (startup / shutdown) ──

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Mount the map on startup; release it and the feed client on shutdown."""
    logger.info(
        "Starting %s v%s [%s]",
        settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT,
    )
    controller = get_controller()
    controller.mount()
    yield
    await controller.close()
    reset_controller()
    logger.info("Shutting down %s", settings.APP_NAME)


# ── Create application ──

app = FastAPI(
    title=settings.APP_NAME,
    description=(
        "Philippines earthquake monitoring dashboard. "
        "Fetches the month's seismic events from the PHIVOLCS-backed feed, "
        "caches them per (month, refresh token), and serves a "
        "magnitude-coloured map, a ranked event list and a month picker."
    ),
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# ── Middleware stack (order matters — outermost first) ──

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS if not settings.CORS_ALLOW_ALL else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

# ── Error handlers ──
register_error_handlers(app)

# ── Register routers ──
app.include_router(seismic_router)


# ── Root & health endpoints ──

@app.get("/", tags=["root"])
async def root():
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "data_source": settings.DATA_SOURCE_URL,
        "modules": [
            "seismic-feed",
            "event-list",
            "earthquake-map",
            "month-selector",
        ],
        "map": "/api/v1/seismic/map",
        "docs": "/docs",
    }


@app.get("/health", tags=["health"])
async def health_check():
    """Deep health probe — feed, cache and map."""
    report = await run_health_check(get_controller())
    return report.to_dict()


@app.get("/health/live", tags=["health"])
async def liveness():
    """Kubernetes liveness probe — is the process alive?"""
    return {"status": "alive"}


@app.get("/health/ready", tags=["health"])
async def readiness():
    """Kubernetes readiness probe — can we serve traffic?"""
    report = await run_health_check(get_controller())
    if report.status is HealthStatus.UNHEALTHY:
        return JSONResponse(status_code=503, content=report.to_dict())
    return report.to_dict()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "quakemap.app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.RELOAD,
        log_level=settings.LOG_LEVEL.lower(),
    )
