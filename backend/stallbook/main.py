"""
Stall Booking API - Main Application Entry Point

Stall requests, table selection and on-site attendance for event vendors:
- Concurrency-safe table selection (per-event arbiter + guarded commit)
- One active request per vendor per event, enforced by the database
- Signed QR credentials with state-derived check-in / check-out
- Structured logging with request correlation
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stallbook.core.config import get_settings
from stallbook.core.logging import setup_logging, get_logger
from stallbook.core.metrics import metrics_endpoint
from stallbook.api.errors import register_error_handlers
from stallbook.api.router import api_router
from stallbook.api.middleware import RequestLoggingMiddleware
from stallbook.infrastructure.redis_client import close_redis
from stallbook.services.directory import get_directory
from stallbook.services.strategy_factory import get_arbiter

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        selection_arbiter=settings.SELECTION_ARBITER,
    )

    get_directory()
    get_arbiter()

    yield

    if settings.SELECTION_ARBITER == "redis":
        await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Stall booking and attendance API with concurrency-safe table selection",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)
register_error_handlers(app)

app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "selection_arbiter": settings.SELECTION_ARBITER,
    }


@app.get("/metrics", tags=["Health"])
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
