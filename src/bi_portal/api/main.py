"""
FastAPI application entry point for the BI Portal access service.
"""

# Load environment variables FIRST before any other imports
from pathlib import Path
from dotenv import load_dotenv

current_file = Path(__file__)
project_root = current_file.parent.parent.parent.parent  # src/bi_portal/api/main.py -> root
env_file = project_root / ".env"
if env_file.exists():
    load_dotenv(env_file)

from contextlib import asynccontextmanager
import os

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from bi_portal import __version__
from bi_portal.api.routes import access, health
from bi_portal.api.middleware.error_handler import ErrorHandlerMiddleware
from bi_portal.api.middleware.session_context import shutdown_access_engine
from bi_portal.cache.redis_cache import get_role_cache, reset_role_cache
from bi_portal.monitoring import (
    MetricsMiddleware,
    get_metrics,
    metrics_endpoint,
    setup_sentry,
)
from bi_portal.utils.config import get_config
from bi_portal.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    setup_logging()
    logger.info("Starting BI Portal access API...")

    config = get_config()
    setup_sentry(
        dsn=config.app.sentry_dsn,
        environment=config.app.environment,
        release=f"bi-portal-access@{__version__}",
        traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1")),
    )

    get_metrics()
    logger.info("API started successfully")

    yield

    logger.info("Shutting down BI Portal access API...")
    await shutdown_access_engine()

    cache = get_role_cache()
    if cache is not None:
        await cache.close()
        reset_role_cache()


app = FastAPI(
    title="BI Portal Access API",
    description="Subscription and access control for the multi-tenant BI portal",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Custom middlewares (order matters!)
app.add_middleware(ErrorHandlerMiddleware)
app.add_middleware(MetricsMiddleware)

app.include_router(access.router, prefix="/api/v1/access", tags=["Access"])
app.include_router(health.router, prefix="/api/v1/health", tags=["Health"])

app.add_api_route("/metrics", metrics_endpoint, methods=["GET"], tags=["Monitoring"])


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint."""
    return {
        "name": "BI Portal Access API",
        "version": __version__,
        "status": "operational",
        "docs": "/docs"
    }


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal Server Error",
            "message": str(exc) if os.getenv("DEBUG_MODE") == "true" else "An unexpected error occurred"
        }
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "bi_portal.api.main:app",
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=int(os.getenv("API_PORT", 8000)),
        reload=os.getenv("DEBUG_MODE", "false").lower() == "true"
    )
