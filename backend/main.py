"""
Crash Alert - Backend Entrypoint

FastAPI application factory and server configuration.
Run with: uvicorn main:app --app-dir backend --reload
"""

from contextlib import asynccontextmanager
import logging
import uuid
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from crash_alert import __version__
from crash_alert.config import Settings, get_settings
from crash_alert.api import health, routes
from crash_alert.core.exceptions import CrashAlertError
from crash_alert.core.logging import LogContext, setup_structured_logging
from crash_alert.core.pipeline import IngestionPipeline, create_pipeline

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup:
        - Open the database engine and create tables (storage_backend="sql")
        - Create the ingestion pipeline and load the facility seed file

    Shutdown:
        - Shut down the pipeline
        - Dispose of the database engine
    """
    # === Startup ===
    settings: Settings = app.state.settings
    logger.info("Crash Alert starting in %s mode (storage=%s)", settings.app_env, settings.storage_backend)

    engine = None
    pipeline: Optional[IngestionPipeline] = app.state.pipeline
    if pipeline is None:
        if settings.storage_backend == "sql":
            from crash_alert.storage import create_db_engine, init_db

            engine = create_db_engine(
                settings.database_url,
                pool_size=settings.database_pool_size,
                max_overflow=settings.database_max_overflow,
                timeout_seconds=settings.storage_timeout_seconds,
            )
            init_db(engine)

        pipeline = create_pipeline(settings, engine=engine)
        app.state.pipeline = pipeline

    await pipeline.startup()
    logger.info(
        "Pipeline ready: radius=%s, anonymize_logs=%s",
        settings.search_radius or "unbounded",
        settings.anonymize_logs,
    )

    yield

    # === Shutdown ===
    logger.info("Crash Alert shutting down")
    await pipeline.shutdown()
    if engine is not None:
        engine.dispose()
    logger.info("Shutdown complete")


def create_app(
    settings: Optional[Settings] = None,
    pipeline: Optional[IngestionPipeline] = None,
) -> FastAPI:
    """
    Application factory.

    Args:
        settings: Configuration (default: environment)
        pipeline: Prebuilt pipeline; skips engine and pipeline creation
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Crash Alert",
        description="Crash-event ingestion and nearest emergency facility resolution",
        version=__version__,
        docs_url="/docs" if settings.app_debug else None,
        redoc_url="/redoc" if settings.app_debug else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.pipeline = pipeline

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Correlation IDs ---
    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next):
        correlation_id = request.headers.get(REQUEST_ID_HEADER) or f"http_{uuid.uuid4().hex[:12]}"
        with LogContext(correlation_id=correlation_id):
            response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = correlation_id
        return response

    # --- Errors ---
    @app.exception_handler(CrashAlertError)
    async def crash_alert_error_handler(request: Request, exc: CrashAlertError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.code, "message": exc.message, "details": exc.details},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": "INTERNAL_ERROR", "message": "Internal server error", "details": {}},
        )

    # --- Routes ---
    app.include_router(routes.router, prefix="/api")
    app.include_router(health.router)

    @app.get("/")
    async def root():
        """Service banner with the available endpoints."""
        return {
            "service": "Crash Alert",
            "status": "operational",
            "version": __version__,
            "endpoints": {
                "crash_ping": "GET /api/crash/ping",
                "crash_upload": "POST /api/crash/upload",
                "incidents": "GET /api/incidents",
                "incident": "GET /api/incidents/{incident_id}",
                "facilities": "GET|POST /api/facilities/{category}",
                "nearby_facilities": "GET /api/facilities/{category}/nearby",
                "health": "GET /api/system/health",
            },
        }

    return app


settings = get_settings()
setup_structured_logging(settings.app_log_level, json_format=settings.log_json or settings.is_production)

# Create app instance
app = create_app(settings)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.backend_host, port=settings.backend_port)
