from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from datetime import datetime, timezone
from contextlib import asynccontextmanager

from dicomvault.core.config import get_settings
from dicomvault.core.logging import setup_logging, get_logger
from dicomvault.core.logging.middleware import LoggingMiddleware
from dicomvault.core.exception_handlers import register_exception_handlers
from dicomvault.core.container import init_container
from dicomvault.core.database import init_db, close_db, check_db_connection
from dicomvault.api.routes import images
from dicomvault.models.schemas import HealthCheck

settings = get_settings()

# Initialize structured logging
setup_logging()
logger = get_logger(__name__)

logger.info(
    "Starting DICOM Vault API",
    extra={
        "version": settings.APP_VERSION,
        "debug": settings.DEBUG,
        "log_level": settings.LOG_LEVEL
    }
)


# Lifespan event handler for startup and shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan event handler for application startup and shutdown.

    Creates missing tables on startup and disposes of the engine on shutdown.
    """
    engine = app.container.db_engine()
    await init_db(engine)

    yield

    logger.info("Application shutdown initiated")
    await close_db(engine)
    logger.info("Application shutdown complete")


# Create FastAPI app with lifespan
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="DICOM upload, storage and metadata reconciliation API",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan
)

# Initialize Dependency Injection Container
container = init_container()
app.container = container

logger.info("DI Container initialized and attached to app")

# Register exception handlers (MUST be before routes)
register_exception_handlers(app)

# Add logging middleware (Operational logging)
app.add_middleware(LoggingMiddleware)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


async def _health() -> HealthCheck:
    healthy = await check_db_connection(app.container.db_engine())
    return HealthCheck(
        status="healthy" if healthy else "degraded",
        version=settings.APP_VERSION,
        timestamp=datetime.now(timezone.utc),
        database="connected" if healthy else "unavailable"
    )


@app.get("/", response_model=HealthCheck, tags=["Health"])
async def health_check():
    """Health check endpoint."""
    return await _health()


@app.get("/api/health", response_model=HealthCheck, tags=["Health"])
async def api_health_check():
    """API health check endpoint."""
    return await _health()


# Include routers
app.include_router(images.router, prefix=settings.API_V1_STR)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "dicomvault.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
