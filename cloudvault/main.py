from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from redis.exceptions import RedisError
import logging

from cloudvault.core.config import settings
from cloudvault.core.database import init_models
from cloudvault.core.logging import configure_logging
from cloudvault.core.redis import redis_client
from cloudvault.core.storage import get_storage
from cloudvault.api.v1.router import api_router
from cloudvault.utils.exceptions import CloudVaultException

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle"""
    # Startup
    configure_logging()
    logger.info("Starting %s %s (%s)", settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT)
    await init_models()
    # Create the bucket before the first upload hits it
    await get_storage().ensure_bucket_exists()
    # Connect to Redis
    await redis_client.connect()

    yield

    # Shutdown
    logger.info("Shutting down...")
    # Disconnect from Redis
    await redis_client.disconnect()


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    lifespan=lifespan
)

# Set up CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CloudVaultException)
async def cloudvault_exception_handler(request: Request, exc: CloudVaultException):
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"code": exc.code, "message": exc.message}}
    )


# Include API router
app.include_router(api_router, prefix=settings.API_V1_PREFIX)


# Root endpoint
@app.get("/")
async def root():
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/api/docs",
        "redoc": "/api/redoc",
        "health": "/health",
        "api": settings.API_V1_PREFIX
    }


# Health check endpoint
@app.get("/health")
async def health_check():
    # Check the Redis broker used by the job queue
    redis_status = "healthy"
    try:
        if not await redis_client.ping():
            redis_status = "unhealthy"
    except RedisError:
        redis_status = "unhealthy"

    return {
        "status": "healthy" if redis_status == "healthy" else "degraded",
        "services": {
            "redis": redis_status
        }
    }
