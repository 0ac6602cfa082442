"""
FastAPI main application.

Handles:
- Application initialization
- Middleware configuration (CORS, rate limiting)
- Route mounting
- Mapping consistency errors to HTTP responses
"""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi.middleware import SlowAPIMiddleware

from meetfood.api.routes import users, video_posts
from meetfood.core.config import settings
from meetfood.core.errors import ConsistencyError
from meetfood.core.rate_limit import limiter, rate_limit_exception, rate_limit_handler

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# HTTP status for each error kind
ERROR_STATUS = {
    "not_found": 404,
    "already_exists": 409,
    "invariant_violation": 409,
    "unauthorized": 403,
    "upstream_failure": 502,
    "partial_failure": 500,
}

# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Short-form food video sharing backend",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(rate_limit_exception, rate_limit_handler)
app.add_middleware(SlowAPIMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.backend_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Uploaded media is served from the local asset store
app.mount(
    "/assets",
    StaticFiles(directory=settings.local_storage_path, check_dir=False),
    name="assets",
)


@app.on_event("startup")
async def startup_event():
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Debug mode: {settings.debug}")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down application")


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment
    }


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "app": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs" if settings.debug else "Documentation disabled in production",
        "health": "/health"
    }


# Mount API routes
app.include_router(
    users.router,
    prefix=f"{settings.api_v1_prefix}/user",
    tags=["user"]
)

app.include_router(
    video_posts.router,
    prefix=f"{settings.api_v1_prefix}/video",
    tags=["video"]
)


# Exception handlers
@app.exception_handler(ConsistencyError)
async def consistency_error_handler(request: Request, exc: ConsistencyError):
    """Map consistency errors to HTTP statuses by kind."""
    status_code = ERROR_STATUS.get(exc.kind, 500)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.to_dict()}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.exception_handler(ValueError)
async def value_error_handler(request, exc):
    """Handle ValueError exceptions."""
    return JSONResponse(
        status_code=400,
        content={"detail": str(exc)}
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request, exc):
    """Handle uncaught exceptions."""
    logger.error(f"Uncaught exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "meetfood.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
