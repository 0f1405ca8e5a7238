# portal/main.py
# FastAPI application entry point
# Manages application lifecycle, error mapping and routing
# RELEVANT FILES: database.py, middleware.py, config.py, routers/__init__.py

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
import time
from typing import Any, Dict

from .auth import get_token_service
from .config import get_settings
from .database import close_connections, create_tables, get_engine, ping
from .exceptions import PortalError
from .middleware import setup_middleware
from .routers import (
    auth_router,
    client_services_router,
    clients_router,
    documents_router,
    download_router,
    pages_router,
    services_router,
    subservices_router,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle.
    Initialize connections on startup, clean up on shutdown.
    """
    settings = get_settings()

    logger.info(f"Starting {settings.app_name}...")
    logger.info(f"Environment: {settings.environment}, debug: {settings.debug}")

    try:
        logger.info("Initializing database engine...")
        get_engine()
        if settings.db_create_all:
            await create_tables()
        logger.info("✓ Database engine initialized")

        get_token_service()
        logger.info(f"✓ Token service ready ({settings.jwt_algorithm}, {settings.token_ttl_days}d)")

        logger.info(f"✓ {settings.app_name} started successfully")

    except Exception as e:
        logger.error(f"Failed to start application: {e}")
        raise

    yield

    logger.info("Shutting down application...")

    try:
        await close_connections()
        logger.info("✓ All connections closed")
    except Exception as e:
        logger.error(f"Error during shutdown: {e}")

    logger.info("✓ Application shutdown complete")


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Client portal: onboarding, service catalog and document exchange",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Setup all middleware (gate, CORS, logging, error handling)
    setup_middleware(app, settings)

    @app.exception_handler(PortalError)
    async def portal_error_handler(request: Request, exc: PortalError):
        if exc.status_code >= 500:
            logger.error(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": exc.message},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = [
            {"field": ".".join(str(p) for p in err.get("loc", ())[1:]), "message": err.get("msg")}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "success": False,
                "message": "Invalid request data",
                "data": {"errors": errors},
            },
        )

    @app.get("/health", response_model=Dict[str, Any])
    async def health_check():
        """Verifies the database connection is working"""
        health_status = {"status": "healthy", "timestamp": time.time(), "checks": {}}
        try:
            await ping()
            health_status["checks"]["database"] = "ok"
        except Exception as e:
            logger.error(f"Health check database error: {e}")
            health_status["status"] = "unhealthy"
            health_status["checks"]["database"] = "error"
        return health_status

    # API Routes - organize by feature
    app.include_router(auth_router)
    app.include_router(clients_router)
    app.include_router(services_router)
    app.include_router(subservices_router)
    app.include_router(client_services_router)
    app.include_router(documents_router)
    app.include_router(download_router)

    # Gate-protected pages
    app.include_router(pages_router)

    return app


app = create_app()


# For local development
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "portal.main:app",
        host="0.0.0.0",
        port=8000,
        reload=get_settings().debug,
        log_level="info",
    )
