"""FastAPI application factory"""

import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from core.config import Settings, get_settings
from core.dependencies import ServiceContainer, build_services
from core.exceptions import TokenMissing, Unauthorized
from core.logging import setup_logging
from routers import events_router, state_router, task_router, token_router

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    services: ServiceContainer | None = None,
) -> FastAPI:
    """Create and configure FastAPI application

    ``services`` replaces the graph the lifespan would build (tests pass
    one wired to fakes).
    """
    settings = settings or (services.settings if services else get_settings())

    # Setup logging first
    setup_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Handle startup and shutdown"""
        app.state.start_time = time.time()

        # Startup
        logger.info("Starting overlay API server")
        logger.info(f"Environment: {settings.environment}")
        logger.info(f"Frontend URL: {settings.frontend_url}")

        if app.state.services is None:
            app.state.services = build_services(settings)
        logger.info(
            f"Generation: {'enabled' if app.state.services.generator else 'fallback only'}"
        )

        yield

        # Shutdown
        logger.info("Shutting down overlay API server")
        try:
            await app.state.services.close()
        except Exception as e:
            logger.exception(f"Error during shutdown: {e}")

    # Create FastAPI app with lifespan
    app = FastAPI(
        title="Overlay API",
        description="Signed overlay links, AI task lines and live overlay events",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )
    app.state.services = services
    app.state.start_time = time.time()

    # Configure CORS; overlays run as browser sources on any origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routers
    app.include_router(token_router.router)
    app.include_router(task_router.router)
    app.include_router(events_router.router)
    app.include_router(state_router.router)

    # Token failures from any route or dependency
    @app.exception_handler(Unauthorized)
    async def unauthorized_handler(request: Request, exc: Unauthorized) -> JSONResponse:
        error = "token_missing" if isinstance(exc, TokenMissing) else "invalid_token"
        return JSONResponse({"ok": False, "error": error}, status_code=401)

    # Root endpoint
    @app.get("/")
    async def root():
        """Root endpoint - minimal service info"""
        return {"service": "overlay-api", "status": "running"}

    # Liveness probe: always 200, no store or provider call
    @app.get("/health")
    async def health():
        """Liveness check for Render / Docker / K8s"""
        return {
            "status": "healthy",
            "uptime_seconds": int(time.time() - app.state.start_time),
        }

    @app.get("/status")
    async def status():
        """Readiness / status endpoint"""
        services: ServiceContainer | None = app.state.services
        return {
            "service": "overlay-api",
            "version": "1.0.0",
            "uptime_seconds": int(time.time() - app.state.start_time),
            "ready": services is not None,
            "generation_enabled": bool(services and services.generator),
            "subscribers": services.bus.subscriber_count() if services else 0,
            "environment": settings.environment,
        }

    # Ping endpoint
    @app.api_route("/ping", methods=["GET", "HEAD"], response_class=PlainTextResponse)
    async def ping():
        """Ping endpoint"""
        return "pong"

    logger.info("FastAPI application configured")

    return app
