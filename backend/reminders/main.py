"""
Portfolio Reminder & Escalation Service - Main FastAPI Application

This is the entry point for the FastAPI application.
It configures middleware, routes, and lifecycle handlers.
"""

from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config.settings import settings
from .api.routes import api_router
from .api.middleware import CorrelationIdMiddleware, register_error_handlers
from .engine.factory import build_engine
from .engine.sweep import ReminderEngine
from .repositories.mongo_client import create_indexes, close_connection, health_check
from .scheduler.sweep_scheduler import SweepScheduler
from .services.rule_service import RuleService
from .utils.logger import setup_logging, get_logger

# Setup logging first
setup_logging()
logger = get_logger(__name__)

VERSION = "1.0.0"


# =============================================================================
# Application Lifecycle
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
        - Creates MongoDB indexes and builds the engine (unless injected)
        - Starts the sweep scheduler

    Shutdown:
        - Stops scheduler
        - Closes database connections
    """
    logger.info("Starting reminder service...")

    owns_engine = app.state.engine is None
    if owns_engine:
        try:
            create_indexes()
        except Exception as e:
            logger.error(f"Failed to create indexes: {e}")
        app.state.engine = build_engine()
        app.state.rule_service = RuleService(app.state.engine.rules, app.state.engine.tracker)

    if settings.scheduler_enabled:
        try:
            app.state.scheduler = SweepScheduler(app.state.engine)
            app.state.scheduler.start()
        except Exception as e:
            logger.error(f"Failed to start scheduler: {e}")

    logger.info("Application started successfully")

    yield

    logger.info("Shutting down...")
    if app.state.scheduler is not None:
        app.state.scheduler.stop()
        app.state.scheduler = None
    if owns_engine:
        close_connection()
    logger.info("Application shutdown complete")


# =============================================================================
# Application Factory
# =============================================================================

def create_app(
    engine: Optional[ReminderEngine] = None,
    rule_service: Optional[RuleService] = None
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        engine: Pre-built engine (otherwise built against MongoDB at startup)
        rule_service: Pre-built rule service (defaults to one sharing the engine's stores)

    Returns:
        Configured FastAPI application instance
    """
    application = FastAPI(
        title="Portfolio Reminder & Escalation Service",
        description="Time-based reminders and escalations for projects, milestones and finance records",
        version=VERSION,
        lifespan=lifespan,
        docs_url="/api/docs" if settings.debug else None,
        redoc_url="/api/redoc" if settings.debug else None,
        openapi_url="/api/openapi.json" if settings.debug else None,
    )

    if engine is not None and rule_service is None:
        rule_service = RuleService(engine.rules, engine.tracker)
    application.state.engine = engine
    application.state.rule_service = rule_service
    application.state.scheduler = None

    # Register middleware
    _configure_middleware(application)

    # Register error handlers
    register_error_handlers(application)

    # Register routes
    _configure_routes(application)

    return application


def _configure_middleware(app: FastAPI) -> None:
    """Configure application middleware."""
    # allow_credentials must be False when allowing all origins
    allow_all = settings.cors_origins.strip() == "*"

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else settings.cors_origins_list,
        allow_credentials=not allow_all,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-Id"],
    )

    # Correlation ID middleware
    app.add_middleware(CorrelationIdMiddleware)


def _configure_routes(app: FastAPI) -> None:
    """Configure application routes."""
    # API routes (versioned)
    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health", tags=["Health"])
    async def health():
        """
        Health check endpoint.

        Returns application health status including database connectivity
        and whether the sweep scheduler is running.
        """
        mongo_health = health_check()
        scheduler = app.state.scheduler
        return {
            "status": "healthy" if mongo_health.get("status") == "healthy" else "degraded",
            "version": VERSION,
            "environment": settings.environment,
            "mongo": mongo_health,
            "scheduler": {
                "running": bool(scheduler and scheduler.is_running),
                "sweeps": scheduler.sweep_count if scheduler else 0
            }
        }

    @app.get("/", tags=["Health"])
    async def root():
        """Root endpoint with API information."""
        return {
            "name": "Portfolio Reminder & Escalation Service",
            "version": VERSION,
            "docs": "/api/docs" if settings.debug else None
        }


# =============================================================================
# Application Instance
# =============================================================================

app = create_app()
