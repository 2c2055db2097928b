"""
PayDesk - FastAPI Application Entry Point

This is the main entry point for the FastAPI application.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from paydesk.config import Settings, get_settings
from paydesk.database import Database
from paydesk.middleware.security import RateLimiter, setup_security_middleware
from paydesk.routers import auth, expenses, notifications, salary_slips, users
from paydesk.services.auth_service import AuthService
from paydesk.utils.error_handling import setup_exception_handlers

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if get_settings().debug else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def seed_default_admin(app: FastAPI) -> None:
    """
    Create the configured admin account on startup, if one is configured.
    """
    settings: Settings = app.state.settings
    if not settings.admin_email or not settings.admin_password:
        logger.info("No default admin configured; skipping seed")
        return

    async with app.state.db.session_maker() as session:
        admin = await AuthService(session).ensure_default_admin(
            settings.admin_email,
            settings.admin_password,
            settings.admin_name,
        )
        logger.info(f"Default admin ready: {admin.email}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI.
    Handles startup and shutdown events.
    """
    settings: Settings = app.state.settings
    db: Database = app.state.db

    # Startup
    logger.info(f"Starting {settings.app_name}...")
    logger.info(f"Environment: {settings.app_env}")

    db.init()
    if settings.create_tables_on_startup:
        await db.create_all()
        logger.info("Database tables initialized")

    try:
        await seed_default_admin(app)
    except SQLAlchemyError as e:
        logger.warning(f"Default admin seeding skipped: {e}")

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.app_name}...")
    await db.dispose()
    app.state.rate_limiter.reset()


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    """
    Build an application with its own database handle and rate limiter.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Payroll and expense management API",
        version="0.1.0",
        docs_url="/api/docs" if not settings.is_production else None,
        redoc_url="/api/redoc" if not settings.is_production else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.db = database or Database.from_settings(settings)

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    setup_security_middleware(app, settings, limiter=rate_limiter)
    setup_exception_handlers(app)

    for module in (auth, users, expenses, salary_slips, notifications):
        app.include_router(module.router, prefix=settings.api_prefix)

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint."""
        database_status = "connected"
        try:
            async with app.state.db.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, RuntimeError) as e:
            logger.error(f"Health check database query failed: {e}")
            database_status = "unavailable"
        return {
            "status": "healthy" if database_status == "connected" else "degraded",
            "service": settings.app_name,
            "environment": settings.app_env,
            "database": database_status,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=get_settings().is_development,
    )
