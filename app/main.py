"""
Dealscore FastAPI application entry point.

Events and lifecycle commands -> deal updated + audit -> recalculation -> score + history
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app import __version__
from app.config import get_settings
from app.db.session import check_db_connection, engine

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    logger.info("Dealscore starting")
    try:
        try:
            check_db_connection()
            logger.info("Database connection verified")
        except Exception as e:
            logger.critical("Database unreachable: %s", e)
            raise

        # Active scoring config must load and validate before serving requests
        try:
            from app.scoring_config import load_scoring_config

            config = load_scoring_config()
            logger.info(
                "Scoring config %s validated (daily sweep at %s)",
                config.version,
                config.daily_sweep_time,
            )
        except Exception as e:
            logger.critical("Scoring config validation failed at startup: %s", e)
            raise

        yield
    finally:
        logger.info("Dealscore shutting down")
        engine.dispose()
        logger.info("Database connection pool closed")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    # Mount API routes
    from app.api.deals import router as deals_router
    from app.api.pipeline import router as pipeline_router

    app.include_router(deals_router, prefix="/api/deals", tags=["deals"])
    app.include_router(pipeline_router, prefix="/api/pipeline", tags=["pipeline"])

    # Internal job endpoints (cron and scripts, token-authenticated)
    from app.api.internal import router as internal_router

    app.include_router(internal_router, tags=["internal"])

    @app.get("/health")
    def health() -> dict:
        """Health check endpoint. Confirms DB connectivity."""
        from sqlalchemy import text

        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return {
                "status": "ok",
                "version": __version__,
                "database": "connected",
            }
        except Exception:
            from fastapi.responses import JSONResponse

            return JSONResponse(
                status_code=503,
                content={
                    "status": "unhealthy",
                    "version": __version__,
                    "database": "disconnected",
                },
            )

    return app


app = create_app()
