"""API routes."""

from app.api.deals import router as deals_router
from app.api.pipeline import router as pipeline_router

__all__ = ["deals_router", "pipeline_router"]
