"""API routes package."""

from gateway.routes.upload_routes import router as upload_router

__all__ = ["upload_router"]
