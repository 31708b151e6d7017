"""
API package for TraceWipe.

This package aggregates the API routers and builds the FastAPI
application around a :class:`tracewipe.service.Service`. The API is
versioned under ``/api/v1``.
"""

from fastapi import APIRouter, FastAPI

from .v1.commands import router as commands_router
from ..service import Service

api_router = APIRouter()
api_router.include_router(commands_router)


def create_app(service: Service) -> FastAPI:
    app = FastAPI(title="TraceWipe", version="0.1.0")
    app.state.service = service
    app.include_router(api_router)
    return app


__all__ = ["api_router", "create_app"]
