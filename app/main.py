"""
FastAPI entry point for the travel booking core
"""
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.routing import APIRoute

from app.api.responses import error_response
from app.api.v1.router import api_v1_router
from app.config.database import create_tables
from app.config.settings import get_settings
from app.core.exceptions import BookingCoreError
from app.core.middleware import correlation_id_middleware, request_logging_middleware
from app.core.monitoring import health_router
from app.utils.my_logging import setup_logging

logger = logging.getLogger(__name__)

settings = get_settings()

API_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    create_tables()

    api_routes = [route for route in app.routes if isinstance(route, APIRoute)]
    for route in sorted(api_routes, key=lambda r: r.path):
        logger.debug(f"route {','.join(sorted(route.methods)):<12} {route.path}")
    logger.info(f"{settings.APP_NAME} ready with {len(api_routes)} routes")

    yield

    logger.info(f"{settings.APP_NAME} stopped")


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        description="Consultation appointments, trip and corporate bookings, payments",
        version=API_VERSION,
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url=None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT"],
        allow_headers=["*"],
    )

    # Registered last so it wraps the access log and the log lines carry the id
    app.middleware("http")(request_logging_middleware)
    app.middleware("http")(correlation_id_middleware)

    @app.exception_handler(BookingCoreError)
    async def booking_error_handler(request: Request, exc: BookingCoreError):
        logger.info(f"{request.method} {request.url.path} refused with {exc.code}: {exc.message}")
        return error_response(exc)

    app.include_router(health_router, prefix="/health", tags=["monitoring"])
    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/")
    async def root():
        return {"service": settings.APP_NAME, "version": API_VERSION, "status": "running"}

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
