"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from signalpress.api.routes import router
from signalpress.config import VERSION, Settings, get_settings
from signalpress.errors import AuthError, ConfigurationError, RateLimitError, SignalPressError
from signalpress.services import Services

logger = logging.getLogger(__name__)

GENERIC_ERROR = "An internal error occurred."
CORS_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def _auth_error(request: Request, exc: AuthError) -> JSONResponse:
    logger.info("%s %s: %s", request.method, request.url.path, exc)
    return _error(401, str(exc))


async def _rate_limit_error(request: Request, exc: RateLimitError) -> JSONResponse:
    logger.info("%s %s: %s", request.method, request.url.path, exc)
    return _error(429, str(exc))


async def _internal_error(request: Request, exc: Exception) -> JSONResponse:
    # Details may carry upstream provider text, so they stay in the log
    logger.error("%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc)
    return _error(400, GENERIC_ERROR)


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    settings = settings or get_settings()
    if not settings.jwt_secret:
        raise ConfigurationError("JWT_SECRET is not set")
    services = services or Services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("signalpress %s, origins: %s", VERSION, ", ".join(settings.allowed_origins))
        yield
        services.close()

    app = FastAPI(title="signalpress", version=VERSION, lifespan=lifespan)
    app.state.settings = settings
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_methods=["POST", "OPTIONS"],
        allow_headers=CORS_HEADERS,
    )
    app.add_exception_handler(AuthError, _auth_error)
    app.add_exception_handler(RateLimitError, _rate_limit_error)
    app.add_exception_handler(SignalPressError, _internal_error)
    app.add_exception_handler(RequestValidationError, _internal_error)
    app.add_exception_handler(Exception, _internal_error)
    app.include_router(router)
    return app
