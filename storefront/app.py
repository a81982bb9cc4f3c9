"""
FastAPI application entry point for the storefront backend.
"""

from __future__ import annotations

import logging

import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from storefront.config import get_settings
from storefront.dependencies import get_token_issuer
from storefront.errors import StorefrontError
from storefront.routes import router

logger = logging.getLogger(__name__)


async def _storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


async def _request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"detail": "Malformed request", "errors": jsonable_encoder(exc.errors())},
    )


async def _database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("Database failure on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Unexpected error"})


def create_app() -> FastAPI:
    settings = get_settings()
    # Fails fast with ConfigurationError when no signing key is configured.
    get_token_issuer()
    app = FastAPI(title="Storefront Backend (FastAPI)", version="0.1.0")
    app.add_exception_handler(StorefrontError, _storefront_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(SQLAlchemyError, _database_error_handler)
    app.include_router(router, prefix=settings.api_prefix)
    return app


def run() -> None:
    """Serve the app with uvicorn (``storefront`` console script)."""
    logging.basicConfig(level=logging.INFO)
    uvicorn.run("storefront.app:create_app", factory=True, host="0.0.0.0", port=8000)
