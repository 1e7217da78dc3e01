from __future__ import annotations

import logging
import os
from typing import Iterable, Optional
from urllib.parse import urlsplit

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .database import lifespan
from .routes import gigpack, gigs, notifications, roles

app = FastAPI(title="Gig Pack API", lifespan=lifespan)

logger = logging.getLogger(__name__)

_DEV_ENVIRONMENTS = ("development", "dev", "local")


def _normalize_origin(value: Optional[str]) -> Optional[str]:
    if not value or not value.strip():
        return None
    parsed = urlsplit(value.strip())
    if not parsed.scheme or not parsed.netloc:
        return None
    return f"{parsed.scheme}://{parsed.netloc}"


def collect_cors_origins() -> list[str]:
    origin_keys: Iterable[str] = ("FRONTEND_APP_URL", "SUPABASE_URL")
    origins = {
        origin
        for origin in (_normalize_origin(os.getenv(key)) for key in origin_keys)
        if origin
    }

    extra_origins = os.getenv("ADDITIONAL_CORS_ORIGINS")
    if extra_origins:
        origins.update(
            origin
            for origin in (_normalize_origin(candidate) for candidate in extra_origins.split(","))
            if origin
        )

    if not origins:
        origins.update({"http://localhost:3000", "http://127.0.0.1:3000"})
        logger.debug("CORS origins not configured; defaulting to %s", sorted(origins))

    return sorted(origins)


allowed_origins = collect_cors_origins()

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _cors_headers(request: Request) -> dict[str, str]:
    # Error responses bypass the middleware, so CORS headers are added by hand.
    origin = request.headers.get("origin")
    if origin and origin in allowed_origins:
        return {
            "Access-Control-Allow-Origin": origin,
            "Access-Control-Allow-Credentials": "true",
        }
    return {}


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=_cors_headers(request),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": jsonable_errors(exc)},
        headers=_cors_headers(request),
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Strip non-serializable ``ctx`` values (e.g. raised ``ValueError``) from validation errors."""

    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {key: str(value) for key, value in error["ctx"].items()}
        errors.append(error)
    return errors


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    is_dev = os.getenv("ENVIRONMENT", "development").lower() in _DEV_ENVIRONMENTS
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": str(exc) if is_dev else "Internal server error",
            "type": type(exc).__name__,
        },
        headers=_cors_headers(request),
    )


app.include_router(gigs.router)
app.include_router(gigpack.router)
app.include_router(notifications.router)
app.include_router(roles.router)


@app.get("/")
async def root():
    return {"message": "Gig pack backend is running"}
