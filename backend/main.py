# main.py — Donelist API application
# - namespaces, lists, tasks, buckets, labels and teams under /api/v1
# - user and link-share bearer tokens
# - domain errors rendered as {code, message}
# - CalDAV surface under /dav

import os
import uuid
import time
import json
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from database import init_db, close_db, check_database
from errors import AppError
from openid import OpenIDProviderCache
from telemetry import setup_telemetry

logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s %(message)s",
)
logger = logging.getLogger("donelist")

VERSION = "1.0.0"
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")


def _check_startup_config() -> bool:
    """Log every insecure or inconsistent setting. Returns True when there were none."""
    problems = []

    if len(os.getenv("JWT_SECRET_KEY", "")) < 32:
        problems.append("JWT_SECRET_KEY is missing or shorter than 32 characters; issued tokens die with the process")

    database_url = os.getenv("DATABASE_URL", "")
    if ENVIRONMENT == "production" and (not database_url or database_url.startswith("sqlite")):
        problems.append("production is running on SQLite; point DATABASE_URL at PostgreSQL")

    if os.getenv("OPENID_ENABLED", "false").lower() == "true" and not os.getenv("OPENID_PROVIDERS"):
        problems.append("OPENID_ENABLED is set but OPENID_PROVIDERS lists no provider")

    for problem in problems:
        logger.warning(problem)
    return not problems


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Donelist {VERSION} starting ({ENVIRONMENT})")
    await init_db()
    _check_startup_config()
    # Discovery is lazy; the first /auth/openid/providers call fills the cache
    app.state.openid_providers = OpenIDProviderCache.from_env()
    setup_telemetry(app)
    yield
    await close_db()
    logger.info("Donelist stopped")


app = FastAPI(
    title="Donelist",
    description="Multi-user to-do lists with namespaces, sharing, link shares and CalDAV",
    version=VERSION,
    lifespan=lifespan,
)

# ============================================================
# CORS
# ============================================================

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
    if origin.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID", "x-pagination-total-pages", "x-pagination-result-count"],
)


# ============================================================
# MIDDLEWARE
# ============================================================

@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    request.state.request_id = request_id

    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000

    response.headers["X-Request-ID"] = request_id
    response.headers["X-Content-Type-Options"] = "nosniff"
    if request.url.path.startswith("/dav/"):
        response.headers["DAV"] = "1, calendar-access"
    else:
        response.headers["X-Frame-Options"] = "DENY"

    logger.info(f"{request.method} {request.url.path} {response.status_code} {elapsed_ms:.1f}ms rid={request_id[:8]}")
    return response


# ============================================================
# EXCEPTION HANDLERS
# ============================================================

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    logger.debug(f"{request.method} {request.url.path} failed with {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


def _jsonable_input(value):
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    fields = []
    for err in exc.errors():
        field = {"field": ".".join(str(part) for part in err.get("loc", ())), "message": str(err.get("msg", ""))}
        if "input" in err:
            field["input"] = _jsonable_input(err["input"])
        fields.append(field)
    return JSONResponse(
        status_code=422,
        content={"code": 2002, "message": "The request data is invalid.", "details": {"fields": fields}},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    request_id = getattr(request.state, "request_id", None)
    logger.error(f"Unhandled error on {request.method} {request.url.path} rid={request_id}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"code": 0, "message": "Internal server error", "details": {"request_id": request_id}},
    )


# ============================================================
# ROUTERS
# ============================================================

from routers import (
    auth, openid, namespaces, lists, sharing, link_shares, tasks, buckets,
    labels, teams, notifications, migration, caldav,
)

for module in (
    auth, openid, namespaces, lists, sharing, link_shares, tasks, buckets,
    labels, teams, notifications, migration, caldav,
):
    app.include_router(module.router)


@app.get("/health")
async def health_check(request: Request):
    database = await check_database()
    providers = getattr(request.app.state, "openid_providers", None)
    return {
        "status": "healthy" if database == "connected" else "degraded",
        "version": VERSION,
        "environment": ENVIRONMENT,
        "database": database,
        "openid_enabled": bool(providers and providers.enabled),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=ENVIRONMENT == "development",
    )
