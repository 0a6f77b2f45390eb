import logging
import os
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from app.api.deps import build_services
from app.api.routes import schedules, slots
from app.core.config import settings, _ENV_FILE
from app.core.db import async_session_maker, engine
from app.core.errors import SchedulingError
from app.services.catalog_client import HttpCatalog, HttpUserDirectory

if os.getenv("ENV") != "production":
    logging.basicConfig(level=logging.DEBUG)
else:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s"}',
    )
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Loading .env from: %s (exists: %s)", _ENV_FILE, _ENV_FILE.exists())
    logger.info("Catalog: %s, user directory: %s", settings.catalog_base_url, settings.directory_base_url)
    http_client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
    app.state.services = build_services(
        async_session_maker,
        HttpCatalog(http_client, settings.catalog_base_url),
        HttpUserDirectory(http_client, settings.directory_base_url),
    )
    yield
    await http_client.aclose()
    await engine.dispose()


app = FastAPI(
    title="Clinic Scheduling API",
    description="Slot model, package capacity and booking lifecycle of clinic schedules",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Idempotency-Key"],
)

app.include_router(schedules.router, prefix="/api/v1")
app.include_router(slots.router, prefix="/api/v1")


def _cors_headers(origin: str | None) -> dict[str, str]:
    """Add CORS headers to error responses so the browser doesn't block them."""
    headers = {
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": "GET, POST, PUT, PATCH, DELETE, OPTIONS",
        "Access-Control-Allow-Headers": "Authorization, Content-Type, Idempotency-Key",
    }
    if origin and origin in settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = origin
    elif settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = settings.cors_origins_list[0]
    return headers


def _error_body(code: str, detail: str, retryable: bool) -> dict:
    return {"detail": detail, "code": code, "retryable": retryable}


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    """Typed failures keep their code so clients can tell 'pick another slot' from 'retry'."""
    if exc.status_code >= 500:
        logger.warning("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.code, exc.detail, exc.retryable),
        headers=_cors_headers(request.headers.get("origin")),
    )


@app.exception_handler(OperationalError)
async def store_unavailable_handler(request: Request, exc: OperationalError) -> JSONResponse:
    logger.warning("Schedule store unavailable on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content=_error_body("unavailable", "Schedule store unavailable, retry later", True),
        headers=_cors_headers(request.headers.get("origin")),
    )


@app.exception_handler(PoolTimeoutError)
async def store_timeout_handler(request: Request, exc: PoolTimeoutError) -> JSONResponse:
    logger.warning("No database connection available on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=504,
        content=_error_body("timeout", "Schedule store busy, retry later", True),
        headers=_cors_headers(request.headers.get("origin")),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return actual error in JSON; include CORS so 500 responses are not blocked by browser."""
    origin = request.headers.get("origin")
    headers = _cors_headers(origin)
    if isinstance(exc, HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=headers,
        )
    logger.exception("Unhandled exception: %s", exc)
    detail = f"{type(exc).__name__}: {str(exc)}"
    return JSONResponse(
        status_code=500,
        content={"detail": detail},
        headers=headers,
    )


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
