# filemerger/main.py
from __future__ import annotations

from pathlib import Path

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from filemerger.api import routers
from filemerger.core.config import get_settings
from filemerger.core.errors import (
    MergeInProgressError,
    MergerError,
    OrderingDisabledError,
    SessionNotFoundError,
    SinkError,
    ValidationError,
)
from filemerger.core.logging import configure_logging

# === Settings and logging ===
settings = get_settings()
logger = configure_logging()

app = FastAPI(title=settings.app_name, version=settings.app_version)

# === CORS ===
allow_origins = [origin.strip() for origin in settings.allow_origins if origin.strip()] or ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)

# === Errors ===
_STATUS_BY_ERROR = {
    SessionNotFoundError: status.HTTP_404_NOT_FOUND,
    MergeInProgressError: status.HTTP_409_CONFLICT,
    OrderingDisabledError: status.HTTP_409_CONFLICT,
    ValidationError: status.HTTP_400_BAD_REQUEST,
    SinkError: status.HTTP_502_BAD_GATEWAY,
}


def _error(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"status": "error", "detail": detail})


@app.exception_handler(MergerError)
async def merger_error_handler(request: Request, exc: MergerError) -> JSONResponse:
    status_code = _STATUS_BY_ERROR.get(type(exc), status.HTTP_400_BAD_REQUEST)
    logger.warning("%s %s -> %s: %s", request.method, request.url.path, status_code, exc)
    return _error(status_code, str(exc))


@app.exception_handler(IndexError)
async def index_error_handler(request: Request, exc: IndexError) -> JSONResponse:
    return _error(status.HTTP_400_BAD_REQUEST, str(exc))


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return _error(status.HTTP_400_BAD_REQUEST, str(exc))


# === Routers ===
for router in routers:
    app.include_router(router)

# === Static downloads ===
downloads_dir: Path = settings.public_dir / "downloads"
downloads_dir.mkdir(parents=True, exist_ok=True)
app.mount("/downloads", StaticFiles(directory=str(downloads_dir)), name="downloads")


# === Basic endpoints ===
@app.get("/")
async def root() -> dict:
    logger.debug("Root endpoint accessed")
    return {"message": f"Welcome to {settings.app_name}"}


@app.get("/health")
async def health_check() -> dict:
    logger.debug("Health check invoked")
    return {"status": "ok", "message": f"{settings.app_name} is running"}
