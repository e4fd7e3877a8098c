"""FastAPI application entrypoint."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1 import v1_router
from app.core.config import get_settings
from app.core.database import close_db, init_db
from app.core.errors import (
    CapacityError,
    ConflictError,
    ConnectivityError,
    ConsistencyError,
    ControlPlaneError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    StatementError,
)
from app.core.logging import setup_logging

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[ControlPlaneError], int] = {
    InvalidInputError: status.HTTP_400_BAD_REQUEST,
    ForbiddenError: status.HTTP_403_FORBIDDEN,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    CapacityError: status.HTTP_409_CONFLICT,
    ConsistencyError: status.HTTP_409_CONFLICT,
    ConflictError: status.HTTP_409_CONFLICT,
    ConnectivityError: status.HTTP_502_BAD_GATEWAY,
    StatementError: status.HTTP_502_BAD_GATEWAY,
}


def status_for(exc: ControlPlaneError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    await init_db()
    yield
    await close_db()


app = FastAPI(
    title="Xeon Console",
    version="0.1.0",
    description="Control plane for tenant database instances",
    lifespan=lifespan,
)

# ── CORS ─────────────────────────────────────────────────────
_settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in _settings.allowed_origins.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── API routes ───────────────────────────────────────────────
app.include_router(v1_router)


@app.exception_handler(ControlPlaneError)
async def control_plane_error_handler(request: Request, exc: ControlPlaneError) -> JSONResponse:
    code = status_for(exc)
    if code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=code, content={"detail": str(exc)})


@app.get("/health", tags=["system"])
async def health_check() -> dict:
    return {"status": "ok"}
