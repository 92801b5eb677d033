"""
trophyroom.api.main — FastAPI application entry point
=======================================================

Run with::

    uvicorn trophyroom.api.main:app --reload --port 8000

or ``python -m trophyroom``.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from trophyroom.api.auth import router as auth_router  # noqa: E402
from trophyroom.api.deps import get_engine  # noqa: E402
from trophyroom.api.routes.admin import router as admin_router  # noqa: E402
from trophyroom.api.routes.callable import router as callable_router  # noqa: E402
from trophyroom.api.routes.documents import router as documents_router  # noqa: E402
from trophyroom.errors import CallableError  # noqa: E402
from trophyroom.services.log_buffer import install_handler  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — attach the log buffer, warm the DB engine."""
    # Uvicorn reconfigures logging on start, so the handler goes on here.
    install_handler()

    engine = get_engine()
    logger.info("TrophyRoom API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("TrophyRoom API shutting down")


app = FastAPI(
    title="TrophyRoom API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CallableError)
async def callable_error_handler(request: Request, exc: CallableError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error("%s %s → %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.http_status, content={"error": exc.to_dict()})


app.include_router(auth_router, prefix="/api")
app.include_router(callable_router, prefix="/api")
app.include_router(documents_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
