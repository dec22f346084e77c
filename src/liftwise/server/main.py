"""
Liftwise FastAPI server main entrypoint.
Handles CORS, error handling, health checks and API routers.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import psutil
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..db import close_db, init_db
from ..logging_setup import setup_logging
from .routes.programmes import router as r_programmes
from .routes.progress import router as r_progress
from .routes.suggestions import router as r_suggestions
from .routes.workouts import router as r_workouts


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    try:
        await init_db()
        logging.info("Database initialized")
    except Exception as e:
        logging.exception("FastAPI startup failed: %s", e)
        raise

    yield

    try:
        await close_db()
        logging.info("FastAPI server shutdown completed")
    except Exception as e:
        logging.exception("FastAPI shutdown failed: %s", e)


app = FastAPI(
    title="Liftwise API",
    description="Progress tracking and load autoregulation for strength training",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def global_exc_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler: log and return a generic error response.
    """
    logging.exception("Unhandled error in %s: %s", request.url, exc)
    return JSONResponse(
        {"ok": False, "error": "internal_error", "message": "Internal server error"},
        status_code=500,
    )


@app.get("/healthz")
async def healthz() -> dict:
    """
    Health check endpoint with system status.
    """
    try:
        memory = psutil.virtual_memory()
        cpu_percent = psutil.cpu_percent(interval=0.1)
        is_healthy = memory.percent < 90 and cpu_percent < 95
        return {
            "ok": is_healthy,
            "status": "healthy" if is_healthy else "degraded",
            "timestamp": datetime.now(UTC).isoformat(),
            "system": {
                "memory_percent": round(memory.percent, 1),
                "memory_available_mb": round(memory.available / 1024 / 1024, 1),
                "cpu_percent": round(cpu_percent, 1),
            },
        }
    except Exception as e:
        logging.exception("Health check failed: %s", e)
        return {
            "ok": False,
            "status": "error",
            "timestamp": datetime.now(UTC).isoformat(),
            "error": str(e),
        }


@app.get("/")
async def root() -> dict:
    return {"ok": True, "name": "Liftwise API", "version": __version__}


app.include_router(r_workouts, prefix="/api/v1", tags=["workouts"])
app.include_router(r_progress, prefix="/api/v1", tags=["progress"])
app.include_router(r_suggestions, prefix="/api/v1", tags=["suggestions"])
app.include_router(r_programmes, prefix="/api/v1", tags=["programmes"])
