"""folio — FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from folio import models  # noqa: F401  (registers tables on Base.metadata)
from folio.api import investments
from folio.config import settings
from folio.database import Base, engine
from folio.errors import (
    InsufficientQuantityError,
    InvalidInputError,
    PositionNotFoundError,
    StorageUnavailableError,
)

logger = logging.getLogger(__name__)

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

VERSION = "0.3.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: verify DB connection. Shutdown: dispose engine."""
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            if settings.create_schema_on_startup:
                await conn.run_sync(Base.metadata.create_all)
                logger.info("Schema created (create_schema_on_startup)")
        logger.info("Database connected successfully")
    except Exception as e:
        logger.error("Database connection failed: %s", e)
        raise
    yield
    await engine.dispose()
    logger.info("Database engine disposed")


app = FastAPI(
    title="folio",
    description="Investment positions, ledger and portfolio tracking",
    version=VERSION,
    lifespan=lifespan,
)

# CORS: restrict in production, allow localhost in development
_allowed_origins = (
    ["http://localhost:8000", "http://localhost:3000"]
    if settings.app_env == "development"
    else settings.allowed_hosts.split(",")
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "X-API-Key", "X-User-Id"],
)

app.include_router(investments.router)


@app.exception_handler(PositionNotFoundError)
async def position_not_found_handler(request: Request, exc: PositionNotFoundError):
    return JSONResponse(status_code=404, content={"error": "position_not_found", "detail": str(exc)})


@app.exception_handler(InsufficientQuantityError)
async def insufficient_quantity_handler(request: Request, exc: InsufficientQuantityError):
    return JSONResponse(
        status_code=400,
        content={
            "error": "insufficient_quantity",
            "detail": str(exc),
            "requested": exc.requested,
            "held": exc.held,
        },
    )


@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError):
    return JSONResponse(status_code=400, content={"error": "invalid_input", "detail": str(exc)})


@app.exception_handler(StorageUnavailableError)
async def storage_unavailable_handler(request: Request, exc: StorageUnavailableError):
    logger.error("Storage unavailable on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"error": "storage_unavailable", "detail": "Database temporarily unavailable"},
    )


@app.get("/api")
async def api_root():
    return {
        "name": "folio",
        "version": VERSION,
        "status": "running",
    }


@app.get("/api/health")
async def health_check():
    return {"status": "ok"}
