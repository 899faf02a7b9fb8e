"""
FastAPI Application Entry Point
Marketplace Order Ingestion - Python Backend
"""
from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
import asyncio
import json
import logging
import os
import sys
import time
import uuid as _uuid
from typing import Callable, Dict, Type

from database import init_db, check_db_health
from routers import stock, uploads
from services.errors import (
    EmptyCatalogError,
    EmptyFileError,
    IngestionError,
    StockMovementError,
    StockReconciliationError,
    StorageError,
    StoreAccountNotFoundError,
    UnsupportedFileTypeError,
    UnsupportedPlatformError,
)
from settings import CORS_ORIGINS, INIT_DB_ON_STARTUP, LOG_LEVEL


# ---- Logging setup (JSON) ----
class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "severity": record.levelname,
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S%z"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


handler = logging.StreamHandler(sys.stdout)
handler.setFormatter(JsonFormatter())

root = logging.getLogger()
root.handlers = [handler]
root.setLevel(LOG_LEVEL)

logging.getLogger("uvicorn.access").setLevel(logging.INFO)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)  # bump to INFO to see SQL

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Marketplace Order Ingestion API",
    description="Order file ingestion, catalog matching and stock reconciliation for marketplace sellers",
    version="1.0.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials="*" not in CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---- Request/Response logging middleware ----
class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable):
        request_id = request.headers.get("X-Request-Id") or str(_uuid.uuid4())
        start = time.time()
        request.state.request_id = request_id

        # Body is not read here; uploads can be large
        logger.info(
            f"REQ {request.method} {request.url.path} "
            f"qs={request.url.query!s} ip={request.client.host if request.client else '-'} "
            f"rid={request_id}"
        )
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(f"Uncaught exception in request pipeline rid={request_id}")
            raise

        dur_ms = int((time.time() - start) * 1000)
        logger.info(
            f"RES {request.method} {request.url.path} "
            f"status={response.status_code} durMs={dur_ms} rid={request_id}"
        )
        response.headers["X-Request-Id"] = request_id
        return response


app.add_middleware(RequestIDMiddleware)


@app.get("/")
async def root_info():
    return {"ok": True, "service": "marketplace-order-ingestion"}


@app.get("/healthz")
async def healthz():
    """Basic health check for load balancers."""
    return {"ok": True}


@app.get("/api/health")
async def api_health():
    """Health check including database status."""
    db_health = await check_db_health()
    overall_status = "healthy" if db_health["status"] == "healthy" else "degraded"
    return {
        "status": overall_status,
        "database": db_health,
        "timestamp": time.time(),
    }


# --- Error handlers ---
INGESTION_ERROR_STATUS: Dict[Type[IngestionError], int] = {
    EmptyFileError: 400,
    UnsupportedFileTypeError: 400,
    StockMovementError: 400,
    EmptyCatalogError: 409,
    UnsupportedPlatformError: 422,
    StoreAccountNotFoundError: 404,
    StorageError: 502,
    StockReconciliationError: 502,
}


def status_for(exc: IngestionError) -> int:
    for exc_type in type(exc).__mro__:
        if exc_type in INGESTION_ERROR_STATUS:
            return INGESTION_ERROR_STATUS[exc_type]
    return 500


@app.exception_handler(IngestionError)
async def ingestion_exception_handler(request: Request, exc: IngestionError):
    status = status_for(exc)
    rid = getattr(request.state, "request_id", "-")
    if status >= 500:
        logger.error(f"{type(exc).__name__} rid={rid}: {exc}")
    else:
        logger.warning(f"{type(exc).__name__} rid={rid}: {exc}")
    return JSONResponse(status_code=status, content={"error": str(exc), "type": type(exc).__name__})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.error(f"Validation error: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": exc.errors(), "error": "Validation failed"})


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# --- Routers ---
app.include_router(uploads.router, prefix="/api", tags=["uploads"])
app.include_router(stock.router, prefix="/api", tags=["stock"])


# --- Startup/shutdown ---
@app.on_event("startup")
async def startup():
    logger.info("Starting Marketplace Order Ingestion API...")
    if INIT_DB_ON_STARTUP:
        try:
            logger.info("Initializing database tables...")
            await asyncio.wait_for(init_db(), timeout=120)
            logger.info("Database initialized")
        except asyncio.TimeoutError:
            logger.error("DB init timed out after 120s, continuing without init")
        except Exception as e:
            logger.error(f"DB init failed (continuing to serve): {e}", exc_info=True)
    else:
        logger.info("Skipping DB init on startup")


@app.on_event("shutdown")
async def shutdown():
    logger.info("Shutting down Marketplace Order Ingestion API...")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8080)),
        reload=os.getenv("NODE_ENV") != "production",
    )
