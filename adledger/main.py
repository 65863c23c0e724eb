"""ADLEDGER — FastAPI Application Entry Point.

Ad-insights ledger: sync Meta insights into a normalized fact store and
query totals, trends and breakdowns from it.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from adledger.api.metrics_routes import router as metrics_router
from adledger.api.sync_routes import router as sync_router
from adledger.core.logging import get_logger
from adledger.database import check_connection, db_url, _mask_url, init_db

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info("ADLEDGER starting up...")
    if check_connection():
        init_db()
    else:
        logger.error("Database NOT connected, endpoints will fail")
    yield
    logger.info("ADLEDGER shut down")


app = FastAPI(
    title="ADLEDGER",
    description="Ad insights ledger: normalized Meta metrics, validated and aggregated.",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(metrics_router)
app.include_router(sync_router)


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.get("/health", tags=["System"])
async def health_check():
    """Health check endpoint."""
    connected = check_connection()
    return {
        "status": "healthy" if connected else "degraded",
        "service": "adledger",
        "version": "1.0.0",
        "database": {
            "connected": connected,
            "backend": "postgresql" if db_url.startswith("postgresql") else "sqlite",
            "url": _mask_url(db_url),
        },
    }
