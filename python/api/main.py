"""
FastAPI Main Application

Entry point for the CSV import preview API.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from csv_import import ImportSettings
from csv_import.strategy_export import MAPPING_KINDS

from .routes import csv_import_router
from .routes.csv_import import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info("Starting CSV Import API...")
    yield
    # Shutdown
    logger.info("Shutting down CSV Import API...")


app = FastAPI(
    title="CSV Import API",
    description="Strategy matching and import previews for bank CSV exports",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS configuration
cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(csv_import_router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "CSV Import API",
        "version": "1.0.0",
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/api")
async def api_info(settings: ImportSettings = Depends(get_settings)):
    """Describe the import endpoints, accepted mapping kinds and active defaults."""
    return {
        "endpoints": {
            "match_strategies": "POST /api/csv-import/strategies/match",
            "prepare_import": "POST /api/csv-import/prepare",
        },
        "mapping_kinds": MAPPING_KINDS,
        "defaults": {
            "timezone": settings.default_timezone,
            "time": settings.default_time,
            "placeholder_account_id": settings.placeholder_account_id,
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=os.getenv("ENVIRONMENT", "development") == "development",
    )
