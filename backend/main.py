"""
Market Farmer - FastAPI Application (read-only journal reports)
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
import uvicorn

from core.config import get_settings
from farmer.api import router as farmer_router
from farmer.services.journal import Journal
from farmer.services.evaluation_service import CalibrationConfig

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan manager."""
    logger.info(f"Starting {settings.app_name}...")

    app.state.journal = Journal(settings.data_dir)
    app.state.calibration_config = CalibrationConfig.from_settings(settings)

    logger.info(f"Serving journal from {settings.data_dir} ({'DRY RUN' if settings.dry_run else 'LIVE'} mode)")

    yield

    logger.info("Shutdown complete")


app = FastAPI(
    title=settings.app_name,
    description="Prediction-market forecasting agent: decisions, positions and calibration",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(farmer_router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "dry_run": settings.dry_run,
        "environment": settings.environment,
    }


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
