"""
FastAPI Application Entry Point

This module creates and configures the FastAPI application for the
Classroom Attendance API.

The application provides:
- REST endpoints for student enrollment
- REST endpoints for taking and querying attendance
- Static serving of uploaded photos under /uploads
- Health check endpoint

Usage:
    # From project root:
    uvicorn api.app:app --host 0.0.0.0 --port 5000 --reload

    # Or run directly:
    python -m api.app

Author: CS-1
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from api.dependencies import get_service, get_uploads_dir
from api.routes import attendance_router, students_router
from api.schemas import HealthResponse
from api.uploads import UPLOADS_URL_PREFIX
from core.attendance_service import AttendanceService, get_attendance_service
from core.config import (
    get_api_config,
    get_logging_config,
    get_server_config,
    get_storage_config,
    resolve_storage_path,
)


# Configure logging
logging.basicConfig(
    level=getattr(logging, str(get_logging_config().get("level", "INFO")).upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Runs on startup:
    - Build the attendance service (store, descriptor extractor, matcher)
    - Report roster statistics and descriptor backend status
    - Create the uploads directory

    Runs on shutdown:
    - Close the database connection
    """
    logger.info("=" * 60)
    logger.info("Starting Classroom Attendance API")
    logger.info("=" * 60)

    logger.info("Initializing attendance service...")
    service = get_attendance_service()

    uploads_dir = get_uploads_dir()
    logger.info(f"Uploads directory: {uploads_dir}")

    stats = service.store.get_stats()
    logger.info(
        f"Attendance store ready: {stats['total_students']} students in "
        f"{stats['total_classes']} classes, {stats['total_attendance_records']} records"
    )
    if stats["students_without_descriptor"]:
        logger.warning(
            f"{stats['students_without_descriptor']} student(s) have no face descriptor - "
            f"their classes will use mock attendance"
        )

    extractor = service.extractor
    if extractor.is_available:
        logger.info(f"Descriptor backend: {extractor.backend} ({extractor.descriptor_dim}-d)")
    else:
        logger.warning(
            f"Descriptor backend '{extractor.backend}' is not installed - "
            f"attendance will use the fallback policy"
        )

    matcher = service.matcher
    logger.info(
        f"Matching: strategy={matcher.strategy}, "
        f"distance_threshold={matcher.distance_threshold}"
    )

    logger.info("API startup complete!")
    logger.info("=" * 60)

    yield

    # Cleanup on shutdown
    logger.info("Shutting down API...")
    service.store.close()
    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Classroom Attendance API",
    description="""
API for taking classroom attendance from a group photo.

## Features
- **Students**: Enroll students with a portrait photo (one face descriptor each)
- **Attendance**: Submit a class photo; every enrolled student is marked Present or Absent
- **Log**: Query recorded attendance by class and date

## Degraded modes
If any student of a class has no stored descriptor, or the class photo cannot
be processed, attendance is still recorded using a deterministic placeholder
policy. Such responses have `degraded: true` and a `mode` describing the cause.
    """,
    version="0.1.0",
    lifespan=lifespan,
)

# Configure CORS for frontend access
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_api_config().get("cors_origins", ["*"]),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(students_router)
app.include_router(attendance_router)

# Uploaded photos; the directory is created at startup
app.mount(
    UPLOADS_URL_PREFIX,
    StaticFiles(
        directory=str(resolve_storage_path(get_storage_config()["uploads_dir"])),
        check_dir=False,
    ),
    name="uploads",
)


# ============================================================
# Health Check Endpoint
# ============================================================

@app.get("/health", response_model=HealthResponse, tags=["system"])
def health_check(service: AttendanceService = Depends(get_service)):
    """
    Check the health of the API and its dependencies.

    Returns status of:
    - Face descriptor backend (installed or not)
    - Matching configuration
    - Number of enrolled students and classes
    """
    stats = service.store.get_stats()
    extractor = service.extractor

    # Without a backend every submission falls back to synthetic records
    status = "healthy" if extractor.is_available else "degraded"

    return HealthResponse(
        status=status,
        extractor_backend=extractor.backend,
        extractor_available=extractor.is_available,
        distance_threshold=service.matcher.distance_threshold,
        matching_strategy=service.matcher.strategy,
        enrolled_students=stats["total_students"],
        classes=stats["total_classes"],
    )


@app.get("/", tags=["system"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Classroom Attendance API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    server_config = get_server_config()
    host = server_config["host"]
    port = server_config["port"]

    logger.info(f"Starting server on {host}:{port}")
    uvicorn.run(
        "api.app:app",
        host=host,
        port=port,
        reload=True,
        log_level="info",
    )
