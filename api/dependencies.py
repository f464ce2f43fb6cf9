"""
FastAPI dependency providers.

Route handlers receive their collaborators through Depends() instead of
reaching for module globals, so tests can swap them with
app.dependency_overrides.
"""

from pathlib import Path

from fastapi import Depends

from core.attendance_service import AttendanceService, get_attendance_service
from core.attendance_store import AttendanceStore
from core.config import get_storage_config, resolve_storage_path


def get_service() -> AttendanceService:
    """Shared attendance service (store, extractor and matcher)."""
    return get_attendance_service()


def get_store(service: AttendanceService = Depends(get_service)) -> AttendanceStore:
    """Attendance store of the current service."""
    return service.store


def get_uploads_dir() -> Path:
    """Directory where uploaded photos are kept, created on demand."""
    uploads_dir = resolve_storage_path(get_storage_config()["uploads_dir"])
    uploads_dir.mkdir(parents=True, exist_ok=True)
    return uploads_dir
