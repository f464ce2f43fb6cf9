"""
Attendance API Routes

This module provides REST endpoints for attendance events:
- POST /api/attendance: Take attendance for a class from a group photo
- GET /api/attendance: Query the attendance log

Degraded outcomes (no stored descriptors, face processing failure) are still
recorded and returned with status 201; the response carries `mode` and
`degraded` so clients can tell synthetic records from real matches.

Author: CS-1
"""

import logging
import sqlite3
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile

from api.dependencies import get_service, get_store, get_uploads_dir
from api.schemas import (
    AttendanceEntry,
    AttendanceLogRecord,
    AttendanceLogResponse,
    AttendanceSummarySchema,
    TakeAttendanceResponse,
)
from api.uploads import save_upload
from core.attendance_service import AttendanceService
from core.attendance_store import AttendanceStore
from core.matching import NoStudentsInClass

# Setup logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix="/api", tags=["attendance"])


@router.post("/attendance", response_model=TakeAttendanceResponse, status_code=201)
def take_attendance(
    class_id: Optional[str] = Form(None, alias="classId"),
    period: Optional[str] = Form(None),
    date: Optional[str] = Form(None),
    class_photo: Optional[UploadFile] = File(None, alias="classPhoto"),
    service: AttendanceService = Depends(get_service),
    uploads_dir: Path = Depends(get_uploads_dir),
):
    """
    Take attendance for a class from a group photo.

    Every enrolled student of the class receives exactly one record.

    Raises:
        400: Missing fields or a non-integer period.
        404: The class has no enrolled students.
        500: The records could not be written.
    """
    if not class_id or not period or not date or class_photo is None:
        logger.error(
            f"Missing fields: classId={class_id!r}, period={period!r}, "
            f"date={date!r}, hasFile={class_photo is not None}"
        )
        raise HTTPException(status_code=400, detail="All fields are required")

    try:
        period_number = int(period)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid period: {period}")

    photo_path = save_upload(class_photo.filename, class_photo.file.read(), uploads_dir)

    try:
        outcome = service.take_attendance(
            class_id=class_id,
            period=period_number,
            date=date,
            photo_path=str(photo_path),
        )
    except NoStudentsInClass:
        raise HTTPException(status_code=404, detail="No students found in this class")
    except sqlite3.Error as e:
        logger.error(f"Failed to record attendance for class {class_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to record attendance")

    students = {s["student_id"]: s for s in service.store.list_students(class_id)}

    entries = []
    for record in outcome.records:
        student = students.get(record.student_id, {})
        entries.append(AttendanceEntry(
            student_id=record.student_id,
            student_name=student.get("name", ""),
            roll_no=student.get("roll_no", ""),
            status=record.status.value,
            period=record.period,
            distance=record.distance,
            reason=record.reason,
        ))

    summary = outcome.summary

    return TakeAttendanceResponse(
        message=outcome.message,
        mode=outcome.mode.value,
        degraded=outcome.is_degraded,
        attendance=entries,
        summary=AttendanceSummarySchema(
            total_students=summary.total_students,
            present=summary.present,
            absent=summary.absent,
        ),
    )


@router.get("/attendance", response_model=AttendanceLogResponse)
def get_attendance(
    class_id: Optional[str] = Query(None, alias="classId"),
    date: Optional[str] = Query(None),
    period: Optional[int] = Query(None),
    store: AttendanceStore = Depends(get_store),
):
    """
    Query the attendance log.

    Args:
        class_id: Filter by class (optional).
        date: Filter by date, YYYY-MM-DD (optional).
        period: Filter by period (optional).
    """
    rows = store.get_attendance(class_id=class_id, date=date, period=period)

    return AttendanceLogResponse(
        attendance=[
            AttendanceLogRecord(
                id=row["id"],
                date=row["date"],
                student_id=row["student_id"],
                student_name=row["student_name"],
                roll_no=row["roll_no"],
                class_id=row["class_id"],
                period=row["period"],
                status=row["status"],
                reason=row["reason"],
                mode=row["mode"],
            )
            for row in rows
        ]
    )
