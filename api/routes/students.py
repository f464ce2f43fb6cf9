"""
Student API Routes

This module provides REST endpoints for the class roster:
- GET /api/students: List enrolled students (optionally one class)
- POST /api/students: Enroll a student from a portrait photo

Author: CS-1
"""

import logging
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile

from api.dependencies import get_service, get_store, get_uploads_dir
from api.schemas import RegisterStudentResponse, StudentInfo
from api.uploads import save_upload, upload_url
from core.attendance_service import AttendanceService
from core.attendance_store import AttendanceStore, DuplicateRollNumber
from core.matching import DescriptorExtractionFailed, NoFaceDetected

# Setup logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix="/api", tags=["students"])


@router.get("/students", response_model=List[StudentInfo])
def list_students(
    class_id: Optional[str] = Query(None, alias="classId"),
    store: AttendanceStore = Depends(get_store),
):
    """
    List enrolled students.

    Args:
        class_id: Only return students of this class (optional).
    """
    students = store.list_students(class_id)

    return [
        StudentInfo(
            student_id=s["student_id"],
            name=s["name"],
            roll_no=s["roll_no"],
            class_id=s["class_id"],
            photo=upload_url(s["photo_path"]),
            has_descriptor=s["has_descriptor"],
            enrolled_at=str(s["enrolled_at"]) if s["enrolled_at"] else None,
        )
        for s in students
    ]


@router.post("/students", response_model=RegisterStudentResponse, status_code=201)
def register_student(
    name: Optional[str] = Form(None),
    roll_no: Optional[str] = Form(None, alias="rollNo"),
    student_class: Optional[str] = Form(None, alias="studentClass"),
    photo: Optional[UploadFile] = File(None),
    service: AttendanceService = Depends(get_service),
    uploads_dir: Path = Depends(get_uploads_dir),
):
    """
    Enroll a new student.

    The portrait is stored, one face descriptor is extracted from it and
    saved with the student's record.

    Raises:
        400: Missing fields or duplicate roll number.
        422: No face found in the photo.
        500: The photo could not be processed.
    """
    if not name or not roll_no or not student_class or photo is None:
        logger.error(
            f"Missing fields: name={name!r}, rollNo={roll_no!r}, "
            f"studentClass={student_class!r}, hasFile={photo is not None}"
        )
        raise HTTPException(status_code=400, detail="All fields are required")

    if service.store.student_exists_by_roll_no(roll_no):
        logger.error(f"Student already exists: {roll_no}")
        raise HTTPException(status_code=400, detail="Student with this roll number already exists")

    data = photo.file.read()
    photo_path = save_upload(photo.filename, data, uploads_dir)

    try:
        image = service.extractor.decode_image(data)
        student = service.enroll_student(
            name=name,
            roll_no=roll_no,
            class_id=student_class,
            image=image,
            photo_path=str(photo_path),
        )
    except DuplicateRollNumber as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NoFaceDetected as e:
        logger.warning(f"Enrollment rejected for {roll_no}: {e}")
        raise HTTPException(status_code=422, detail=str(e))
    except DescriptorExtractionFailed as e:
        logger.error(f"Face processing error for {roll_no}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to process face image: {e}")

    return RegisterStudentResponse(
        message="Student registered successfully",
        student=StudentInfo(
            student_id=student.student_id,
            name=student.name,
            roll_no=student.roll_no,
            class_id=student.class_id,
            photo=upload_url(student.photo_path),
            has_descriptor=True,
        ),
    )
