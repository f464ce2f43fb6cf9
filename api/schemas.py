"""
Pydantic Schemas for API Request/Response Models

This module defines the data models returned by the attendance API.

Field names are snake_case in Python and camelCase on the wire (the JSON
shape existing clients of the attendance service expect).

These schemas provide:
- Type validation
- Automatic documentation in OpenAPI/Swagger
- Clear interface contracts

Author: CS-1
"""

from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    """Base model serialised with camelCase aliases."""
    model_config = ConfigDict(populate_by_name=True)


# ============================================================
# Student Schemas
# ============================================================

class StudentInfo(CamelModel):
    """Enrolled student summary."""
    student_id: str = Field(..., alias="studentId", description="Unique student identifier")
    name: str = Field(..., description="Student's display name")
    roll_no: str = Field(..., alias="rollNo", description="Roll number")
    class_id: str = Field(..., alias="class", description="Class the student is enrolled in")
    photo: Optional[str] = Field(None, description="URL path of the enrollment photo")
    has_descriptor: bool = Field(
        True,
        alias="hasDescriptor",
        description="False if the student has no stored face descriptor (forces mock attendance)",
    )
    enrolled_at: Optional[str] = Field(None, alias="enrolledAt", description="Enrollment timestamp")


class RegisterStudentResponse(BaseModel):
    """Response after enrolling a student."""
    message: str = Field(..., description="Status message")
    student: StudentInfo


# ============================================================
# Attendance Schemas
# ============================================================

class AttendanceSummarySchema(CamelModel):
    """Counts for one attendance event. present + absent == totalStudents."""
    total_students: int = Field(..., alias="totalStudents")
    present: int
    absent: int


class AttendanceEntry(CamelModel):
    """Outcome for one student in a submitted attendance event."""
    student_id: str = Field(..., alias="studentId")
    student_name: str = Field(..., alias="studentName")
    roll_no: str = Field(..., alias="rollNo")
    status: str = Field(..., description="'Present' or 'Absent'")
    period: int
    distance: Optional[float] = Field(
        None, description="Descriptor distance of the matching face (real matches only)"
    )
    reason: Optional[str] = Field(None, description="Set when the record is synthetic")


class TakeAttendanceResponse(BaseModel):
    """Response after recording attendance from a class photo."""
    message: str = Field(..., description="Human-readable outcome")
    mode: str = Field(
        ...,
        description="matched | no_faces_detected | missing_descriptors | extraction_failed",
    )
    degraded: bool = Field(..., description="True if the records are synthetic placeholders")
    attendance: List[AttendanceEntry] = Field(default_factory=list)
    summary: AttendanceSummarySchema


class AttendanceLogRecord(CamelModel):
    """One row of the attendance log."""
    id: int
    date: str
    student_id: str = Field(..., alias="studentId")
    student_name: str = Field(..., alias="studentName")
    roll_no: str = Field(..., alias="rollNo")
    class_id: str = Field(..., alias="class")
    period: int
    status: str
    reason: str = ""
    mode: Optional[str] = None


class AttendanceLogResponse(BaseModel):
    """Response containing attendance log entries."""
    attendance: List[AttendanceLogRecord] = Field(default_factory=list)


# ============================================================
# Health Check Schemas
# ============================================================

class HealthResponse(BaseModel):
    """System health check response."""
    status: str = Field(..., description="'healthy' or 'degraded' (no descriptor backend)")
    extractor_backend: str = Field(..., description="Face descriptor backend in use")
    extractor_available: bool = Field(..., description="Whether the backend is installed")
    distance_threshold: float = Field(..., description="Matching distance threshold")
    matching_strategy: str = Field(..., description="greedy or optimal")
    enrolled_students: int = Field(..., description="Number of enrolled students")
    classes: int = Field(..., description="Number of classes with students")
