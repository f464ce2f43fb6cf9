"""
Matching Interfaces Module

This module defines the data types, error taxonomy and abstract interfaces
shared by the attendance matching engine.

The matching pipeline has three pieces:
1. FaceAssigner - Assigns detected faces to enrolled students by distance
2. SyntheticAssignmentPolicy - Placeholder outcome when matching cannot run
3. AttendanceMatcher - Chooses between the two and builds per-student records

Usage:
    from core.matching.interfaces import (
        StudentDescriptor,
        AttendanceEvent,
        MatchMode,
    )

    roster = [StudentDescriptor("stu_01", "Alice", "R1", "10A", descriptor)]
    event = AttendanceEvent(date="2026-03-02", period=1, class_id="10A")

Author: CS-1
"""

import numpy as np
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence


# ============================================================
# Errors
# ============================================================


class AttendanceError(Exception):
    """Base class for attendance engine errors."""


class NoStudentsInClass(AttendanceError):
    """Raised when a class roster is empty; no assignment is produced."""

    def __init__(self, class_id: Optional[str] = None):
        self.class_id = class_id
        if class_id:
            message = f"No students found in class {class_id}"
        else:
            message = "No students found in this class"
        super().__init__(message)


class DescriptorExtractionFailed(AttendanceError):
    """Raised when the extractor fails or returns malformed descriptors."""


class NoFaceDetected(AttendanceError):
    """Raised when an enrollment photo contains no detectable face."""


# ============================================================
# Data types
# ============================================================


class AttendanceStatus(str, Enum):
    """Attendance status of one student for one event."""
    PRESENT = "Present"
    ABSENT = "Absent"


class MatchMode(str, Enum):
    """
    How an attendance outcome was produced.

    MATCHED and NO_FACES_DETECTED come from real biometric data.
    MISSING_DESCRIPTORS and EXTRACTION_FAILED are synthetic placeholders.
    """
    MATCHED = "matched"
    NO_FACES_DETECTED = "no_faces_detected"
    MISSING_DESCRIPTORS = "missing_descriptors"
    EXTRACTION_FAILED = "extraction_failed"

    @property
    def is_degraded(self) -> bool:
        return self in (MatchMode.MISSING_DESCRIPTORS, MatchMode.EXTRACTION_FAILED)


@dataclass(frozen=True)
class StudentDescriptor:
    """
    An enrolled student and their stored face descriptor.

    Attributes:
        student_id: Opaque unique identifier (e.g., "stu_a1b2c3d4").
        name: Display name.
        roll_no: Roll number, unique across the school.
        class_id: Class the student is enrolled in.
        descriptor: Enrolled face embedding, shape (D,). None when the
                    student has no usable descriptor.
        photo_path: Path of the enrollment photo, if stored.
    """

    student_id: str
    name: str
    roll_no: str
    class_id: str
    descriptor: Optional[np.ndarray] = None
    photo_path: Optional[str] = None

    def has_valid_descriptor(self, expected_dim: Optional[int] = None) -> bool:
        """
        Check whether the stored descriptor can be used for distance matching.

        A descriptor is valid if it is present, non-empty, one-dimensional,
        finite and, when expected_dim is given, exactly that long.
        """
        return is_valid_descriptor(self.descriptor, expected_dim)


@dataclass(frozen=True)
class AttendanceEvent:
    """One attendance submission: a class, a date, a period and a photo."""

    date: str
    period: int
    class_id: Optional[str] = None
    class_photo: Optional[str] = None


@dataclass(frozen=True)
class MatchResult:
    """
    Attendance status of one student for one event.

    Attributes:
        student_id: The student this record belongs to.
        status: Present or Absent.
        date: Event date (YYYY-MM-DD).
        period: Event period number.
        class_photo: Reference to the group photo of the event.
        face_index: Index of the detected face that claimed the student
                    (real matches only).
        distance: Euclidean distance of that face (real matches only).
        reason: Why the record was produced synthetically, if it was.
    """

    student_id: str
    status: AttendanceStatus
    date: str
    period: int
    class_photo: Optional[str] = None
    face_index: Optional[int] = None
    distance: Optional[float] = None
    reason: Optional[str] = None

    @property
    def is_present(self) -> bool:
        return self.status == AttendanceStatus.PRESENT


@dataclass(frozen=True)
class AttendanceSummary:
    """Counts surfaced to the caller. present + absent == total_students."""

    total_students: int
    present: int
    absent: int

    @classmethod
    def from_records(cls, records: Sequence[MatchResult]) -> "AttendanceSummary":
        present = sum(1 for r in records if r.is_present)
        return cls(
            total_students=len(records),
            present=present,
            absent=len(records) - present,
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            "totalStudents": self.total_students,
            "present": self.present,
            "absent": self.absent,
        }


@dataclass
class AttendanceOutcome:
    """
    Complete result of one attendance event.

    Callers distinguish genuine matches from placeholder data through
    `mode` (or `is_degraded`), never by parsing `message`.

    Attributes:
        mode: How the records were produced.
        records: One MatchResult per roster student, in roster order.
        message: Human-readable description of the outcome.
        reason: Detail about a degraded outcome (e.g., the extractor error).
        details: Diagnostic information (faces detected, threshold, ...).
    """

    mode: MatchMode
    records: List[MatchResult]
    message: str
    reason: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_degraded(self) -> bool:
        return self.mode.is_degraded

    @property
    def summary(self) -> AttendanceSummary:
        return AttendanceSummary.from_records(self.records)


# ============================================================
# Helpers
# ============================================================


def is_valid_descriptor(descriptor: Any, expected_dim: Optional[int] = None) -> bool:
    """Return True if descriptor is a usable, non-empty finite 1-D vector."""
    if descriptor is None:
        return False
    try:
        vector = np.asarray(descriptor, dtype=np.float64)
    except (TypeError, ValueError):
        return False
    if vector.ndim != 1 or vector.size == 0:
        return False
    if expected_dim is not None and vector.shape[0] != expected_dim:
        return False
    return bool(np.all(np.isfinite(vector)))


# ============================================================
# Abstract interfaces
# ============================================================


@dataclass(frozen=True)
class FaceAssignment:
    """One accepted (face, student) pair produced by a FaceAssigner."""

    face_index: int
    student_index: int
    distance: float


class FaceAssigner(ABC):
    """
    Abstract base class for assigning detected faces to enrolled students.

    Implementations receive validated matrices and return accepted pairs.
    Each face and each student may appear in at most one pair, and every
    pair's distance must be strictly below the threshold.

    Implementations:
        - GreedyFaceAssigner: faces claim students in input order (default)
        - OptimalFaceAssigner: min-cost bipartite assignment (opt-in)
    """

    @abstractmethod
    def assign(
        self,
        face_descriptors: np.ndarray,
        student_descriptors: np.ndarray,
        distance_threshold: float,
    ) -> List[FaceAssignment]:
        """
        Assign detected faces to students.

        Args:
            face_descriptors: Detected descriptors, shape (K, D), in the
                              order produced by the extractor.
            student_descriptors: Enrolled descriptors, shape (N, D), in
                                 roster order.
            distance_threshold: Pairs at or above this Euclidean distance
                                are never accepted.

        Returns:
            List of FaceAssignment, at most one per face and per student.
        """
        pass


def pairwise_distances(
    face_descriptors: np.ndarray, student_descriptors: np.ndarray
) -> np.ndarray:
    """
    Euclidean distance matrix between faces and students.

    Returns:
        Array of shape (K, N) where entry [i, j] is the distance between
        face i and student j.
    """
    diff = face_descriptors[:, np.newaxis, :] - student_descriptors[np.newaxis, :, :]
    return np.linalg.norm(diff, axis=2)
