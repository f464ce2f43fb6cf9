"""
Attendance Service

Wires the collaborators of one attendance submission together:

    Roster Provider -> Descriptor Extractor -> Matcher -> Attendance Recorder

The service owns the fallback decision for extractor failures: any
DescriptorExtractionFailed raised while reading the group photo or its
descriptors is turned into the extraction-failure synthetic outcome. It never
reaches the caller as an error. Missing stored descriptors are detected before
the photo is processed at all.

Persistence failures are not recovered: the error propagates and nothing of
the event is written.

Usage:
    from core.attendance_service import AttendanceService

    service = AttendanceService(store, extractor, matcher)
    outcome = service.take_attendance("10A", period=2, date="2026-03-02",
                                      photo_path="storage/uploads/abc.jpg")
"""

import logging
from typing import Optional

import numpy as np

from core.attendance_store import AttendanceStore, DuplicateRollNumber, generate_student_id
from core.descriptor_extractor import DescriptorExtractor
from core.matching import (
    AttendanceEvent,
    AttendanceMatcher,
    AttendanceOutcome,
    DescriptorExtractionFailed,
    MatchMode,
    NoStudentsInClass,
    StudentDescriptor,
)

logger = logging.getLogger(__name__)


class AttendanceService:
    """
    Run attendance events and enrollments against explicit collaborators.

    Args:
        store: Roster provider and attendance recorder.
        extractor: Face descriptor extractor.
        matcher: Attendance matcher.
    """

    def __init__(
        self,
        store: AttendanceStore,
        extractor: DescriptorExtractor,
        matcher: AttendanceMatcher,
    ):
        self.store = store
        self.extractor = extractor
        self.matcher = matcher

    def take_attendance(
        self,
        class_id: str,
        period: int,
        date: str,
        photo_path: Optional[str] = None,
        image: Optional[np.ndarray] = None,
    ) -> AttendanceOutcome:
        """
        Record attendance for one class, period and date from a group photo.

        Args:
            class_id: Class whose roster is matched.
            period: Period number.
            date: Event date (YYYY-MM-DD).
            photo_path: Stored group photo (also kept as the record's photo reference).
            image: Already-decoded BGR photo; read from photo_path if None.

        Returns:
            The persisted AttendanceOutcome.

        Raises:
            NoStudentsInClass: If the class has no enrolled students.
            sqlite3.Error: If the records cannot be written.
        """
        event = AttendanceEvent(date=date, period=period, class_id=class_id, class_photo=photo_path)

        roster = self.store.get_roster(class_id)
        if not roster:
            logger.error(f"No students found in class: {class_id}")
            raise NoStudentsInClass(class_id)

        if not self.matcher.roster_is_complete(roster):
            # Whole-class mock mode; the photo is not processed
            outcome = self.matcher.match([], roster, event)
        else:
            try:
                if image is None:
                    if photo_path is None:
                        raise DescriptorExtractionFailed("No class photo provided")
                    image = self.extractor.load_image(photo_path)
                detected = self.extractor.extract_descriptors(image)
                logger.info(f"Detected {len(detected)} face(s) in the class photo")
                outcome = self.matcher.match(detected, roster, event)
            except DescriptorExtractionFailed as e:
                logger.warning(f"Face processing failed, using fallback attendance: {e}")
                outcome = self.matcher.fallback(
                    roster, event, MatchMode.EXTRACTION_FAILED, reason=str(e)
                )

        self.store.record_attendance(outcome.records, outcome.mode)

        summary = outcome.summary
        logger.info(
            f"Attendance for class {class_id}, period {period}, {date}: "
            f"{summary.present} present / {summary.absent} absent ({outcome.mode.value})"
        )
        return outcome

    def enroll_student(
        self,
        name: str,
        roll_no: str,
        class_id: str,
        image: np.ndarray,
        photo_path: Optional[str] = None,
    ) -> StudentDescriptor:
        """
        Extract a descriptor from a portrait and enroll the student.

        Raises:
            NoFaceDetected: If the portrait contains no face.
            DescriptorExtractionFailed: If the extractor fails.
            DuplicateRollNumber: If the roll number is already enrolled.
        """
        if self.store.student_exists_by_roll_no(roll_no):
            raise DuplicateRollNumber(f"Student with roll number {roll_no} already exists")

        descriptor = self.extractor.extract_single(image)

        student = StudentDescriptor(
            student_id=generate_student_id(),
            name=name,
            roll_no=roll_no,
            class_id=class_id,
            descriptor=descriptor,
            photo_path=photo_path,
        )
        self.store.save_student(student)
        return student


# Singleton instance for the service
_service_instance: Optional[AttendanceService] = None


def get_attendance_service() -> AttendanceService:
    """
    Get or create the shared AttendanceService built from config.yaml.

    Each collaborator is constructed once and passed in explicitly; the
    service itself keeps no other state.
    """
    global _service_instance

    if _service_instance is None:
        from core.attendance_store import get_attendance_store
        from core.descriptor_extractor import get_descriptor_extractor
        from core.matching import get_matcher

        _service_instance = AttendanceService(
            store=get_attendance_store(),
            extractor=get_descriptor_extractor(),
            matcher=get_matcher(),
        )

    return _service_instance
