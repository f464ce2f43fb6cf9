"""
Tests for the AttendanceService module.

Runs the full roster -> extractor -> matcher -> recorder pipeline against a
temporary store and a fake descriptor extractor (no face model needed).

Run with: pytest tests/test_attendance_service.py -v
"""

import os
import sys
import sqlite3
import tempfile
import shutil
import pytest
import numpy as np
from unittest.mock import MagicMock, patch

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import core.descriptor_extractor as extractor_module
from core.attendance_service import AttendanceService
from core.descriptor_extractor import DescriptorExtractor
from core.attendance_store import AttendanceStore, DuplicateRollNumber, generate_student_id
from core.matching import (
    AttendanceMatcher,
    AttendanceStatus,
    DescriptorExtractionFailed,
    MatchMode,
    NoFaceDetected,
    NoStudentsInClass,
    StudentDescriptor,
)


DIM = 128
IMAGE = np.zeros((8, 8, 3), dtype=np.uint8)


class FakeExtractor:
    """Returns preset descriptors instead of running a face model."""

    def __init__(self, descriptors=None, error=None):
        self.descriptors = descriptors if descriptors is not None else np.empty((0, DIM))
        self.error = error
        self.calls = 0

    @staticmethod
    def load_image(path):
        return IMAGE

    def extract_descriptors(self, image):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return np.asarray(self.descriptors, dtype=np.float32)

    def extract_single(self, image):
        if len(self.descriptors) == 0:
            raise NoFaceDetected("No face detected in the image")
        return np.asarray(self.descriptors[0], dtype=np.float32)


@pytest.fixture
def store():
    temp_dir = tempfile.mkdtemp(prefix="service_test_")
    s = AttendanceStore(
        descriptors_dir=os.path.join(temp_dir, "descriptors"),
        db_path=os.path.join(temp_dir, "test.sqlite"),
    )
    yield s
    s.close()
    shutil.rmtree(temp_dir)


@pytest.fixture
def matcher():
    return AttendanceMatcher({"distance_threshold": 0.6, "descriptor_dim": DIM})


def enroll(store, n, class_id="10A", missing=()):
    """Enroll n students with random descriptors; indices in `missing` get none."""
    rng = np.random.default_rng(7)
    roster = []
    for i in range(n):
        student = StudentDescriptor(
            student_id=generate_student_id(),
            name=f"Student {i}",
            roll_no=f"{class_id}-{i:02d}",
            class_id=class_id,
            descriptor=None if i in missing else rng.normal(size=DIM).astype(np.float32),
        )
        store.save_student(student)
        roster.append(student)
    return roster


class TestTakeAttendance:
    """Tests for AttendanceService.take_attendance."""

    def test_matched_faces_recorded(self, store, matcher):
        roster = enroll(store, 4)
        extractor = FakeExtractor(np.stack([roster[2].descriptor, roster[0].descriptor]))
        service = AttendanceService(store, extractor, matcher)

        outcome = service.take_attendance("10A", period=1, date="2026-03-02", photo_path="class.jpg")

        assert outcome.mode == MatchMode.MATCHED
        assert [r.status for r in outcome.records] == [
            AttendanceStatus.PRESENT,
            AttendanceStatus.ABSENT,
            AttendanceStatus.PRESENT,
            AttendanceStatus.ABSENT,
        ]

        log = store.get_attendance(class_id="10A", date="2026-03-02", period=1)
        assert len(log) == 4
        assert {row["student_id"] for row in log if row["status"] == "Present"} == {
            roster[0].student_id,
            roster[2].student_id,
        }
        assert all(row["class_photo"] == "class.jpg" for row in log)

    def test_no_faces_all_absent(self, store, matcher):
        enroll(store, 5)
        service = AttendanceService(store, FakeExtractor(), matcher)

        outcome = service.take_attendance("10A", period=1, date="2026-03-02", image=IMAGE)

        assert outcome.mode == MatchMode.NO_FACES_DETECTED
        assert outcome.summary.absent == 5
        assert len(store.get_attendance(class_id="10A")) == 5

    def test_missing_descriptor_skips_photo(self, store, matcher):
        enroll(store, 10, missing={9})
        extractor = FakeExtractor()
        service = AttendanceService(store, extractor, matcher)

        outcome = service.take_attendance("10A", period=3, date="2026-03-02", photo_path="class.jpg")

        assert outcome.mode == MatchMode.MISSING_DESCRIPTORS
        assert outcome.message == "Attendance recorded successfully (mock mode)"
        assert (outcome.summary.present, outcome.summary.absent) == (8, 2)
        assert extractor.calls == 0

        modes = {row["mode"] for row in store.get_attendance(class_id="10A")}
        assert modes == {"missing_descriptors"}

    def test_extraction_failure_falls_back(self, store, matcher):
        enroll(store, 10)
        extractor = FakeExtractor(error=DescriptorExtractionFailed("Could not decode image data"))
        service = AttendanceService(store, extractor, matcher)

        outcome = service.take_attendance("10A", period=1, date="2026-03-02", image=IMAGE)

        assert outcome.mode == MatchMode.EXTRACTION_FAILED
        assert outcome.is_degraded
        assert (outcome.summary.present, outcome.summary.absent) == (7, 3)
        assert outcome.reason == "Could not decode image data"
        assert all(r.reason == "Could not decode image data" for r in outcome.records)

    def test_malformed_descriptors_fall_back(self, store, matcher):
        enroll(store, 10)
        service = AttendanceService(store, FakeExtractor(np.zeros((2, 64))), matcher)

        outcome = service.take_attendance("10A", period=1, date="2026-03-02", image=IMAGE)

        assert outcome.mode == MatchMode.EXTRACTION_FAILED

    def test_ragged_backend_output_falls_back(self, store, matcher):
        enroll(store, 10)
        fake_backend = MagicMock()
        fake_backend.face_locations.return_value = [(0, 10, 10, 0), (20, 40, 40, 20)]
        fake_backend.face_encodings.return_value = [np.zeros(DIM), np.zeros(DIM - 1)]

        with patch.object(extractor_module, "_FACE_RECOGNITION_AVAILABLE", True), \
                patch.object(extractor_module, "face_recognition", fake_backend, create=True):
            extractor = DescriptorExtractor({"backend": "face_recognition"})
            service = AttendanceService(store, extractor, matcher)

            outcome = service.take_attendance("10A", period=1, date="2026-03-02", image=IMAGE)

        assert outcome.mode == MatchMode.EXTRACTION_FAILED
        assert (outcome.summary.present, outcome.summary.absent) == (7, 3)
        assert len(store.get_attendance(class_id="10A")) == 10

    def test_missing_photo_falls_back(self, store, matcher):
        enroll(store, 3)
        service = AttendanceService(store, FakeExtractor(), matcher)

        outcome = service.take_attendance("10A", period=1, date="2026-03-02")

        assert outcome.mode == MatchMode.EXTRACTION_FAILED

    def test_empty_class_raises_without_writing(self, store, matcher):
        enroll(store, 3, class_id="10B")
        service = AttendanceService(store, FakeExtractor(), matcher)

        with pytest.raises(NoStudentsInClass):
            service.take_attendance("10A", period=1, date="2026-03-02", image=IMAGE)

        assert store.get_attendance() == []

    def test_persistence_failure_propagates(self, matcher):
        store = MagicMock()
        store.get_roster.return_value = [
            StudentDescriptor("stu_1", "A", "R1", "10A", np.zeros(DIM))
        ]
        store.record_attendance.side_effect = sqlite3.OperationalError("database is locked")
        service = AttendanceService(store, FakeExtractor(), matcher)

        with pytest.raises(sqlite3.OperationalError):
            service.take_attendance("10A", period=1, date="2026-03-02", image=IMAGE)


class TestEnrollStudent:
    """Tests for AttendanceService.enroll_student."""

    def test_enroll_stores_descriptor(self, store, matcher):
        descriptor = np.linspace(0, 1, DIM)
        service = AttendanceService(store, FakeExtractor(np.stack([descriptor])), matcher)

        student = service.enroll_student("Alice", "R-001", "10A", IMAGE, photo_path="alice.jpg")

        roster = store.get_roster("10A")
        assert roster[0].student_id == student.student_id
        assert roster[0].photo_path == "alice.jpg"
        assert np.allclose(roster[0].descriptor, descriptor)

    def test_enroll_no_face(self, store, matcher):
        service = AttendanceService(store, FakeExtractor(), matcher)

        with pytest.raises(NoFaceDetected):
            service.enroll_student("Alice", "R-001", "10A", IMAGE)

        assert store.list_students() == []

    def test_enroll_duplicate_roll_number(self, store, matcher):
        enroll(store, 1)
        service = AttendanceService(store, FakeExtractor(np.zeros((1, DIM))), matcher)

        with pytest.raises(DuplicateRollNumber):
            service.enroll_student("Other", "10A-00", "10A", IMAGE)
