"""
Tests for the AttendanceStore module.

This test suite verifies:
- Student save/load roundtrip (descriptor .npz + SQLite metadata)
- Roster ordering and class filtering
- Duplicate detection
- Atomic attendance recording and log queries
- Edge cases and error handling

Run with: pytest tests/test_attendance_store.py -v
"""

import os
import sys
import sqlite3
import tempfile
import shutil
import pytest
import numpy as np
from unittest.mock import patch

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.attendance_store import (
    AttendanceStore,
    DuplicateRollNumber,
    generate_student_id,
)
from core.matching import (
    AttendanceStatus,
    MatchMode,
    MatchResult,
    StudentDescriptor,
)


class TestGenerateStudentId:
    """Tests for the generate_student_id function."""

    def test_generate_unique_ids(self):
        """Test that generated IDs are unique."""
        ids = [generate_student_id() for _ in range(100)]
        assert len(set(ids)) == 100  # All unique

    def test_id_format(self):
        """Test that generated IDs have correct format."""
        student_id = generate_student_id()
        assert student_id.startswith("stu_")
        assert len(student_id) == 12  # "stu_" + 8 hex chars


class TestAttendanceStore:
    """Tests for the AttendanceStore class."""

    @pytest.fixture
    def temp_storage(self):
        """Create a temporary directory for testing."""
        temp_dir = tempfile.mkdtemp(prefix="attendance_test_")
        yield {
            "descriptors_dir": os.path.join(temp_dir, "descriptors"),
            "db_path": os.path.join(temp_dir, "test.sqlite"),
            "temp_dir": temp_dir,
        }
        # Cleanup
        shutil.rmtree(temp_dir)

    @pytest.fixture
    def store(self, temp_storage):
        """Create an AttendanceStore instance for testing."""
        s = AttendanceStore(
            descriptors_dir=temp_storage["descriptors_dir"],
            db_path=temp_storage["db_path"],
        )
        yield s
        s.close()

    def make_student(self, roll_no, class_id="10A", descriptor="random", name=None):
        if isinstance(descriptor, str):
            descriptor = np.random.randn(128).astype(np.float32)
        return StudentDescriptor(
            student_id=generate_student_id(),
            name=name or f"Student {roll_no}",
            roll_no=roll_no,
            class_id=class_id,
            descriptor=descriptor,
            photo_path=f"/uploads/{roll_no}.jpg",
        )

    def make_records(self, roster, date="2026-03-02", period=1, present=()):
        return [
            MatchResult(
                student_id=s.student_id,
                status=AttendanceStatus.PRESENT if s.student_id in present else AttendanceStatus.ABSENT,
                date=date,
                period=period,
                class_photo="class.jpg",
            )
            for s in roster
        ]

    def test_init_creates_directories(self, temp_storage):
        """Test that initialization creates storage directories."""
        store = AttendanceStore(
            descriptors_dir=temp_storage["descriptors_dir"],
            db_path=temp_storage["db_path"],
        )

        assert os.path.exists(temp_storage["descriptors_dir"])
        assert os.path.exists(temp_storage["db_path"])
        store.close()

    def test_save_and_load_student(self, store):
        """Test saving a student and loading it back through the roster."""
        student = self.make_student("R-001")
        store.save_student(student)

        roster = store.get_roster("10A")

        assert len(roster) == 1
        loaded = roster[0]
        assert loaded.student_id == student.student_id
        assert loaded.name == student.name
        assert loaded.roll_no == "R-001"
        assert loaded.photo_path == student.photo_path
        assert loaded.descriptor.dtype == np.float32
        assert np.allclose(loaded.descriptor, student.descriptor)

    def test_descriptor_file_written(self, store, temp_storage):
        """Test that the descriptor lands in an .npz file named after the student."""
        student = self.make_student("R-001")
        store.save_student(student)

        path = os.path.join(temp_storage["descriptors_dir"], f"{student.student_id}.npz")
        assert os.path.exists(path)

    def test_student_without_descriptor(self, store):
        """Test that a student can be enrolled without a descriptor."""
        store.save_student(self.make_student("R-001", descriptor=None))

        roster = store.get_roster("10A")
        assert roster[0].descriptor is None
        assert store.list_students()[0]["has_descriptor"] is False

    def test_missing_descriptor_file_loads_as_none(self, store, temp_storage):
        """Test that a deleted .npz file yields a student without descriptor."""
        student = self.make_student("R-001")
        store.save_student(student)
        os.remove(os.path.join(temp_storage["descriptors_dir"], f"{student.student_id}.npz"))

        assert store.get_roster("10A")[0].descriptor is None

    def test_duplicate_roll_number_raises(self, store):
        """Test that enrolling the same roll number twice raises an error."""
        store.save_student(self.make_student("R-001"))

        with pytest.raises(DuplicateRollNumber, match="already exists"):
            store.save_student(self.make_student("R-001", class_id="10B"))

    def test_concurrent_duplicate_roll_number(self, store, temp_storage):
        """Test a duplicate that slips past the roll number check (another writer won)."""
        store.save_student(self.make_student("R-001"))
        late = self.make_student("R-001")

        with patch.object(store, "student_exists_by_roll_no", return_value=False):
            with pytest.raises(DuplicateRollNumber, match="already exists"):
                store.save_student(late)

        # The losing enrollment leaves no descriptor file behind
        path = os.path.join(temp_storage["descriptors_dir"], f"{late.student_id}.npz")
        assert not os.path.exists(path)
        assert len(store.list_students()) == 1

    def test_duplicate_student_id_raises(self, store):
        """Test that saving the same student_id twice raises an error."""
        student = self.make_student("R-001")
        store.save_student(student)

        clone = StudentDescriptor(
            student_id=student.student_id,
            name="Other",
            roll_no="R-002",
            class_id="10A",
        )
        with pytest.raises(ValueError, match="already exists"):
            store.save_student(clone)

    def test_roster_in_enrollment_order(self, store):
        """Test that rosters come back in enrollment order, filtered by class."""
        for roll_no in ["R-003", "R-001", "R-002"]:
            store.save_student(self.make_student(roll_no))
        store.save_student(self.make_student("R-900", class_id="10B"))

        roster = store.get_roster("10A")

        assert [s.roll_no for s in roster] == ["R-003", "R-001", "R-002"]
        assert [s.roll_no for s in store.get_roster("10B")] == ["R-900"]

    def test_empty_roster(self, store):
        """Test loading a class with no students."""
        assert store.get_roster("nope") == []

    def test_get_student(self, store):
        """Test single student lookup."""
        student = self.make_student("R-001")
        store.save_student(student)

        loaded = store.get_student(student.student_id, with_descriptor=False)
        assert loaded.roll_no == "R-001"
        assert loaded.descriptor is None
        assert store.get_student("stu_missing") is None

    def test_student_exists_by_roll_no(self, store):
        """Test roll number lookup."""
        store.save_student(self.make_student("R-001"))

        assert store.student_exists_by_roll_no("R-001")
        assert not store.student_exists_by_roll_no("R-002")

    def test_list_students(self, store):
        """Test listing students, all or for one class."""
        store.save_student(self.make_student("R-001"))
        store.save_student(self.make_student("R-002", class_id="10B"))

        assert len(store.list_students()) == 2
        students = store.list_students("10B")
        assert len(students) == 1
        assert students[0]["roll_no"] == "R-002"
        assert students[0]["has_descriptor"] is True

    def test_record_and_query_attendance(self, store):
        """Test that recorded attendance can be queried with student details."""
        roster = [self.make_student(f"R-00{i}") for i in range(3)]
        for s in roster:
            store.save_student(s)

        records = self.make_records(roster, present={roster[0].student_id})
        written = store.record_attendance(records, MatchMode.MATCHED)

        assert written == 3
        log = store.get_attendance(class_id="10A", date="2026-03-02")
        assert len(log) == 3
        assert log[0]["student_name"] == roster[0].name
        assert log[0]["status"] == "Present"
        assert log[1]["status"] == "Absent"
        assert log[0]["mode"] == "matched"
        assert log[0]["reason"] == ""
        assert log[0]["class_photo"] == "class.jpg"

    def test_synthetic_reason_stored(self, store):
        """Test that synthetic records keep their reason."""
        student = self.make_student("R-001", descriptor=None)
        store.save_student(student)

        record = MatchResult(
            student_id=student.student_id,
            status=AttendanceStatus.PRESENT,
            date="2026-03-02",
            period=1,
            reason="missing_descriptors",
        )
        store.record_attendance([record], MatchMode.MISSING_DESCRIPTORS)

        row = store.get_attendance(class_id="10A")[0]
        assert row["reason"] == "missing_descriptors"
        assert row["mode"] == "missing_descriptors"

    def test_query_filters(self, store):
        """Test filtering the log by date and period."""
        roster = [self.make_student("R-001")]
        store.save_student(roster[0])
        store.record_attendance(self.make_records(roster, period=1), MatchMode.MATCHED)
        store.record_attendance(self.make_records(roster, period=2), MatchMode.MATCHED)
        store.record_attendance(self.make_records(roster, date="2026-03-03"), MatchMode.MATCHED)

        assert len(store.get_attendance(class_id="10A")) == 3
        assert len(store.get_attendance(date="2026-03-02")) == 2
        assert len(store.get_attendance(date="2026-03-02", period=2)) == 1
        assert store.get_attendance(class_id="10B") == []

    def test_resubmission_appends(self, store):
        """Test that submitting the same event twice keeps both sets of records."""
        roster = [self.make_student("R-001")]
        store.save_student(roster[0])

        store.record_attendance(self.make_records(roster), MatchMode.MATCHED)
        store.record_attendance(self.make_records(roster), MatchMode.MATCHED)

        assert len(store.get_attendance(date="2026-03-02", period=1)) == 2

    def test_record_attendance_is_atomic(self, store):
        """Test that a failing record rolls back the whole event."""
        roster = [self.make_student("R-001")]
        store.save_student(roster[0])

        records = self.make_records(roster) + [
            MatchResult("stu_unknown", AttendanceStatus.ABSENT, "2026-03-02", 1)
        ]

        with pytest.raises(sqlite3.IntegrityError):
            store.record_attendance(records, MatchMode.MATCHED)

        assert store.get_attendance() == []

    def test_get_stats(self, store):
        """Test store statistics."""
        store.save_student(self.make_student("R-001"))
        store.save_student(self.make_student("R-002", class_id="10B", descriptor=None))

        stats = store.get_stats()

        assert stats["total_students"] == 2
        assert stats["total_classes"] == 2
        assert stats["students_without_descriptor"] == 1
        assert stats["total_attendance_records"] == 0

    def test_persistence_across_instances(self, temp_storage):
        """Test that data survives reopening the store."""
        store = AttendanceStore(temp_storage["descriptors_dir"], temp_storage["db_path"])
        student = self.make_student("R-001")
        store.save_student(student)
        store.close()

        reopened = AttendanceStore(temp_storage["descriptors_dir"], temp_storage["db_path"])
        roster = reopened.get_roster("10A")
        reopened.close()

        assert len(roster) == 1
        assert np.allclose(roster[0].descriptor, student.descriptor)
