"""
Attendance Store Module

This module handles persistence of enrolled students and the attendance log.
It is both the Roster Provider and the Attendance Recorder of the system.

Data is stored as:
- .npz files: One per student, containing the enrolled face descriptor and metadata
- SQLite database: Student metadata and the append-only attendance log

The AttendanceStore class provides:
- save_student: Enroll a new student (descriptor optional)
- get_roster: Load a class roster with descriptors, in enrollment order
- record_attendance: Append all records of one event in a single transaction
- get_attendance: Query the attendance log joined with student details
- list_students / get_student: Lookups for the API

Usage:
    from core.attendance_store import AttendanceStore, generate_student_id

    store = AttendanceStore(descriptors_dir="storage/descriptors",
                            db_path="storage/attendance.sqlite")

    store.save_student(StudentDescriptor(
        student_id=generate_student_id(),
        name="Alice",
        roll_no="R-001",
        class_id="10A",
        descriptor=descriptor,
    ))

    roster = store.get_roster("10A")

Author: CS-1
"""

import json
import logging
import sqlite3
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from core.matching.interfaces import MatchMode, MatchResult, StudentDescriptor

# Setup logging
logger = logging.getLogger(__name__)


def generate_student_id() -> str:
    """
    Generate a unique student ID.

    Format: "stu_" followed by 8 random hex characters.

    Returns:
        A unique student ID string (e.g., "stu_a1b2c3d4").
    """
    return f"stu_{uuid.uuid4().hex[:8]}"


class DuplicateRollNumber(ValueError):
    """Raised when enrolling a roll number that already exists."""


class AttendanceStore:
    """
    Manages persistence of students and attendance records.

    Students are stored in two places:
    1. Filesystem (.npz files): The enrolled face descriptor
    2. SQLite database: Student metadata for efficient lookup

    The attendance log lives only in SQLite and is append-only: records are
    never updated, and each event's records are written atomically.

    The connection is shared between the threads of the API worker pool,
    so every database access is serialized through a lock.

    Attributes:
        descriptors_dir: Directory where .npz descriptor files are stored.
        db_path: Path to the SQLite database file.
    """

    def __init__(self, descriptors_dir: str, db_path: str):
        """
        Initialize the AttendanceStore.

        Creates the storage directory and database if they don't exist.

        Args:
            descriptors_dir: Path to directory for storing .npz files.
            db_path: Path to SQLite database file.
        """
        self.descriptors_dir = Path(descriptors_dir)
        self.db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

        self.descriptors_dir.mkdir(parents=True, exist_ok=True)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_database()

        logger.info(f"AttendanceStore initialized: descriptors={self.descriptors_dir}, db={self.db_path}")

    def _get_connection(self) -> sqlite3.Connection:
        """
        Get or create the SQLite connection.

        Returns:
            SQLite connection with Row factory for dict-like access.
        """
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
        return self._conn

    def _init_database(self) -> None:
        """
        Initialize the SQLite database schema.

        Creates tables if they don't exist:
        - students: Enrolled students and their descriptor file paths
        - attendance: Append-only attendance log keyed by (date, period, student)
        """
        with self._lock:
            conn = self._get_connection()
            with conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS students (
                        student_id TEXT PRIMARY KEY,
                        name TEXT NOT NULL,
                        roll_no TEXT NOT NULL UNIQUE,
                        class_id TEXT NOT NULL,
                        photo_path TEXT,
                        descriptor_path TEXT,
                        descriptor_dim INTEGER,
                        enrolled_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)

                conn.execute("""
                    CREATE TABLE IF NOT EXISTS attendance (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        date TEXT NOT NULL,
                        student_id TEXT NOT NULL,
                        status TEXT NOT NULL CHECK (status IN ('Present', 'Absent')),
                        period INTEGER NOT NULL,
                        class_photo TEXT,
                        reason TEXT,
                        mode TEXT,
                        recorded_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY (student_id) REFERENCES students(student_id)
                    )
                """)

                conn.execute("""
                    CREATE INDEX IF NOT EXISTS idx_attendance_event
                    ON attendance (date, period, student_id)
                """)
                conn.execute("CREATE INDEX IF NOT EXISTS idx_students_class ON students (class_id)")

        logger.debug("Database schema initialized")

    def _get_descriptor_path(self, student_id: str) -> Path:
        """Get the filesystem path for a student's descriptor file."""
        return self.descriptors_dir / f"{student_id}.npz"

    # ------------------------------------------------------------------
    # Students (Roster Provider)
    # ------------------------------------------------------------------

    def save_student(self, student: StudentDescriptor) -> str:
        """
        Enroll a student: save the descriptor to disk and register in the database.

        The descriptor is saved as a compressed .npz file containing:
        - descriptor: (D,) float32
        - metadata: JSON string with enrollment details

        A student may be saved without a descriptor (e.g., imported from a
        class list); such a roster triggers synthetic attendance.

        Args:
            student: StudentDescriptor to save.

        Returns:
            The student_id.

        Raises:
            DuplicateRollNumber: If the roll number is already enrolled,
                                 including by a concurrent writer.
            ValueError: If the student_id already exists.
            sqlite3.Error: If the insert fails otherwise. No descriptor
                           file is left behind.
        """
        if self.student_exists_by_roll_no(student.roll_no):
            raise DuplicateRollNumber(f"Student with roll number {student.roll_no} already exists")
        if self.get_student(student.student_id, with_descriptor=False) is not None:
            raise ValueError(f"Student already exists for student_id: {student.student_id}")

        descriptor_path = None
        descriptor_dim = None

        if student.descriptor is not None:
            descriptor = np.asarray(student.descriptor, dtype=np.float32).ravel()
            descriptor_dim = int(descriptor.shape[0])
            metadata = {
                "student_id": student.student_id,
                "name": student.name,
                "roll_no": student.roll_no,
                "class_id": student.class_id,
                "enrolled_at": datetime.now().isoformat(),
            }

            path = self._get_descriptor_path(student.student_id)
            np.savez_compressed(
                str(path),
                descriptor=descriptor,
                metadata=json.dumps(metadata),
            )
            descriptor_path = str(path)

        try:
            with self._lock:
                conn = self._get_connection()
                with conn:
                    conn.execute("""
                        INSERT INTO students
                        (student_id, name, roll_no, class_id, photo_path, descriptor_path, descriptor_dim)
                        VALUES (?, ?, ?, ?, ?, ?, ?)
                    """, (
                        student.student_id,
                        student.name,
                        student.roll_no,
                        student.class_id,
                        student.photo_path,
                        descriptor_path,
                        descriptor_dim,
                    ))
        except sqlite3.Error as e:
            # The row was not written; drop its descriptor file
            if descriptor_path is not None:
                Path(descriptor_path).unlink(missing_ok=True)

            # Another writer enrolled the same roll number since the check above
            if isinstance(e, sqlite3.IntegrityError) and "roll_no" in str(e):
                raise DuplicateRollNumber(
                    f"Student with roll number {student.roll_no} already exists"
                ) from e
            logger.error(f"Failed to enroll {student.student_id}: {e}")
            raise

        logger.info(f"Enrolled {student.name} (id={student.student_id}, roll={student.roll_no}, "
                    f"class={student.class_id}, descriptor_dim={descriptor_dim})")

        return student.student_id

    def load_descriptor(self, descriptor_path: Optional[str]) -> Optional[np.ndarray]:
        """
        Load a stored descriptor.

        Args:
            descriptor_path: Path recorded in the students table.

        Returns:
            float32 descriptor, or None if missing or unreadable.
        """
        if not descriptor_path:
            return None

        path = Path(descriptor_path)
        if not path.exists():
            logger.warning(f"Descriptor file missing: {path}")
            return None

        try:
            with np.load(str(path), allow_pickle=False) as data:
                return data["descriptor"].astype(np.float32)
        except (OSError, KeyError, ValueError) as e:
            logger.error(f"Failed to load descriptor {path}: {e}")
            return None

    def _row_to_student(self, row: sqlite3.Row, with_descriptor: bool = True) -> StudentDescriptor:
        descriptor = self.load_descriptor(row["descriptor_path"]) if with_descriptor else None
        return StudentDescriptor(
            student_id=row["student_id"],
            name=row["name"],
            roll_no=row["roll_no"],
            class_id=row["class_id"],
            descriptor=descriptor,
            photo_path=row["photo_path"],
        )

    def get_roster(self, class_id: str) -> List[StudentDescriptor]:
        """
        Load all students of a class with their descriptors.

        Students come back in enrollment order, which is the order the
        synthetic fallback and the tie-break rules rely on.

        Args:
            class_id: The class identifier.

        Returns:
            List of StudentDescriptor (descriptor None when unavailable).
        """
        with self._lock:
            conn = self._get_connection()
            rows = conn.execute("""
                SELECT student_id, name, roll_no, class_id, photo_path, descriptor_path
                FROM students
                WHERE class_id = ?
                ORDER BY rowid
            """, (class_id,)).fetchall()

        roster = [self._row_to_student(row) for row in rows]
        logger.info(f"Loaded roster for class {class_id}: {len(roster)} student(s)")
        return roster

    def get_student(self, student_id: str, with_descriptor: bool = True) -> Optional[StudentDescriptor]:
        """
        Get a single student.

        Args:
            student_id: The student's unique identifier.
            with_descriptor: Also load the descriptor file.

        Returns:
            StudentDescriptor, or None if not found.
        """
        with self._lock:
            conn = self._get_connection()
            row = conn.execute("""
                SELECT student_id, name, roll_no, class_id, photo_path, descriptor_path
                FROM students
                WHERE student_id = ?
            """, (student_id,)).fetchone()

        if row is None:
            return None
        return self._row_to_student(row, with_descriptor=with_descriptor)

    def student_exists_by_roll_no(self, roll_no: str) -> bool:
        """Check if a student with the given roll number is enrolled."""
        with self._lock:
            conn = self._get_connection()
            row = conn.execute("SELECT 1 FROM students WHERE roll_no = ?", (roll_no,)).fetchone()
        return row is not None

    def list_students(self, class_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        List enrolled students with their metadata.

        Args:
            class_id: Only list this class (optional).

        Returns:
            List of dictionaries with student_id, name, roll_no, class_id,
            photo_path, has_descriptor and enrolled_at.
        """
        query = """
            SELECT student_id, name, roll_no, class_id, photo_path,
                   descriptor_path, enrolled_at
            FROM students
        """
        params: tuple = ()
        if class_id:
            query += " WHERE class_id = ?"
            params = (class_id,)
        query += " ORDER BY rowid"

        with self._lock:
            conn = self._get_connection()
            rows = conn.execute(query, params).fetchall()

        return [
            {
                "student_id": row["student_id"],
                "name": row["name"],
                "roll_no": row["roll_no"],
                "class_id": row["class_id"],
                "photo_path": row["photo_path"],
                "has_descriptor": row["descriptor_path"] is not None,
                "enrolled_at": row["enrolled_at"],
            }
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Attendance (Recorder)
    # ------------------------------------------------------------------

    def record_attendance(self, records: Sequence[MatchResult], mode: MatchMode) -> int:
        """
        Append the records of one attendance event.

        All records are inserted in one transaction: either every record is
        written or none is.

        Args:
            records: One MatchResult per roster student.
            mode: How the records were produced (stored alongside each row).

        Returns:
            Number of rows written.

        Raises:
            sqlite3.Error: If the write fails. The transaction is rolled back.
        """
        rows = [
            (
                r.date,
                r.student_id,
                r.status.value,
                r.period,
                r.class_photo,
                r.reason,
                mode.value,
            )
            for r in records
        ]

        with self._lock:
            conn = self._get_connection()
            try:
                with conn:
                    conn.executemany("""
                        INSERT INTO attendance
                        (date, student_id, status, period, class_photo, reason, mode)
                        VALUES (?, ?, ?, ?, ?, ?, ?)
                    """, rows)
            except sqlite3.Error as e:
                logger.error(f"Failed to record {len(rows)} attendance record(s): {e}")
                raise

        logger.info(f"Recorded {len(rows)} attendance record(s) (mode={mode.value})")
        return len(rows)

    def get_attendance(
        self,
        class_id: Optional[str] = None,
        date: Optional[str] = None,
        period: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Query the attendance log.

        Args:
            class_id: Filter by the student's class (optional).
            date: Filter by event date (optional).
            period: Filter by period (optional).

        Returns:
            List of records joined with the student's name, roll number and class.
        """
        query = """
            SELECT a.id, a.date, a.student_id, a.status, a.period, a.class_photo,
                   a.reason, a.mode, a.recorded_at,
                   s.name, s.roll_no, s.class_id
            FROM attendance a
            JOIN students s ON s.student_id = a.student_id
        """
        conditions = []
        params: list = []
        if class_id:
            conditions.append("s.class_id = ?")
            params.append(class_id)
        if date:
            conditions.append("a.date = ?")
            params.append(date)
        if period is not None:
            conditions.append("a.period = ?")
            params.append(period)
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY a.date, a.period, a.id"

        with self._lock:
            conn = self._get_connection()
            rows = conn.execute(query, params).fetchall()

        return [
            {
                "id": row["id"],
                "date": row["date"],
                "student_id": row["student_id"],
                "student_name": row["name"],
                "roll_no": row["roll_no"],
                "class_id": row["class_id"],
                "period": row["period"],
                "status": row["status"],
                "reason": row["reason"] or "",
                "mode": row["mode"],
                "class_photo": row["class_photo"],
                "recorded_at": row["recorded_at"],
            }
            for row in rows
        ]

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics about the store.

        Returns:
            Dictionary with:
            - total_students: Number of enrolled students
            - total_classes: Number of distinct classes
            - students_without_descriptor: Students that force mock mode
            - total_attendance_records: Rows in the attendance log
        """
        with self._lock:
            conn = self._get_connection()
            student_stats = conn.execute("""
                SELECT COUNT(*) AS count,
                       COUNT(DISTINCT class_id) AS classes,
                       SUM(CASE WHEN descriptor_path IS NULL THEN 1 ELSE 0 END) AS missing
                FROM students
            """).fetchone()
            attendance_stats = conn.execute("SELECT COUNT(*) AS total FROM attendance").fetchone()

        return {
            "total_students": student_stats["count"] or 0,
            "total_classes": student_stats["classes"] or 0,
            "students_without_descriptor": int(student_stats["missing"] or 0),
            "total_attendance_records": attendance_stats["total"] or 0,
        }

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.debug("Database connection closed")

    def __del__(self):
        """Clean up resources on deletion."""
        self.close()


# Singleton instance for the store
_store_instance: Optional[AttendanceStore] = None


def get_attendance_store(
    descriptors_dir: Optional[str] = None,
    db_path: Optional[str] = None,
) -> AttendanceStore:
    """
    Get or create the shared AttendanceStore instance.

    Args:
        descriptors_dir: Path to descriptor storage directory.
                         If None, uses value from config.
        db_path: Path to SQLite database.
                 If None, uses value from config.

    Returns:
        The shared AttendanceStore instance.
    """
    global _store_instance

    if _store_instance is None:
        if descriptors_dir is None or db_path is None:
            from core.config import get_storage_config, resolve_storage_path

            storage_config = get_storage_config()

            if descriptors_dir is None:
                descriptors_dir = str(resolve_storage_path(storage_config["descriptors_dir"]))
            if db_path is None:
                db_path = str(resolve_storage_path(storage_config["db_path"]))

        _store_instance = AttendanceStore(descriptors_dir, db_path)

    return _store_instance
