"""
Core Module for the Classroom Attendance System

This package contains the attendance matching engine and its collaborators:
configuration, face descriptor extraction, and storage.

Main components:
    - config: Configuration loading and management
    - matching: Face-to-student assignment and fallback policies
    - descriptor_extractor: Face descriptors from photos (face_recognition / insightface)
    - attendance_store: Students, descriptors and the attendance log (SQLite + .npz)
    - attendance_service: Roster -> extractor -> matcher -> recorder

Usage:
    from core.config import get_config
    from core.matching import AttendanceMatcher
    from core.attendance_store import AttendanceStore
    from core.attendance_service import AttendanceService
"""

from core.config import (
    get_config,
    get_section,
    get_matching_config,
    get_fallback_config,
    get_face_embedding_config,
    get_storage_config,
    get_api_config,
    get_server_config,
)

from core.matching import (
    AttendanceMatcher,
    AttendanceEvent,
    AttendanceOutcome,
    AttendanceStatus,
    MatchMode,
    MatchResult,
    StudentDescriptor,
    get_matcher,
)

from core.attendance_store import (
    AttendanceStore,
    DuplicateRollNumber,
    get_attendance_store,
    generate_student_id,
)

__all__ = [
    # Configuration
    "get_config",
    "get_section",
    "get_matching_config",
    "get_fallback_config",
    "get_face_embedding_config",
    "get_storage_config",
    "get_api_config",
    "get_server_config",
    # Matching
    "AttendanceMatcher",
    "AttendanceEvent",
    "AttendanceOutcome",
    "AttendanceStatus",
    "MatchMode",
    "MatchResult",
    "StudentDescriptor",
    "get_matcher",
    # Storage
    "AttendanceStore",
    "DuplicateRollNumber",
    "get_attendance_store",
    "generate_student_id",
]
