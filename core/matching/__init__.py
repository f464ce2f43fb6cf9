"""
Matching Module for Classroom Attendance

This package contains the attendance matching engine: it assigns faces
detected in a group photo to enrolled students and falls back to a
synthetic outcome when biometric matching cannot run.

Components:
    - interfaces: Data types, errors and the FaceAssigner base class
    - greedy_assigner: Order-dependent nearest-neighbour assignment (default)
    - optimal_assigner: Min-cost bipartite assignment (opt-in)
    - synthetic: Deterministic proportional fallback policy
    - attendance_matcher: The match() contract tying it all together

Usage:
    from core.matching import AttendanceMatcher, AttendanceEvent

    matcher = AttendanceMatcher({"distance_threshold": 0.6})
    outcome = matcher.match(detected_faces, roster, AttendanceEvent("2026-03-02", 1))
"""

from core.matching.interfaces import (
    AttendanceError,
    NoStudentsInClass,
    DescriptorExtractionFailed,
    NoFaceDetected,
    AttendanceStatus,
    MatchMode,
    StudentDescriptor,
    AttendanceEvent,
    MatchResult,
    AttendanceSummary,
    AttendanceOutcome,
    FaceAssignment,
    FaceAssigner,
    is_valid_descriptor,
    pairwise_distances,
)
from core.matching.greedy_assigner import GreedyFaceAssigner
from core.matching.optimal_assigner import OptimalFaceAssigner
from core.matching.synthetic import SyntheticAssignmentPolicy
from core.matching.attendance_matcher import AttendanceMatcher, get_matcher

__all__ = [
    # Errors
    "AttendanceError",
    "NoStudentsInClass",
    "DescriptorExtractionFailed",
    "NoFaceDetected",
    # Data classes
    "AttendanceStatus",
    "MatchMode",
    "StudentDescriptor",
    "AttendanceEvent",
    "MatchResult",
    "AttendanceSummary",
    "AttendanceOutcome",
    "FaceAssignment",
    # Assigners
    "FaceAssigner",
    "GreedyFaceAssigner",
    "OptimalFaceAssigner",
    # Policies and matcher
    "SyntheticAssignmentPolicy",
    "AttendanceMatcher",
    "get_matcher",
    # Helpers
    "is_valid_descriptor",
    "pairwise_distances",
]
