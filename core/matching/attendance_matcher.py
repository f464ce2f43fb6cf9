"""
Attendance Matcher

Turns a batch of detected face descriptors and a class roster into a complete
present/absent assignment. The matcher is a pure function of its inputs: it
holds no global state and performs no I/O besides logging. Persistence is the
caller's job.

Decision order for one event:
    1. Empty roster                  -> NoStudentsInClass (nothing produced)
    2. Any invalid stored descriptor -> synthetic outcome for the whole roster
    3. Malformed detected descriptor -> DescriptorExtractionFailed
    4. No detected faces             -> everyone Absent
    5. Otherwise                     -> FaceAssigner (greedy by default)

The result always contains exactly one record per roster student, in roster
order, or the call raises before producing anything.

Usage:
    from core.matching import AttendanceMatcher

    matcher = AttendanceMatcher(matching_config, fallback_config)
    outcome = matcher.match(detected_faces, roster, event)
    print(outcome.mode, outcome.summary)

Author: CS-1
"""

import logging
from typing import Iterable, List, Optional, Sequence

import numpy as np

from core.matching.greedy_assigner import GreedyFaceAssigner
from core.matching.interfaces import (
    AttendanceEvent,
    AttendanceOutcome,
    AttendanceStatus,
    DescriptorExtractionFailed,
    FaceAssigner,
    MatchMode,
    MatchResult,
    NoStudentsInClass,
    StudentDescriptor,
    is_valid_descriptor,
)
from core.matching.optimal_assigner import OptimalFaceAssigner
from core.matching.synthetic import SyntheticAssignmentPolicy

logger = logging.getLogger(__name__)


ASSIGNERS = {
    "greedy": GreedyFaceAssigner,
    "optimal": OptimalFaceAssigner,
}


class AttendanceMatcher:
    """
    Match detected faces against a roster, with deterministic fallbacks.

    Args:
        config: Matching configuration with optional keys:
            - distance_threshold: Exclusive Euclidean cut-off (default 0.6)
            - descriptor_dim: Required descriptor length, or None to accept
              any length shared by the whole roster (default 128)
            - strategy: "greedy" (default) or "optimal"
        fallback_config: Ratios for SyntheticAssignmentPolicy.
        assigner: Explicit FaceAssigner, overriding config["strategy"].
    """

    def __init__(
        self,
        config: Optional[dict] = None,
        fallback_config: Optional[dict] = None,
        assigner: Optional[FaceAssigner] = None,
    ):
        if config is None:
            config = {}

        self.distance_threshold = float(config.get("distance_threshold", 0.6))
        if self.distance_threshold <= 0:
            raise ValueError(f"distance_threshold must be positive, got {self.distance_threshold}")

        descriptor_dim = config.get("descriptor_dim", 128)
        self.descriptor_dim = int(descriptor_dim) if descriptor_dim is not None else None

        self.strategy = config.get("strategy", "greedy")
        if assigner is None:
            if self.strategy not in ASSIGNERS:
                raise ValueError(
                    f"Unknown matching strategy '{self.strategy}'. "
                    f"Available: {sorted(ASSIGNERS)}"
                )
            assigner = ASSIGNERS[self.strategy]()
        else:
            self.strategy = type(assigner).__name__

        self.assigner = assigner
        self.synthetic = SyntheticAssignmentPolicy(fallback_config)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def match(
        self,
        detected_faces: Iterable,
        roster: Sequence[StudentDescriptor],
        event: AttendanceEvent,
    ) -> AttendanceOutcome:
        """
        Compute the attendance outcome for one event.

        Args:
            detected_faces: Descriptors found in the group photo, in
                            extractor order. May be a lazy iterable; it is
                            consumed at most once.
            roster: Enrolled students of the class, in roster order.
            event: Date, period, class and photo of the submission.

        Returns:
            AttendanceOutcome with exactly one record per roster student.

        Raises:
            NoStudentsInClass: If the roster is empty.
            DescriptorExtractionFailed: If detected data is malformed.
        """
        roster = self._require_roster(roster, event)

        expected_dim = self._expected_dim(roster)
        invalid = [s for s in roster if not s.has_valid_descriptor(expected_dim)]
        if invalid:
            logger.warning(
                f"{len(invalid)}/{len(roster)} student(s) lack a valid face descriptor "
                f"(e.g. {invalid[0].roll_no}); using synthetic attendance for the whole class"
            )
            return self.synthetic.assign(
                roster,
                event,
                MatchMode.MISSING_DESCRIPTORS,
                reason=f"{len(invalid)} student(s) without a valid face descriptor",
            )

        faces = self._materialize_faces(detected_faces, expected_dim)
        logger.info(f"Matching {len(faces)} detected face(s) against {len(roster)} student(s)")

        if len(faces) == 0:
            logger.info("No faces detected, marking all students as absent")
            records = [self._record(student, event, AttendanceStatus.ABSENT) for student in roster]
            return AttendanceOutcome(
                mode=MatchMode.NO_FACES_DETECTED,
                records=records,
                message="Attendance recorded successfully (no faces detected)",
                details={"faces_detected": 0},
            )

        student_matrix = np.stack(
            [np.asarray(s.descriptor, dtype=np.float64) for s in roster]
        )
        assignments = self.assigner.assign(faces, student_matrix, self.distance_threshold)
        by_student = {a.student_index: a for a in assignments}

        records: List[MatchResult] = []
        for index, student in enumerate(roster):
            assignment = by_student.get(index)
            if assignment is None:
                records.append(self._record(student, event, AttendanceStatus.ABSENT))
            else:
                records.append(self._record(
                    student,
                    event,
                    AttendanceStatus.PRESENT,
                    face_index=assignment.face_index,
                    distance=assignment.distance,
                ))

        logger.info(
            f"Matched {len(assignments)}/{len(roster)} student(s); "
            f"{len(faces) - len(assignments)} face(s) left unmatched"
        )

        return AttendanceOutcome(
            mode=MatchMode.MATCHED,
            records=records,
            message="Attendance recorded successfully",
            details={
                "faces_detected": len(faces),
                "faces_unmatched": len(faces) - len(assignments),
                "distance_threshold": self.distance_threshold,
                "strategy": self.strategy,
            },
        )

    def fallback(
        self,
        roster: Sequence[StudentDescriptor],
        event: AttendanceEvent,
        mode: MatchMode,
        reason: Optional[str] = None,
    ) -> AttendanceOutcome:
        """
        Produce a synthetic outcome without attempting any matching.

        Used by callers when descriptor extraction failed.

        Raises:
            NoStudentsInClass: If the roster is empty.
        """
        roster = self._require_roster(roster, event)
        return self.synthetic.assign(roster, event, mode, reason=reason)

    def roster_is_complete(self, roster: Sequence[StudentDescriptor]) -> bool:
        """True if every student has a descriptor usable for matching."""
        expected_dim = self._expected_dim(roster)
        return all(s.has_valid_descriptor(expected_dim) for s in roster)

    # ------------------------------------------------------------------
    # Implementation
    # ------------------------------------------------------------------

    @staticmethod
    def _require_roster(
        roster: Sequence[StudentDescriptor], event: AttendanceEvent
    ) -> List[StudentDescriptor]:
        roster = list(roster) if roster is not None else []
        if not roster:
            raise NoStudentsInClass(event.class_id)
        return roster

    def _expected_dim(self, roster: Sequence[StudentDescriptor]) -> Optional[int]:
        if self.descriptor_dim is not None:
            return self.descriptor_dim
        # No fixed dimensionality: the first usable descriptor sets it
        for student in roster:
            if is_valid_descriptor(student.descriptor):
                return len(np.asarray(student.descriptor).ravel())
        return None

    @staticmethod
    def _materialize_faces(detected_faces: Iterable, expected_dim: Optional[int]) -> np.ndarray:
        """Consume the detected descriptors once and validate them."""
        if detected_faces is None:
            return np.empty((0, expected_dim or 0), dtype=np.float64)

        faces = []
        try:
            for index, face in enumerate(detected_faces):
                if not is_valid_descriptor(face, expected_dim):
                    raise DescriptorExtractionFailed(
                        f"Detected descriptor {index} is malformed "
                        f"(expected a finite vector of length {expected_dim})"
                    )
                faces.append(np.asarray(face, dtype=np.float64))
        except DescriptorExtractionFailed:
            raise
        except Exception as e:
            raise DescriptorExtractionFailed(f"Failed to read detected descriptors: {e}") from e

        if not faces:
            return np.empty((0, expected_dim or 0), dtype=np.float64)
        return np.stack(faces)

    @staticmethod
    def _record(
        student: StudentDescriptor,
        event: AttendanceEvent,
        status: AttendanceStatus,
        face_index: Optional[int] = None,
        distance: Optional[float] = None,
    ) -> MatchResult:
        return MatchResult(
            student_id=student.student_id,
            status=status,
            date=event.date,
            period=event.period,
            class_photo=event.class_photo,
            face_index=face_index,
            distance=distance,
        )


def get_matcher(config: Optional[dict] = None) -> AttendanceMatcher:
    """
    Build an AttendanceMatcher from the application configuration.

    Args:
        config: Full configuration dict. If None, uses core.config.get_config().

    Returns:
        AttendanceMatcher using the "matching" and "fallback" sections.
    """
    if config is None:
        from core.config import get_config
        config = get_config()

    return AttendanceMatcher(
        config.get("matching", {}),
        config.get("fallback", {}),
    )
