"""
Synthetic Assignment Policy

Produces a deterministic placeholder attendance outcome when biometric
matching cannot run. Given n students in roster order, the first
floor(n * ratio) are marked Present and the rest Absent.

Two ratios are configured (config.yaml, "fallback" section):
    - missing_descriptor_ratio (0.8): some student has no usable descriptor
    - extraction_failure_ratio (0.7): descriptor extraction failed

Every record produced here carries a `reason`, and the outcome carries a
degraded MatchMode, so placeholder data can always be told apart from a
real match.
"""

import logging
import math
from typing import Dict, Optional, Sequence

from core.matching.interfaces import (
    AttendanceEvent,
    AttendanceOutcome,
    AttendanceStatus,
    MatchMode,
    MatchResult,
    StudentDescriptor,
)

logger = logging.getLogger(__name__)


DEFAULT_MESSAGES = {
    MatchMode.MISSING_DESCRIPTORS: "Attendance recorded successfully (mock mode)",
    MatchMode.EXTRACTION_FAILED: "Attendance recorded with fallback (face processing failed)",
}


class SyntheticAssignmentPolicy:
    """
    Deterministic proportional attendance generator.

    Args:
        config: Dictionary with optional keys:
            - missing_descriptor_ratio: Present share when descriptors are
              missing (default 0.8)
            - extraction_failure_ratio: Present share when extraction
              fails (default 0.7)

    Raises:
        ValueError: If a ratio lies outside [0, 1].
    """

    def __init__(self, config: Optional[dict] = None):
        if config is None:
            config = {}

        self.ratios: Dict[MatchMode, float] = {
            MatchMode.MISSING_DESCRIPTORS: float(config.get("missing_descriptor_ratio", 0.8)),
            MatchMode.EXTRACTION_FAILED: float(config.get("extraction_failure_ratio", 0.7)),
        }

        for mode, ratio in self.ratios.items():
            if not 0.0 <= ratio <= 1.0:
                raise ValueError(f"Fallback ratio for {mode.value} must be in [0, 1], got {ratio}")

    def ratio_for(self, mode: MatchMode) -> float:
        """Return the Present ratio used for a degraded mode."""
        if mode not in self.ratios:
            raise ValueError(f"{mode.value} is not a synthetic assignment mode")
        return self.ratios[mode]

    @staticmethod
    def present_count(n_students: int, ratio: float) -> int:
        """Number of students marked Present: floor(n * ratio)."""
        return int(math.floor(n_students * ratio))

    def assign(
        self,
        roster: Sequence[StudentDescriptor],
        event: AttendanceEvent,
        mode: MatchMode,
        reason: Optional[str] = None,
    ) -> AttendanceOutcome:
        """
        Build a synthetic outcome for the whole roster.

        Args:
            roster: Enrolled students, in roster order.
            event: The attendance event being recorded.
            mode: MISSING_DESCRIPTORS or EXTRACTION_FAILED.
            reason: Optional detail (e.g., the extractor error message).

        Returns:
            AttendanceOutcome with one record per student.
        """
        ratio = self.ratio_for(mode)
        n_present = self.present_count(len(roster), ratio)
        record_reason = reason or mode.value

        records = [
            MatchResult(
                student_id=student.student_id,
                status=AttendanceStatus.PRESENT if index < n_present else AttendanceStatus.ABSENT,
                date=event.date,
                period=event.period,
                class_photo=event.class_photo,
                reason=record_reason,
            )
            for index, student in enumerate(roster)
        ]

        logger.warning(
            f"Synthetic attendance ({mode.value}, ratio={ratio}): "
            f"{n_present}/{len(roster)} marked present"
        )

        return AttendanceOutcome(
            mode=mode,
            records=records,
            message=DEFAULT_MESSAGES[mode],
            reason=reason,
            details={"ratio": ratio, "synthetic": True},
        )
