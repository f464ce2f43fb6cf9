"""
Greedy Assigner: faces claim their nearest unmatched student in photo order.

Default FaceAssigner implementation. For every detected face, in the order
the extractor produced them, the nearest still-unmatched student is chosen
if the Euclidean distance is strictly below the threshold. A claimed student
is never reconsidered and a face that finds no student is discarded.

This is not globally optimal: a face processed early may take a student
that a later face needed. The behaviour is kept on purpose so that results
depend only on the input order; see OptimalFaceAssigner for the opt-in
alternative.
"""

import logging
from typing import List

import numpy as np

from core.matching.interfaces import FaceAssigner, FaceAssignment

logger = logging.getLogger(__name__)


class GreedyFaceAssigner(FaceAssigner):
    """
    Order-dependent nearest-neighbour assignment.

    Ties (two unmatched students at exactly the same distance from a face)
    resolve to the student that comes first in roster order.
    """

    def assign(
        self,
        face_descriptors: np.ndarray,
        student_descriptors: np.ndarray,
        distance_threshold: float,
    ) -> List[FaceAssignment]:
        n_students = len(student_descriptors)
        # Roster indices still available, kept in roster order
        unmatched = list(range(n_students))
        assignments: List[FaceAssignment] = []

        for face_index, face in enumerate(face_descriptors):
            if not unmatched:
                logger.debug(f"Face {face_index} discarded: every student already matched")
                continue

            candidates = student_descriptors[unmatched]
            distances = np.linalg.norm(candidates - face, axis=1)

            # argmin returns the first minimum, i.e. the earliest roster entry
            best = int(np.argmin(distances))
            best_distance = float(distances[best])

            if best_distance < distance_threshold:
                student_index = unmatched.pop(best)
                assignments.append(FaceAssignment(
                    face_index=face_index,
                    student_index=student_index,
                    distance=best_distance,
                ))
                logger.debug(
                    f"Face {face_index} -> student #{student_index} "
                    f"(distance={best_distance:.4f})"
                )
            else:
                logger.debug(
                    f"Face {face_index} unmatched: nearest distance "
                    f"{best_distance:.4f} >= {distance_threshold}"
                )

        return assignments
