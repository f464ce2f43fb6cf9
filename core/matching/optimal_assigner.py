"""
Optimal Assigner: min-cost bipartite assignment of faces to students.

Opt-in alternative to GreedyFaceAssigner (config: matching.strategy = "optimal").
Solves the assignment problem over the full face/student distance matrix with
the Hungarian algorithm (scipy.optimize.linear_sum_assignment):

  1. Pairs at or above the threshold get a prohibitive cost.
  2. The solver maximises the number of accepted pairs first, then
     minimises their total distance.
  3. Prohibited pairs are dropped from the solution.

Unlike the greedy assigner, the result does not depend on the order of the
detected faces, so outcomes can differ on near-tied inputs.
"""

import logging
from typing import List

import numpy as np
from scipy.optimize import linear_sum_assignment

from core.matching.interfaces import FaceAssigner, FaceAssignment, pairwise_distances

logger = logging.getLogger(__name__)


class OptimalFaceAssigner(FaceAssigner):
    """Globally optimal one-to-one assignment under a distance threshold."""

    def assign(
        self,
        face_descriptors: np.ndarray,
        student_descriptors: np.ndarray,
        distance_threshold: float,
    ) -> List[FaceAssignment]:
        if len(face_descriptors) == 0 or len(student_descriptors) == 0:
            return []

        distances = pairwise_distances(face_descriptors, student_descriptors)
        allowed = distances < distance_threshold

        # Any single prohibited pair must cost more than every allowed pair
        # of a full assignment combined.
        max_pairs = min(distances.shape)
        prohibited_cost = distance_threshold * max_pairs + 1.0
        cost = np.where(allowed, distances, prohibited_cost)

        face_idx, student_idx = linear_sum_assignment(cost)

        assignments = [
            FaceAssignment(
                face_index=int(f),
                student_index=int(s),
                distance=float(distances[f, s]),
            )
            for f, s in zip(face_idx, student_idx)
            if allowed[f, s]
        ]
        assignments.sort(key=lambda a: a.face_index)

        logger.debug(
            f"Optimal assignment: {len(assignments)} pair(s) from "
            f"{distances.shape[0]} face(s) x {distances.shape[1]} student(s)"
        )
        return assignments
