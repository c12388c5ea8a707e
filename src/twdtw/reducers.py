"""
Reducers Module

This module provides the two minimum reductions that turn alignment
distances into a classification:

- PatternReducer: nearest exemplar within one class
- ClassReducer: best class across all classes

Ties always resolve to the first candidate in enumeration order.
"""

from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence, Tuple

import numpy as np

from .alignment import AlignmentEngine
from .config import ConfigurationError


@dataclass(frozen=True)
class ClassificationResult:
    """Best-matching class of one sampling unit and its dissimilarity score."""

    score: float
    class_id: int


class PatternReducer:
    """Distance of observations to a class: the minimum over its instances."""

    def __init__(self, engine: AlignmentEngine):
        self.engine = engine

    def reduce(
        self,
        class_id: int,
        patterns: np.ndarray,
        series: np.ndarray,
        workspace: Optional[np.ndarray] = None
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Nearest-instance distance for a batch of series.

        Args:
            class_id: Class being evaluated
            patterns: Instances of the class, shape (k, band_no + 1, patterns_len)
            series: Shape (units, band_no + 1, timeseries_len)
            workspace: Buffer shared across instances, shape (units, timeseries_len, patterns_len)

        Returns:
            Tuple of (distances, best instance index), both of shape (units,)
        """
        if len(patterns) == 0:
            raise ConfigurationError(f"Class {class_id} has no reference signatures")

        best = None
        best_index = None
        for index, pattern in enumerate(patterns):
            distances = self.engine.batch_distance(series, pattern, workspace=workspace)
            if best is None:
                best = distances
                best_index = np.zeros(distances.shape, dtype=np.int64)
                continue
            # strict comparison keeps the earlier instance on ties
            better = distances < best
            best = np.where(better, distances, best)
            best_index = np.where(better, index, best_index)
        return best, best_index

    def distance(self, class_id: int, patterns: np.ndarray, series: np.ndarray) -> float:
        """Nearest-instance distance for a single series."""
        distances, _ = self.reduce(class_id, patterns, np.asarray(series)[None, ...])
        return float(distances[0])


class ClassReducer:
    """Pick the class with the smallest distance."""

    @staticmethod
    def reduce(distances: Mapping[int, float]) -> ClassificationResult:
        """
        Args:
            distances: Class id to distance, enumerated in insertion order

        Returns:
            ClassificationResult of the first class reaching the minimum
        """
        if not distances:
            raise ConfigurationError("No class distances to reduce")

        best_class = None
        best_score = None
        for class_id, score in distances.items():
            if best_score is None or score < best_score:
                best_class, best_score = class_id, score
        return ClassificationResult(score=float(best_score), class_id=int(best_class))

    @staticmethod
    def reduce_batch(class_ids: Sequence[int], distances: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Vectorised reduction over many units.

        Args:
            class_ids: Class id of each row of ``distances``
            distances: Shape (classes, units)

        Returns:
            Tuple of (scores, class ids), both of shape (units,)
        """
        distances = np.asarray(distances, dtype=np.float64)
        if distances.ndim != 2 or distances.shape[0] != len(class_ids) or not len(class_ids):
            raise ConfigurationError(
                f"Distance table of shape {distances.shape} does not match {len(class_ids)} classes"
            )
        # argmin returns the first index on ties
        winner = np.argmin(distances, axis=0)
        scores = distances[winner, np.arange(distances.shape[1])]
        return scores, np.asarray(class_ids, dtype=np.int64)[winner]


def as_distance_map(class_ids: Sequence[int], distances: Sequence[float]) -> Dict[int, float]:
    return {int(c): float(d) for c, d in zip(class_ids, distances)}
