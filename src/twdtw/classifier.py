"""
Classifier Module

This module provides the end-to-end DTW classifier: it binds a set of
reference signatures to a configuration and classifies observation series,
either one sampling unit at a time or in batches spread over a joblib
worker pool.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

import numpy as np
from joblib import Parallel, delayed
from tqdm import tqdm

from .alignment import AlignmentEngine
from .config import ConfigurationError, DTWConfig
from .reducers import ClassificationResult, ClassReducer, PatternReducer, as_distance_map
from .signatures import ObservationSeries, SignatureStore

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClassificationBatch:
    """Per-unit scores and class ids of a batch, in input order."""

    scores: np.ndarray
    class_ids: np.ndarray
    failed: int = 0

    def __len__(self) -> int:
        return len(self.scores)

    def __getitem__(self, index: int) -> ClassificationResult:
        return ClassificationResult(score=float(self.scores[index]), class_id=int(self.class_ids[index]))

    def to_raster(self, height: int, width: int) -> Tuple[np.ndarray, np.ndarray]:
        """Reshape to (score, class id) rasters of shape (height, width)."""
        if height * width != len(self.scores):
            raise ValueError(
                f"Cannot reshape {len(self.scores)} units into a {height}x{width} raster"
            )
        return self.scores.reshape(height, width), self.class_ids.reshape(height, width)


class DTWClassifier:
    """
    Nearest-signature classifier under time-aware DTW.

    This class handles:
    1. Per-unit classification and per-class distances
    2. Chunked batch classification over a worker pool
    3. Isolation of units that fail to classify
    """

    def __init__(
        self,
        signatures: SignatureStore,
        config: Optional[DTWConfig] = None,
        nodata_class: int = 0
    ):
        """
        Initialize the DTWClassifier.

        Args:
            signatures: Reference signatures; read-only for the classifier's lifetime
            config: DTW options (defaults apply when omitted)
            nodata_class: Class id reported for units that fail to classify
        """
        self.signatures = signatures
        self.config = config or DTWConfig()
        self.nodata_class = nodata_class

        if self.config.band_no is not None and self.config.band_no != signatures.band_no:
            raise ConfigurationError(
                f"Configured band_no={self.config.band_no} does not match the "
                f"signatures ({signatures.band_no})"
            )
        if self.config.patterns_len is not None and self.config.patterns_len != signatures.patterns_len:
            raise ConfigurationError(
                f"Configured patterns_len={self.config.patterns_len} does not match "
                f"the signatures ({signatures.patterns_len})"
            )

        # Fail on a bad patterns_no before any unit is processed
        self.class_patterns = list(signatures.iter_classes(limit=self.config.patterns_no))
        self.class_ids = [class_id for class_id, _ in self.class_patterns]
        logger.info(
            f"DTW classifier ready: {len(self.class_ids)} classes, "
            f"{signatures.patterns_no} signatures, {self.config.constraint_type.value}/"
            f"{self.config.distance_type.value}"
        )

    def _engine_for(self, timeseries_len: int) -> AlignmentEngine:
        config = self.config.resolve(
            band_no=self.signatures.band_no,
            patterns_len=self.signatures.patterns_len,
            timeseries_len=timeseries_len,
        )
        return AlignmentEngine(config)

    def _as_batch(self, series) -> np.ndarray:
        series = np.asarray(series, dtype=np.float64)
        if series.ndim != 3:
            raise ConfigurationError(
                f"Batch must be 3-D (units, bands + doy, steps), got shape {series.shape}"
            )
        if series.shape[1] != self.signatures.band_no + 1:
            raise ConfigurationError(
                f"Band count mismatch: series has {series.shape[1] - 1} bands, "
                f"signatures have {self.signatures.band_no}"
            )
        return series

    def _distance_table(self, engine: AlignmentEngine, series: np.ndarray) -> np.ndarray:
        """Class-by-unit distance table for one chunk."""
        reducer = PatternReducer(engine)
        units, _, timeseries_len = series.shape
        workspace = np.empty((units, timeseries_len, self.signatures.patterns_len))
        table = np.empty((len(self.class_patterns), units))
        for row, (class_id, patterns) in enumerate(self.class_patterns):
            table[row], _ = reducer.reduce(class_id, patterns, series, workspace=workspace)
        return table

    def class_distances(self, observation: Union[ObservationSeries, np.ndarray]) -> Dict[int, float]:
        """Nearest-instance distance of one observation to every class."""
        if not isinstance(observation, ObservationSeries):
            observation = ObservationSeries(observation)
        series = self._as_batch(observation.values[None, ...])
        engine = self._engine_for(observation.length)
        table = self._distance_table(engine, series)
        return as_distance_map(self.class_ids, table[:, 0])

    def classify(self, observation: Union[ObservationSeries, np.ndarray]) -> ClassificationResult:
        """
        Classify one sampling unit.

        Args:
            observation: Series of shape (band_no + 1, timeseries_len)

        Returns:
            ClassificationResult with the best class and its distance
        """
        return ClassReducer.reduce(self.class_distances(observation))

    def _classify_chunk(self, engine: AlignmentEngine, chunk: np.ndarray) -> Tuple[np.ndarray, np.ndarray, int]:
        try:
            scores, class_ids = ClassReducer.reduce_batch(
                self.class_ids, self._distance_table(engine, chunk)
            )
            return scores, class_ids, 0
        except Exception as e:
            logger.warning(f"Chunk of {len(chunk)} units failed ({e}); retrying unit by unit")

        scores = np.full(len(chunk), np.nan)
        class_ids = np.full(len(chunk), self.nodata_class, dtype=np.int64)
        failed = 0
        for index in range(len(chunk)):
            try:
                unit_scores, unit_ids = ClassReducer.reduce_batch(
                    self.class_ids, self._distance_table(engine, chunk[index:index + 1])
                )
                scores[index], class_ids[index] = unit_scores[0], unit_ids[0]
            except Exception as e:
                logger.error(f"Error classifying unit {index} of chunk: {e}")
                failed += 1
        return scores, class_ids, failed

    def classify_batch(
        self,
        series: np.ndarray,
        n_jobs: int = 1,
        chunk_size: int = 4096,
        progress: bool = True
    ) -> ClassificationBatch:
        """
        Classify many sampling units.

        Units are split into contiguous chunks that are processed
        independently by the worker pool and reassembled in input order.

        Args:
            series: Shape (units, band_no + 1, timeseries_len), day-of-year last
            n_jobs: joblib worker count (-1 uses every core)
            chunk_size: Units per chunk
            progress: Show a tqdm progress bar

        Returns:
            ClassificationBatch aligned with the input units
        """
        series = self._as_batch(series)
        if chunk_size < 1:
            raise ConfigurationError(f"chunk_size must be positive, got {chunk_size}")
        engine = self._engine_for(series.shape[2])
        engine.validate(series.shape, self.signatures.patterns[0].shape)

        units = series.shape[0]
        if units == 0:
            return ClassificationBatch(np.empty(0), np.empty(0, dtype=np.int64))

        starts = range(0, units, chunk_size)
        chunks: List[np.ndarray] = [series[start:start + chunk_size] for start in starts]
        logger.info(f"Classifying {units} units in {len(chunks)} chunks with n_jobs={n_jobs}")

        iterator = tqdm(chunks, desc="Classifying", disable=not progress)
        results = Parallel(n_jobs=n_jobs)(
            delayed(self._classify_chunk)(engine, chunk) for chunk in iterator
        )

        scores = np.concatenate([r[0] for r in results])
        class_ids = np.concatenate([r[1] for r in results])
        failed = sum(r[2] for r in results)
        if failed:
            logger.warning(f"{failed} of {units} units could not be classified")
        logger.info(f"Classification complete: {units - failed} classified, {failed} failed")
        return ClassificationBatch(scores=scores, class_ids=class_ids, failed=failed)
