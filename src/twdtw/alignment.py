"""
Alignment Module

This module provides the dynamic-programming core of the classifier. For one
signature and one (or a batch of) observation series it builds the local cost
matrix with the configured kernel and temporal weighting, accumulates it with
the classic DTW recurrence and returns the cost of the best alignment path.

Only the path cost is computed; the path itself is never materialised.
"""

from typing import Optional, Tuple, Union

import numpy as np

from .config import ConfigurationError, DTWConfig
from .kernels import LocalCostKernel, TemporalWeighting
from .signatures import ObservationSeries


def cumulative_cost_matrix(local: np.ndarray, out: Optional[np.ndarray] = None) -> np.ndarray:
    """
    Accumulate a local cost matrix with the DTW recurrence.

        D[0][0] = d[0][0]
        D[0][j] = D[0][j-1] + d[0][j]
        D[i][0] = D[i-1][0] + d[i][0]
        D[i][j] = d[i][j] + min(D[i-1][j], D[i][j-1], D[i-1][j-1])

    Leading axes are a batch of independent matrices.

    Args:
        local: Local cost matrix of shape (..., rows, cols)
        out: Destination buffer of the same shape; may be ``local`` itself
            to accumulate in place

    Returns:
        The cumulative cost matrix
    """
    local = np.asarray(local, dtype=np.float64)
    if out is None:
        out = np.array(local, copy=True)
    elif out is not local:
        out[...] = local

    rows, cols = out.shape[-2:]
    if rows < 1 or cols < 1:
        raise ConfigurationError(f"Cannot align an empty cost matrix of shape {out.shape}")

    np.cumsum(out[..., 0, :], axis=-1, out=out[..., 0, :])
    np.cumsum(out[..., :, 0], axis=-1, out=out[..., :, 0])

    for i in range(1, rows):
        above = out[..., i - 1, :]
        row = out[..., i, :]
        # D[i-1][j] and D[i-1][j-1] are final for the whole row
        diagonal_or_above = np.minimum(above[..., 1:], above[..., :-1])
        for j in range(1, cols):
            row[..., j] += np.minimum(diagonal_or_above[..., j - 1], row[..., j - 1])
    return out


class AlignmentEngine:
    """
    Time-aware DTW distance between observation series and one signature.

    This class handles:
    1. Eager validation of series and signature shapes
    2. Weighted local cost matrices for a batch of units
    3. The cumulative cost recurrence over a reusable workspace
    """

    def __init__(self, config: Optional[DTWConfig] = None):
        """
        Initialize the AlignmentEngine.

        Args:
            config: DTW options; sizes may still be unresolved
        """
        self.config = config or DTWConfig()
        self.kernel = LocalCostKernel(self.config.distance_type)
        self.weighting = TemporalWeighting.from_config(self.config)

    def validate(self, series_shape: Tuple[int, ...], pattern_shape: Tuple[int, ...]) -> None:
        """
        Check that a series (or batch of series) can be aligned to a pattern.

        Raises:
            ConfigurationError: On empty sequences, band count mismatches or
                disagreement with explicitly configured sizes
        """
        if len(series_shape) < 2 or len(pattern_shape) != 2:
            raise ConfigurationError(
                f"Unexpected shapes: series {series_shape}, pattern {pattern_shape}"
            )
        series_rows, timeseries_len = series_shape[-2:]
        pattern_rows, patterns_len = pattern_shape

        if timeseries_len < 1 or patterns_len < 1:
            raise ConfigurationError(
                f"timeseries_len ({timeseries_len}) and patterns_len ({patterns_len}) must be >= 1"
            )
        if series_rows != pattern_rows:
            raise ConfigurationError(
                f"Band count mismatch: series has {series_rows - 1} bands, "
                f"signature has {pattern_rows - 1}"
            )
        if self.config.exclude_first_step and min(timeseries_len, patterns_len) < 2:
            raise ConfigurationError("exclude_first_step requires at least 2 steps in both sequences")

        declared = {
            "band_no": (self.config.band_no, series_rows - 1),
            "timeseries_len": (self.config.timeseries_len, timeseries_len),
            "patterns_len": (self.config.patterns_len, patterns_len),
        }
        for name, (expected, actual) in declared.items():
            if expected is not None and expected != actual:
                raise ConfigurationError(
                    f"Configured {name}={expected} does not match the data ({actual})"
                )

    def local_cost_matrix(
        self,
        series: np.ndarray,
        pattern: np.ndarray,
        out: Optional[np.ndarray] = None
    ) -> np.ndarray:
        """
        Weighted local cost for every step pair.

        Args:
            series: Shape (..., band_no + 1, timeseries_len), day-of-year last
            pattern: Shape (band_no + 1, patterns_len), day-of-year last
            out: Optional buffer of shape (..., timeseries_len, patterns_len)

        Returns:
            Local cost matrix
        """
        cost = self.kernel.matrix(series[..., :-1, :], pattern[:-1], out=out)
        dt = np.abs(series[..., -1, :, None] - pattern[-1][None, :])
        weighted = self.weighting.apply(cost, dt)
        if out is None:
            return weighted
        out[...] = weighted
        return out

    def batch_distance(
        self,
        series: np.ndarray,
        pattern: np.ndarray,
        workspace: Optional[np.ndarray] = None
    ) -> np.ndarray:
        """
        Alignment distance of every series in a batch to one pattern.

        Args:
            series: Shape (units, band_no + 1, timeseries_len)
            pattern: Shape (band_no + 1, patterns_len)
            workspace: Reusable buffer of shape (units, timeseries_len, patterns_len);
                overwritten

        Returns:
            Distances of shape (units,)
        """
        series = np.asarray(series, dtype=np.float64)
        pattern = np.asarray(pattern, dtype=np.float64)
        self.validate(series.shape, pattern.shape)

        local = self.local_cost_matrix(series, pattern, out=workspace)
        if self.config.exclude_first_step:
            local = local[..., 1:, 1:]
        accumulated = cumulative_cost_matrix(local, out=local)
        return np.array(accumulated[..., -1, -1], copy=True)

    def distance(
        self,
        series: Union[ObservationSeries, np.ndarray],
        pattern: np.ndarray
    ) -> float:
        """Alignment distance of a single series to one pattern."""
        values = series.values if isinstance(series, ObservationSeries) else np.asarray(series)
        return float(self.batch_distance(values[None, ...], pattern)[0])

    def cost_matrices(
        self,
        series: Union[ObservationSeries, np.ndarray],
        pattern: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Local and cumulative cost matrices for one (series, pattern) pair.

        Returns:
            Tuple of (local, cumulative), each (timeseries_len, patterns_len)
            or one step shorter on both axes when the first step is excluded
        """
        values = series.values if isinstance(series, ObservationSeries) else np.asarray(series, dtype=np.float64)
        pattern = np.asarray(pattern, dtype=np.float64)
        self.validate(values.shape, pattern.shape)

        local = self.local_cost_matrix(values, pattern)
        if self.config.exclude_first_step:
            local = local[1:, 1:]
        return local, cumulative_cost_matrix(local)
