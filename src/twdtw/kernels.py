"""
Kernels Module

This module provides the per-cell cost functions of the DTW engine:

- LocalCostKernel: unwarped dissimilarity between one observation step and
  one signature step (squared Euclidean or per-band spectral angle)
- TemporalWeighting: the day-of-year aware transform applied on top of the
  local cost (none / time-weighted / time-constrained)

References:
    Maus, V. et al. (2016). A time-weighted dynamic time warping method for
    land-use and land-cover mapping. IEEE JSTARS, 9(8), 3729-3739.
    Csillik, O. et al. (2019). Object-based time-constrained dynamic time
    warping classification of crops using Sentinel-2. Remote Sensing, 11(10).
    Teke, M. and Cetin, Y. Y. (2021). Multi-year vector dynamic time
    warping-based crop mapping. Journal of Applied Remote Sensing, 15(1).
"""

from typing import Optional, Union

import numpy as np

from .config import ConstraintType, DistanceType, DTWConfig, WeightType, parse_enum

# np.exp overflows float64 just above 709
MAX_EXPONENT = 500.0

ArrayLike = Union[float, np.ndarray]


def _angle(x, x_prev, y, y_prev):
    """Per-band angle between the stacked 2-step vectors (x_prev, x) and (y_prev, y)."""
    dot = x * y + x_prev * y_prev
    norm = np.sqrt(x ** 2 + x_prev ** 2) * np.sqrt(y ** 2 + y_prev ** 2)
    with np.errstate(divide="ignore", invalid="ignore"):
        cosine = np.where(norm > 0, dot / np.where(norm > 0, norm, 1.0), 1.0)
    return np.arccos(np.clip(cosine, -1.0, 1.0))


class LocalCostKernel:
    """Local (unwarped) cost between observation and signature steps."""

    def __init__(self, distance_type: DistanceType = DistanceType.EUCLIDEAN):
        """
        Initialize the LocalCostKernel.

        Args:
            distance_type: Euclidean (sum of squared band differences) or angular
        """
        self.distance_type = parse_enum(DistanceType, distance_type, "distance_type")

    def cost(
        self,
        x: np.ndarray,
        y: np.ndarray,
        x_prev: Optional[np.ndarray] = None,
        y_prev: Optional[np.ndarray] = None
    ) -> float:
        """
        Cost between one observation step and one signature step.

        Args:
            x: Observation band vector at step i
            y: Signature band vector at step j
            x_prev: Observation band vector at step i - 1 (angular only)
            y_prev: Signature band vector at step j - 1 (angular only)

        Returns:
            Non-negative scalar cost. The angular cost is 0 when either
            predecessor is missing.
        """
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        if x.shape != y.shape:
            raise ValueError(f"Band vectors differ in shape: {x.shape} vs {y.shape}")

        if self.distance_type is DistanceType.EUCLIDEAN:
            return float(np.sum((x - y) ** 2))

        if x_prev is None or y_prev is None:
            return 0.0
        return float(np.sum(_angle(x, np.asarray(x_prev, dtype=np.float64),
                                   y, np.asarray(y_prev, dtype=np.float64))))

    def matrix(
        self,
        series: np.ndarray,
        pattern: np.ndarray,
        out: Optional[np.ndarray] = None
    ) -> np.ndarray:
        """
        Local cost for every (observation step, signature step) pair.

        Leading axes of ``series`` are treated as a batch of units.

        Args:
            series: Measurement bands, shape (..., band_no, timeseries_len)
            pattern: Measurement bands, shape (band_no, patterns_len)
            out: Optional buffer of shape (..., timeseries_len, patterns_len)

        Returns:
            Local cost matrix of shape (..., timeseries_len, patterns_len)
        """
        x = series[..., :, :, None]
        y = pattern[:, None, :]

        if self.distance_type is DistanceType.EUCLIDEAN:
            cost = np.sum((x - y) ** 2, axis=-3)
        else:
            cost = np.zeros(series.shape[:-2] + (series.shape[-1], pattern.shape[-1]))
            # step 0 of either sequence has no predecessor and keeps zero cost
            if series.shape[-1] > 1 and pattern.shape[-1] > 1:
                cur_x = series[..., :, 1:, None]
                prev_x = series[..., :, :-1, None]
                cur_y = pattern[:, None, 1:]
                prev_y = pattern[:, None, :-1]
                cost[..., 1:, 1:] = np.sum(_angle(cur_x, prev_x, cur_y, prev_y), axis=-3)

        if out is None:
            return cost
        out[...] = cost
        return out


class TemporalWeighting:
    """Day-of-year aware transform of the local cost."""

    def __init__(
        self,
        constraint_type: ConstraintType = ConstraintType.TIME_WEIGHTED,
        weight_type: WeightType = WeightType.LOGISTIC,
        alpha: float = 0.1,
        beta: float = 50.0,
        penalty: float = 1e6
    ):
        """
        Initialize the TemporalWeighting.

        Args:
            constraint_type: none, time-weighted or time-constrained
            weight_type: logistic or linear (time-weighted only)
            alpha: Steepness (logistic) or slope (linear)
            beta: Mid-point/offset in days, or the constraint window width
            penalty: Cost used outside the time-constrained window
        """
        self.constraint_type = parse_enum(ConstraintType, constraint_type, "constraint_type")
        self.weight_type = parse_enum(WeightType, weight_type, "weight_type")
        self.alpha = float(alpha)
        self.beta = float(beta)
        self.penalty = float(penalty)

    @classmethod
    def from_config(cls, config: DTWConfig) -> "TemporalWeighting":
        return cls(
            constraint_type=config.constraint_type,
            weight_type=config.weight_type,
            alpha=config.alpha,
            beta=config.beta,
            penalty=config.penalty,
        )

    def weight(self, dt: ArrayLike) -> ArrayLike:
        """
        Time weight for a day gap.

        The logistic weight rises from 0 (dt well below beta) to 1 (dt well
        above beta) and is exactly 0.5 at dt == beta.
        """
        dt = np.asarray(dt, dtype=np.float64)
        if self.weight_type is WeightType.LOGISTIC:
            exponent = np.clip(-self.alpha * (dt - self.beta), -MAX_EXPONENT, MAX_EXPONENT)
            result = 1.0 / (1.0 + np.exp(exponent))
        else:
            result = self.alpha * dt + self.beta
        return result if result.ndim else float(result)

    def apply(self, cost: ArrayLike, dt: ArrayLike) -> ArrayLike:
        """
        Combine the local cost with the day gap between the compared steps.

        Args:
            cost: Local cost (sum over bands)
            dt: Absolute day-of-year difference

        Returns:
            Weighted cost, same shape as the broadcast inputs
        """
        cost = np.asarray(cost, dtype=np.float64)
        dt = np.asarray(dt, dtype=np.float64)
        root = np.sqrt(cost)

        if self.constraint_type is ConstraintType.TIME_WEIGHTED:
            result = root + self.weight(dt)
        elif self.constraint_type is ConstraintType.TIME_CONSTRAINED:
            result = np.where(dt <= self.beta, root, self.penalty)
        else:
            result = root + np.zeros_like(dt)

        result = np.asarray(result, dtype=np.float64)
        return result if result.ndim else float(result)
