"""
Signatures Module

This module provides the immutable containers exchanged between data
preparation and the DTW engine: labelled reference signatures and the
per-unit observation series.

Both use the same band-major layout along the band axis, with the
day-of-year sequence always last:

    [band_0, band_1, ..., band_{n-1}, doy]  x  steps
"""

import logging
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .config import ConfigurationError

logger = logging.getLogger(__name__)


def _readonly(array: np.ndarray) -> np.ndarray:
    array = np.array(array, dtype=np.float64, copy=True)
    array.setflags(write=False)
    return array


class ObservationSeries:
    """Multivariate time series of one sampling unit."""

    def __init__(self, values: Sequence):
        """
        Initialize the ObservationSeries.

        Args:
            values: Array of shape (band_no + 1, timeseries_len), day-of-year last
        """
        values = np.asarray(values, dtype=np.float64)
        if values.ndim != 2:
            raise ConfigurationError(
                f"Observation must be 2-D (bands + doy, steps), got shape {values.shape}"
            )
        if values.shape[0] < 2:
            raise ConfigurationError(
                "Observation needs at least one measurement band plus the day-of-year row"
            )
        if values.shape[1] < 1:
            raise ConfigurationError("timeseries_len must be at least 1")
        self.values = _readonly(values)

    @classmethod
    def from_flat(cls, flat: Sequence, band_no: int) -> "ObservationSeries":
        """Build from a flat band-major vector [band_0_t0..band_0_tT, ..., doy_t0..doy_tT]."""
        flat = np.asarray(flat, dtype=np.float64).ravel()
        rows = band_no + 1
        if flat.size % rows:
            raise ConfigurationError(
                f"Flat series of length {flat.size} is not divisible by {rows} rows"
            )
        return cls(flat.reshape(rows, -1))

    @property
    def band_no(self) -> int:
        return self.values.shape[0] - 1

    @property
    def length(self) -> int:
        return self.values.shape[1]

    @property
    def bands(self) -> np.ndarray:
        return self.values[:-1]

    @property
    def doy(self) -> np.ndarray:
        return self.values[-1]

    def __repr__(self) -> str:
        return f"ObservationSeries(band_no={self.band_no}, length={self.length})"


class SignatureStore:
    """
    Reference signatures grouped by class.

    The store is read-only once built. Instances keep the order in which they
    were supplied; classes are enumerated in ascending id order.
    """

    def __init__(
        self,
        patterns: Sequence,
        class_ids: Sequence[int],
        class_names: Optional[Dict[int, str]] = None
    ):
        """
        Initialize the SignatureStore.

        Args:
            patterns: Array of shape (k, band_no + 1, patterns_len), day-of-year last
            class_ids: Integer class label for each of the k patterns
            class_names: Optional mapping from class id to a display name
        """
        patterns = np.asarray(patterns, dtype=np.float64)
        if patterns.ndim != 3:
            raise ConfigurationError(
                f"Signatures must be 3-D (pattern, bands + doy, steps), got shape {patterns.shape}"
            )
        k, rows, steps = patterns.shape
        if k < 1:
            raise ConfigurationError("At least one reference signature is required")
        if rows < 2:
            raise ConfigurationError(
                "Signatures need at least one measurement band plus the day-of-year row"
            )
        if steps < 1:
            raise ConfigurationError("patterns_len must be at least 1")

        class_ids = np.asarray(class_ids)
        if class_ids.shape != (k,):
            raise ConfigurationError(
                f"Expected {k} class ids, got array of shape {class_ids.shape}"
            )
        if not np.issubdtype(class_ids.dtype, np.integer):
            if not np.all(np.mod(class_ids, 1) == 0):
                raise ConfigurationError("Class ids must be integers")
        self.patterns = _readonly(patterns)
        self.class_ids = np.array(class_ids, dtype=np.int64)
        self.class_ids.setflags(write=False)
        self.class_names = dict(class_names or {})

    @classmethod
    def from_dataframe(
        cls,
        df: pd.DataFrame,
        class_column: str,
        band_no: int,
        patterns_len: int,
        band_names: Optional[List[str]] = None
    ) -> "SignatureStore":
        """
        Convert a table of sampled signatures into a store.

        Each row is one reference instance. The band columns must be ordered
        band-major with the day-of-year columns last, e.g. for ndvi and VV:
        [ndvi, ndvi_1, ..., VV, VV_1, ..., doy, doy_1, ...].

        String class labels are encoded as 1-based integer ids in sorted
        category order, and the mapping is kept in ``class_names``.

        Args:
            df: Sampled signature table
            class_column: Column holding the class label
            band_no: Number of measurement bands (excluding day-of-year)
            patterns_len: Number of steps per signature
            band_names: Ordered band columns; defaults to every other column

        Returns:
            SignatureStore built from the table
        """
        if class_column not in df.columns:
            raise ConfigurationError(f"Class column '{class_column}' not found in signature table")

        if band_names is None:
            band_names = [c for c in df.columns if c != class_column]
        missing = [c for c in band_names if c not in df.columns]
        if missing:
            raise ConfigurationError(f"Signature table is missing band columns: {missing}")

        expected = (band_no + 1) * patterns_len
        if len(band_names) != expected:
            raise ConfigurationError(
                f"Expected {expected} band columns for {band_no} bands + doy over "
                f"{patterns_len} steps, got {len(band_names)}"
            )

        df = df.dropna(subset=[class_column])
        labels = df[class_column]
        class_names = None
        if labels.dtype == object or pd.api.types.is_string_dtype(labels):
            categories = labels.astype("category")
            codes = categories.cat.codes + 1
            class_names = dict(enumerate(categories.cat.categories, start=1))
            labels = codes
            logger.info(f"Encoded {len(class_names)} class names: {class_names}")

        values = df[band_names].to_numpy(dtype=np.float64)
        if np.isnan(values).any():
            raise ValueError("Signature table contains missing band values")

        patterns = values.reshape(-1, band_no + 1, patterns_len)
        return cls(patterns, labels.to_numpy(), class_names=class_names)

    @classmethod
    def from_csv(cls, csv_path: str, class_column: str, band_no: int, patterns_len: int,
                 band_names: Optional[List[str]] = None) -> "SignatureStore":
        logger.info(f"Loading signatures from {csv_path}")
        df = pd.read_csv(csv_path)
        # sampled point tables carry coordinates alongside the bands
        if band_names is None:
            band_names = [c for c in df.columns if c not in (class_column, "x", "y", "geometry")]
        return cls.from_dataframe(df, class_column, band_no, patterns_len, band_names)

    @property
    def patterns_no(self) -> int:
        return self.patterns.shape[0]

    @property
    def band_no(self) -> int:
        return self.patterns.shape[1] - 1

    @property
    def patterns_len(self) -> int:
        return self.patterns.shape[2]

    @property
    def classes(self) -> List[int]:
        return sorted(int(c) for c in np.unique(self.class_ids))

    def for_class(self, class_id: int, limit: Optional[int] = None) -> np.ndarray:
        """
        Return the instances of one class in their original order.

        Args:
            class_id: Class to select
            limit: Keep at most this many instances

        Returns:
            Read-only array of shape (n, band_no + 1, patterns_len)
        """
        selected = self.patterns[self.class_ids == class_id]
        if selected.shape[0] == 0:
            raise ConfigurationError(f"No reference signatures for class {class_id}")
        if limit is not None:
            if limit > selected.shape[0]:
                raise ConfigurationError(
                    f"patterns_no={limit} exceeds the {selected.shape[0]} signatures of class {class_id}"
                )
            selected = selected[:limit]
        return selected

    def iter_classes(self, limit: Optional[int] = None) -> Iterator[Tuple[int, np.ndarray]]:
        for class_id in self.classes:
            yield class_id, self.for_class(class_id, limit)

    def class_counts(self) -> Dict[int, int]:
        """Number of reference instances per class."""
        ids, counts = np.unique(self.class_ids, return_counts=True)
        return {int(i): int(c) for i, c in zip(ids, counts)}

    def class_name(self, class_id: int) -> str:
        return self.class_names.get(class_id, str(class_id))

    def __len__(self) -> int:
        return self.patterns_no

    def __repr__(self) -> str:
        return (
            f"SignatureStore(patterns_no={self.patterns_no}, band_no={self.band_no}, "
            f"patterns_len={self.patterns_len}, classes={self.classes})"
        )
