"""
Time-Weighted DTW Classification - Core Libraries

This module provides the core functionality for land-cover / crop-type
classification by time-aware Dynamic Time Warping:
- config: validated DTW options
- signatures: reference signature and observation containers
- kernels: local cost and temporal weighting
- alignment: the DTW dynamic program
- reducers: nearest-exemplar and best-class reductions
- classifier: per-unit and batched classification
- raster: GeoTIFF stack reading, signature sampling and result writing
- history: multi-period cropland stratification
"""

from .config import ConfigurationError, ConstraintType, DistanceType, DTWConfig, WeightType
from .signatures import ObservationSeries, SignatureStore
from .kernels import LocalCostKernel, TemporalWeighting
from .alignment import AlignmentEngine, cumulative_cost_matrix
from .reducers import ClassificationResult, ClassReducer, PatternReducer
from .classifier import ClassificationBatch, DTWClassifier
from .raster import RasterStack
from .history import stratify_cropland

__version__ = "0.1.0"
__author__ = "Land Cover Mapping Team"

__all__ = [
    "ConfigurationError",
    "ConstraintType",
    "DistanceType",
    "DTWConfig",
    "WeightType",
    "ObservationSeries",
    "SignatureStore",
    "LocalCostKernel",
    "TemporalWeighting",
    "AlignmentEngine",
    "cumulative_cost_matrix",
    "ClassificationResult",
    "ClassReducer",
    "PatternReducer",
    "ClassificationBatch",
    "DTWClassifier",
    "RasterStack",
    "stratify_cropland",
]
