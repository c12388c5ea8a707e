"""
Configuration Module

This module provides the configuration layer for time-weighted and
time-constrained DTW classification: closed enumerations for the selectable
policies and a validated, immutable options record.
"""

import json
import math
import numbers
import logging
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_PENALTY = 1e6


class ConfigurationError(ValueError):
    """Raised for invalid options or data that cannot be aligned."""


class ConstraintType(str, Enum):
    NONE = "none"
    TIME_WEIGHTED = "time-weighted"
    TIME_CONSTRAINED = "time-constrained"


class WeightType(str, Enum):
    LOGISTIC = "logistic"
    LINEAR = "linear"


class DistanceType(str, Enum):
    EUCLIDEAN = "euclidean"
    ANGULAR = "angular"


def parse_enum(enum_cls, value, option: str):
    """Coerce a member or its (case-insensitive) value, raising ConfigurationError otherwise."""
    if isinstance(value, enum_cls):
        return value
    if value is None:
        raise ConfigurationError(f"{option} must be set")
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        accepted = ", ".join(member.value for member in enum_cls)
        raise ConfigurationError(
            f"Unrecognized {option} '{value}' (expected one of: {accepted})"
        ) from None


def load_section(path: str, section: Optional[str]) -> Dict[str, Any]:
    """Read one top-level section of a JSON configuration file (None reads it all)."""
    with open(path, "r") as f:
        document = json.load(f)

    if section is not None:
        if section not in document:
            raise ConfigurationError(f"Section '{section}' not found in {path}")
        document = document[section]
    return document


def _is_positive_int(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, numbers.Real) or not math.isfinite(value):
        return False
    return int(value) == value and value >= 1


@dataclass(frozen=True)
class DTWConfig:
    """
    Options for the DTW distance engine.

    Integer sizes left as None are inferred from the data by ``resolve``.

    Attributes:
        patterns_no: Maximum number of reference instances evaluated per class
        band_no: Measurement band count, excluding day-of-year
        timeseries_len: Number of steps in each observed series
        patterns_len: Number of steps in each reference signature
        constraint_type: Temporal policy applied to the local cost
        weight_type: Weight function used by the time-weighted policy
        distance_type: Local cost kernel
        beta: Tolerance (time-weighted) or window width (time-constrained), in days
        alpha: Steepness (logistic) or slope (linear) of the time weight
        penalty: Cost assigned to cells outside the time-constrained window
        exclude_first_step: Align steps 1..n only, keeping step 0 as the
            angular kernel's predecessor
    """

    patterns_no: Optional[int] = None
    band_no: Optional[int] = None
    timeseries_len: Optional[int] = None
    patterns_len: Optional[int] = None
    constraint_type: ConstraintType = ConstraintType.TIME_WEIGHTED
    weight_type: WeightType = WeightType.LOGISTIC
    distance_type: DistanceType = DistanceType.EUCLIDEAN
    beta: float = 50.0
    alpha: float = 0.1
    penalty: float = DEFAULT_PENALTY
    exclude_first_step: bool = False

    def __post_init__(self):
        # frozen dataclass: normalise through object.__setattr__
        object.__setattr__(
            self, "constraint_type",
            parse_enum(ConstraintType, self.constraint_type, "constraint_type"),
        )
        object.__setattr__(
            self, "weight_type", parse_enum(WeightType, self.weight_type, "weight_type")
        )
        object.__setattr__(
            self, "distance_type",
            parse_enum(DistanceType, self.distance_type, "distance_type"),
        )

        for name in ("patterns_no", "band_no", "timeseries_len", "patterns_len"):
            value = getattr(self, name)
            if value is None:
                continue
            if not _is_positive_int(value):
                raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")
            object.__setattr__(self, name, int(value))

        for name in ("alpha", "beta", "penalty"):
            raw = getattr(self, name)
            try:
                value = float(raw)
            except (TypeError, ValueError):
                raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None
            if not math.isfinite(value):
                raise ConfigurationError(f"{name} must be finite, got {value!r}")
            object.__setattr__(self, name, value)
        if self.penalty <= 0:
            raise ConfigurationError(f"penalty must be positive, got {self.penalty!r}")

        if self.exclude_first_step:
            for name in ("timeseries_len", "patterns_len"):
                value = getattr(self, name)
                if value is not None and value < 2:
                    raise ConfigurationError(
                        f"exclude_first_step requires {name} >= 2, got {value}"
                    )

    @classmethod
    def from_dict(cls, options: Dict[str, Any]) -> "DTWConfig":
        """
        Build a config from a mapping.

        Keys that are not options are ignored with a warning; options set to
        None (JSON null) keep their defaults.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(options) - known)
        if unknown:
            logger.warning(f"Ignoring unknown DTW options: {unknown}")
        return cls(**{k: v for k, v in options.items() if k in known and v is not None})

    @classmethod
    def from_json(cls, path: str, section: Optional[str] = "dtw") -> "DTWConfig":
        """
        Load options from a JSON configuration file.

        Args:
            path: Path to the JSON file
            section: Top-level key holding the DTW options; None reads the
                whole document as options

        Returns:
            Parsed configuration
        """
        document = load_section(path, section)
        logger.info(f"Loaded DTW configuration from {path}")
        return cls.from_dict(document)

    def to_dict(self) -> Dict[str, Any]:
        out = {}
        for f in fields(self):
            value = getattr(self, f.name)
            out[f.name] = value.value if isinstance(value, Enum) else value
        return out

    def resolve(self, band_no: int, patterns_len: int, timeseries_len: int) -> "DTWConfig":
        """
        Fill inferred sizes and cross-check explicit ones against the data.

        Args:
            band_no: Band count of the signatures (excluding day-of-year)
            patterns_len: Step count of the signatures
            timeseries_len: Step count of the observations

        Returns:
            A copy with every size populated
        """
        inferred = {
            "band_no": band_no,
            "patterns_len": patterns_len,
            "timeseries_len": timeseries_len,
        }
        for name, actual in inferred.items():
            if actual < 1:
                raise ConfigurationError(f"{name} must be at least 1, got {actual}")
            declared = getattr(self, name)
            if declared is not None and declared != actual:
                raise ConfigurationError(
                    f"Configured {name}={declared} does not match the data ({actual})"
                )
        return replace(self, **inferred)
