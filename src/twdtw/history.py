"""
History Module

Multi-period post-processing of classification rasters: distinguishes
abandoned (long-term fallow) and short-term fallow cropland from rangeland
using the classifications of earlier periods.
"""

from typing import Optional, Sequence

import numpy as np


def stratify_cropland(
    current: np.ndarray,
    previous: Sequence[np.ndarray],
    rangeland_class: int,
    cropland_class: int,
    abandoned_class: int,
    fallow_class: int,
    crop_mask: Optional[np.ndarray] = None
) -> np.ndarray:
    """
    Relabel rangeland pixels according to their cropping history.

    A pixel classified as rangeland in the current period becomes:
    - ``abandoned_class`` if it was rangeland in every previous period
    - ``fallow_class`` if it was cropland in any previous period

    Args:
        current: Class raster of the current period
        previous: Class rasters of earlier periods, any order
        rangeland_class: Class id of rangeland
        cropland_class: Class id of active cropland
        abandoned_class: Class id assigned to abandoned cropland
        fallow_class: Class id assigned to short-term fallow cropland
        crop_mask: Boolean raster; only True pixels are relabelled

    Returns:
        New class raster; the input is not modified
    """
    current = np.asarray(current)
    if not len(previous):
        raise ValueError("At least one previous period is required")

    history = np.stack([np.asarray(p) for p in previous])
    if history.shape[1:] != current.shape:
        raise ValueError(
            f"Previous periods have shape {history.shape[1:]}, current is {current.shape}"
        )

    eligible = current == rangeland_class
    if crop_mask is not None:
        crop_mask = np.asarray(crop_mask, dtype=bool)
        if crop_mask.shape != current.shape:
            raise ValueError(f"Crop mask shape {crop_mask.shape} does not match {current.shape}")
        eligible &= crop_mask

    abandoned = eligible & np.all(history == rangeland_class, axis=0)
    fallow = eligible & np.any(history == cropland_class, axis=0)

    result = current.copy()
    result[abandoned] = abandoned_class
    result[fallow] = fallow_class
    return result
