"""Pytest configuration for the DTW classification test suite."""

import os
import sys

import numpy as np
import pytest

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, os.path.join(ROOT, "src"))
sys.path.insert(0, ROOT)
# joblib worker processes re-import the package
os.environ["PYTHONPATH"] = os.pathsep.join(
    filter(None, [os.path.join(ROOT, "src"), os.environ.get("PYTHONPATH")])
)

from twdtw.signatures import SignatureStore  # noqa: E402


def make_series(values, doy):
    """Stack measurement rows and a day-of-year row into one (bands + 1, steps) array."""
    values = np.atleast_2d(np.asarray(values, dtype=float))
    return np.vstack([values, np.asarray(doy, dtype=float)[None, :]])


@pytest.fixture
def doy():
    return np.array([0.0, 30.0, 60.0, 90.0, 120.0])


@pytest.fixture
def two_class_store(doy):
    """Class 1 stays low, class 2 rises over the season; two instances each."""
    low = make_series([[1, 1, 2, 1, 1], [5, 5, 5, 5, 5]], doy)
    low_alt = make_series([[2, 1, 1, 1, 2], [5, 4, 5, 4, 5]], doy)
    high = make_series([[1, 4, 8, 9, 3], [5, 6, 7, 6, 5]], doy)
    high_alt = make_series([[2, 5, 9, 8, 2], [5, 7, 7, 7, 5]], doy)
    return SignatureStore(np.stack([low, high, low_alt, high_alt]), [1, 2, 1, 2])


STACK_DOY = [0.0, 30.0, 60.0]


def stack_data(height=2, width=3, band_no=2):
    """Band-major stack: measurement band k holds 100 * k + 10 * row + col, doy last."""
    steps = len(STACK_DOY)
    data = np.empty(((band_no + 1) * steps, height, width))
    rows, cols = np.mgrid[0:height, 0:width]
    for k in range(band_no * steps):
        data[k] = 100 * k + 10 * rows + cols
    for t, day in enumerate(STACK_DOY):
        data[band_no * steps + t] = day
    return data


def write_stack(path, data, crs="EPSG:32636"):
    import rasterio
    from rasterio.transform import from_origin

    profile = {
        "driver": "GTiff",
        "height": data.shape[1],
        "width": data.shape[2],
        "count": data.shape[0],
        "dtype": "float32",
        "crs": crs,
        "transform": from_origin(500000, 4000000, 10, 10),
    }
    with rasterio.open(path, "w", **profile) as dst:
        dst.write(data.astype(np.float32))
    return str(path)


def pixel_center(row, col):
    return 500000 + 10 * col + 5, 4000000 - 10 * row - 5


@pytest.fixture
def stack_path(tmp_path):
    return write_stack(tmp_path / "stack.tif", stack_data())
