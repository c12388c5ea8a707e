"""
Raster Module

This module provides the bridge between GeoTIFF band stacks and the DTW
classifier:

1. Reading a gap-filled multi-band stack whose bands are ordered band-major
   with the day-of-year bands last
2. Converting it to per-pixel observation series
3. Sampling reference signatures at labelled point locations
4. Writing classification and dissimilarity score rasters
"""

import os
import logging
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
import geopandas as gpd
import rasterio
from rasterio.transform import rowcol
from tqdm import tqdm

from .classifier import ClassificationBatch
from .config import ConfigurationError

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def default_band_names(band_no: int, timeseries_len: int) -> List[str]:
    """
    Band-major names with the day-of-year block last:
    [band1, band1_1, ..., band2, band2_1, ..., doy, doy_1, ...].
    """
    names = []
    for base in [f"band{n + 1}" for n in range(band_no)] + ["doy"]:
        names.extend(base if t == 0 else f"{base}_{t}" for t in range(timeseries_len))
    return names


class RasterStack:
    """
    Multi-band GeoTIFF holding one time series per pixel.

    This class handles:
    1. Loading and validating a band-major stack with day-of-year bands last
    2. Per-pixel observation series for the classifier
    3. Signature sampling at labelled locations
    4. Writing classification and score rasters
    """

    def __init__(
        self,
        stack_path: str,
        timeseries_len: int,
        band_no: Optional[int] = None
    ):
        """
        Initialize the RasterStack.

        Args:
            stack_path: Path to the GeoTIFF stack
            timeseries_len: Number of time steps per band
            band_no: Number of measurement bands; inferred from the band count
                when omitted
        """
        if timeseries_len < 1:
            raise ConfigurationError(f"timeseries_len must be at least 1, got {timeseries_len}")
        if not os.path.isfile(stack_path):
            raise ValueError(f"Stack file does not exist: {stack_path}")

        self.stack_path = stack_path
        self.timeseries_len = timeseries_len
        self.band_no = band_no

        # Initialize storage
        self.data = None
        self.profile = None
        self.band_names = None

    def load(self) -> "RasterStack":
        """Read the stack and validate its band layout."""
        logger.info(f"Loading band stack from {self.stack_path}")
        with rasterio.open(self.stack_path) as src:
            data = src.read()  # (bands, H, W)
            self.profile = src.profile.copy()
            descriptions = src.descriptions

        count = data.shape[0]
        if count % self.timeseries_len:
            raise ConfigurationError(
                f"{count} bands cannot be split into series of length {self.timeseries_len}"
            )
        band_no = count // self.timeseries_len - 1
        if band_no < 1:
            raise ConfigurationError(
                f"Stack has {count} bands; need at least one measurement band plus doy "
                f"for {self.timeseries_len} steps"
            )
        if self.band_no is not None and self.band_no != band_no:
            raise ConfigurationError(
                f"Expected {self.band_no} bands (+ doy) over {self.timeseries_len} steps, "
                f"stack holds {band_no}"
            )
        self.band_no = band_no

        if descriptions and all(descriptions):
            self.band_names = list(descriptions)
        else:
            self.band_names = default_band_names(band_no, self.timeseries_len)

        self.data = data.astype(np.float64)
        logger.info(
            f"Loaded stack {data.shape[1]}x{data.shape[2]} with {band_no} bands + doy "
            f"over {self.timeseries_len} steps"
        )
        return self

    def _require_loaded(self) -> None:
        if self.data is None:
            self.load()

    @property
    def shape(self) -> Tuple[int, int]:
        self._require_loaded()
        return self.data.shape[1], self.data.shape[2]

    def observations(self) -> np.ndarray:
        """
        Per-pixel series in row-major pixel order.

        Returns:
            Array of shape (rows * cols, band_no + 1, timeseries_len)
        """
        self._require_loaded()
        _, h, w = self.data.shape
        series = self.data.reshape(self.band_no + 1, self.timeseries_len, h * w)
        return np.ascontiguousarray(series.transpose(2, 0, 1))

    def sample_points(self, vector_path: str, class_column: str) -> pd.DataFrame:
        """
        Sample the stack at labelled locations.

        Polygon features are sampled at a representative interior point.

        Args:
            vector_path: GeoJSON/Shapefile with the labelled features
            class_column: Attribute holding the class label

        Returns:
            DataFrame with one row per sampled feature: the band columns in
            stack order, the class column and the x/y coordinates
        """
        self._require_loaded()
        logger.info(f"Loading labelled points from {vector_path}")
        gdf = gpd.read_file(vector_path)
        if class_column not in gdf.columns:
            raise ConfigurationError(f"Column '{class_column}' not found in {vector_path}")

        crs = self.profile.get("crs")
        if crs is not None and gdf.crs is not None and gdf.crs != crs:
            gdf = gdf.to_crs(crs)

        points = gdf.geometry.representative_point()
        xs, ys = points.x.to_numpy(), points.y.to_numpy()
        rows, cols = rowcol(self.profile["transform"], xs, ys)
        rows, cols = np.asarray(rows), np.asarray(cols)

        _, h, w = self.data.shape
        inside = (rows >= 0) & (rows < h) & (cols >= 0) & (cols < w)
        if not inside.all():
            logger.warning(f"Dropping {int((~inside).sum())} points outside the raster extent")

        records = []
        labels = gdf[class_column].to_numpy()
        for idx in tqdm(np.flatnonzero(inside), desc="Sampling signatures"):
            record = dict(zip(self.band_names, self.data[:, rows[idx], cols[idx]]))
            record[class_column] = labels[idx]
            record["x"] = xs[idx]
            record["y"] = ys[idx]
            records.append(record)

        df = pd.DataFrame(records, columns=self.band_names + [class_column, "x", "y"])
        logger.info(f"Sampled {len(df)} signatures")
        return df

    def write_classification(
        self,
        output_path: str,
        batch: ClassificationBatch,
        period: Optional[str] = None
    ) -> str:
        """
        Save the classification and score as a two-band GeoTIFF.

        Args:
            output_path: Destination file
            batch: Result of classifying ``observations()``
            period: Optional label appended to band names (e.g. the year)

        Returns:
            Path of the written file
        """
        self._require_loaded()
        h, w = self.shape
        scores, class_ids = batch.to_raster(h, w)

        suffix = f"_{period}" if period else ""
        write_bands(
            output_path,
            {f"classification{suffix}": class_ids, f"score{suffix}": scores},
            self.profile,
        )
        return output_path


def write_bands(output_path: str, bands: Dict[str, np.ndarray], profile: Dict) -> None:
    """Write named single-band arrays as one float32 GeoTIFF."""
    out_dir = os.path.dirname(output_path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)

    out_profile = profile.copy()
    out_profile.update({"count": len(bands), "dtype": "float32", "nodata": None})
    with rasterio.open(output_path, "w", **out_profile) as dst:
        for index, (name, array) in enumerate(bands.items(), start=1):
            dst.write(array.astype(np.float32), index)
            dst.set_band_description(index, name)
    logger.info(f"Saved {list(bands)} to {output_path}")


def read_band(path: str, band: int = 1) -> Tuple[np.ndarray, Dict]:
    """Read one band and the raster profile."""
    with rasterio.open(path) as src:
        return src.read(band), src.profile.copy()
