import geopandas as gpd
import numpy as np
import pytest
import rasterio
from shapely.geometry import Point

from twdtw.classifier import ClassificationBatch
from twdtw.config import ConfigurationError
from twdtw.raster import RasterStack, default_band_names, read_band

from conftest import pixel_center, stack_data, write_stack


def test_default_band_names():
    assert default_band_names(2, 2) == ["band1", "band1_1", "band2", "band2_1", "doy", "doy_1"]


def test_observations_per_pixel(stack_path):
    stack = RasterStack(stack_path, timeseries_len=3).load()
    data = stack_data()

    series = stack.observations()

    assert stack.band_no == 2
    assert stack.shape == (2, 3)
    assert series.shape == (6, 3, 3)
    np.testing.assert_array_equal(series[4], data[:, 1, 1].reshape(3, 3))
    np.testing.assert_array_equal(series[4, -1], [0, 30, 60])


def test_band_count_must_match_series_length(tmp_path):
    path = write_stack(tmp_path / "bad.tif", stack_data()[:8])
    with pytest.raises(ConfigurationError):
        RasterStack(path, timeseries_len=3).load()


def test_declared_band_no_checked(stack_path):
    with pytest.raises(ConfigurationError):
        RasterStack(stack_path, timeseries_len=3, band_no=3).load()


def test_missing_file(tmp_path):
    with pytest.raises(ValueError):
        RasterStack(str(tmp_path / "missing.tif"), timeseries_len=3)


def test_sample_points(stack_path, tmp_path):
    gdf = gpd.GeoDataFrame(
        {"lc_class": [1, 2, 3]},
        geometry=[Point(*pixel_center(0, 1)), Point(*pixel_center(1, 2)), Point(0, 0)],
        crs="EPSG:32636",
    )
    points_path = tmp_path / "points.geojson"
    gdf.to_file(points_path, driver="GeoJSON")

    df = RasterStack(stack_path, timeseries_len=3).sample_points(str(points_path), "lc_class")

    assert list(df["lc_class"]) == [1, 2]
    assert df.loc[0, "band1"] == 1
    assert df.loc[1, "band2_2"] == 100 * 5 + 10 + 2
    assert df.loc[1, "doy_2"] == 60
    assert df.columns[-3:].tolist() == ["lc_class", "x", "y"]


def test_write_classification(stack_path, tmp_path):
    stack = RasterStack(stack_path, timeseries_len=3)
    batch = ClassificationBatch(scores=np.arange(6.0) / 2, class_ids=np.array([1, 2, 1, 2, 1, 2]))
    out = stack.write_classification(str(tmp_path / "out" / "dtw.tif"), batch, period="2020")

    with rasterio.open(out) as src:
        assert src.descriptions == ("classification_2020", "score_2020")
        assert src.crs.to_epsg() == 32636
        np.testing.assert_array_equal(src.read(1), [[1, 2, 1], [2, 1, 2]])
        np.testing.assert_allclose(src.read(2), [[0, 0.5, 1], [1.5, 2, 2.5]])

    classes, profile = read_band(out)
    assert classes.shape == (2, 3)
    assert profile["count"] == 2


def test_sample_points_reprojects_to_stack_crs(stack_path, tmp_path):
    gdf = gpd.GeoDataFrame(
        {"lc_class": [4, 5]},
        geometry=[Point(*pixel_center(1, 0)), Point(*pixel_center(0, 2))],
        crs="EPSG:32636",
    ).to_crs("EPSG:4326")
    points_path = tmp_path / "points_wgs84.geojson"
    gdf.to_file(points_path, driver="GeoJSON")

    df = RasterStack(stack_path, timeseries_len=3).sample_points(str(points_path), "lc_class")
    data = stack_data()

    assert list(df["lc_class"]) == [4, 5]
    np.testing.assert_array_equal(df.iloc[0, :9].to_numpy(), data[:, 1, 0])
    np.testing.assert_array_equal(df.iloc[1, :9].to_numpy(), data[:, 0, 2])
    np.testing.assert_allclose(df[["x", "y"]].to_numpy(), [pixel_center(1, 0), pixel_center(0, 2)], atol=1e-3)
