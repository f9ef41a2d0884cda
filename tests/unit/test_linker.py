"""Tests for linking survey points to raster features."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from conftest import GRID_SIZE, cell_centers_lonlat, write_raster
from landstack.data.linker import (
    OutsideExtentError,
    Sample,
    link_samples,
    load_points,
    sample_rasters,
)
from landstack.data.raster import FeatureSetError, RasterStack


def _points(rows, cols, **labels) -> pd.DataFrame:
    lon, lat = cell_centers_lonlat(np.asarray(rows), np.asarray(cols))
    frame = pd.DataFrame({"lon": lon, "lat": lat, **labels})
    frame.index.name = "sample_id"
    return frame


def test_load_points_renames_coordinate_columns(tmp_path) -> None:
    path = tmp_path / "pts.csv"
    pd.DataFrame({"x": [33.1, 33.2], "y": [-13.0, -13.1], "BP": [1, 0], "extra": [5, 6]}).to_csv(path, index=False)

    points = load_points(path, ["BP"], x_column="x", y_column="y")

    assert list(points.columns) == ["lon", "lat", "BP"]
    assert points.index.name == "sample_id"
    assert points.index.tolist() == [0, 1]


def test_load_points_missing_label_column(tmp_path) -> None:
    path = tmp_path / "pts.csv"
    pd.DataFrame({"lon": [33.1], "lat": [-13.0], "BP": [1]}).to_csv(path, index=False)

    with pytest.raises(ValueError, match="WP"):
        load_points(path, ["BP", "WP"])


def test_link_samples_joins_features_by_name(feature_raster, feature_bands) -> None:
    points = _points([2, 40], [5, 17], BP=[1, 0])

    with RasterStack([feature_raster]) as stack:
        samples = link_samples(points, stack, feature_names=["f2", "f1"], label_names=["BP"])

    assert len(samples) == 2
    assert samples.feature_names == ("f2", "f1")
    assert samples.crs == "EPSG:4326"
    expected = np.array([
        [feature_bands[1, 2, 5], feature_bands[0, 2, 5]],
        [feature_bands[1, 40, 17], feature_bands[0, 40, 17]],
    ])
    np.testing.assert_allclose(samples.features().to_numpy(), expected, rtol=1e-6)
    assert samples.labels("BP").tolist() == [1, 0]


def test_link_samples_excludes_incomplete_cases(tmp_path, feature_bands) -> None:
    bands = feature_bands.copy()
    bands[0, 3, 3] = np.nan
    path = write_raster(tmp_path / "holes.tif", bands, ["f1", "f2", "f3"])
    points = _points([3, 4, 5], [3, 4, 5], BP=[1, np.nan, 0])

    with RasterStack([path]) as stack:
        samples = link_samples(points, stack, label_names=["BP"])

    # first point hits a nodata cell, second has no label
    assert samples.ids.tolist() == [2]
    assert samples.labels("BP").dtype.kind == "i"


def test_link_samples_outside_extent_fails_loudly(feature_raster) -> None:
    points = _points([1, 2], [1, 2], BP=[1, 0])
    points.loc[1, "lon"] = 10.0

    with RasterStack([feature_raster]) as stack:
        with pytest.raises(OutsideExtentError, match="1 points"):
            link_samples(points, stack, label_names=["BP"])


def test_link_samples_drops_outside_when_requested(feature_raster) -> None:
    points = _points([1, 2, 3], [1, 2, 3], BP=[1, 0, 1])
    points.loc[0, "lat"] = 0.0

    with RasterStack([feature_raster]) as stack:
        samples = link_samples(points, stack, label_names=["BP"], drop_outside=True)

    assert samples.ids.tolist() == [1, 2]


def test_link_samples_excludes_points_without_coordinates(feature_raster) -> None:
    points = _points([1, 2, 3], [1, 2, 3], BP=[1, 0, 1])
    points.loc[0, "lon"] = np.nan
    points.loc[2, "lat"] = np.nan

    with RasterStack([feature_raster]) as stack:
        samples = link_samples(points, stack, label_names=["BP"])

    assert samples.ids.tolist() == [1]
    assert np.isfinite(samples.frame[["x", "y"]].to_numpy()).all()


def test_missing_coordinates_are_not_outside_extent(feature_raster) -> None:
    points = _points([1, 2], [1, 2], BP=[1, 0])
    points.loc[0, "lon"] = np.nan
    points.loc[1, "lon"] = -150.0

    with RasterStack([feature_raster]) as stack:
        with pytest.raises(OutsideExtentError, match="1 points"):
            link_samples(points, stack, label_names=["BP"])


def test_link_samples_unknown_feature(feature_raster) -> None:
    points = _points([1], [1], BP=[1])
    with RasterStack([feature_raster]) as stack:
        with pytest.raises(FeatureSetError):
            link_samples(points, stack, feature_names=["ndvi"], label_names=["BP"])


def test_sample_set_accessors_return_copies(feature_raster) -> None:
    points = _points([1, 2, 3], [4, 5, 6], BP=[1, 0, 1], WP=[0, 0, 1])
    with RasterStack([feature_raster]) as stack:
        samples = link_samples(points, stack, label_names=["BP", "WP"])

    features = samples.features(["f1"])
    features.loc[:, "f1"] = -1.0
    assert (samples.features(["f1"])["f1"] >= 0).all()

    subset = samples.subset([0, 2])
    assert subset.ids.tolist() == [0, 2]
    assert len(samples) == 3

    first = next(iter(samples))
    assert isinstance(first, Sample)
    assert first.label("WP") == 0
    assert first.feature_vector().shape == (3,)


def test_sample_set_coords_are_in_raster_crs(feature_raster) -> None:
    points = _points([0, GRID_SIZE - 1], [0, GRID_SIZE - 1], BP=[1, 0])
    with RasterStack([feature_raster]) as stack:
        samples = link_samples(points, stack, label_names=["BP"])

    xs, ys = samples.coords()
    assert xs[0] == pytest.approx(600015.0, abs=0.01)
    assert ys[0] == pytest.approx(8499985.0, abs=0.01)


def test_sample_rasters_indexes_like_samples(tmp_path, feature_raster) -> None:
    points = _points([7, 8], [9, 10], BP=[0, 1])
    with RasterStack([feature_raster]) as stack:
        samples = link_samples(points, stack, label_names=["BP"])

    probs = write_raster(
        tmp_path / "probs.tif",
        np.full((2, GRID_SIZE, GRID_SIZE), 0.3),
        ["BP_glm", "BP_rf"],
    )
    frame = sample_rasters([probs], samples, ["BP_rf"])

    assert frame.index.tolist() == samples.ids.tolist()
    assert list(frame.columns) == ["BP_rf"]
    np.testing.assert_allclose(frame["BP_rf"], 0.3, rtol=1e-6)
