"""Tests for the named-band raster stack."""

from __future__ import annotations

import numpy as np
import pytest
import rasterio
from rasterio.crs import CRS
from rasterio.transform import from_origin

from conftest import GRID_SIZE, GRID_TRANSFORM, write_raster
from landstack.data.raster import FeatureSetError, RasterStack


def _cell_center(row: int, col: int) -> tuple[float, float]:
    x, y = GRID_TRANSFORM * (col + 0.5, row + 0.5)
    return x, y


def test_band_names_from_descriptions(feature_raster) -> None:
    with RasterStack([feature_raster]) as stack:
        assert stack.band_names == ["f1", "f2", "f3"]
        assert (stack.width, stack.height) == (GRID_SIZE, GRID_SIZE)


def test_band_names_fall_back_to_file_stem(tmp_path) -> None:
    single = write_raster(tmp_path / "ndvi.tif", np.ones((GRID_SIZE, GRID_SIZE)))
    multi = write_raster(tmp_path / "bands.tif", np.ones((2, GRID_SIZE, GRID_SIZE)))

    with RasterStack([single, multi]) as stack:
        assert stack.band_names == ["ndvi", "bands_1", "bands_2"]


def test_duplicate_band_names_rejected(tmp_path) -> None:
    a = write_raster(tmp_path / "a.tif", np.ones((GRID_SIZE, GRID_SIZE)), ["ndvi"])
    b = write_raster(tmp_path / "b.tif", np.ones((GRID_SIZE, GRID_SIZE)), ["ndvi"])

    with pytest.raises(ValueError, match="Duplicate band name"):
        RasterStack([a, b]).open()


def test_mismatched_grids_rejected(tmp_path, feature_raster) -> None:
    shifted = write_raster(
        tmp_path / "shifted.tif",
        np.ones((GRID_SIZE, GRID_SIZE)),
        ["other"],
        transform=from_origin(600030, 8500000, 30, 30),
    )
    with pytest.raises(ValueError, match="transform"):
        RasterStack([feature_raster, shifted]).open()

    smaller = write_raster(tmp_path / "small.tif", np.ones((10, 10)), ["small"])
    with pytest.raises(ValueError, match="dimensions"):
        RasterStack([feature_raster, smaller]).open()


def test_empty_stack_rejected() -> None:
    with pytest.raises(ValueError):
        RasterStack([])


def test_sample_returns_cell_values(feature_raster, feature_bands) -> None:
    x0, y0 = _cell_center(0, 0)
    x1, y1 = _cell_center(12, 34)

    with RasterStack([feature_raster]) as stack:
        values = stack.sample(np.array([x0, x1]), np.array([y0, y1]), ["f3", "f1"])

    expected = np.array([
        [feature_bands[2, 0, 0], feature_bands[0, 0, 0]],
        [feature_bands[2, 12, 34], feature_bands[0, 12, 34]],
    ])
    np.testing.assert_allclose(values, expected, rtol=1e-6)


def test_sample_outside_extent_and_nodata_are_nan(tmp_path) -> None:
    bands = np.full((GRID_SIZE, GRID_SIZE), 5.0)
    bands[3, 3] = -9999.0
    path = write_raster(tmp_path / "dem.tif", bands, ["dem"], nodata=-9999.0)
    x_in, y_in = _cell_center(3, 3)
    x_ok, y_ok = _cell_center(4, 4)

    with RasterStack([path]) as stack:
        values = stack.sample(
            np.array([x_in, x_ok, 0.0]),
            np.array([y_in, y_ok, 0.0]),
        )

    assert np.isnan(values[0, 0])
    assert values[1, 0] == pytest.approx(5.0)
    assert np.isnan(values[2, 0])


def test_index_flags_points_outside(feature_raster) -> None:
    x, y = _cell_center(5, 7)
    with RasterStack([feature_raster]) as stack:
        rows, cols, inside = stack.index(np.array([x, x - 1e6]), np.array([y, y]))

    assert inside.tolist() == [True, False]
    assert (rows[0], cols[0]) == (5, 7)


def test_index_nan_coordinates_are_outside(feature_raster) -> None:
    x, y = _cell_center(5, 7)
    with RasterStack([feature_raster]) as stack:
        rows, _, inside = stack.index(np.array([np.nan, x]), np.array([y, np.nan]))
        values = stack.sample(np.array([np.nan]), np.array([y]))

    assert inside.tolist() == [False, False]
    assert rows.tolist() == [0, 0]
    assert np.isnan(values).all()


def test_unknown_feature_raises_feature_set_error(feature_raster) -> None:
    with RasterStack([feature_raster]) as stack:
        with pytest.raises(FeatureSetError, match="f9"):
            stack.check_features(["f1", "f9"])


def test_predict_to_file_writes_named_bands(tmp_path, feature_raster, feature_bands) -> None:
    out = tmp_path / "pred" / "out.tif"
    with RasterStack([feature_raster], chunk_rows=7) as stack:
        stack.predict_to_file(
            lambda frame: np.column_stack([frame["f1"], frame["f2"] * 0.5]),
            ["f1", "f2"],
            out,
            ["a", "b"],
        )

    with rasterio.open(out) as ds:
        assert ds.count == 2
        assert ds.descriptions == ("a", "b")
        assert ds.crs == CRS.from_user_input("EPSG:32736")
        np.testing.assert_allclose(ds.read(1), feature_bands[0], rtol=1e-6)
        np.testing.assert_allclose(ds.read(2), feature_bands[1] * 0.5, rtol=1e-6)


def test_predict_to_file_skips_missing_cells(tmp_path) -> None:
    bands = np.ones((GRID_SIZE, GRID_SIZE))
    bands[10, 20] = np.nan
    source = write_raster(tmp_path / "src.tif", bands, ["v"])
    out = tmp_path / "out.tif"
    seen_rows = []

    def predict(frame):
        seen_rows.append(len(frame))
        return frame["v"].to_numpy() * 0.25

    with RasterStack([source]) as stack:
        stack.predict_to_file(predict, ["v"], out, ["p"])

    with rasterio.open(out) as ds:
        result = ds.read(1)

    assert sum(seen_rows) == GRID_SIZE * GRID_SIZE - 1
    assert np.isnan(result[10, 20])
    assert result[0, 0] == pytest.approx(0.25)
