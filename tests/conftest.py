"""Shared fixtures: a small synthetic feature stack and survey points over it."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd
import pytest
import rasterio
from rasterio.transform import from_origin, xy
from rasterio.warp import transform as warp_transform

from landstack.config import PipelineConfig

GRID_CRS = "EPSG:32736"
GRID_TRANSFORM = from_origin(600000, 8500000, 30, 30)
GRID_SIZE = 60


def write_raster(
    path: Path,
    bands: np.ndarray,
    descriptions: list[str] | None = None,
    transform=GRID_TRANSFORM,
    crs: str = GRID_CRS,
    nodata: float | None = np.nan,
) -> Path:
    """Write a float32 GeoTIFF from a (bands, rows, cols) array."""
    bands = np.asarray(bands, dtype="float32")
    if bands.ndim == 2:
        bands = bands[np.newaxis]
    profile = {
        "driver": "GTiff",
        "width": bands.shape[2],
        "height": bands.shape[1],
        "count": bands.shape[0],
        "dtype": "float32",
        "crs": crs,
        "transform": transform,
        "nodata": nodata,
    }
    with rasterio.open(path, "w", **profile) as dst:
        dst.write(bands)
        for i, name in enumerate(descriptions or [], start=1):
            dst.set_band_description(i, name)
    return path


def cell_centers_lonlat(rows: np.ndarray, cols: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Geographic coordinates of grid cell centres."""
    xs, ys = xy(GRID_TRANSFORM, rows, cols, offset="center")
    lon, lat = warp_transform(GRID_CRS, "EPSG:4326", list(np.ravel(xs)), list(np.ravel(ys)))
    return np.asarray(lon), np.asarray(lat)


@pytest.fixture
def feature_bands() -> np.ndarray:
    rng = np.random.default_rng(0)
    return rng.uniform(0.0, 1.0, size=(3, GRID_SIZE, GRID_SIZE))


@pytest.fixture
def feature_raster(tmp_path, feature_bands) -> Path:
    return write_raster(tmp_path / "features.tif", feature_bands, ["f1", "f2", "f3"])


def make_points(feature_bands: np.ndarray, n_points: int, seed: int = 1) -> pd.DataFrame:
    """
    Survey points on distinct cell centres.

    BP depends on f1, WP on f3, CP is noise. A little label noise keeps
    the classes from being perfectly separable; BP_exact is the noise-free
    rule f1 > 0.5.
    """
    rng = np.random.default_rng(seed)
    cells = rng.choice(GRID_SIZE * GRID_SIZE, size=n_points, replace=False)
    rows, cols = np.divmod(cells, GRID_SIZE)
    lon, lat = cell_centers_lonlat(rows, cols)

    f1 = feature_bands[0, rows, cols]
    f3 = feature_bands[2, rows, cols]
    return pd.DataFrame({
        "lon": lon,
        "lat": lat,
        "BP": (f1 + rng.normal(0, 0.05, n_points) > 0.5).astype(int),
        "CP": rng.integers(0, 2, n_points),
        "WP": (f3 + rng.normal(0, 0.05, n_points) > 0.5).astype(int),
        "BP_exact": (f1 > 0.5).astype(int),
    })


@pytest.fixture
def survey_points(feature_bands) -> pd.DataFrame:
    return make_points(feature_bands, n_points=200)


@pytest.fixture
def points_csv(tmp_path, survey_points) -> Path:
    path = tmp_path / "points.csv"
    survey_points.to_csv(path, index=False)
    return path


@pytest.fixture
def pipeline_config(tmp_path, points_csv, feature_raster) -> PipelineConfig:
    return PipelineConfig(
        samples_path=str(points_csv),
        raster_paths=[str(feature_raster)],
        learners=["glm", "rf"],
        cv_folds=3,
        cv_repeats=1,
        tune_length=1,
        n_jobs=1,
        output_dir=str(tmp_path / "outputs"),
    )


@pytest.fixture
def point_factory(feature_bands):
    """Build survey point frames of any size over the fixture grid."""
    def factory(n_points: int, seed: int = 1) -> pd.DataFrame:
        return make_points(feature_bands, n_points=n_points, seed=seed)
    return factory
