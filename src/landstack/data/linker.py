"""
Data Linker
===========

Joins survey point labels to raster-derived feature vectors.

Linking steps:
    1. Read points (coordinates + 0/1 label columns) from CSV
    2. Reproject coordinates into the raster stack CRS
    3. Sample every requested band at each point (nearest cell)
    4. Drop incomplete cases (any undefined coordinate, feature or label)

Incomplete cases are excluded, never imputed. A point lying outside the
raster extent has no defined value in any band; by default this is an error
(OutsideExtentError), with ``drop_outside=True`` such points are excluded
like any other incomplete case.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Sequence

import numpy as np
import pandas as pd
from loguru import logger
from rasterio.crs import CRS
from rasterio.warp import transform as warp_transform

from landstack.data.raster import RasterStack


class OutsideExtentError(ValueError):
    """Raised when sample points fall outside the raster extent."""


@dataclass(frozen=True)
class Sample:
    """
    A single linked survey point.

    Attributes:
        sample_id: Row identifier from the point file
        lon: X coordinate in the point CRS
        lat: Y coordinate in the point CRS
        labels: Presence (1) / absence (0) per label
        features: Feature values per band name
    """
    sample_id: int
    lon: float
    lat: float
    labels: tuple[tuple[str, int], ...]
    features: tuple[tuple[str, float], ...]

    def label(self, name: str) -> int:
        return dict(self.labels)[name]

    def feature_vector(self) -> np.ndarray:
        return np.array([value for _, value in self.features], dtype=float)


@dataclass(frozen=True)
class SampleSet:
    """
    Immutable collection of linked samples.

    The frame holds one row per complete-case sample with columns
    ``lon``, ``lat`` (point CRS), ``x``, ``y`` (raster CRS), one column per
    label and one per feature. Accessors always return copies.
    """
    frame: pd.DataFrame
    label_names: tuple[str, ...]
    feature_names: tuple[str, ...]
    crs: str

    def __len__(self) -> int:
        return len(self.frame)

    def __iter__(self) -> Iterator[Sample]:
        for sample_id, row in self.frame.iterrows():
            yield Sample(
                sample_id=int(sample_id),
                lon=float(row["lon"]),
                lat=float(row["lat"]),
                labels=tuple((name, int(row[name])) for name in self.label_names),
                features=tuple((name, float(row[name])) for name in self.feature_names),
            )

    @property
    def ids(self) -> np.ndarray:
        return self.frame.index.to_numpy()

    def features(self, names: Sequence[str] | None = None) -> pd.DataFrame:
        names = list(names) if names is not None else list(self.feature_names)
        return self.frame[names].copy()

    def labels(self, name: str) -> np.ndarray:
        return self.frame[name].to_numpy(dtype=int)

    def coords(self) -> tuple[np.ndarray, np.ndarray]:
        """Coordinates in the raster CRS."""
        return self.frame["x"].to_numpy(), self.frame["y"].to_numpy()

    def subset(self, ids: Sequence[int]) -> SampleSet:
        return SampleSet(
            frame=self.frame.loc[list(ids)].copy(),
            label_names=self.label_names,
            feature_names=self.feature_names,
            crs=self.crs,
        )

    def to_csv(self, path: str | Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.frame.to_csv(path, index_label="sample_id")
        return path


def load_points(
    path: str | Path,
    label_names: Sequence[str],
    x_column: str = "lon",
    y_column: str = "lat",
) -> pd.DataFrame:
    """
    Read survey points from CSV.

    Args:
        path: CSV file
        label_names: Label columns that must be present
        x_column: Longitude / easting column
        y_column: Latitude / northing column

    Returns:
        DataFrame with columns ``lon``, ``lat`` and the label columns,
        indexed by row number
    """
    points = pd.read_csv(path)
    required = [x_column, y_column, *label_names]
    missing = [c for c in required if c not in points.columns]
    if missing:
        raise ValueError(f"Point file {path} is missing columns: {missing}")

    points = points[required].rename(columns={x_column: "lon", y_column: "lat"})
    points.index = pd.RangeIndex(len(points), name="sample_id")
    logger.info(f"Loaded {len(points)} points from {path}")
    return points


def link_samples(
    points: pd.DataFrame,
    stack: RasterStack,
    crs: str = "EPSG:4326",
    feature_names: Sequence[str] | None = None,
    label_names: Sequence[str] | None = None,
    drop_outside: bool = False,
) -> SampleSet:
    """
    Link points to raster features.

    Args:
        points: Output of load_points()
        stack: Open RasterStack
        crs: CRS of the point coordinates
        feature_names: Bands to extract (None = all bands)
        label_names: Label columns (None = every column except lon/lat)
        drop_outside: Exclude out-of-extent points instead of raising

    Returns:
        SampleSet of complete cases
    """
    feature_names = stack.check_features(
        feature_names if feature_names is not None else stack.band_names
    )
    if label_names is None:
        label_names = [c for c in points.columns if c not in ("lon", "lat")]
    label_names = list(label_names)

    has_coords = points[["lon", "lat"]].notna().all(axis=1).to_numpy()
    n_no_coords = int((~has_coords).sum())
    if n_no_coords:
        logger.info(f"Excluding {n_no_coords} points without coordinates")

    lon = points["lon"].to_numpy(dtype=float)
    lat = points["lat"].to_numpy(dtype=float)
    xs = np.full(len(points), np.nan)
    ys = np.full(len(points), np.nan)
    src_crs = CRS.from_user_input(crs)
    if has_coords.any():
        if stack.crs is not None and src_crs != stack.crs:
            tx, ty = warp_transform(src_crs, stack.crs, lon[has_coords], lat[has_coords])
            xs[has_coords], ys[has_coords] = tx, ty
        else:
            xs[has_coords], ys[has_coords] = lon[has_coords], lat[has_coords]

    _, _, inside = stack.index(xs, ys)
    outside = has_coords & ~inside
    n_outside = int(outside.sum())
    if n_outside:
        outside_ids = points.index[outside].tolist()
        if not drop_outside:
            raise OutsideExtentError(
                f"{n_outside} points fall outside the raster extent "
                f"(first ids: {outside_ids[:10]})"
            )
        logger.warning(f"Excluding {n_outside} points outside the raster extent")

    values = stack.sample(xs, ys, feature_names)

    linked = points.copy()
    linked["x"] = xs
    linked["y"] = ys
    for i, name in enumerate(feature_names):
        linked[name] = values[:, i]

    complete = linked[label_names + list(feature_names)].notna().all(axis=1) & inside
    n_dropped = int((~complete).sum())
    if n_dropped:
        logger.info(f"Dropped {n_dropped} incomplete cases")

    linked = linked.loc[complete].copy()
    for name in label_names:
        linked[name] = linked[name].astype(int)

    logger.info(
        f"Linked {len(linked)} samples x {len(feature_names)} features "
        f"({len(label_names)} labels)"
    )
    return SampleSet(
        frame=linked,
        label_names=tuple(label_names),
        feature_names=tuple(feature_names),
        crs=str(src_crs),
    )


def sample_rasters(
    paths: Sequence[str | Path],
    samples: SampleSet,
    band_names: Sequence[str] | None = None,
) -> pd.DataFrame:
    """
    Sample co-registered rasters at linked sample locations.

    Returns:
        DataFrame indexed like ``samples`` with one column per band
    """
    with RasterStack(paths) as stack:
        names = list(band_names) if band_names is not None else stack.band_names
        xs, ys = samples.coords()
        values = stack.sample(xs, ys, names)
    return pd.DataFrame(values, index=samples.frame.index, columns=names)
