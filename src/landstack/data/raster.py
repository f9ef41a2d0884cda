"""
Raster Stack
============

Band-wise reader for co-registered feature rasters.

A RasterStack opens one or more GeoTIFFs sharing the same CRS, transform and
shape, and exposes their bands by name. It is used three ways:

1. Sampling band values at point locations (nearest cell)
2. Reading windows of the full extent for prediction
3. Writing probability rasters produced by a fitted classifier

Band names come from the band descriptions. When a band has no description,
single-band files use the file stem and multi-band files use ``<stem>_<band>``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterator, Sequence

import numpy as np
import pandas as pd
import rasterio
from rasterio.windows import Window
from loguru import logger


class FeatureSetError(KeyError):
    """Raised when a requested feature name is not a band of the stack."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


def _band_names(path: Path, ds: rasterio.io.DatasetReader) -> list[str]:
    names = []
    for band_idx, description in zip(range(1, ds.count + 1), ds.descriptions):
        if description:
            names.append(description)
        elif ds.count == 1:
            names.append(path.stem)
        else:
            names.append(f"{path.stem}_{band_idx}")
    return names


class RasterStack:
    """
    Named-band view over co-registered rasters.

    Usage:
        with RasterStack(["features.tif"]) as stack:
            values = stack.sample(xs, ys, ["ndvi", "lstd"])
            stack.predict_to_file(model_fn, ["ndvi", "lstd"], "out.tif", ["p"])

    Attributes:
        paths: Raster files in the stack
        band_names: Names of every band, in file then band order
    """

    def __init__(self, paths: Sequence[str | Path], chunk_rows: int = 256) -> None:
        self.paths = [Path(p) for p in paths]
        if not self.paths:
            raise ValueError("No raster paths were provided")
        self.chunk_rows = chunk_rows
        self.datasets: list[rasterio.io.DatasetReader] = []
        self.band_names: list[str] = []
        self._band_map: dict[str, tuple[int, int]] = {}
        self._nodata: dict[str, float | None] = {}

    def __enter__(self) -> RasterStack:
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def open(self) -> RasterStack:
        self.datasets = [rasterio.open(p) for p in self.paths]
        template = self.datasets[0]

        for path, ds in zip(self.paths[1:], self.datasets[1:]):
            if (ds.width, ds.height) != (template.width, template.height):
                raise ValueError(f"{path} does not match the stack dimensions")
            if not np.allclose(tuple(ds.transform), tuple(template.transform)):
                raise ValueError(f"{path} does not share the stack transform")
            if ds.crs != template.crs:
                raise ValueError(f"{path} does not share the stack CRS ({template.crs})")

        self.band_names = []
        self._band_map = {}
        for ds_idx, (path, ds) in enumerate(zip(self.paths, self.datasets)):
            for band_idx, name in enumerate(_band_names(path, ds), start=1):
                if name in self._band_map:
                    raise ValueError(f"Duplicate band name '{name}' in raster stack")
                self._band_map[name] = (ds_idx, band_idx)
                self._nodata[name] = ds.nodatavals[band_idx - 1]
                self.band_names.append(name)

        logger.debug(f"Opened raster stack: {len(self.paths)} files, {len(self.band_names)} bands")
        return self

    def close(self) -> None:
        for ds in self.datasets:
            ds.close()
        self.datasets = []

    @property
    def template(self) -> rasterio.io.DatasetReader:
        if not self.datasets:
            raise ValueError("Raster stack is not open")
        return self.datasets[0]

    @property
    def crs(self):
        return self.template.crs

    @property
    def transform(self):
        return self.template.transform

    @property
    def width(self) -> int:
        return self.template.width

    @property
    def height(self) -> int:
        return self.template.height

    def check_features(self, names: Sequence[str]) -> list[str]:
        """Validate that every name is a band of the stack."""
        missing = [n for n in names if n not in self._band_map]
        if missing:
            raise FeatureSetError(
                f"Features not found in raster stack: {missing}. "
                f"Available: {self.band_names}"
            )
        return list(names)

    def index(self, xs: np.ndarray, ys: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Map coordinates (stack CRS) to the containing cell.

        Returns:
            Tuple of (rows, cols, inside) where ``inside`` flags points within
            the raster extent (NaN coordinates are never inside). Rows/cols of
            outside points are clipped to 0.
        """
        xs = np.asarray(xs, dtype=float)
        ys = np.asarray(ys, dtype=float)
        cols_f, rows_f = ~self.transform * (xs, ys)
        finite = np.isfinite(rows_f) & np.isfinite(cols_f)
        rows = np.floor(np.where(finite, rows_f, -1)).astype(int)
        cols = np.floor(np.where(finite, cols_f, -1)).astype(int)
        inside = (rows >= 0) & (rows < self.height) & (cols >= 0) & (cols < self.width)
        return np.where(inside, rows, 0), np.where(inside, cols, 0), inside

    def sample(
        self,
        xs: np.ndarray,
        ys: np.ndarray,
        band_names: Sequence[str] | None = None,
    ) -> np.ndarray:
        """
        Sample band values at point locations (nearest cell).

        Args:
            xs: X coordinates in the stack CRS
            ys: Y coordinates in the stack CRS
            band_names: Bands to sample (None = all bands)

        Returns:
            Array of shape (n_points, n_bands); nodata and out-of-extent
            values are NaN
        """
        names = self.check_features(band_names if band_names is not None else self.band_names)
        _, _, inside = self.index(xs, ys)
        out = np.full((len(inside), len(names)), np.nan, dtype=float)
        if not inside.any():
            return out

        coords = list(zip(np.asarray(xs, dtype=float)[inside], np.asarray(ys, dtype=float)[inside]))

        for ds_idx, ds in enumerate(self.datasets):
            wanted = [
                (col, self._band_map[name][1])
                for col, name in enumerate(names)
                if self._band_map[name][0] == ds_idx
            ]
            if not wanted:
                continue
            indexes = [band_idx for _, band_idx in wanted]
            values = np.array(list(ds.sample(coords, indexes=indexes)), dtype=float)
            for j, (col, band_idx) in enumerate(wanted):
                column = values[:, j]
                nodata = ds.nodatavals[band_idx - 1]
                if nodata is not None and not np.isnan(nodata):
                    column = np.where(column == nodata, np.nan, column)
                out[inside, col] = column

        return out

    def windows(self) -> Iterator[Window]:
        """Row-chunk windows covering the full extent."""
        for row_off in range(0, self.height, self.chunk_rows):
            height = min(self.chunk_rows, self.height - row_off)
            yield Window(0, row_off, self.width, height)

    def read_window(self, window: Window, band_names: Sequence[str]) -> np.ndarray:
        """Read bands for a window as float, with nodata replaced by NaN."""
        names = self.check_features(band_names)
        out = np.empty((len(names), int(window.height), int(window.width)), dtype=float)
        for i, name in enumerate(names):
            ds_idx, band_idx = self._band_map[name]
            band = self.datasets[ds_idx].read(band_idx, window=window).astype(float)
            nodata = self._nodata[name]
            if nodata is not None and not np.isnan(nodata):
                band[band == nodata] = np.nan
            out[i] = band
        return out

    def output_profile(self, count: int) -> dict:
        """Profile for a float32 probability raster on the stack grid."""
        return {
            "driver": "GTiff",
            "width": self.width,
            "height": self.height,
            "count": count,
            "dtype": "float32",
            "crs": self.crs,
            "transform": self.transform,
            "nodata": np.nan,
            "compress": "deflate",
        }

    def predict_to_file(
        self,
        predict_fn: Callable[[pd.DataFrame], np.ndarray],
        feature_names: Sequence[str],
        out_path: str | Path,
        out_band_names: Sequence[str],
    ) -> Path:
        """
        Apply a prediction function to every cell and write the result.

        Cells with any NaN feature are written as NaN.

        Args:
            predict_fn: Maps a feature DataFrame (n, features) to an array
                of shape (n, len(out_band_names))
            feature_names: Bands passed to predict_fn, as named columns
            out_path: Output GeoTIFF path
            out_band_names: Band descriptions of the output raster

        Returns:
            Path to the written raster
        """
        feature_names = self.check_features(feature_names)
        out_path = Path(out_path)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        count = len(out_band_names)

        with rasterio.open(out_path, "w", **self.output_profile(count)) as dst:
            for band_idx, name in enumerate(out_band_names, start=1):
                dst.set_band_description(band_idx, name)

            for window in self.windows():
                block = self.read_window(window, feature_names)
                n_bands, h, w = block.shape
                pixels = block.reshape(n_bands, h * w).T
                valid = np.all(np.isfinite(pixels), axis=1)

                result = np.full((h * w, count), np.nan, dtype="float32")
                if valid.any():
                    frame = pd.DataFrame(pixels[valid], columns=list(feature_names))
                    preds = np.asarray(predict_fn(frame), dtype=float)
                    result[valid] = preds.reshape(-1, count)

                dst.write(result.T.reshape(count, h, w), window=window)

        logger.info(f"Wrote {count}-band probability raster: {out_path}")
        return out_path
