"""
Reporting
=========

ROC-curve figure and an HTML map of the survey points, for human review.
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import folium
import matplotlib
import numpy as np

matplotlib.use("Agg")
import matplotlib.pyplot as plt
from loguru import logger
from rasterio.crs import CRS
from rasterio.warp import transform as warp_transform

from landstack.data.linker import SampleSet
from landstack.evaluation.metrics import EvaluationResult

ROC_COLORS = ["#377eb8", "#e41a1c", "#4daf4a", "#984ea3", "#ff7f00"]
WGS84 = CRS.from_epsg(4326)


def plot_roc_curves(
    results: Sequence[EvaluationResult],
    path: str | Path,
    title: str = "ROC Curves -- Validation",
) -> Path:
    """
    Plot one ROC curve per result with its AUC in the legend.

    Args:
        results: Evaluation results carrying ROC curves
        path: Output image path
        title: Figure title

    Returns:
        Path to the saved figure
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fig, ax = plt.subplots(figsize=(5, 5))
    for i, result in enumerate(results):
        if result.roc is None:
            continue
        ax.plot(
            result.roc.fpr, result.roc.tpr,
            color=ROC_COLORS[i % len(ROC_COLORS)], linewidth=1.2,
            label=f"{result.label} {result.stage} (AUC = {result.auc:.3f})",
        )

    # Diagonal reference
    ax.plot([0, 1], [0, 1], "k--", linewidth=0.5, label="Random (AUC = 0.500)")

    ax.set_xlabel("False Positive Rate")
    ax.set_ylabel("True Positive Rate")
    ax.set_title(title, fontsize=10)
    ax.legend(loc="lower right", fontsize=8)
    ax.set_xlim(0, 1)
    ax.set_ylim(0, 1)
    ax.set_aspect("equal")

    fig.tight_layout()
    fig.savefig(path, dpi=150)
    plt.close(fig)
    logger.info(f"Saved ROC curves: {path}")
    return path


def _map_coords(samples: SampleSet) -> tuple[np.ndarray, np.ndarray]:
    """Point coordinates as WGS84 lon/lat, whatever CRS the survey used."""
    lon = samples.frame["lon"].to_numpy(dtype=float)
    lat = samples.frame["lat"].to_numpy(dtype=float)
    src_crs = CRS.from_user_input(samples.crs)
    if src_crs == WGS84 or len(lon) == 0:
        return lon, lat
    lon, lat = warp_transform(src_crs, WGS84, lon, lat)
    return np.asarray(lon), np.asarray(lat)


def sample_map(samples: SampleSet, path: str | Path, label: str) -> Path:
    """
    Write an interactive map of sample locations coloured by presence.

    Points are reprojected from the survey CRS to WGS84 for the web map.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    lon, lat = _map_coords(samples)
    presence = samples.labels(label)

    m = folium.Map(location=[float(lat.mean()), float(lon.mean())], zoom_start=7)
    for x, y, value in zip(lon, lat, presence):
        folium.CircleMarker(
            location=[float(y), float(x)],
            radius=3,
            color="red" if value == 1 else "gray",
            fill=True,
            popup=f"{label}={int(value)}",
        ).add_to(m)

    m.save(str(path))
    logger.info(f"Saved sample map ({len(presence)} points): {path}")
    return path
