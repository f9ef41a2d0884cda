"""
Pipeline Configuration
======================

Configuration for the land-cover stacking workflow.

Every stage reads what it needs from a single PipelineConfig. Feature sets
are declared by name (raster band names), never by column position, and the
random seed is passed explicitly to every stage that draws random numbers.

Example YAML:

    samples_path: data/malawi_points.csv
    raster_paths:
      - data/rasters/MW_features.tif
    labels: [BP, CP, WP]
    features: null            # all bands of the stack
    label_features:
      BP: [ndvi, lstd, bsan]  # optional per-label override
    learners: [glm, rf, gbm, nn]
    seed: 1385321
    output_dir: outputs/
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml
from loguru import logger

DEFAULT_LABELS = ["BP", "CP", "WP"]
DEFAULT_LEARNERS = ["glm", "rf", "gbm", "nn"]


@dataclass
class PipelineConfig:
    """
    Configuration for the full stacking workflow.

    Attributes:
        samples_path: CSV with point coordinates and 0/1 label columns
        raster_paths: Co-registered feature rasters forming the stack
        labels: Label columns to model
        features: Band names used by every label (None = all bands)
        label_features: Optional per-label override of ``features``
        learners: Base-learner families (see models.classifiers)
        x_column: Longitude / easting column in the point file
        y_column: Latitude / northing column in the point file
        sample_crs: CRS of the point coordinates
        calibration_fraction: Share of complete cases used for calibration
        stratify_label: Label the partition is stratified on (None = first label)
        cv_folds: K for base-learner, ensemble and stacker cross-validation
        cv_repeats: Repeats of the ensemble/stacker cross-validation
        tune_length: Candidate values per tuned hyperparameter
        seed: Random seed threaded into every stage
        n_jobs: Worker pool size (-1 = all cores)
        drop_outside_extent: Exclude out-of-extent points instead of failing
        output_dir: Root directory for models, rasters and reports
    """
    samples_path: str | None = None
    raster_paths: list[str] = field(default_factory=list)
    labels: list[str] = field(default_factory=lambda: list(DEFAULT_LABELS))
    features: list[str] | None = None
    label_features: dict[str, list[str]] = field(default_factory=dict)
    learners: list[str] = field(default_factory=lambda: list(DEFAULT_LEARNERS))
    x_column: str = "lon"
    y_column: str = "lat"
    sample_crs: str = "EPSG:4326"
    calibration_fraction: float = 0.8
    stratify_label: str | None = None
    cv_folds: int = 10
    cv_repeats: int = 3
    tune_length: int = 3
    seed: int = 1385321
    n_jobs: int = -1
    drop_outside_extent: bool = False
    output_dir: str = "outputs/"

    def __post_init__(self) -> None:
        self.validate()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PipelineConfig:
        """Build a configuration from a plain dict, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: str | Path) -> PipelineConfig:
        """Load configuration from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        logger.info(f"Loaded config: {path}")
        return cls.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def validate(self) -> None:
        """Check value ranges and cross-field consistency."""
        if not self.labels:
            raise ValueError("At least one label is required")
        if len(set(self.labels)) != len(self.labels):
            raise ValueError(f"Duplicate labels: {self.labels}")
        if not self.learners:
            raise ValueError("At least one base learner is required")
        if not 0.0 < self.calibration_fraction < 1.0:
            raise ValueError(
                f"calibration_fraction must be in (0, 1), got {self.calibration_fraction}"
            )
        if self.cv_folds < 2:
            raise ValueError(f"cv_folds must be >= 2, got {self.cv_folds}")
        if self.cv_repeats < 1:
            raise ValueError(f"cv_repeats must be >= 1, got {self.cv_repeats}")
        if self.tune_length < 1:
            raise ValueError(f"tune_length must be >= 1, got {self.tune_length}")

        unknown = sorted(set(self.label_features) - set(self.labels))
        if unknown:
            raise ValueError(f"label_features given for unknown labels: {unknown}")
        if self.stratify_label is not None and self.stratify_label not in self.labels:
            raise ValueError(f"stratify_label '{self.stratify_label}' is not a label")

    @property
    def partition_label(self) -> str:
        return self.stratify_label or self.labels[0]

    def features_for(self, label: str, available: list[str]) -> list[str]:
        """
        Resolve the base-learner feature set for a label.

        Args:
            label: Label name
            available: Band names of the raster stack

        Returns:
            Feature names in the order they are fed to the learners
        """
        if label in self.label_features:
            return list(self.label_features[label])
        if self.features is not None:
            return list(self.features)
        return list(available)

    def all_features(self, available: list[str]) -> list[str]:
        """Union of every label's feature set, in stack order."""
        wanted: set[str] = set()
        for label in self.labels:
            wanted.update(self.features_for(label, available))
        ordered = [name for name in available if name in wanted]
        ordered.extend(sorted(wanted - set(ordered)))
        return ordered

    @property
    def output_path(self) -> Path:
        return Path(self.output_dir)
