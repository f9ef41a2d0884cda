"""
Artifact Store
==============

Persistence for fitted stage models and prediction rasters.

Each (label, stage) model is written once with joblib and never refit;
later stages and re-validation load it back. A metadata file records what
was saved and when.

Directory Structure:
    output_dir/
    ├── models/
    │   ├── BP_base.joblib
    │   ├── BP_ensemble.joblib
    │   ├── BP_stacked.joblib
    │   └── metadata.json
    ├── base_learner/
    │   └── BP_base.tif          (one band per learner)
    └── results/
        ├── BP_ensemble.tif
        ├── stacked.tif          (one band per label)
        ├── partition.csv
        ├── validation.json
        ├── roc_curves.png
        └── sample_map.html
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any

import joblib
from loguru import logger

STAGES = ("base", "ensemble", "stacked")


class ArtifactStore:
    """
    Stage-organized storage for models, rasters and reports.

    Usage:
        store = ArtifactStore("outputs/")
        store.save_model("BP", "base", bank, metadata={"cv_auc": 0.91})
        bank = store.load_model("BP", "base")
    """

    def __init__(self, output_dir: str | Path) -> None:
        """
        Args:
            output_dir: Root directory for all artifacts
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def _dir(self, name: str) -> Path:
        path = self.output_dir / name
        path.mkdir(parents=True, exist_ok=True)
        return path

    @property
    def models_dir(self) -> Path:
        return self._dir("models")

    @property
    def base_dir(self) -> Path:
        return self._dir("base_learner")

    @property
    def results_dir(self) -> Path:
        return self._dir("results")

    def _metadata_path(self) -> Path:
        return self.models_dir / "metadata.json"

    def model_path(self, label: str, stage: str) -> Path:
        if stage not in STAGES:
            raise ValueError(f"Unknown stage '{stage}'. Available: {', '.join(STAGES)}")
        return self.models_dir / f"{label}_{stage}.joblib"

    def base_raster_path(self, label: str) -> Path:
        return self.base_dir / f"{label}_base.tif"

    def ensemble_raster_path(self, label: str) -> Path:
        return self.results_dir / f"{label}_ensemble.tif"

    def stacked_raster_path(self) -> Path:
        return self.results_dir / "stacked.tif"

    def result_path(self, name: str) -> Path:
        return self.results_dir / name

    def save_model(
        self,
        label: str,
        stage: str,
        model: Any,
        metadata: dict | None = None,
    ) -> Path:
        """
        Persist a fitted stage model.

        Args:
            label: Label the model predicts
            stage: "base", "ensemble" or "stacked"
            model: Fitted model object
            metadata: Optional metadata dict (must be JSON serializable)

        Returns:
            Path to saved file
        """
        path = self.model_path(label, stage)
        joblib.dump(model, path)
        logger.info(f"Saved {stage} model for {label}: {path}")
        self._update_metadata(label, stage, path, metadata)
        return path

    def _update_metadata(
        self,
        label: str,
        stage: str,
        path: Path,
        extra_metadata: dict | None = None,
    ) -> None:
        metadata_path = self._metadata_path()

        if metadata_path.exists():
            with open(metadata_path) as f:
                metadata = json.load(f)
        else:
            metadata = {"models": {}}

        metadata["models"][f"{label}_{stage}"] = {
            "label": label,
            "stage": stage,
            "file": path.name,
            "created_at": datetime.now().isoformat(),
            **(extra_metadata or {}),
        }

        with open(metadata_path, "w") as f:
            json.dump(metadata, f, indent=2, default=str)

    def load_model(self, label: str, stage: str) -> Any:
        path = self.model_path(label, stage)
        if not path.exists():
            raise FileNotFoundError(f"Model not found: {path}")
        model = joblib.load(path)
        logger.info(f"Loaded {stage} model for {label} from {path}")
        return model

    def exists(self, label: str, stage: str) -> bool:
        return self.model_path(label, stage).exists()

    def list_models(self) -> list[str]:
        return sorted(path.stem for path in self.models_dir.glob("*.joblib"))

    def get_metadata(self) -> dict | None:
        metadata_path = self._metadata_path()
        if metadata_path.exists():
            with open(metadata_path) as f:
                return json.load(f)
        return None

    def save_json(self, name: str, data: dict) -> Path:
        path = self.result_path(name)
        with open(path, "w") as f:
            json.dump(data, f, indent=2, default=str)
        return path
