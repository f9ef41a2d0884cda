"""
landstack: Stacked Multilabel Land-Cover Mapping
================================================

landstack predicts land-cover presence probabilities (buildings, cropland,
dense woody vegetation) from satellite-derived raster features and ground
survey points, using a three-level stacking workflow:

1. Base learners per label (stepwise GLM, random forest, XGBoost, neural net)
2. A per-label ensemble over the base learners
3. A multilabel stacker per label over every label's ensemble output

Quick Start
-----------
>>> from landstack import PipelineConfig, LandCoverPipeline
>>>
>>> config = PipelineConfig.from_yaml("configs/malawi.yaml")
>>> report = LandCoverPipeline(config).run()
>>> report.auc_table()

Modules
-------
- landstack.data: Point/raster linking and the calibration/validation split
- landstack.models: Base learners, stepwise GLM and the stacking levels
- landstack.evaluation: ROC/AUC validation and reporting
- landstack.pipeline: End-to-end orchestration
- landstack.cli: Command-line interface
"""

__version__ = "0.1.0"
__author__ = "landstack contributors"

from landstack.config import PipelineConfig
from landstack.artifacts import ArtifactStore
from landstack.pipeline import LandCoverPipeline, PipelineState, PipelineStateError, ValidationReport

__all__ = [
    "__version__",
    "PipelineConfig",
    "ArtifactStore",
    "LandCoverPipeline",
    "PipelineState",
    "PipelineStateError",
    "ValidationReport",
]
