"""
Evaluation Utilities
====================

ROC/AUC validation and reporting for land-cover probability rasters.
"""

from landstack.evaluation.metrics import (
    RocResult,
    EvaluationResult,
    roc_result,
    evaluate_scores,
    validate_raster,
    cross_validate_model,
)
from landstack.evaluation.plots import plot_roc_curves, sample_map

__all__ = [
    "RocResult",
    "EvaluationResult",
    "roc_result",
    "evaluate_scores",
    "validate_raster",
    "cross_validate_model",
    "plot_roc_curves",
    "sample_map",
]
