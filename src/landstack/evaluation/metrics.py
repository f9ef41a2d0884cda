"""
Evaluation Metrics
==================

ROC/AUC validation of probability rasters against held-out points.

Validation is read-only: a probability raster is sampled at the validation
points and compared with the true labels. Points that land on nodata in the
raster are excluded and counted.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Any, Sequence

import numpy as np
import pandas as pd
from loguru import logger

from sklearn.base import BaseEstimator, clone
from sklearn.model_selection import RepeatedStratifiedKFold, cross_val_score
from sklearn.metrics import (
    roc_auc_score,
    roc_curve,
    accuracy_score,
    precision_score,
    recall_score,
    f1_score,
    confusion_matrix,
)

from landstack.data.linker import SampleSet, sample_rasters


@dataclass
class RocResult:
    """
    ROC curve and its area.

    Attributes:
        fpr: False positive rate per threshold
        tpr: True positive rate per threshold
        thresholds: Decreasing score thresholds
        auc: Area under the ROC curve
    """
    fpr: np.ndarray
    tpr: np.ndarray
    thresholds: np.ndarray
    auc: float

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({"fpr": self.fpr, "tpr": self.tpr, "threshold": self.thresholds})


@dataclass
class EvaluationResult:
    """
    Container for the validation of one label at one stage.

    Attributes:
        label: Label name
        stage: "base", "ensemble" or "stacked"
        auc: Area Under ROC Curve
        accuracy: Classification accuracy at threshold 0.5
        precision: Precision (positive predictive value)
        recall: Recall (sensitivity, true positive rate)
        f1: F1 score (harmonic mean of precision and recall)
        confusion_matrix: 2x2 confusion matrix
        n_samples: Number of samples evaluated
        n_positive: Number of presence samples
        n_negative: Number of absence samples
        n_excluded: Samples dropped because the raster had no value
        roc: ROC curve
    """
    label: str
    stage: str
    auc: float
    accuracy: float
    precision: float
    recall: float
    f1: float
    confusion_matrix: list[list[int]] | None = None
    n_samples: int = 0
    n_positive: int = 0
    n_negative: int = 0
    n_excluded: int = 0
    roc: RocResult | None = field(default=None, repr=False)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (without the ROC arrays)."""
        data = asdict(self)
        data.pop("roc")
        return data

    def summary(self) -> str:
        """Get formatted summary string."""
        lines = [
            f"{self.label} [{self.stage}] (n={self.n_samples}, excluded={self.n_excluded})",
            f"  Presence: {self.n_positive}",
            f"  Absence:  {self.n_negative}",
            f"",
            f"Metrics:",
            f"  AUC:       {self.auc:.4f}",
            f"  Accuracy:  {self.accuracy:.4f}",
            f"  Precision: {self.precision:.4f}",
            f"  Recall:    {self.recall:.4f}",
            f"  F1:        {self.f1:.4f}",
        ]

        if self.confusion_matrix is not None:
            cm = self.confusion_matrix
            lines.extend([
                f"",
                f"Confusion Matrix:",
                f"                  Predicted",
                f"                Absent  Present",
                f"  Actual Absent  {cm[0][0]:5d}  {cm[0][1]:5d}",
                f"  Actual Present {cm[1][0]:5d}  {cm[1][1]:5d}",
            ])

        return "\n".join(lines)


def roc_result(y_true: np.ndarray, scores: np.ndarray) -> RocResult:
    """Threshold-swept ROC curve and AUC."""
    y_true = np.asarray(y_true).astype(int)
    scores = np.asarray(scores, dtype=float)
    if len(np.unique(y_true)) != 2:
        raise ValueError("ROC needs both presence and absence samples")
    fpr, tpr, thresholds = roc_curve(y_true, scores)
    return RocResult(fpr=fpr, tpr=tpr, thresholds=thresholds, auc=float(roc_auc_score(y_true, scores)))


def evaluate_scores(
    y_true: np.ndarray,
    scores: np.ndarray,
    label: str,
    stage: str,
    threshold: float = 0.5,
) -> EvaluationResult:
    """
    Evaluate presence probabilities against true labels.

    Samples with a NaN score are excluded and counted in ``n_excluded``.
    """
    y_true = np.asarray(y_true).astype(int)
    scores = np.asarray(scores, dtype=float)
    valid = np.isfinite(scores)
    n_excluded = int((~valid).sum())
    if n_excluded:
        logger.warning(f"[{label}] {n_excluded} validation samples have no {stage} prediction")
    y_true, scores = y_true[valid], scores[valid]

    roc = roc_result(y_true, scores)
    y_pred = (scores >= threshold).astype(int)

    return EvaluationResult(
        label=label,
        stage=stage,
        auc=roc.auc,
        accuracy=float(accuracy_score(y_true, y_pred)),
        precision=float(precision_score(y_true, y_pred, zero_division=0)),
        recall=float(recall_score(y_true, y_pred, zero_division=0)),
        f1=float(f1_score(y_true, y_pred, zero_division=0)),
        confusion_matrix=confusion_matrix(y_true, y_pred, labels=[0, 1]).tolist(),
        n_samples=len(y_true),
        n_positive=int(y_true.sum()),
        n_negative=int(len(y_true) - y_true.sum()),
        n_excluded=n_excluded,
        roc=roc,
    )


def validate_raster(
    raster_paths: Sequence[str | Path],
    samples: SampleSet,
    label: str,
    band: str,
    stage: str = "stacked",
) -> EvaluationResult:
    """
    Validate one band of a probability raster at held-out points.

    Args:
        raster_paths: Raster(s) holding the band
        samples: Validation samples
        label: Label the band predicts
        band: Band name
        stage: Stage name for reporting

    Returns:
        EvaluationResult including the ROC curve
    """
    scores = sample_rasters(raster_paths, samples, [band])[band].to_numpy()
    result = evaluate_scores(samples.labels(label), scores, label=label, stage=stage)
    logger.info(f"[{label}] {stage} validation AUC: {result.auc:.4f} (n={result.n_samples})")
    return result


def cross_validate_model(
    model: BaseEstimator,
    X: np.ndarray,
    y: np.ndarray,
    cv_folds: int = 10,
    cv_repeats: int = 1,
    scoring: str = "roc_auc",
    random_state: int = 1385321,
    n_jobs: int = 1,
) -> dict[str, Any]:
    """
    Perform (repeated) stratified cross-validation on a model.

    Args:
        model: Classifier to evaluate
        X: Feature matrix
        y: Labels
        cv_folds: Number of CV folds
        cv_repeats: Number of repeats
        scoring: Metric to use for scoring
        random_state: Random seed
        n_jobs: Parallel jobs over folds

    Returns:
        Dict with mean, std and per-fold CV scores
    """
    cv = RepeatedStratifiedKFold(
        n_splits=cv_folds,
        n_repeats=cv_repeats,
        random_state=random_state,
    )

    scores = cross_val_score(
        clone(model), X, y,
        cv=cv,
        scoring=scoring,
        n_jobs=n_jobs,
        error_score="raise",
    )

    logger.debug(
        f"Cross-validation ({cv_folds}-fold x {cv_repeats}): "
        f"{scoring}={scores.mean():.4f} ± {scores.std():.4f}"
    )

    return {
        f"{scoring}_mean": float(scores.mean()),
        f"{scoring}_std": float(scores.std()),
        f"{scoring}_scores": scores.tolist(),
    }
