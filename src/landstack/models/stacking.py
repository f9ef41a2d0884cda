"""
Stacked Multilabel Classifiers
==============================

Three-level stacking for presence/absence labels.

Level 1 - Base-Learner Bank (per label):
    - Several learner families fitted on the raw raster features
    - Each tuned by stratified K-fold CV on ROC AUC
    - Fits run concurrently on a worker pool

Level 2 - Per-Label Ensembler:
    - Stepwise logistic regression on the base learners' probabilities
    - Performance from repeated stratified K-fold CV

Level 3 - Multilabel Stacker:
    - Stepwise logistic regression per label on the ensemble
      probabilities of *all* labels, so one label's presence can inform
      another's (problem transformation)

Architecture (one label shown, BP):
    features --> glm --> P(BP|glm) --+
    features --> rf  --> P(BP|rf)  --+--> Ensembler --> P(BP|ens) --+
    features --> gbm --> P(BP|gbm) --+                              |
    features --> nn  --> P(BP|nn)  --+         P(CP|ens) -----------+--> Stacker --> P(BP)
                                               P(WP|ens) -----------+

Training inputs:
    Each level is trained on the out-of-fold probabilities of the level
    below at the calibration points; the models refit on all calibration
    data are the ones applied to the rasters.

Column naming:
    base outputs     <label>_<learner>
    ensemble output  <label>_ensemble
    stacked output   <label>_stacked
"""

from __future__ import annotations

from typing import Any, Sequence

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from loguru import logger
from sklearn.base import clone
from sklearn.model_selection import StratifiedKFold, cross_val_predict

from landstack.data.raster import FeatureSetError
from landstack.evaluation.metrics import cross_validate_model
from landstack.models.classifiers import ClassifierConfig, create_classifier
from landstack.models.tuning import TunedLearner, fit_learner


def base_column(label: str, learner: str) -> str:
    return f"{label}_{learner}"


def ensemble_column(label: str) -> str:
    return f"{label}_ensemble"


def stacked_column(label: str) -> str:
    return f"{label}_stacked"


def _check_inputs(X: pd.DataFrame, names: Sequence[str], stage: str) -> pd.DataFrame:
    missing = [n for n in names if n not in X.columns]
    if missing:
        raise FeatureSetError(f"{stage} inputs missing: {missing}")
    return X[list(names)]


def _check_labels(y: np.ndarray, label: str) -> np.ndarray:
    y = np.asarray(y).astype(int)
    classes = np.unique(y)
    if not np.array_equal(classes, [0, 1]):
        raise ValueError(
            f"Label '{label}' needs both presence and absence samples, got classes {classes.tolist()}"
        )
    return y


class BaseLearnerBank:
    """
    Independent base learners for one label.

    Usage:
        bank = BaseLearnerBank("BP", feature_names=["ndvi", "lstd"])
        bank.fit(X_cal, y_cal)
        probas = bank.predict_proba(X)   # columns BP_glm, BP_rf, ...

    Attributes:
        label: Label the learners predict
        feature_names: Input features, in the order the learners see them
        learners: Learner families
        learners_: Fitted TunedLearner per family (set during fit)
        oof_: Out-of-fold probabilities per learner at the calibration points
    """

    def __init__(
        self,
        label: str,
        feature_names: Sequence[str],
        learners: Sequence[str] = ("glm", "rf", "gbm", "nn"),
        cv_folds: int = 10,
        tune_length: int = 3,
        seed: int = 1385321,
        n_jobs: int = -1,
    ) -> None:
        if not feature_names:
            raise ValueError(f"No features declared for label '{label}'")
        self.label = label
        self.feature_names = list(feature_names)
        self.learners = list(learners)
        self.cv_folds = cv_folds
        self.tune_length = tune_length
        self.seed = seed
        self.n_jobs = n_jobs
        self.learners_: dict[str, TunedLearner] = {}
        self.oof_: pd.DataFrame | None = None

    @property
    def output_names(self) -> list[str]:
        return [base_column(self.label, name) for name in self.learners]

    def fit(self, X: pd.DataFrame, y: np.ndarray) -> BaseLearnerBank:
        """
        Fit every learner on the calibration data.

        Learners are fitted concurrently; the pool is created for this batch
        and closed when the batch completes.
        """
        X = _check_inputs(X, self.feature_names, f"[{self.label}] base learner")
        y = _check_labels(y, self.label)

        logger.info(
            f"[{self.label}] Fitting {len(self.learners)} base learners "
            f"on {len(X)} samples x {len(self.feature_names)} features"
        )

        with Parallel(n_jobs=self.n_jobs, prefer="threads") as parallel:
            fitted = parallel(
                delayed(fit_learner)(
                    name, X, y,
                    cv_folds=self.cv_folds,
                    tune_length=self.tune_length,
                    seed=self.seed,
                )
                for name in self.learners
            )

        self.learners_ = {result.name: result for result in fitted}
        self.oof_ = pd.DataFrame(
            {base_column(self.label, r.name): r.oof for r in fitted},
            index=X.index,
        )
        return self

    def predict_proba(self, X: pd.DataFrame) -> pd.DataFrame:
        """Presence probability per learner, one column each."""
        if not self.learners_:
            raise ValueError("Model not fitted. Call fit() first.")
        X = _check_inputs(X, self.feature_names, f"[{self.label}] base learner")
        return pd.DataFrame(
            {
                base_column(self.label, name): self.learners_[name].estimator.predict_proba(X)[:, 1]
                for name in self.learners
            },
            index=X.index,
        )

    def cv_scores(self) -> dict[str, float]:
        return {name: result.cv_auc for name, result in self.learners_.items()}

    def summary(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "features": self.feature_names,
            "learners": {
                name: {"cv_auc": r.cv_auc, "cv_auc_std": r.cv_auc_std, "params": r.best_params}
                for name, r in self.learners_.items()
            },
        }


class StackedClassifier:
    """
    Stepwise logistic regression over named probability columns.

    Shared by the ensembler and the multilabel stacker; they differ only in
    which columns they read and the name of the column they produce.

    Attributes:
        label: Label being predicted
        input_names: Probability columns used as features
        output_name: Name of the produced column
        model_: Fitted pipeline (set during fit)
        cv_auc_: Mean ROC AUC over repeated K-fold CV
        oof_: Out-of-fold probabilities at the calibration points
    """

    stage = "stacked"

    def __init__(
        self,
        label: str,
        input_names: Sequence[str],
        output_name: str,
        cv_folds: int = 10,
        cv_repeats: int = 3,
        seed: int = 1385321,
        n_jobs: int = -1,
    ) -> None:
        if not input_names:
            raise ValueError(f"No inputs declared for {self.stage} model of '{label}'")
        self.label = label
        self.input_names = list(input_names)
        self.output_name = output_name
        self.cv_folds = cv_folds
        self.cv_repeats = cv_repeats
        self.seed = seed
        self.n_jobs = n_jobs
        self.model_ = None
        self.cv_auc_: float | None = None
        self.cv_auc_std_: float | None = None
        self.oof_: pd.Series | None = None

    def fit(self, X: pd.DataFrame, y: np.ndarray) -> StackedClassifier:
        X = _check_inputs(X, self.input_names, f"[{self.label}] {self.stage}")
        y = _check_labels(y, self.label)

        model = create_classifier(ClassifierConfig.stepwise_glm(random_state=self.seed))
        scores = cross_validate_model(
            model, X, y,
            cv_folds=self.cv_folds,
            cv_repeats=self.cv_repeats,
            scoring="roc_auc",
            random_state=self.seed,
            n_jobs=self.n_jobs,
        )
        self.cv_auc_ = scores["roc_auc_mean"]
        self.cv_auc_std_ = scores["roc_auc_std"]

        oof_cv = StratifiedKFold(n_splits=self.cv_folds, shuffle=True, random_state=self.seed)
        oof = cross_val_predict(
            clone(model), X, y,
            cv=oof_cv,
            method="predict_proba",
            n_jobs=self.n_jobs,
        )[:, 1]
        self.oof_ = pd.Series(oof, index=X.index, name=self.output_name)

        model.fit(X, y)
        self.model_ = model

        logger.info(
            f"[{self.label}] {self.stage} CV AUC "
            f"({self.cv_folds}-fold x {self.cv_repeats}): "
            f"{self.cv_auc_:.4f} ± {self.cv_auc_std_:.4f}, "
            f"kept {self.selected_inputs}"
        )
        return self

    def predict_proba(self, X: pd.DataFrame) -> pd.Series:
        if self.model_ is None:
            raise ValueError("Model not fitted. Call fit() first.")
        X = _check_inputs(X, self.input_names, f"[{self.label}] {self.stage}")
        return pd.Series(self.model_.predict_proba(X)[:, 1], index=X.index, name=self.output_name)

    @property
    def selected_inputs(self) -> list[str]:
        """Inputs kept by the stepwise selection."""
        if self.model_ is None:
            return []
        support = self.model_.named_steps["model"].support_
        return [name for name, keep in zip(self.input_names, support) if keep]

    def input_weights(self) -> dict[str, float]:
        """Coefficient per selected input (on standardized inputs)."""
        if self.model_ is None:
            return {}
        coefs = self.model_.named_steps["model"].coefficients
        return dict(zip(self.selected_inputs, coefs.values()))

    def summary(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "stage": self.stage,
            "inputs": self.input_names,
            "selected": self.selected_inputs,
            "weights": self.input_weights(),
            "cv_auc": self.cv_auc_,
            "cv_auc_std": self.cv_auc_std_,
        }


class LabelEnsembler(StackedClassifier):
    """Second-level model combining one label's base learners."""

    stage = "ensemble"

    def __init__(self, label: str, learners: Sequence[str], **kwargs) -> None:
        super().__init__(
            label,
            input_names=[base_column(label, name) for name in learners],
            output_name=ensemble_column(label),
            **kwargs,
        )


class MultilabelStacker(StackedClassifier):
    """Third-level model for one label using every label's ensemble output."""

    stage = "stacked"

    def __init__(self, label: str, labels: Sequence[str], **kwargs) -> None:
        if label not in labels:
            raise ValueError(f"Label '{label}' is not among the stacked labels {list(labels)}")
        super().__init__(
            label,
            input_names=[ensemble_column(name) for name in labels],
            output_name=stacked_column(label),
            **kwargs,
        )
