"""
Learner tuning
==============

Cross-validated fitting of base learners with a fixed tuning budget.

Each learner family has an ordered candidate list per hyperparameter; the
first candidate is the library/config default. ``tune_length`` takes the
first n candidates of every list, so all learners get the same budget and
``tune_length=1`` fits the defaults only. The winner is chosen by ROC AUC
on held-out folds and refit on all calibration data. Out-of-fold
probabilities of the winner are kept as training inputs for the ensembler.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd
from loguru import logger
from sklearn.base import clone
from sklearn.model_selection import GridSearchCV, StratifiedKFold, cross_val_predict
from sklearn.pipeline import Pipeline

from landstack.models.classifiers import ClassifierConfig, create_classifier


# Ordered candidates per learner; parameter names address the "model" step
TUNING_GRIDS: dict[str, dict[str, list[Any]]] = {
    "glm": {},
    "rf": {
        "model__max_features": ["sqrt", 0.5, 1.0],
    },
    "gbm": {
        "model__max_depth": [3, 1, 5],
        "model__n_estimators": [100, 50, 150],
    },
    "nn": {
        "model__hidden_layer_sizes": [(5,), (3,), (10,)],
        "model__alpha": [1e-4, 1e-1, 1e-2],
    },
}


def param_grid(learner: str, tune_length: int) -> dict[str, list[Any]]:
    """Grid restricted to the first ``tune_length`` candidates per parameter."""
    if learner not in TUNING_GRIDS:
        raise ValueError(f"No tuning grid for learner '{learner}'")
    return {name: values[:tune_length] for name, values in TUNING_GRIDS[learner].items()}


@dataclass
class TunedLearner:
    """
    A base learner fitted on calibration data.

    Attributes:
        name: Learner family
        estimator: Refit winning pipeline
        cv_auc: Mean held-out ROC AUC of the winner
        cv_auc_std: Standard deviation of the winner's fold AUCs
        oof: Out-of-fold presence probabilities of the winner
        best_params: Winning hyperparameters
    """
    name: str
    estimator: Pipeline
    cv_auc: float
    cv_auc_std: float
    oof: np.ndarray
    best_params: dict[str, Any] = field(default_factory=dict)


def fit_learner(
    learner: str,
    X: pd.DataFrame,
    y: np.ndarray,
    cv_folds: int = 10,
    tune_length: int = 3,
    seed: int = 1385321,
    n_jobs: int = 1,
) -> TunedLearner:
    """
    Tune and fit one base learner.

    Args:
        learner: Learner family ("glm", "rf", "gbm", "nn")
        X: Calibration features
        y: Calibration labels (0/1)
        cv_folds: Folds of the stratified K-fold
        tune_length: Candidates per hyperparameter
        seed: Seeds both the folds and the learner
        n_jobs: Parallel jobs for the grid search

    Returns:
        TunedLearner with the refit winner
    """
    pipeline = create_classifier(ClassifierConfig.for_learner(learner, random_state=seed))
    cv = StratifiedKFold(n_splits=cv_folds, shuffle=True, random_state=seed)

    search = GridSearchCV(
        estimator=pipeline,
        param_grid=param_grid(learner, tune_length),
        cv=cv,
        scoring="roc_auc",
        n_jobs=n_jobs,
        refit=True,
        error_score="raise",
    )
    search.fit(X, y)

    # Same folds as the search, winner's parameters
    oof = cross_val_predict(
        clone(search.best_estimator_), X, y,
        cv=cv, method="predict_proba", n_jobs=n_jobs,
    )[:, 1]

    best = search.best_index_
    result = TunedLearner(
        name=learner,
        estimator=search.best_estimator_,
        cv_auc=float(search.cv_results_["mean_test_score"][best]),
        cv_auc_std=float(search.cv_results_["std_test_score"][best]),
        oof=oof,
        best_params=dict(search.best_params_),
    )
    logger.info(
        f"  [{learner}] CV AUC: {result.cv_auc:.4f} ± {result.cv_auc_std:.4f} "
        f"params={result.best_params}"
    )
    return result
