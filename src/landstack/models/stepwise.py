"""
Stepwise Logistic Regression
============================

Logistic regression with bidirectional stepwise feature selection by AIC.

Selection starts from the full model. At every step each single-feature
removal and each single-feature addition is scored, and the move with the
lowest AIC is taken. Selection stops when no move lowers the AIC.

    AIC = 2k - 2 log L

where k counts the selected coefficients plus the intercept. The empty
model predicts the calibration prevalence.
"""

from __future__ import annotations

import warnings

import numpy as np
import pandas as pd
from loguru import logger
from sklearn.base import BaseEstimator, ClassifierMixin
from sklearn.exceptions import ConvergenceWarning
from sklearn.linear_model import LogisticRegression
from sklearn.metrics import log_loss
from sklearn.utils.validation import check_is_fitted


def _aic(y: np.ndarray, proba: np.ndarray, n_params: int) -> float:
    log_likelihood = -log_loss(y, proba, normalize=False, labels=[0, 1])
    return 2.0 * n_params - 2.0 * log_likelihood


class StepwiseLogisticRegression(ClassifierMixin, BaseEstimator):
    """
    Binary logistic regression with stepwise AIC selection.

    Attributes (after fit):
        support_: Boolean mask of selected input columns
        selected_features_: Names of the selected columns
        aic_: AIC of the final model
        model_: Fitted LogisticRegression (None if no feature was kept)
    """

    def __init__(self, max_iter: int = 1000, max_steps: int = 100) -> None:
        self.max_iter = max_iter
        self.max_steps = max_steps

    def _fit_subset(self, X: np.ndarray, y: np.ndarray, mask: np.ndarray):
        if not mask.any():
            prior = np.full(len(y), y.mean())
            return None, _aic(y, prior, 1)

        # unpenalized maximum likelihood, so the AIC is exact
        model = LogisticRegression(C=np.inf, max_iter=self.max_iter)
        with warnings.catch_warnings():
            # separable data never converges; the fitted scores are still usable
            warnings.simplefilter("ignore", ConvergenceWarning)
            model.fit(X[:, mask], y)
        proba = model.predict_proba(X[:, mask])[:, 1]
        return model, _aic(y, proba, int(mask.sum()) + 1)

    def fit(self, X, y) -> StepwiseLogisticRegression:
        if isinstance(X, pd.DataFrame):
            self.feature_names_in_ = np.asarray(X.columns, dtype=object)
        X = np.asarray(X, dtype=float)
        y = np.asarray(y).astype(int)
        self.classes_ = np.unique(y)
        if len(self.classes_) != 2:
            raise ValueError(f"Stepwise logistic regression needs 2 classes, got {self.classes_}")
        self.n_features_in_ = X.shape[1]

        mask = np.ones(X.shape[1], dtype=bool)
        model, aic = self._fit_subset(X, y, mask)

        for _ in range(self.max_steps):
            best = None
            for j in range(X.shape[1]):
                candidate = mask.copy()
                candidate[j] = not candidate[j]
                cand_model, cand_aic = self._fit_subset(X, y, candidate)
                if cand_aic < aic and (best is None or cand_aic < best[2]):
                    best = (candidate, cand_model, cand_aic)
            if best is None:
                break
            mask, model, aic = best

        self.support_ = mask
        self.model_ = model
        self.aic_ = float(aic)
        self.prior_ = float(y.mean())
        names = getattr(self, "feature_names_in_", np.arange(X.shape[1]))
        self.selected_features_ = [str(n) for n in np.asarray(names)[mask]]
        logger.debug(f"Stepwise selection kept {self.selected_features_} (AIC={self.aic_:.2f})")
        return self

    def predict_proba(self, X) -> np.ndarray:
        check_is_fitted(self, "support_")
        X = np.asarray(X, dtype=float)
        if self.model_ is None:
            positive = np.full(X.shape[0], self.prior_)
        else:
            positive = self.model_.predict_proba(X[:, self.support_])[:, 1]
        return np.column_stack([1.0 - positive, positive])

    def predict(self, X) -> np.ndarray:
        return (self.predict_proba(X)[:, 1] >= 0.5).astype(int)

    @property
    def coefficients(self) -> dict[str, float]:
        """Selected feature -> coefficient (empty when only the intercept remains)."""
        check_is_fitted(self, "support_")
        if self.model_ is None:
            return {}
        return {
            name: float(coef)
            for name, coef in zip(self.selected_features_, self.model_.coef_.ravel())
        }
