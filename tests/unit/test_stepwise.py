"""Tests for stepwise AIC logistic regression."""

from __future__ import annotations

import warnings

import numpy as np
import pandas as pd
import pytest
from sklearn.base import clone
from sklearn.model_selection import cross_val_score

from landstack.models.stepwise import StepwiseLogisticRegression


@pytest.fixture
def signal_and_noise():
    rng = np.random.default_rng(11)
    n = 400
    X = pd.DataFrame({
        "signal": rng.normal(size=n),
        "noise_a": rng.normal(size=n),
        "noise_b": rng.normal(size=n),
    })
    logit = 2.0 * X["signal"]
    y = (rng.uniform(size=n) < 1 / (1 + np.exp(-logit))).astype(int).to_numpy()
    return X, y


def test_keeps_informative_feature(signal_and_noise) -> None:
    X, y = signal_and_noise
    model = StepwiseLogisticRegression().fit(X, y)

    assert "signal" in model.selected_features_
    assert model.support_[0]
    assert model.coefficients["signal"] > 0


def test_selection_does_not_increase_aic(signal_and_noise) -> None:
    X, y = signal_and_noise
    model = StepwiseLogisticRegression().fit(X, y)

    full = StepwiseLogisticRegression(max_steps=0).fit(X, y)
    assert full.support_.all()
    assert model.aic_ <= full.aic_


def test_pure_noise_can_drop_to_prior() -> None:
    rng = np.random.default_rng(5)
    X = rng.normal(size=(300, 1))
    y = np.r_[np.ones(90), np.zeros(210)].astype(int)
    rng.shuffle(y)

    model = StepwiseLogisticRegression().fit(X, y)
    proba = model.predict_proba(X)

    assert proba.shape == (300, 2)
    np.testing.assert_allclose(proba.sum(axis=1), 1.0)
    if model.model_ is None:
        np.testing.assert_allclose(proba[:, 1], 0.3)
        assert model.coefficients == {}


def test_requires_both_classes() -> None:
    with pytest.raises(ValueError, match="2 classes"):
        StepwiseLogisticRegression().fit(np.ones((10, 2)), np.zeros(10))


def test_works_as_sklearn_classifier(signal_and_noise) -> None:
    X, y = signal_and_noise
    scores = cross_val_score(clone(StepwiseLogisticRegression()), X, y, cv=3, scoring="roc_auc")

    assert scores.mean() > 0.75
    assert StepwiseLogisticRegression(max_iter=50).get_params() == {"max_iter": 50, "max_steps": 100}


def test_fits_without_future_warnings(signal_and_noise) -> None:
    X, y = signal_and_noise
    with warnings.catch_warnings():
        warnings.simplefilter("error", FutureWarning)
        model = StepwiseLogisticRegression().fit(X, y)

    assert np.isinf(model.model_.C)
