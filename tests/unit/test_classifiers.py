"""Tests for the learner factory and tuning."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest
from sklearn.ensemble import RandomForestClassifier
from sklearn.neural_network import MLPClassifier
from sklearn.preprocessing import StandardScaler
from xgboost import XGBClassifier

from landstack.models.classifiers import (
    LEARNER_REGISTRY,
    ClassifierConfig,
    create_classifier,
    get_default_classifier,
)
from landstack.models.stepwise import StepwiseLogisticRegression
from landstack.models.tuning import TUNING_GRIDS, fit_learner, param_grid


@pytest.fixture
def xy():
    rng = np.random.default_rng(3)
    X = pd.DataFrame(rng.normal(size=(150, 3)), columns=["a", "b", "c"])
    y = (X["a"] + 0.5 * rng.normal(size=150) > 0).astype(int).to_numpy()
    return X, y


def test_registry_has_every_learner() -> None:
    assert set(LEARNER_REGISTRY) >= {"glm", "rf", "gbm", "nn"}


@pytest.mark.parametrize(
    "learner, expected",
    [
        ("glm", StepwiseLogisticRegression),
        ("rf", RandomForestClassifier),
        ("gbm", XGBClassifier),
        ("nn", MLPClassifier),
    ],
)
def test_pipelines_scale_then_model(learner, expected) -> None:
    pipeline = get_default_classifier(learner, random_state=9)

    assert [name for name, _ in pipeline.steps] == ["scale", "model"]
    assert isinstance(pipeline.named_steps["scale"], StandardScaler)
    assert isinstance(pipeline.named_steps["model"], expected)


def test_config_factories() -> None:
    assert ClassifierConfig.gradient_boosting().n_estimators == 100
    assert ClassifierConfig.neural_net(hidden_units=8).hidden_units == 8
    assert ClassifierConfig.for_learner("rf", random_state=1).random_state == 1
    with pytest.raises(ValueError, match="svm"):
        ClassifierConfig.for_learner("svm")


def test_unknown_learner_rejected() -> None:
    with pytest.raises(ValueError, match="Unknown learner"):
        create_classifier(ClassifierConfig(learner="svm"))


def test_seed_reaches_the_estimator() -> None:
    pipeline = create_classifier(ClassifierConfig.random_forest(random_state=123))
    assert pipeline.named_steps["model"].random_state == 123


def test_param_grid_respects_tune_length() -> None:
    assert param_grid("glm", 3) == {}
    assert param_grid("rf", 1) == {"model__max_features": ["sqrt"]}
    grid = param_grid("gbm", 2)
    assert all(len(values) == 2 for values in grid.values())
    assert set(TUNING_GRIDS) == {"glm", "rf", "gbm", "nn"}
    with pytest.raises(ValueError):
        param_grid("svm", 1)


@pytest.mark.parametrize("learner", ["glm", "gbm"])
def test_fit_learner(xy, learner) -> None:
    X, y = xy
    result = fit_learner(learner, X, y, cv_folds=3, tune_length=2, seed=5)

    assert result.name == learner
    assert 0.7 < result.cv_auc <= 1.0
    assert result.oof.shape == (len(y),)
    assert ((result.oof >= 0) & (result.oof <= 1)).all()
    assert result.estimator.predict_proba(X).shape == (len(y), 2)
    if learner == "gbm":
        assert set(result.best_params) == {"model__max_depth", "model__n_estimators"}


def test_fit_learner_is_reproducible(xy) -> None:
    X, y = xy
    first = fit_learner("rf", X, y, cv_folds=3, tune_length=1, seed=5)
    second = fit_learner("rf", X, y, cv_folds=3, tune_length=1, seed=5)

    np.testing.assert_allclose(first.oof, second.oof)
    assert first.cv_auc == second.cv_auc
