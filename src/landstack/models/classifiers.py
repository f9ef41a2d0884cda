"""
Classifier Factory
==================

Factory functions and configurations for the base-learner families.

Supported learners:
- Stepwise logistic regression (glm)
- Random Forest (rf)
- Gradient-boosted trees (gbm) - XGBoost
- Single-hidden-layer neural network (nn)

Every learner is wrapped in a Pipeline whose first step standardizes the
features, so centering/scaling is fitted inside each CV fold and applied
identically at prediction time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Literal

from sklearn.base import BaseEstimator
from sklearn.ensemble import RandomForestClassifier
from sklearn.neural_network import MLPClassifier
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler
from xgboost import XGBClassifier

from landstack.models.stepwise import StepwiseLogisticRegression


LearnerType = Literal["glm", "rf", "gbm", "nn"]


@dataclass
class ClassifierConfig:
    """
    Configuration for creating a base learner.

    Attributes:
        learner: Learner family ("glm", "rf", "gbm", "nn")
        n_estimators: Number of trees for ensemble methods
        max_depth: Maximum tree depth (None for unlimited)
        learning_rate: Learning rate for boosting
        hidden_units: Hidden layer width for the neural net
        random_state: Random seed for reproducibility
        n_jobs: Parallel jobs inside the estimator
        extra_params: Additional learner-specific parameters
    """
    learner: LearnerType = "rf"
    n_estimators: int = 500
    max_depth: int | None = None
    learning_rate: float = 0.1
    hidden_units: int = 5
    random_state: int = 1385321
    n_jobs: int = 1
    extra_params: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def stepwise_glm(cls, **kwargs) -> ClassifierConfig:
        """Create a stepwise logistic regression configuration."""
        return cls(learner="glm", **kwargs)

    @classmethod
    def random_forest(
        cls,
        n_estimators: int = 500,
        max_depth: int | None = None,
        **kwargs,
    ) -> ClassifierConfig:
        """Create a Random Forest configuration."""
        return cls(learner="rf", n_estimators=n_estimators, max_depth=max_depth, **kwargs)

    @classmethod
    def gradient_boosting(
        cls,
        n_estimators: int = 100,
        max_depth: int = 3,
        learning_rate: float = 0.1,
        **kwargs,
    ) -> ClassifierConfig:
        """Create an XGBoost configuration."""
        return cls(
            learner="gbm",
            n_estimators=n_estimators,
            max_depth=max_depth,
            learning_rate=learning_rate,
            **kwargs,
        )

    @classmethod
    def neural_net(cls, hidden_units: int = 5, **kwargs) -> ClassifierConfig:
        """Create a single-hidden-layer network configuration."""
        return cls(learner="nn", hidden_units=hidden_units, **kwargs)

    @classmethod
    def for_learner(cls, learner: str, **kwargs) -> ClassifierConfig:
        """Default configuration for a learner family."""
        factories = {
            "glm": cls.stepwise_glm,
            "rf": cls.random_forest,
            "gbm": cls.gradient_boosting,
            "nn": cls.neural_net,
        }
        if learner not in factories:
            raise ValueError(f"Unknown learner '{learner}'. Available: {', '.join(factories)}")
        return factories[learner](**kwargs)


# Global registry of learner builders
LEARNER_REGISTRY: dict[str, Callable[[ClassifierConfig], BaseEstimator]] = {}


def register_learner(name: str):
    """Decorator to register a learner builder."""
    def decorator(fn: Callable[[ClassifierConfig], BaseEstimator]):
        LEARNER_REGISTRY[name] = fn
        return fn
    return decorator


@register_learner("glm")
def _build_glm(config: ClassifierConfig) -> BaseEstimator:
    return StepwiseLogisticRegression(max_iter=config.extra_params.get("max_iter", 1000))


@register_learner("rf")
def _build_rf(config: ClassifierConfig) -> BaseEstimator:
    return RandomForestClassifier(
        n_estimators=config.n_estimators,
        max_depth=config.max_depth,
        random_state=config.random_state,
        n_jobs=config.n_jobs,
        **config.extra_params,
    )


@register_learner("gbm")
def _build_gbm(config: ClassifierConfig) -> BaseEstimator:
    return XGBClassifier(
        n_estimators=config.n_estimators,
        max_depth=config.max_depth or 3,
        learning_rate=config.learning_rate,
        random_state=config.random_state,
        n_jobs=config.n_jobs,
        eval_metric="logloss",
        **config.extra_params,
    )


@register_learner("nn")
def _build_nn(config: ClassifierConfig) -> BaseEstimator:
    params = {"alpha": 1e-4, "max_iter": 2000, **config.extra_params}
    return MLPClassifier(
        hidden_layer_sizes=(config.hidden_units,),
        random_state=config.random_state,
        **params,
    )


def create_classifier(config: ClassifierConfig) -> Pipeline:
    """
    Create a scaled learner pipeline from configuration.

    Args:
        config: ClassifierConfig specifying the learner and parameters

    Returns:
        Pipeline of StandardScaler -> learner (step names "scale", "model")
    """
    if config.learner not in LEARNER_REGISTRY:
        available = ", ".join(LEARNER_REGISTRY)
        raise ValueError(f"Unknown learner '{config.learner}'. Available: {available}")

    return Pipeline([
        ("scale", StandardScaler()),
        ("model", LEARNER_REGISTRY[config.learner](config)),
    ])


def get_default_classifier(learner: str, random_state: int = 1385321) -> Pipeline:
    """Get the default pipeline for a learner family."""
    return create_classifier(ClassifierConfig.for_learner(learner, random_state=random_state))
