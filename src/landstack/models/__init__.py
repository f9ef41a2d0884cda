"""
Machine Learning Models
=======================

Base learners, stepwise logistic regression and the three stacking levels.

1. BaseLearnerBank: glm / rf / gbm / nn per label on raster features
2. LabelEnsembler: combines one label's base-learner probabilities
3. MultilabelStacker: combines every label's ensemble probability
"""

from landstack.models.stacking import (
    BaseLearnerBank,
    StackedClassifier,
    LabelEnsembler,
    MultilabelStacker,
    base_column,
    ensemble_column,
    stacked_column,
)
from landstack.models.classifiers import (
    ClassifierConfig,
    LEARNER_REGISTRY,
    create_classifier,
    get_default_classifier,
    register_learner,
)
from landstack.models.stepwise import StepwiseLogisticRegression
from landstack.models.tuning import TunedLearner, fit_learner, param_grid

__all__ = [
    "BaseLearnerBank",
    "StackedClassifier",
    "LabelEnsembler",
    "MultilabelStacker",
    "base_column",
    "ensemble_column",
    "stacked_column",
    "ClassifierConfig",
    "LEARNER_REGISTRY",
    "create_classifier",
    "get_default_classifier",
    "register_learner",
    "StepwiseLogisticRegression",
    "TunedLearner",
    "fit_learner",
    "param_grid",
]
