"""
Land-Cover Stacking Pipeline
============================

Runs the full workflow from survey points to validated probability rasters.

Training Flow (per label, strictly linear):
    LINKED -> BASE_TRAINED -> BASE_RASTER -> ENSEMBLE_TRAINED
    -> ENSEMBLE_RASTER -> STACK_TRAINED -> STACK_RASTER -> VALIDATED

    1. Link points to raster features, split calibration/validation once
    2. Per label: fit the base-learner bank, persist it, predict the base
       raster (one band per learner), release the bank
    3. Per label: fit the ensembler on the base learners' out-of-fold
       probabilities, predict the ensemble raster from the base raster
    4. Once every label has an ensemble raster: fit one stacker per label
       on every label's out-of-fold ensemble probabilities, predict the
       stacked raster (one band per label) from the ensemble rasters
    5. Sample every stage's raster at validation points and compute ROC/AUC

Each stage model is applied only to the raster outputs of the stage below,
which are produced by the same fitted pipelines (scaling included) that
generated its training columns.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd
from loguru import logger

from landstack.artifacts import ArtifactStore
from landstack.config import PipelineConfig
from landstack.data.linker import SampleSet, link_samples, load_points
from landstack.data.partition import Partition, split_samples
from landstack.data.raster import RasterStack
from landstack.evaluation.metrics import EvaluationResult, validate_raster
from landstack.evaluation.plots import plot_roc_curves, sample_map
from landstack.models.stacking import (
    BaseLearnerBank,
    LabelEnsembler,
    MultilabelStacker,
    ensemble_column,
    stacked_column,
)


class PipelineState(IntEnum):
    LINKED = 1
    BASE_TRAINED = 2
    BASE_RASTER = 3
    ENSEMBLE_TRAINED = 4
    ENSEMBLE_RASTER = 5
    STACK_TRAINED = 6
    STACK_RASTER = 7
    VALIDATED = 8


class PipelineStateError(RuntimeError):
    """Raised when a stage is run out of order."""


@dataclass(frozen=True)
class LinkedData:
    """
    Output of the linking stage, shared read-only by every later stage.

    Attributes:
        samples: All complete-case samples
        partition: Calibration/validation split
        calibration: Calibration subset
        validation: Validation subset
        band_names: Band names of the feature raster stack
    """
    samples: SampleSet
    partition: Partition
    calibration: SampleSet
    validation: SampleSet
    band_names: tuple[str, ...]


@dataclass
class LabelRun:
    """Progress and fitted models of one label."""
    label: str
    state: PipelineState = PipelineState.LINKED
    features: list[str] = field(default_factory=list)
    bank: BaseLearnerBank | None = None
    ensembler: LabelEnsembler | None = None
    stacker: MultilabelStacker | None = None
    base_oof: pd.DataFrame | None = None
    ensemble_oof: pd.Series | None = None


@dataclass
class ValidationReport:
    """
    Validation results of every label at every stage.

    Stages are ``base_<learner>``, ``ensemble`` and ``stacked``.
    """
    results: list[EvaluationResult] = field(default_factory=list)

    def auc(self, label: str, stage: str) -> float:
        for result in self.results:
            if result.label == label and result.stage == stage:
                return result.auc
        raise KeyError(f"No validation result for {label} [{stage}]")

    def best_base_auc(self, label: str) -> float:
        aucs = [r.auc for r in self.results if r.label == label and r.stage.startswith("base_")]
        if not aucs:
            raise KeyError(f"No base-learner results for {label}")
        return max(aucs)

    def for_stage(self, stage: str) -> list[EvaluationResult]:
        return [r for r in self.results if r.stage == stage]

    def auc_table(self) -> pd.DataFrame:
        """Labels as rows, stages as columns."""
        rows = [{"label": r.label, "stage": r.stage, "auc": r.auc} for r in self.results]
        return pd.DataFrame(rows).pivot(index="label", columns="stage", values="auc")

    def to_dict(self) -> dict[str, Any]:
        return {"results": [r.to_dict() for r in self.results]}


class LandCoverPipeline:
    """
    Orchestrates linking, the three stacking levels and validation.

    Usage:
        config = PipelineConfig.from_yaml("configs/malawi.yaml")
        pipeline = LandCoverPipeline(config)
        report = pipeline.run()
        print(report.auc_table())

    Attributes:
        config: Pipeline configuration
        store: Artifact store under config.output_dir
        data: Linked data (set by link())
        runs: Per-label progress
    """

    def __init__(self, config: PipelineConfig, store: ArtifactStore | None = None) -> None:
        self.config = config
        self.store = store or ArtifactStore(config.output_dir)
        self.data: LinkedData | None = None
        self.runs: dict[str, LabelRun] = {}

    # -- state ---------------------------------------------------------------

    def _run(self, label: str, expected: PipelineState) -> LabelRun:
        if label not in self.runs:
            raise PipelineStateError(f"Label '{label}' has not been linked; call link() first")
        run = self.runs[label]
        if run.state != expected:
            raise PipelineStateError(
                f"[{label}] expected state {expected.name}, pipeline is at {run.state.name}"
            )
        return run

    @property
    def linked(self) -> LinkedData:
        if self.data is None:
            raise PipelineStateError("No linked data; call link() first")
        return self.data

    def state(self, label: str) -> PipelineState:
        return self.runs[label].state

    # -- stage 1: linking ----------------------------------------------------

    def link(self) -> LinkedData:
        """Link points to raster features and create the partition."""
        cfg = self.config
        if cfg.samples_path is None or not cfg.raster_paths:
            raise ValueError("samples_path and raster_paths must be configured")

        points = load_points(cfg.samples_path, cfg.labels, cfg.x_column, cfg.y_column)
        with RasterStack(cfg.raster_paths) as stack:
            band_names = tuple(stack.band_names)
            samples = link_samples(
                points,
                stack,
                crs=cfg.sample_crs,
                feature_names=cfg.all_features(list(band_names)),
                label_names=cfg.labels,
                drop_outside=cfg.drop_outside_extent,
            )

        partition = split_samples(
            samples,
            calibration_fraction=cfg.calibration_fraction,
            seed=cfg.seed,
            stratify_label=cfg.partition_label,
        )
        partition.save(self.store.result_path("partition.csv"))
        calibration, validation = partition.apply(samples)

        self.data = LinkedData(
            samples=samples,
            partition=partition,
            calibration=calibration,
            validation=validation,
            band_names=band_names,
        )
        self.runs = {
            label: LabelRun(label=label, features=cfg.features_for(label, list(band_names)))
            for label in cfg.labels
        }
        return self.data

    # -- stage 2: base learners ----------------------------------------------

    def train_base(self, label: str) -> BaseLearnerBank:
        run = self._run(label, PipelineState.LINKED)
        cfg = self.config
        calibration = self.linked.calibration

        bank = BaseLearnerBank(
            label,
            feature_names=run.features,
            learners=cfg.learners,
            cv_folds=cfg.cv_folds,
            tune_length=cfg.tune_length,
            seed=cfg.seed,
            n_jobs=cfg.n_jobs,
        )
        bank.fit(calibration.features(run.features), calibration.labels(label))
        self.store.save_model(label, "base", bank, metadata={"cv_auc": bank.cv_scores(), "features": run.features})

        run.bank = bank
        run.base_oof = bank.oof_
        run.state = PipelineState.BASE_TRAINED
        return bank

    def predict_base(self, label: str) -> Path:
        run = self._run(label, PipelineState.BASE_TRAINED)
        bank = run.bank
        with RasterStack(self.config.raster_paths) as stack:
            path = stack.predict_to_file(
                lambda frame: bank.predict_proba(frame).to_numpy(),
                bank.feature_names,
                self.store.base_raster_path(label),
                bank.output_names,
            )
        # persisted; the next stage only needs the raster
        run.bank = None
        run.state = PipelineState.BASE_RASTER
        return path

    # -- stage 3: per-label ensemble -----------------------------------------

    def _calibration_labels(self, X: pd.DataFrame, label: str) -> np.ndarray:
        return self.linked.calibration.frame.loc[X.index, label].to_numpy(dtype=int)

    def train_ensemble(self, label: str) -> LabelEnsembler:
        run = self._run(label, PipelineState.BASE_RASTER)
        cfg = self.config

        ensembler = LabelEnsembler(
            label,
            learners=cfg.learners,
            cv_folds=cfg.cv_folds,
            cv_repeats=cfg.cv_repeats,
            seed=cfg.seed,
            n_jobs=cfg.n_jobs,
        )
        X = run.base_oof
        ensembler.fit(X, self._calibration_labels(X, label))
        self.store.save_model(label, "ensemble", ensembler, metadata=ensembler.summary())

        run.ensembler = ensembler
        run.ensemble_oof = ensembler.oof_
        run.state = PipelineState.ENSEMBLE_TRAINED
        return ensembler

    def predict_ensemble(self, label: str) -> Path:
        run = self._run(label, PipelineState.ENSEMBLE_TRAINED)
        ensembler = run.ensembler
        with RasterStack([self.store.base_raster_path(label)]) as stack:
            path = stack.predict_to_file(
                lambda frame: ensembler.predict_proba(frame).to_numpy(),
                ensembler.input_names,
                self.store.ensemble_raster_path(label),
                [ensemble_column(label)],
            )
        run.state = PipelineState.ENSEMBLE_RASTER
        return path

    # -- stage 4: multilabel stacker -----------------------------------------

    def _ensemble_paths(self) -> list[Path]:
        return [self.store.ensemble_raster_path(label) for label in self.config.labels]

    def train_stackers(self) -> dict[str, MultilabelStacker]:
        """Fit one stacker per label; every label must have its ensemble raster."""
        labels = self.config.labels
        for label in labels:
            self._run(label, PipelineState.ENSEMBLE_RASTER)

        X = pd.concat([self.runs[label].ensemble_oof for label in labels], axis=1)

        stackers = {}
        for label in labels:
            stacker = MultilabelStacker(
                label,
                labels=labels,
                cv_folds=self.config.cv_folds,
                cv_repeats=self.config.cv_repeats,
                seed=self.config.seed,
                n_jobs=self.config.n_jobs,
            )
            stacker.fit(X, self._calibration_labels(X, label))
            self.store.save_model(label, "stacked", stacker, metadata=stacker.summary())

            run = self.runs[label]
            run.stacker = stacker
            run.state = PipelineState.STACK_TRAINED
            stackers[label] = stacker
        return stackers

    def predict_stacked(self) -> Path:
        """Write the stacked raster, one band per label."""
        labels = self.config.labels
        stackers = [self._run(label, PipelineState.STACK_TRAINED).stacker for label in labels]
        inputs = [ensemble_column(label) for label in labels]

        def predict(frame: pd.DataFrame) -> np.ndarray:
            return np.column_stack([s.predict_proba(frame).to_numpy() for s in stackers])

        with RasterStack(self._ensemble_paths()) as stack:
            path = stack.predict_to_file(
                predict,
                inputs,
                self.store.stacked_raster_path(),
                [stacked_column(label) for label in labels],
            )
        for label in labels:
            self.runs[label].state = PipelineState.STACK_RASTER
        return path

    def resume_from_store(self) -> None:
        """Mark every label as STACK_RASTER when its artifacts already exist."""
        if self.data is None:
            raise PipelineStateError("No linked data; call link() first")
        missing = [
            path for path in [self.store.stacked_raster_path(), *self._ensemble_paths()]
            if not path.exists()
        ]
        missing += [
            self.store.base_raster_path(label)
            for label in self.config.labels
            if not self.store.base_raster_path(label).exists()
        ]
        if missing:
            raise FileNotFoundError(f"Missing artifacts: {[str(p) for p in missing]}")
        for run in self.runs.values():
            run.state = PipelineState.STACK_RASTER

    # -- validation ----------------------------------------------------------

    def validate(self) -> ValidationReport:
        """Validate base, ensemble and stacked rasters at the held-out points."""
        labels = self.config.labels
        for label in labels:
            self._run(label, PipelineState.STACK_RASTER)

        validation = self.linked.validation
        report = ValidationReport()
        for label in labels:
            for learner in self.config.learners:
                report.results.append(validate_raster(
                    [self.store.base_raster_path(label)], validation, label,
                    band=f"{label}_{learner}", stage=f"base_{learner}",
                ))
            report.results.append(validate_raster(
                [self.store.ensemble_raster_path(label)], validation, label,
                band=ensemble_column(label), stage="ensemble",
            ))
            stacked = validate_raster(
                [self.store.stacked_raster_path()], validation, label,
                band=stacked_column(label), stage="stacked",
            )
            report.results.append(stacked)
            stacked.roc.to_frame().to_csv(self.store.result_path(f"roc_{label}.csv"), index=False)

        self.store.save_json("validation.json", report.to_dict())
        plot_roc_curves(report.for_stage("stacked"), self.store.result_path("roc_curves.png"))

        for label in labels:
            self.runs[label].state = PipelineState.VALIDATED
        logger.info(f"Validation AUC:\n{report.auc_table().round(4)}")
        return report

    # -- full run ------------------------------------------------------------

    def run(self) -> ValidationReport:
        """Run every stage in order."""
        self.link()
        sample_map(
            self.linked.samples,
            self.store.result_path("sample_map.html"),
            label=self.config.partition_label,
        )

        for label in self.config.labels:
            logger.info(f"[{label}] Base learners")
            self.train_base(label)
            self.predict_base(label)
            logger.info(f"[{label}] Ensemble")
            self.train_ensemble(label)
            self.predict_ensemble(label)

        logger.info("Multilabel stacking")
        self.train_stackers()
        self.predict_stacked()
        return self.validate()
