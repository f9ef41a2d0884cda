"""Calibration / validation partition of linked samples."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import numpy as np
import pandas as pd
from loguru import logger
from sklearn.model_selection import train_test_split

from landstack.data.linker import SampleSet


@dataclass(frozen=True)
class Partition:
    """
    Disjoint split of sample ids.

    Attributes:
        calibration: Sample ids used to fit every stage
        validation: Held-out sample ids used only by the validator
        seed: Random seed that produced the split
    """
    calibration: tuple[int, ...]
    validation: tuple[int, ...]
    seed: int

    def __post_init__(self) -> None:
        overlap = set(self.calibration) & set(self.validation)
        if overlap:
            raise ValueError(f"Calibration and validation overlap on {len(overlap)} samples")

    def apply(self, samples: SampleSet) -> tuple[SampleSet, SampleSet]:
        return samples.subset(self.calibration), samples.subset(self.validation)

    def to_frame(self) -> pd.DataFrame:
        rows = [(i, "calibration") for i in self.calibration]
        rows += [(i, "validation") for i in self.validation]
        return pd.DataFrame(rows, columns=["sample_id", "set"]).sort_values("sample_id")

    def save(self, path: str | Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.to_frame().to_csv(path, index=False)
        return path

    @classmethod
    def load(cls, path: str | Path, seed: int) -> Partition:
        frame = pd.read_csv(path)
        return cls(
            calibration=tuple(frame.loc[frame["set"] == "calibration", "sample_id"].tolist()),
            validation=tuple(frame.loc[frame["set"] == "validation", "sample_id"].tolist()),
            seed=seed,
        )


def split_samples(
    samples: SampleSet,
    calibration_fraction: float = 0.8,
    seed: int = 1385321,
    stratify_label: str | None = None,
) -> Partition:
    """
    Split complete-case samples into calibration and validation sets.

    The split is stratified on ``stratify_label`` when given, so both sets
    keep the label's prevalence. The same seed always yields the same split.

    Args:
        samples: Linked samples
        calibration_fraction: Share of samples in the calibration set
        seed: Random seed
        stratify_label: Label to stratify on (None = unstratified)

    Returns:
        Partition of sample ids
    """
    ids = samples.ids
    if len(ids) < 2:
        raise ValueError(f"Need at least 2 samples to partition, got {len(ids)}")

    stratify = samples.labels(stratify_label) if stratify_label is not None else None
    if stratify is not None and np.bincount(stratify).min() < 2:
        logger.warning(f"Label '{stratify_label}' too unbalanced to stratify; using a random split")
        stratify = None

    calibration, validation = train_test_split(
        ids,
        train_size=calibration_fraction,
        stratify=stratify,
        random_state=seed,
        shuffle=True,
    )
    partition = Partition(
        calibration=tuple(sorted(int(i) for i in calibration)),
        validation=tuple(sorted(int(i) for i in validation)),
        seed=seed,
    )
    logger.info(
        f"Partition: {len(partition.calibration)} calibration, "
        f"{len(partition.validation)} validation (seed={seed})"
    )
    return partition
