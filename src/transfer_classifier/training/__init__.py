"""Bottleneck computation and classifier-head fitting."""

from transfer_classifier.training.bottleneck import (
    BottleneckSet,
    compute_bottlenecks,
)
from transfer_classifier.training.trainer import (
    ClassifierHeadTrainer,
    EarlyStopped,
    EpochLimitReached,
    TrainingOutcome,
    TrainingResult,
    TrainingState,
)

__all__ = [
    "BottleneckSet",
    "ClassifierHeadTrainer",
    "EarlyStopped",
    "EpochLimitReached",
    "TrainingOutcome",
    "TrainingResult",
    "TrainingState",
    "compute_bottlenecks",
]
