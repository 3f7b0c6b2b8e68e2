"""Progress/metrics observer interface and its Lightning bridge."""

from __future__ import annotations

import threading
from typing import Protocol, runtime_checkable

import lightning as L
from loguru import logger

from transfer_classifier.errors import TrainingCancelledError
from transfer_classifier.models.head import HeadClassificationModule
from transfer_classifier.schemas.records import DatasetKind, Phase, ProgressRecord


@runtime_checkable
class MetricsSink(Protocol):
    """Observer for structured progress records emitted during training.

    Purely observational: nothing a sink does may influence training results.
    """

    def emit(self, record: ProgressRecord) -> None: ...


class LoguruMetricsSink:
    """Write every record as one log line.

    Bottleneck records are per-image and go to DEBUG; epoch metrics to INFO.
    """

    def emit(self, record: ProgressRecord) -> None:
        level = "DEBUG" if record.phase is Phase.BOTTLENECK else "INFO"
        logger.log(level, record.format())


class CollectingMetricsSink:
    """Append records to an in-memory list (history, tests)."""

    def __init__(self) -> None:
        self.records: list[ProgressRecord] = []

    def emit(self, record: ProgressRecord) -> None:
        self.records.append(record)

    def select(
        self, phase: Phase, dataset: DatasetKind | None = None
    ) -> list[ProgressRecord]:
        return [
            r
            for r in self.records
            if r.phase is phase and (dataset is None or r.dataset is dataset)
        ]


class MetricsSinkCallback(L.Callback):
    """Forward per-epoch train/validation metrics to a :class:`MetricsSink`.

    Runs in ``on_validation_end`` so the module's ``on_validation_epoch_end``
    has already filled ``last_epoch_metrics``.  Emits one ``Train`` and one
    ``Validation`` record per epoch.
    """

    def __init__(self, sink: MetricsSink) -> None:
        super().__init__()
        self.sink = sink
        self.epochs_reported = 0

    def on_validation_end(
        self, trainer: L.Trainer, pl_module: L.LightningModule
    ) -> None:
        if trainer.sanity_checking or not isinstance(
            pl_module, HeadClassificationModule
        ):
            return
        metrics = pl_module.last_epoch_metrics
        if metrics is None:
            return
        self.sink.emit(
            ProgressRecord(
                phase=Phase.TRAINING,
                dataset=DatasetKind.TRAIN,
                epoch=metrics.epoch,
                batch_count=metrics.batch_count,
                learning_rate=metrics.learning_rate,
                accuracy=metrics.train_accuracy,
                loss=metrics.train_loss,
            )
        )
        self.sink.emit(
            ProgressRecord(
                phase=Phase.TRAINING,
                dataset=DatasetKind.VALIDATION,
                epoch=metrics.epoch,
                batch_count=metrics.val_batch_count,
                learning_rate=metrics.learning_rate,
                accuracy=metrics.val_accuracy,
                loss=metrics.val_loss,
            )
        )
        self.epochs_reported += 1


class CancellationCallback(L.Callback):
    """Abort fitting at the next epoch boundary once ``event`` is set."""

    def __init__(self, event: threading.Event) -> None:
        super().__init__()
        self.event = event

    def on_train_epoch_start(
        self, trainer: L.Trainer, pl_module: L.LightningModule
    ) -> None:
        if self.event.is_set():
            raise TrainingCancelledError(
                f"Fitting cancelled by caller before epoch {trainer.current_epoch}"
            )
