"""Two-phase transfer-learning trainer.

``BottleneckComputation`` runs the frozen backbone once over every training and
validation image; ``Fitting`` trains only the classifier head on the cached
embeddings with Lightning.  The run ends either ``EpochLimitReached`` or
``EarlyStopped`` and then ``Done``, with the fitted head bundled into a
:class:`ModelArtifact`.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum

import lightning as L
from lightning.fabric.utilities.exceptions import MisconfigurationException
from lightning.pytorch.callbacks import EarlyStopping
from loguru import logger

from transfer_classifier.artifact import ModelArtifact
from transfer_classifier.callbacks.metrics import (
    CancellationCallback,
    MetricsSink,
    MetricsSinkCallback,
)
from transfer_classifier.callbacks.model_info import ModelInfoCallback
from transfer_classifier.callbacks.statistics import DatasetStatisticsCallback
from transfer_classifier.config import TrainerConfig
from transfer_classifier.data.vocabulary import LabelVocabulary
from transfer_classifier.errors import (
    ConfigurationError,
    DataError,
    NoTrainingDataError,
)
from transfer_classifier.models.backbone import FeatureExtractor
from transfer_classifier.models.head import HeadClassificationModule
from transfer_classifier.schemas.artifact import OutputSchema
from transfer_classifier.schemas.records import DatasetKind, ImageRecord, ItemFailure
from transfer_classifier.training.bottleneck import (
    BottleneckSet,
    bottleneck_loader,
    compute_bottlenecks,
)


class TrainingState(StrEnum):
    IDLE = "Idle"
    BOTTLENECK_COMPUTATION = "BottleneckComputation"
    FITTING = "Fitting"
    EARLY_STOPPED = "EarlyStopped"
    EPOCH_LIMIT_REACHED = "EpochLimitReached"
    DONE = "Done"


@dataclass(frozen=True)
class EpochLimitReached:
    """Training ran exactly ``max_epochs`` epochs."""

    epochs: int


@dataclass(frozen=True)
class EarlyStopped:
    """The stopping policy fired after ``epochs`` epochs."""

    epochs: int
    reason: str


TrainingOutcome = EpochLimitReached | EarlyStopped


@dataclass(frozen=True)
class TrainingResult:
    artifact: ModelArtifact
    outcome: TrainingOutcome
    skipped: tuple[ItemFailure, ...] = field(default=())

    @property
    def epochs_run(self) -> int:
        return self.outcome.epochs


@dataclass(frozen=True)
class _FitSession:
    trainer: L.Trainer
    metrics_callback: MetricsSinkCallback | None
    early_stopping: EarlyStopping | None


class ClassifierHeadTrainer:
    """Fit a softmax head on bottleneck embeddings of a frozen backbone.

    The trainer depends only on the :class:`FeatureExtractor` and
    :class:`MetricsSink` capabilities.  It exclusively owns the in-progress head;
    the head is frozen and handed out inside the artifact once fitting ends.

    Args:
        extractor: Frozen backbone wrapper.
        config: Fitting hyperparameters.
        metrics_sink: Receives bottleneck progress and per-epoch metrics.
        cancel_event: When set, aborts between images or at the next epoch.
    """

    def __init__(
        self,
        extractor: FeatureExtractor,
        config: TrainerConfig | None = None,
        metrics_sink: MetricsSink | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.extractor = extractor
        self.config = config or TrainerConfig()
        self.metrics_sink = metrics_sink
        self.cancel_event = cancel_event
        self.state = TrainingState.IDLE

    def _transition(self, state: TrainingState) -> None:
        logger.debug(f"Trainer state: {self.state} -> {state}")
        self.state = state

    def fit(
        self,
        train_records: Sequence[ImageRecord],
        validation_records: Sequence[ImageRecord] = (),
        vocabulary: LabelVocabulary | None = None,
    ) -> TrainingResult:
        """Run bottleneck computation then head fitting.

        Args:
            train_records: Labeled training images.
            validation_records: Held-out images monitored after every epoch.
                When empty, the training embeddings are used for validation.
            vocabulary: Label vocabulary; built from ``train_records`` if omitted.

        Raises:
            NoTrainingDataError: Empty training split, or every image failed.
            DataError: Fewer than two labels.
            ConfigurationError: The Lightning trainer cannot be created.
            DivergedTrainingError: Loss became non-finite.
            TrainingCancelledError: ``cancel_event`` was set.
        """
        config = self.config
        if not train_records:
            raise NoTrainingDataError("Training split is empty")
        if vocabulary is None:
            vocabulary = LabelVocabulary.build(train_records)
        if len(vocabulary) < 2:
            raise DataError(
                f"Need at least 2 distinct labels to train, got {list(vocabulary)}"
            )
        known = [r for r in validation_records if r.label in vocabulary]
        if len(known) < len(validation_records):
            logger.warning(
                f"Dropping {len(validation_records) - len(known)} validation "
                "record(s) with labels outside the vocabulary"
            )
        # Resolves the accelerator, so a bad config fails before the backbone runs.
        session = self._build_trainer()

        self._transition(TrainingState.BOTTLENECK_COMPUTATION)
        train_set = compute_bottlenecks(
            self.extractor,
            train_records,
            vocabulary,
            DatasetKind.TRAIN,
            metrics_sink=self.metrics_sink,
            num_threads=config.num_threads,
            cancel_event=self.cancel_event,
        )
        if len(train_set) == 0:
            raise NoTrainingDataError(
                f"All {len(train_records)} training images failed to decode"
            )
        val_set = compute_bottlenecks(
            self.extractor,
            known,
            vocabulary,
            DatasetKind.VALIDATION,
            metrics_sink=self.metrics_sink,
            num_threads=config.num_threads,
            cancel_event=self.cancel_event,
        )
        skipped = train_set.failures + val_set.failures
        if len(val_set) == 0:
            logger.warning("No validation embeddings; validating on the training set")
            val_set = train_set

        self._transition(TrainingState.FITTING)
        module, outcome = self._fit_head(session, train_set, val_set, vocabulary)

        if isinstance(outcome, EarlyStopped):
            self._transition(TrainingState.EARLY_STOPPED)
            logger.info(
                f"Early stopped after {outcome.epochs} epochs: {outcome.reason}"
            )
        else:
            self._transition(TrainingState.EPOCH_LIMIT_REACHED)
            logger.info(f"Epoch limit reached: {outcome.epochs} epochs")

        artifact = ModelArtifact(
            backbone_id=self.extractor.backbone_id,
            head=module.head,
            vocabulary=vocabulary,
            input_schema=self.extractor.input_schema,
            output_schema=OutputSchema(num_classes=len(vocabulary)),
        )
        self._transition(TrainingState.DONE)
        return TrainingResult(
            artifact=artifact,
            outcome=outcome,
            skipped=skipped,
        )

    def _build_trainer(self) -> _FitSession:
        config = self.config
        callbacks: list[L.Callback] = []
        metrics_callback: MetricsSinkCallback | None = None
        if self.metrics_sink is not None:
            metrics_callback = MetricsSinkCallback(self.metrics_sink)
            callbacks.append(metrics_callback)
        if self.cancel_event is not None:
            callbacks.append(CancellationCallback(self.cancel_event))
        if config.show_statistics:
            callbacks.append(
                ModelInfoCallback(
                    backbone_id=self.extractor.backbone_id,
                    embedding_dim=self.extractor.embedding_dim,
                    backbone_params=getattr(self.extractor, "num_parameters", None),
                )
            )

        early_stopping: EarlyStopping | None = None
        policy = config.early_stopping
        if policy is not None:
            early_stopping = EarlyStopping(
                monitor=policy.monitor,
                min_delta=policy.min_delta,
                patience=policy.patience,
                mode=policy.mode,
                strict=True,
            )
            callbacks.append(early_stopping)

        try:
            trainer = L.Trainer(
                max_epochs=config.max_epochs,
                accelerator=config.accelerator,
                devices=1,
                logger=False,
                enable_checkpointing=False,
                enable_progress_bar=False,
                enable_model_summary=False,
                num_sanity_val_steps=0,
                callbacks=callbacks,
            )
        except (ValueError, RuntimeError, MisconfigurationException) as exc:
            raise ConfigurationError(f"Cannot create Lightning trainer: {exc}") from exc
        return _FitSession(trainer, metrics_callback, early_stopping)

    def _fit_head(
        self,
        session: _FitSession,
        train_set: BottleneckSet,
        val_set: BottleneckSet,
        vocabulary: LabelVocabulary,
    ) -> tuple[HeadClassificationModule, TrainingOutcome]:
        config = self.config
        trainer = session.trainer
        L.seed_everything(config.seed, workers=True)

        module = HeadClassificationModule(
            embedding_dim=self.extractor.embedding_dim,
            num_classes=len(vocabulary),
            learning_rate=config.learning_rate,
            lr_decay_rate=config.lr_decay_rate,
            lr_decay_epochs=config.lr_decay_epochs,
            optimizer=config.optimizer,
            momentum=config.momentum,
            weight_decay=config.weight_decay,
        )
        if config.show_statistics:
            trainer.callbacks.append(
                DatasetStatisticsCallback(
                    vocabulary,
                    train_labels=train_set.labels.tolist(),
                    val_labels=val_set.labels.tolist(),
                )
            )

        logger.info(
            f"Fitting head: {len(train_set)} train / {len(val_set)} validation "
            f"embeddings, max_epochs={config.max_epochs}, "
            f"batch_size={config.batch_size}, lr={config.learning_rate}"
        )
        trainer.fit(
            module,
            train_dataloaders=bottleneck_loader(
                train_set, config.batch_size, shuffle=True, seed=config.seed
            ),
            val_dataloaders=bottleneck_loader(
                val_set, config.batch_size, shuffle=False
            ),
        )

        epochs_run = trainer.current_epoch
        if session.metrics_callback is not None:
            epochs_run = session.metrics_callback.epochs_reported
        early_stopping = session.early_stopping
        policy = config.early_stopping
        if early_stopping is not None and policy is not None and trainer.should_stop:
            best = early_stopping.best_score
            reason = (
                f"{early_stopping.monitor} did not improve by more than "
                f"{policy.min_delta:g} for {policy.patience} "
                f"epoch(s) (best {float(best):.4f})"
            )
            return module, EarlyStopped(epochs=epochs_run, reason=reason)
        return module, EpochLimitReached(epochs=epochs_run)
