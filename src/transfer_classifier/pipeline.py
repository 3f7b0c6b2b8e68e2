"""End-to-end run: load, split, train, save, reload, evaluate, predict."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from transfer_classifier.callbacks.metrics import LoguruMetricsSink, MetricsSink
from transfer_classifier.config import PipelineConfig
from transfer_classifier.data.loader import load_images_from_directory
from transfer_classifier.data.splitting import split
from transfer_classifier.data.vocabulary import LabelVocabulary
from transfer_classifier.errors import EmptyDatasetError, EmptyTestSetError
from transfer_classifier.evaluation.evaluator import (
    EvaluationReport,
    evaluate,
    print_evaluation_report,
)
from transfer_classifier.inference.engine import PredictionEngine
from transfer_classifier.io.archive import load, save
from transfer_classifier.models.backbone import FeatureExtractor
from transfer_classifier.schemas.records import ItemPrediction
from transfer_classifier.training.trainer import ClassifierHeadTrainer, TrainingResult


@dataclass(frozen=True)
class PipelineResult:
    artifact_path: Path
    training: TrainingResult
    evaluation: EvaluationReport
    predictions: list[ItemPrediction]


def run_pipeline(
    config: PipelineConfig,
    extractor: FeatureExtractor,
    metrics_sink: MetricsSink | None = None,
    artifact_path: Path | None = None,
    cancel_event: threading.Event | None = None,
) -> PipelineResult:
    """Train, persist, reload, evaluate and try predictions.

    The dataset is validated before any embedding is computed: an empty
    training directory raises :class:`EmptyDatasetError` and a split with no
    test images raises :class:`EmptyTestSetError`.  The archive is written
    only after fitting reaches a terminal state.

    Args:
        config: Directories, split, and trainer hyperparameters.
        extractor: Frozen backbone.
        metrics_sink: Progress observer; defaults to logging every record.
        artifact_path: Overrides ``config.artifact_path``.
        cancel_event: Cancels bottleneck computation or fitting when set.
    """
    records = load_images_from_directory(
        config.train_dir, use_folder_name_as_label=config.use_folder_name_as_label
    )
    if not records:
        raise EmptyDatasetError(f"No images found under {config.train_dir}")

    # Keys are assigned over the full corpus so both splits encode.
    vocabulary = LabelVocabulary.build(records)
    train_records, test_records = split(
        records, config.split.test_fraction, config.split.seed
    )
    if not test_records:
        raise EmptyTestSetError(
            f"test_fraction={config.split.test_fraction} leaves no test images "
            f"out of {len(records)}"
        )

    logger.info(
        "*** Training the image classification model with DNN transfer learning "
        f"on top of the {extractor.backbone_id} backbone ***"
    )
    trainer = ClassifierHeadTrainer(
        extractor,
        config.trainer,
        metrics_sink=metrics_sink or LoguruMetricsSink(),
        cancel_event=cancel_event,
    )
    training = trainer.fit(train_records, test_records, vocabulary)
    logger.info("Training with transfer learning finished.")

    path = artifact_path or Path(config.artifact_path)
    save(training.artifact, path)
    loaded = load(path)

    engine = PredictionEngine(loaded, extractor, num_threads=config.trainer.num_threads)
    report = evaluate(loaded, test_records, engine=engine)
    print_evaluation_report(report)
    logger.info("Predicting and evaluation complete.")

    predictions: list[ItemPrediction] = []
    if config.predict_dir is not None and config.predict_count > 0:
        predictions = try_predictions(
            engine, Path(config.predict_dir), config.predict_count
        )
        logger.info("Prediction on held-out images finished.")

    return PipelineResult(
        artifact_path=path,
        training=training,
        evaluation=report,
        predictions=predictions,
    )


def try_predictions(
    engine: PredictionEngine, folder: Path, count: int = 10
) -> list[ItemPrediction]:
    """Predict the first ``count`` images of ``folder`` from in-memory bytes."""
    images = load_images_from_directory(
        folder, use_folder_name_as_label=False, in_memory=True
    )[:count]
    outcomes = engine.predict_batch(images)
    for outcome in outcomes:
        if outcome.result is None:
            continue
        scores = ",".join(f"{s:.6g}" for s in outcome.result.scores)
        logger.info(
            f"{outcome.identifier}: Scores : [{scores}], "
            f"Predicted Label : {outcome.result.predicted_label}"
        )
    return outcomes
