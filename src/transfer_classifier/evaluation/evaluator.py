"""Bulk evaluation: micro and macro accuracy over a labeled test set."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence

from loguru import logger
from pydantic import BaseModel, Field
from rich import box
from rich.console import Console
from rich.table import Table

from transfer_classifier.artifact import ModelArtifact
from transfer_classifier.errors import EmptyTestSetError
from transfer_classifier.inference.engine import PredictionEngine
from transfer_classifier.models.backbone import FeatureExtractor
from transfer_classifier.schemas.records import ImageRecord, ItemFailure


class EvaluationReport(BaseModel, frozen=True):
    """Aggregate accuracy over the successfully predicted test images.

    ``macro_accuracy`` averages per-label accuracy over labels that have at
    least one test image; labels the model has never seen count with accuracy 0.
    """

    micro_accuracy: float = Field(ge=0.0, le=1.0)
    macro_accuracy: float = Field(ge=0.0, le=1.0)
    total: int
    correct: int
    per_label_accuracy: dict[str, float]
    failures: list[ItemFailure] = []


def evaluate(
    artifact: ModelArtifact,
    test_records: Sequence[ImageRecord],
    extractor: FeatureExtractor | None = None,
    engine: PredictionEngine | None = None,
) -> EvaluationReport:
    """Predict every test record and compare against its true label.

    Images that fail to decode are excluded from the metrics and listed in
    ``failures``.

    Raises:
        EmptyTestSetError: If ``test_records`` is empty.
    """
    if not test_records:
        raise EmptyTestSetError("Cannot evaluate on an empty test set")
    engine = engine or PredictionEngine(artifact, extractor)

    logger.info(
        f"Making bulk predictions on {len(test_records)} images "
        "and evaluating model quality..."
    )
    outcomes = engine.predict_batch(test_records)

    per_label_correct: dict[str, int] = defaultdict(int)
    per_label_total: dict[str, int] = defaultdict(int)
    failures: list[ItemFailure] = []
    for record, outcome in zip(test_records, outcomes, strict=True):
        if outcome.result is None:
            if outcome.failure is not None:
                failures.append(outcome.failure)
            continue
        per_label_total[record.label] += 1
        if outcome.result.predicted_label == record.label:
            per_label_correct[record.label] += 1

    unseen = sorted(set(per_label_total) - set(artifact.vocabulary.labels))
    if unseen:
        logger.warning(f"Test labels not in the model vocabulary: {unseen}")

    total = sum(per_label_total.values())
    correct = sum(per_label_correct.values())
    per_label_accuracy = {
        label: per_label_correct[label] / count
        for label, count in sorted(per_label_total.items())
    }
    micro = correct / total if total else 0.0
    macro = (
        sum(per_label_accuracy.values()) / len(per_label_accuracy)
        if per_label_accuracy
        else 0.0
    )
    if failures:
        logger.warning(f"{len(failures)} test image(s) could not be evaluated")
    logger.info(f"Micro-accuracy: {micro:.6f}, macro-accuracy: {macro:.6f}")
    return EvaluationReport(
        micro_accuracy=micro,
        macro_accuracy=macro,
        total=total,
        correct=correct,
        per_label_accuracy=per_label_accuracy,
        failures=failures,
    )


def print_evaluation_report(
    report: EvaluationReport, console: Console | None = None
) -> None:
    """Render per-label accuracy and the aggregate metrics as a rich table."""
    table = Table(
        title="Evaluation",
        header_style="bold magenta",
        box=box.SQUARE,
        show_lines=True,
    )
    table.add_column("Label", style="cyan")
    table.add_column("Accuracy", justify="right", style="green")
    for label, accuracy in report.per_label_accuracy.items():
        table.add_row(repr(label) if label == "" else label, f"{accuracy:.4f}")
    table.add_row("[bold]micro[/bold]", f"{report.micro_accuracy:.4f}")
    table.add_row("[bold]macro[/bold]", f"{report.macro_accuracy:.4f}")
    (console or Console()).print(table)
    if report.failures:
        attempted = report.total + len(report.failures)
        logger.warning(f"Failed images: {len(report.failures)}/{attempted}")
