"""Image, progress, and prediction records."""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel

# Raw image input accepted by extractors and the prediction engine.
ImageSource = Path | bytes


class ImageRecord(BaseModel, frozen=True):
    """One labeled image produced by the dataset loader.

    ``source`` is either a filesystem path (decoded lazily) or the raw encoded
    image bytes.
    """

    identifier: str
    source: Path | bytes
    label: str


class Phase(StrEnum):
    BOTTLENECK = "Bottleneck Computation"
    TRAINING = "Training"


class DatasetKind(StrEnum):
    TRAIN = "Train"
    VALIDATION = "Validation"


class ProgressRecord(BaseModel, frozen=True):
    """Structured progress/metrics event emitted while training.

    Bottleneck records carry ``index``; training records carry ``epoch`` and
    the metric fields.
    """

    phase: Phase
    dataset: DatasetKind
    index: int | None = None
    epoch: int | None = None
    batch_count: int | None = None
    learning_rate: float | None = None
    accuracy: float | None = None
    loss: float | None = None

    def format(self) -> str:
        """Render as a single console line."""
        parts = [f"Phase: {self.phase}", f"Dataset used: {self.dataset:>10}"]
        if self.index is not None:
            parts.append(f"Image Index: {self.index:>3}")
        if self.batch_count is not None:
            parts.append(f"Batch Processed Count: {self.batch_count:>3}")
        if self.learning_rate is not None:
            parts.append(f"Learning Rate: {self.learning_rate:>10.6g}")
        if self.epoch is not None:
            parts.append(f"Epoch: {self.epoch:>3}")
        if self.accuracy is not None:
            parts.append(f"Accuracy: {self.accuracy:>10.6g}")
        if self.loss is not None:
            parts.append(f"Cross-Entropy: {self.loss:>10.6g}")
        return ", ".join(parts)


class PredictionResult(BaseModel, frozen=True):
    """Softmax score per vocabulary entry plus the arg-max label."""

    scores: list[float]
    predicted_label: str


class ItemFailure(BaseModel, frozen=True):
    """A single image that could not be processed during a bulk operation."""

    identifier: str
    category: str
    message: str


class ItemPrediction(BaseModel, frozen=True):
    """Outcome of one image in a batch prediction: a result or a failure."""

    identifier: str
    result: PredictionResult | None = None
    failure: ItemFailure | None = None

    @property
    def ok(self) -> bool:
        return self.result is not None
