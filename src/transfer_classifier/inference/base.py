"""Abstract base class for classification inferencers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from transfer_classifier.schemas.records import (
    ImageRecord,
    ImageSource,
    ItemPrediction,
    PredictionResult,
)


class BaseClassificationInferencer(ABC):
    """Base class for classification inferencers.

    ``predict`` raises on an undecodable image; ``predict_batch`` never does and
    instead reports each failure on its :class:`ItemPrediction`.
    """

    @abstractmethod
    def predict(self, source: ImageSource) -> PredictionResult:
        """Run inference on a single image (path or raw encoded bytes)."""

    @abstractmethod
    def predict_batch(self, records: Sequence[ImageRecord]) -> list[ItemPrediction]:
        """Run inference on many images, one outcome per record, in input order."""
