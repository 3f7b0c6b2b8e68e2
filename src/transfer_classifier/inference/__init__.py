"""Classification inference framework."""

from transfer_classifier.inference.base import BaseClassificationInferencer
from transfer_classifier.inference.engine import PredictionEngine, predict

__all__ = [
    "BaseClassificationInferencer",
    "PredictionEngine",
    "predict",
]
