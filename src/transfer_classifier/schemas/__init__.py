"""Record and archive schemas shared across the pipeline."""

from transfer_classifier.schemas.artifact import (
    ArtifactManifest,
    InputSchema,
    OutputSchema,
)
from transfer_classifier.schemas.records import (
    DatasetKind,
    ImageRecord,
    ImageSource,
    ItemFailure,
    ItemPrediction,
    Phase,
    PredictionResult,
    ProgressRecord,
)

__all__ = [
    "ArtifactManifest",
    "DatasetKind",
    "ImageRecord",
    "ImageSource",
    "InputSchema",
    "ItemFailure",
    "ItemPrediction",
    "OutputSchema",
    "Phase",
    "PredictionResult",
    "ProgressRecord",
]
