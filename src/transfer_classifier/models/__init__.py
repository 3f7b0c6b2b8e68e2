"""Frozen backbones and the trainable classifier head."""

from transfer_classifier.models.backbone import (
    FeatureExtractor,
    TorchvisionFeatureExtractor,
    build_feature_extractor,
)
from transfer_classifier.models.head import (
    ClassifierHead,
    EpochMetrics,
    HeadClassificationModule,
)

__all__ = [
    "ClassifierHead",
    "EpochMetrics",
    "FeatureExtractor",
    "HeadClassificationModule",
    "TorchvisionFeatureExtractor",
    "build_feature_extractor",
]
