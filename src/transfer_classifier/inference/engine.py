"""Prediction engine: frozen backbone + trained head → scores and label."""

from __future__ import annotations

from collections.abc import Sequence

import torch
from loguru import logger

from transfer_classifier.artifact import ModelArtifact
from transfer_classifier.errors import ConfigurationError, ImageDecodeError
from transfer_classifier.inference.base import BaseClassificationInferencer
from transfer_classifier.models.backbone import (
    FeatureExtractor,
    build_feature_extractor,
)
from transfer_classifier.schemas.records import (
    ImageRecord,
    ImageSource,
    ItemFailure,
    ItemPrediction,
    PredictionResult,
)
from transfer_classifier.utils.parallel import parallel_map


class PredictionEngine(BaseClassificationInferencer):
    """Run a loaded :class:`ModelArtifact` on images.

    Scores are softmax-normalized (they sum to 1 and are the probabilities the
    head was trained to produce under cross-entropy).  Labels are always decoded
    with the vocabulary embedded in the artifact.  The engine holds no mutable
    state, so one instance may be called from many threads.

    Args:
        artifact: Trained model.
        extractor: Backbone to embed images with.  Defaults to rebuilding the
            torchvision backbone named by ``artifact.backbone_id``.
        num_threads: Worker threads for :meth:`predict_batch`.
    """

    def __init__(
        self,
        artifact: ModelArtifact,
        extractor: FeatureExtractor | None = None,
        num_threads: int | None = None,
    ) -> None:
        if extractor is None:
            extractor = build_feature_extractor(
                artifact.backbone_id, artifact.input_schema
            )
        if extractor.backbone_id != artifact.backbone_id:
            raise ConfigurationError(
                f"Extractor backbone {extractor.backbone_id!r} does not match "
                f"artifact backbone {artifact.backbone_id!r}"
            )
        if extractor.embedding_dim != artifact.input_schema.embedding_dim:
            raise ConfigurationError(
                f"Extractor produces {extractor.embedding_dim}-d embeddings, "
                f"artifact expects {artifact.input_schema.embedding_dim}"
            )
        self.artifact = artifact
        self.extractor = extractor
        self.num_threads = num_threads

    def _result(self, scores: torch.Tensor) -> PredictionResult:
        index = int(torch.argmax(scores))
        return PredictionResult(
            scores=scores.tolist(),
            predicted_label=self.artifact.vocabulary.decode(index),
        )

    def predict(self, source: ImageSource) -> PredictionResult:
        """Predict a single image.

        Raises:
            CorruptImageError: If the bytes are not an image.
            UnsupportedFormatError: If the image cannot be fed to the backbone.
        """
        embedding = self.extractor.extract(source)
        return self._result(self.artifact.scores(embedding.unsqueeze(0))[0])

    def _predict_record(self, record: ImageRecord) -> ItemPrediction:
        try:
            result = self.predict(record.source)
        except ImageDecodeError as exc:
            return ItemPrediction(
                identifier=record.identifier,
                failure=ItemFailure(
                    identifier=record.identifier,
                    category=exc.category,
                    message=str(exc),
                ),
            )
        return ItemPrediction(identifier=record.identifier, result=result)

    def predict_batch(self, records: Sequence[ImageRecord]) -> list[ItemPrediction]:
        """Predict every record; undecodable images become per-item failures."""
        outcomes = list(
            parallel_map(
                self._predict_record,
                records,
                num_threads=self.num_threads,
                desc="Predict",
            )
        )
        failed = [o for o in outcomes if o.failure is not None]
        for outcome in failed:
            logger.warning(
                f"Prediction failed for {outcome.identifier}: "
                f"{outcome.failure.message}"  # type: ignore[union-attr]
            )
        if failed:
            logger.warning(f"{len(failed)}/{len(outcomes)} image(s) failed to predict")
        return outcomes


def predict(
    artifact: ModelArtifact,
    source: ImageSource,
    extractor: FeatureExtractor | None = None,
) -> PredictionResult:
    """One-shot prediction; prefer a reusable :class:`PredictionEngine` in loops."""
    return PredictionEngine(artifact, extractor).predict(source)
