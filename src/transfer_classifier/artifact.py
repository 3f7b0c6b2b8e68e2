"""The trained model: backbone identifier, head, vocabulary, and schemas."""

from __future__ import annotations

import copy
from dataclasses import dataclass

import torch

from transfer_classifier.data.vocabulary import LabelVocabulary
from transfer_classifier.errors import CorruptArtifactError
from transfer_classifier.models.head import ClassifierHead
from transfer_classifier.schemas.artifact import InputSchema, OutputSchema

# Head parameters compare equal within this absolute tolerance.
PARAM_ATOL = 1e-6


@dataclass(frozen=True, eq=False)
class ModelArtifact:
    """Immutable result of a training run, shared freely after creation.

    The artifact keeps a frozen copy of ``head`` (CPU, eval mode, no gradients)
    so any number of prediction engines may run it concurrently; the module
    passed in is left as it was.
    """

    backbone_id: str
    head: ClassifierHead
    vocabulary: LabelVocabulary
    input_schema: InputSchema
    output_schema: OutputSchema

    def __post_init__(self) -> None:
        if self.head.num_classes != len(self.vocabulary):
            raise CorruptArtifactError(
                f"Head has {self.head.num_classes} outputs but vocabulary has "
                f"{len(self.vocabulary)} labels"
            )
        if self.head.embedding_dim != self.input_schema.embedding_dim:
            raise CorruptArtifactError(
                f"Head expects {self.head.embedding_dim}-d embeddings but input "
                f"schema declares {self.input_schema.embedding_dim}"
            )
        if self.output_schema.num_classes != len(self.vocabulary):
            raise CorruptArtifactError(
                "Output schema num_classes disagrees with the vocabulary"
            )
        object.__setattr__(self, "head", copy.deepcopy(self.head).freeze())

    def scores(self, embeddings: torch.Tensor) -> torch.Tensor:
        """Softmax scores for a ``(B, D)`` or ``(D,)`` embedding tensor."""
        return self.head.scores(embeddings.to(torch.float32))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ModelArtifact):
            return NotImplemented
        if (
            self.backbone_id != other.backbone_id
            or self.vocabulary != other.vocabulary
            or self.input_schema != other.input_schema
            or self.output_schema != other.output_schema
        ):
            return False
        mine, theirs = self.head.state_dict(), other.head.state_dict()
        if mine.keys() != theirs.keys():
            return False
        return all(
            mine[k].shape == theirs[k].shape
            and torch.allclose(mine[k], theirs[k], rtol=0.0, atol=PARAM_ATOL)
            for k in mine
        )

    __hash__ = None  # type: ignore[assignment]
