"""Schemas written into the ``manifest.json`` of a model archive."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field

# ImageNet normalization statistics used by every torchvision backbone.
IMAGENET_MEAN: tuple[float, float, float] = (0.485, 0.456, 0.406)
IMAGENET_STD: tuple[float, float, float] = (0.229, 0.224, 0.225)


class InputSchema(BaseModel, frozen=True):
    """How raw images are normalized before reaching the backbone."""

    image_size: int = Field(default=224, gt=0)
    resize_size: int = Field(default=256, gt=0)
    channels: Literal[3] = 3
    mean: tuple[float, float, float] = IMAGENET_MEAN
    std: tuple[float, float, float] = IMAGENET_STD
    embedding_dim: int = Field(gt=0)
    pretrained: bool = True


class OutputSchema(BaseModel, frozen=True):
    """Shape and normalization of the prediction scores."""

    num_classes: int = Field(gt=0)
    score_normalization: Literal["softmax"] = "softmax"


class ArtifactManifest(BaseModel, frozen=True):
    """Everything in a model archive except the head tensors."""

    format_version: int
    backbone_id: str
    labels: list[str]
    input_schema: InputSchema
    output_schema: OutputSchema
    created_at: str = Field(default_factory=lambda: datetime.now(tz=UTC).isoformat())
