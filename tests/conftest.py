"""Shared pytest fixtures for transfer_classifier tests."""

from __future__ import annotations

import threading
from io import BytesIO
from pathlib import Path

import numpy as np
import pytest
import torch
from PIL import Image

from transfer_classifier.artifact import ModelArtifact
from transfer_classifier.config import TrainerConfig
from transfer_classifier.data.vocabulary import LabelVocabulary
from transfer_classifier.models.head import ClassifierHead
from transfer_classifier.schemas.artifact import InputSchema, OutputSchema
from transfer_classifier.schemas.records import ImageRecord, ImageSource
from transfer_classifier.transforms.preprocessing import decode_image

# Base colour per label; every label is a vertex of the colour-space hull so a
# linear head on mean colour separates them.
FLOWER_COLORS: dict[str, tuple[int, int, int]] = {
    "daisy": (245, 245, 245),
    "dandelion": (235, 215, 20),
    "rose": (210, 20, 40),
    "sunflower": (250, 130, 0),
    "tulip": (140, 30, 190),
}
FLOWER_LABELS = sorted(FLOWER_COLORS)


def write_flower_image(path: Path, label: str, variant: int = 0) -> Path:
    """Solid-colour JPEG, slightly jittered per ``variant`` so files differ."""
    r, g, b = FLOWER_COLORS[label]
    jitter = (variant % 5) - 2
    color = tuple(min(max(c + jitter, 0), 255) for c in (r, g, b))
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", (32, 32), color=color).save(path)
    return path


class MeanColorExtractor:
    """Deterministic stand-in backbone: embedding is the image's mean RGB in [0, 1]."""

    def __init__(self, backbone_id: str = "mean-color") -> None:
        self._backbone_id = backbone_id
        self._schema = InputSchema(
            image_size=32, resize_size=32, embedding_dim=3, pretrained=False
        )
        self.calls = 0
        self._lock = threading.Lock()

    @property
    def backbone_id(self) -> str:
        return self._backbone_id

    @property
    def embedding_dim(self) -> int:
        return 3

    @property
    def input_schema(self) -> InputSchema:
        return self._schema

    def extract(self, source: ImageSource) -> torch.Tensor:
        with self._lock:
            self.calls += 1
        image = np.asarray(decode_image(source), dtype=np.float32) / 255.0
        return torch.from_numpy(image.mean(axis=(0, 1)))


@pytest.fixture()
def extractor() -> MeanColorExtractor:
    return MeanColorExtractor()


@pytest.fixture()
def flower_dir(tmp_path: Path) -> Path:
    """``flowers/<label>/<label>_NN.jpg``: 5 labels x 6 images = 30 images."""
    root = tmp_path / "flowers"
    for label in FLOWER_LABELS:
        for i in range(6):
            write_flower_image(root / label / f"{label}_{i:02d}.jpg", label, i)
    return root


@pytest.fixture()
def predict_dir(tmp_path: Path) -> Path:
    """Flat folder of unlabeled test images named by filename prefix."""
    root = tmp_path / "test-images"
    for label in FLOWER_LABELS:
        write_flower_image(root / f"{label}1.jpg", label, 3)
    return root


def make_records(
    label_counts: dict[str, int], root: Path | None = None
) -> list[ImageRecord]:
    """Labeled records, written to ``root`` as JPEGs or kept as in-memory bytes."""
    records: list[ImageRecord] = []
    for label, count in label_counts.items():
        for i in range(count):
            identifier = f"{label}/{label}_{i:03d}.jpg"
            if root is not None:
                source: Path | bytes = write_flower_image(root / identifier, label, i)
            else:
                buf = BytesIO()
                r, g, b = FLOWER_COLORS.get(label, (128, 128, 128))
                Image.new("RGB", (16, 16), color=(r, g, b)).save(buf, format="PNG")
                source = buf.getvalue()
            records.append(
                ImageRecord(identifier=identifier, source=source, label=label)
            )
    return records


@pytest.fixture()
def flower_records() -> list[ImageRecord]:
    """30 in-memory records, 6 per flower label."""
    return make_records({label: 6 for label in FLOWER_LABELS})


@pytest.fixture()
def vocabulary() -> LabelVocabulary:
    return LabelVocabulary(FLOWER_LABELS)


@pytest.fixture()
def prototype_head() -> ClassifierHead:
    """Nearest-colour-prototype head over :class:`MeanColorExtractor` embeddings.

    ``logit_c = mu_c . x - |mu_c|^2 / 2`` scaled up so softmax is confident.
    """
    prototypes = torch.tensor(
        [FLOWER_COLORS[label] for label in FLOWER_LABELS], dtype=torch.float32
    ) / 255.0
    head = ClassifierHead(embedding_dim=3, num_classes=len(FLOWER_LABELS))
    with torch.no_grad():
        head.linear.weight.copy_(prototypes * 50.0)
        head.linear.bias.copy_(-(prototypes**2).sum(dim=1) / 2 * 50.0)
    return head


@pytest.fixture()
def trainer_config() -> TrainerConfig:
    """Small, fast CPU config without console tables."""
    return TrainerConfig(
        max_epochs=5,
        batch_size=10,
        learning_rate=0.5,
        accelerator="cpu",
        num_threads=2,
        show_statistics=False,
    )


@pytest.fixture()
def artifact(
    prototype_head: ClassifierHead,
    vocabulary: LabelVocabulary,
    extractor: MeanColorExtractor,
) -> ModelArtifact:
    """Hand-built artifact whose head classifies flower colours correctly."""
    return ModelArtifact(
        backbone_id=extractor.backbone_id,
        head=prototype_head,
        vocabulary=vocabulary,
        input_schema=extractor.input_schema,
        output_schema=OutputSchema(num_classes=len(vocabulary)),
    )
