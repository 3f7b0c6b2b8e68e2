"""Bottleneck (embedding) computation over the frozen backbone.

Embeddings are computed once per image and cached for every epoch of head
fitting.  Extraction fans out over a thread pool; results are re-associated
with their originating record so label alignment never depends on completion
order.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from dataclasses import dataclass

import torch
from loguru import logger
from torch.utils.data import DataLoader, Dataset

from transfer_classifier.callbacks.metrics import MetricsSink
from transfer_classifier.data.vocabulary import LabelVocabulary
from transfer_classifier.errors import ImageDecodeError, UnsupportedFormatError
from transfer_classifier.models.backbone import FeatureExtractor
from transfer_classifier.schemas.records import (
    DatasetKind,
    ImageRecord,
    ItemFailure,
    Phase,
    ProgressRecord,
)
from transfer_classifier.types import BottleneckBatch
from transfer_classifier.utils.parallel import parallel_map


@dataclass(frozen=True, eq=False)
class BottleneckSet(Dataset[tuple[torch.Tensor, int]]):
    """Cached embeddings with their label indices and source records.

    ``records[i]`` is a back-reference to the record that produced
    ``embeddings[i]``; records that failed to decode are in ``failures``.
    """

    embeddings: torch.Tensor
    labels: torch.Tensor
    records: tuple[ImageRecord, ...]
    failures: tuple[ItemFailure, ...] = ()

    def __len__(self) -> int:
        return len(self.records)

    def __getitem__(self, idx: int) -> tuple[torch.Tensor, int]:
        return self.embeddings[idx], int(self.labels[idx])


def extract_one(
    extractor: FeatureExtractor, record: ImageRecord
) -> torch.Tensor | ItemFailure:
    """Embed one record, converting image errors into an :class:`ItemFailure`."""
    try:
        embedding = extractor.extract(record.source)
    except ImageDecodeError as exc:
        return ItemFailure(
            identifier=record.identifier, category=exc.category, message=str(exc)
        )
    if embedding.shape != (extractor.embedding_dim,):
        return ItemFailure(
            identifier=record.identifier,
            category=UnsupportedFormatError.category,
            message=(
                f"Backbone returned shape {tuple(embedding.shape)}, "
                f"expected ({extractor.embedding_dim},)"
            ),
        )
    return embedding


def compute_bottlenecks(
    extractor: FeatureExtractor,
    records: Sequence[ImageRecord],
    vocabulary: LabelVocabulary,
    dataset: DatasetKind,
    metrics_sink: MetricsSink | None = None,
    num_threads: int | None = None,
    cancel_event: threading.Event | None = None,
) -> BottleneckSet:
    """Run the frozen backbone over every record exactly once.

    Every record's label must be in ``vocabulary``.  Per-image progress is
    reported to ``metrics_sink`` as ``Bottleneck Computation`` records.

    Raises:
        UnknownLabelError: If a record's label is not in ``vocabulary``.
        TrainingCancelledError: If ``cancel_event`` is set between images.
    """
    label_indices = [vocabulary.encode(record.label) for record in records]

    embeddings: list[torch.Tensor] = []
    labels: list[int] = []
    kept: list[ImageRecord] = []
    failures: list[ItemFailure] = []

    outcomes = parallel_map(
        lambda record: extract_one(extractor, record),
        records,
        num_threads=num_threads,
        desc=f"Bottleneck {dataset}",
        cancel_event=cancel_event,
    )
    for index, (record, label, outcome) in enumerate(
        zip(records, label_indices, outcomes, strict=True)
    ):
        if metrics_sink is not None:
            metrics_sink.emit(
                ProgressRecord(phase=Phase.BOTTLENECK, dataset=dataset, index=index)
            )
        if isinstance(outcome, ItemFailure):
            logger.warning(f"Skipping {outcome.identifier}: {outcome.message}")
            failures.append(outcome)
            continue
        embeddings.append(outcome)
        labels.append(label)
        kept.append(record)

    stacked = (
        torch.stack(embeddings)
        if embeddings
        else torch.empty(0, extractor.embedding_dim)
    )
    logger.info(
        f"Computed {len(kept)} {dataset} bottlenecks "
        f"({stacked.shape[-1]}-d), {len(failures)} failed"
    )
    return BottleneckSet(
        embeddings=stacked,
        labels=torch.tensor(labels, dtype=torch.long),
        records=tuple(kept),
        failures=tuple(failures),
    )


def collate_bottlenecks(batch: list[tuple[torch.Tensor, int]]) -> BottleneckBatch:
    """Collate (embedding, label) tuples into a :class:`BottleneckBatch` dict."""
    embeddings = torch.stack([item[0] for item in batch])
    labels = torch.tensor([item[1] for item in batch], dtype=torch.long)
    return {"embeddings": embeddings, "labels": labels}


def bottleneck_loader(
    bottlenecks: BottleneckSet,
    batch_size: int,
    shuffle: bool,
    seed: int = 0,
) -> DataLoader[tuple[torch.Tensor, int]]:
    """In-process DataLoader over cached embeddings.

    Training loaders reshuffle every epoch from a generator seeded with
    ``seed``; the last batch may be smaller than ``batch_size``.
    """
    generator = torch.Generator().manual_seed(seed) if shuffle else None
    return DataLoader(
        bottlenecks,
        batch_size=batch_size,
        shuffle=shuffle,
        generator=generator,
        num_workers=0,
        drop_last=False,
        collate_fn=collate_bottlenecks,
    )
