"""Bidirectional label ↔ dense integer key mapping."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence

from loguru import logger

from transfer_classifier.errors import (
    DataError,
    EmptyDatasetError,
    IndexOutOfRangeError,
    UnknownLabelError,
)
from transfer_classifier.schemas.records import ImageRecord


class LabelVocabulary:
    """Ordered, immutable set of label strings with stable integer keys.

    Built by sorting the distinct labels (ordinal string order), so the same
    label set always yields the same index assignment regardless of the order
    in which images were discovered.  A vocabulary loaded from a model archive
    keeps the archive's order verbatim.
    """

    __slots__ = ("_labels", "_index")

    def __init__(self, labels: Sequence[str]) -> None:
        labels = tuple(labels)
        if not labels:
            raise EmptyDatasetError("A label vocabulary needs at least one label")
        index = {label: i for i, label in enumerate(labels)}
        if len(index) != len(labels):
            raise DataError(f"Duplicate labels in vocabulary: {list(labels)}")
        self._labels = labels
        self._index = index

    @classmethod
    def build(cls, records: Iterable[ImageRecord]) -> LabelVocabulary:
        """Collect distinct labels from ``records`` and key them by sort order."""
        distinct = {record.label for record in records}
        if not distinct:
            raise EmptyDatasetError("Cannot build a label vocabulary from no records")
        vocabulary = cls(sorted(distinct))
        logger.info(f"Built label vocabulary: {len(vocabulary)} labels")
        logger.debug(f"Label vocabulary: {vocabulary.labels}")
        return vocabulary

    @property
    def labels(self) -> tuple[str, ...]:
        return self._labels

    def encode(self, label: str) -> int:
        try:
            return self._index[label]
        except KeyError:
            raise UnknownLabelError(label) from None

    def decode(self, index: int) -> str:
        if not 0 <= index < len(self._labels):
            raise IndexOutOfRangeError(index, len(self._labels))
        return self._labels[index]

    def __contains__(self, label: object) -> bool:
        return label in self._index

    def __len__(self) -> int:
        return len(self._labels)

    def __iter__(self) -> Iterator[str]:
        return iter(self._labels)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LabelVocabulary):
            return NotImplemented
        return self._labels == other._labels

    def __hash__(self) -> int:
        return hash(self._labels)

    def __repr__(self) -> str:
        return f"LabelVocabulary({list(self._labels)!r})"
