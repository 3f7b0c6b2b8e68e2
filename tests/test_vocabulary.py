"""Tests for LabelVocabulary."""

from __future__ import annotations

import pytest

from transfer_classifier.data.vocabulary import LabelVocabulary
from transfer_classifier.errors import (
    DataError,
    EmptyDatasetError,
    IndexOutOfRangeError,
    UnknownLabelError,
)
from transfer_classifier.schemas.records import ImageRecord


def _records(*labels: str) -> list[ImageRecord]:
    return [
        ImageRecord(identifier=f"{i}.jpg", source=b"", label=label)
        for i, label in enumerate(labels)
    ]


class TestBuild:
    def test_sorted_distinct(self) -> None:
        vocab = LabelVocabulary.build(_records("tulip", "daisy", "rose", "daisy"))
        assert vocab.labels == ("daisy", "rose", "tulip")
        assert len(vocab) == 3

    def test_order_independent(self) -> None:
        a = LabelVocabulary.build(_records("b", "a", "c"))
        b = LabelVocabulary.build(_records("c", "c", "b", "a"))
        assert a == b
        assert hash(a) == hash(b)

    def test_empty_raises(self) -> None:
        with pytest.raises(EmptyDatasetError):
            LabelVocabulary.build([])

    def test_empty_string_label_is_a_label(self) -> None:
        vocab = LabelVocabulary.build(_records("", "rose"))
        assert vocab.encode("") == 0


class TestEncodeDecode:
    def test_round_trip(self) -> None:
        vocab = LabelVocabulary(["daisy", "rose", "tulip"])
        for i, label in enumerate(vocab):
            assert vocab.encode(label) == i
            assert vocab.decode(i) == label

    def test_unknown_label(self) -> None:
        vocab = LabelVocabulary(["daisy"])
        with pytest.raises(UnknownLabelError) as exc_info:
            vocab.encode("orchid")
        assert exc_info.value.label == "orchid"
        assert isinstance(exc_info.value, DataError)

    @pytest.mark.parametrize("index", [-1, 2, 100])
    def test_out_of_range(self, index: int) -> None:
        vocab = LabelVocabulary(["daisy", "rose"])
        with pytest.raises(IndexOutOfRangeError):
            vocab.decode(index)

    def test_out_of_range_is_index_error(self) -> None:
        with pytest.raises(IndexError):
            LabelVocabulary(["daisy"]).decode(1)


class TestConstruction:
    def test_keeps_given_order(self) -> None:
        vocab = LabelVocabulary(["tulip", "daisy"])
        assert vocab.encode("tulip") == 0

    def test_duplicates_rejected(self) -> None:
        with pytest.raises(DataError, match="Duplicate"):
            LabelVocabulary(["a", "a"])

    def test_contains(self) -> None:
        vocab = LabelVocabulary(["a", "b"])
        assert "a" in vocab
        assert "z" not in vocab
