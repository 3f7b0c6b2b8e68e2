"""Deterministic, seeded shuffling and train/test splitting."""

from __future__ import annotations

from collections.abc import Sequence

import torch
from loguru import logger

from transfer_classifier.errors import InvalidFractionError
from transfer_classifier.schemas.records import ImageRecord


def _canonical_order(records: Sequence[ImageRecord]) -> list[ImageRecord]:
    """Sort by (identifier, label) so the permutation depends only on the multiset."""
    return sorted(records, key=lambda r: (r.identifier, r.label))


def _permutation(n: int, seed: int) -> list[int]:
    generator = torch.Generator().manual_seed(seed)
    return torch.randperm(n, generator=generator).tolist()


def shuffle(records: Sequence[ImageRecord], seed: int) -> list[ImageRecord]:
    """Return ``records`` in a pseudo-random order keyed only by ``seed``.

    The same seed and the same multiset of records always produce the same
    order, independent of input order and of any process-wide RNG state.
    """
    ordered = _canonical_order(records)
    return [ordered[i] for i in _permutation(len(ordered), seed)]


def split(
    records: Sequence[ImageRecord],
    test_fraction: float,
    seed: int,
) -> tuple[list[ImageRecord], list[ImageRecord]]:
    """Partition ``records`` into ``(train, test)`` using the seeded permutation.

    ``|test| = round(|records| * test_fraction)`` with Python rounding, so a
    small corpus may leave either side empty.  The trainer rejects an empty
    training split and the evaluator an empty test split.

    Raises:
        InvalidFractionError: If ``test_fraction`` is outside ``(0, 1)`` or
            fewer than two records are supplied.
    """
    if not 0.0 < test_fraction < 1.0:
        raise InvalidFractionError(
            f"test_fraction must be in (0, 1), got {test_fraction}"
        )
    if len(records) < 2:
        raise InvalidFractionError(
            f"Need at least 2 records to split, got {len(records)}"
        )
    shuffled = shuffle(records, seed)
    n_test = round(len(shuffled) * test_fraction)
    test, train = shuffled[:n_test], shuffled[n_test:]
    logger.info(
        f"Split {len(shuffled)} records (seed={seed}, "
        f"test_fraction={test_fraction}): train={len(train)}, test={len(test)}"
    )
    return train, test
