"""Dataset statistics callback: prints label distribution at training start."""

from __future__ import annotations

from collections import Counter

import lightning as L
from loguru import logger
from rich import box
from rich.console import Console
from rich.table import Table

from transfer_classifier.data.vocabulary import LabelVocabulary


class DatasetStatisticsCallback(L.Callback):
    """Print a rich table of per-label counts for the train and validation sets.

    Args:
        vocabulary: Vocabulary the head is trained against.
        train_labels: Label index of every cached training embedding.
        val_labels: Label index of every cached validation embedding.
    """

    def __init__(
        self,
        vocabulary: LabelVocabulary,
        train_labels: list[int],
        val_labels: list[int],
    ) -> None:
        super().__init__()
        self.vocabulary = vocabulary
        self.train_counts = Counter(train_labels)
        self.val_counts = Counter(val_labels)

    def on_fit_start(self, trainer: L.Trainer, pl_module: L.LightningModule) -> None:
        total_train = sum(self.train_counts.values())
        total_val = sum(self.val_counts.values())
        logger.info(
            f"Training dataset: {total_train} embeddings, "
            f"validation: {total_val}, {len(self.vocabulary)} labels"
        )

        table = Table(
            title="Label Distribution",
            header_style="bold magenta",
            box=box.SQUARE,
            show_lines=True,
        )
        table.add_column("Label", style="cyan")
        table.add_column("Index", justify="right")
        table.add_column("Train", justify="right", style="green")
        table.add_column("Train %", justify="right", style="yellow")
        table.add_column("Validation", justify="right", style="green")

        for idx, label in enumerate(self.vocabulary):
            count = self.train_counts.get(idx, 0)
            pct = count / total_train * 100 if total_train > 0 else 0.0
            table.add_row(
                repr(label) if label == "" else label,
                str(idx),
                str(count),
                f"{pct:.1f}%",
                str(self.val_counts.get(idx, 0)),
            )

        Console().print(table)

        missing = [
            label
            for idx, label in enumerate(self.vocabulary)
            if self.train_counts.get(idx, 0) == 0
        ]
        if missing:
            logger.warning(f"Labels with no training images: {missing}")
