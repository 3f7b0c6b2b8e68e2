"""Trainable softmax classifier head and its LightningModule."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

import lightning as L
import torch
from torch.optim.lr_scheduler import LambdaLR
from torchmetrics.classification import MulticlassAccuracy

from transfer_classifier.errors import DivergedTrainingError
from transfer_classifier.types import BottleneckBatch


class ClassifierHead(torch.nn.Module):
    """Linear layer mapping embeddings to one logit per vocabulary entry.

    Scores are ``softmax(logits)``; training minimizes cross-entropy on the same
    logits, so prediction-time scores are the model's class probabilities.
    """

    def __init__(self, embedding_dim: int, num_classes: int) -> None:
        super().__init__()
        self.embedding_dim = embedding_dim
        self.num_classes = num_classes
        self.linear = torch.nn.Linear(embedding_dim, num_classes)

    def forward(self, embeddings: torch.Tensor) -> torch.Tensor:
        return self.linear(embeddings)  # type: ignore[no-any-return]

    def scores(self, embeddings: torch.Tensor) -> torch.Tensor:
        """Softmax-normalized scores, rows sum to 1."""
        with torch.no_grad():
            return torch.softmax(self(embeddings), dim=-1)

    def freeze(self) -> ClassifierHead:
        """Move to CPU, switch to eval mode, and disable gradients."""
        self.cpu().eval()
        self.requires_grad_(False)
        return self


@dataclass(frozen=True)
class EpochMetrics:
    """Train and validation metrics of one completed epoch."""

    epoch: int
    batch_count: int
    val_batch_count: int
    learning_rate: float
    train_accuracy: float
    train_loss: float
    val_accuracy: float
    val_loss: float


class HeadClassificationModule(L.LightningModule):
    """Fits a :class:`ClassifierHead` on cached bottleneck embeddings.

    The backbone never appears here: batches already contain embeddings, so the
    only trainable parameters are the head's weight and bias.  Every training
    and validation loss is checked for finiteness and a
    :class:`DivergedTrainingError` aborts the fit as soon as one is not.

    After each validation epoch ``last_epoch_metrics`` holds the epoch's
    :class:`EpochMetrics`; ``val/accuracy`` and ``val/loss`` are logged for
    early stopping.
    """

    def __init__(
        self,
        embedding_dim: int,
        num_classes: int,
        learning_rate: float = 0.01,
        lr_decay_rate: float = 0.94,
        lr_decay_epochs: int = 2,
        optimizer: str = "sgd",
        momentum: float = 0.0,
        weight_decay: float = 0.0,
    ) -> None:
        super().__init__()
        self.save_hyperparameters()
        self.head = ClassifierHead(embedding_dim, num_classes)
        self.loss_fn = torch.nn.CrossEntropyLoss()

        self.train_acc = MulticlassAccuracy(num_classes=num_classes, average="micro")
        self.val_acc = MulticlassAccuracy(num_classes=num_classes, average="micro")

        self.last_epoch_metrics: EpochMetrics | None = None
        self._reset_epoch_sums()

    def _reset_epoch_sums(self) -> None:
        self._train_loss_sum = 0.0
        self._train_count = 0
        self._batch_count = 0
        self._val_loss_sum = 0.0
        self._val_count = 0
        self._val_batch_count = 0

    def forward(self, embeddings: torch.Tensor) -> torch.Tensor:
        return self.head(embeddings)  # type: ignore[no-any-return]

    def _checked_loss(
        self, logits: torch.Tensor, labels: torch.Tensor, batch_idx: int
    ) -> torch.Tensor:
        loss: torch.Tensor = self.loss_fn(logits, labels)
        value = float(loss.detach())
        if not math.isfinite(value):
            raise DivergedTrainingError(self.current_epoch, batch_idx, value)
        return loss

    def on_train_epoch_start(self) -> None:
        self._reset_epoch_sums()
        self.train_acc.reset()

    def training_step(self, batch: BottleneckBatch, batch_idx: int) -> torch.Tensor:
        embeddings, labels = batch["embeddings"], batch["labels"]
        logits = self(embeddings)
        loss = self._checked_loss(logits, labels, batch_idx)
        self.log("train/loss", loss, on_step=True, on_epoch=True)
        self.train_acc.update(logits, labels)
        self._train_loss_sum += float(loss.detach()) * labels.numel()
        self._train_count += labels.numel()
        self._batch_count += 1
        return loss

    def validation_step(self, batch: BottleneckBatch, batch_idx: int) -> None:
        embeddings, labels = batch["embeddings"], batch["labels"]
        logits = self(embeddings)
        loss = self._checked_loss(logits, labels, batch_idx)
        self.val_acc.update(logits, labels)
        self._val_loss_sum += float(loss) * labels.numel()
        self._val_count += labels.numel()
        self._val_batch_count += 1

    def on_validation_epoch_end(self) -> None:
        if self.trainer.sanity_checking:
            return
        val_accuracy = float(self.val_acc.compute())
        val_loss = self._val_loss_sum / max(self._val_count, 1)
        train_accuracy = float(self.train_acc.compute()) if self._train_count else 0.0
        train_loss = self._train_loss_sum / max(self._train_count, 1)

        self.log("val/accuracy", val_accuracy, prog_bar=True)
        self.log("val/loss", val_loss)
        self.last_epoch_metrics = EpochMetrics(
            epoch=self.current_epoch,
            batch_count=self._batch_count,
            val_batch_count=self._val_batch_count,
            learning_rate=self.trainer.optimizers[0].param_groups[0]["lr"],
            train_accuracy=train_accuracy,
            train_loss=train_loss,
            val_accuracy=val_accuracy,
            val_loss=val_loss,
        )
        self.val_acc.reset()
        self._val_loss_sum = 0.0
        self._val_count = 0
        self._val_batch_count = 0

    def configure_optimizers(self) -> dict[str, Any]:  # type: ignore[override]
        if self.hparams["optimizer"] == "adamw":
            optimizer: torch.optim.Optimizer = torch.optim.AdamW(
                self.head.parameters(),
                lr=self.hparams["learning_rate"],
                weight_decay=self.hparams["weight_decay"],
            )
        else:
            optimizer = torch.optim.SGD(
                self.head.parameters(),
                lr=self.hparams["learning_rate"],
                momentum=self.hparams["momentum"],
                weight_decay=self.hparams["weight_decay"],
            )
        decay_rate = float(self.hparams["lr_decay_rate"])
        decay_epochs = int(self.hparams["lr_decay_epochs"])
        scheduler = LambdaLR(
            optimizer,
            lr_lambda=lambda epoch: decay_rate ** (epoch // decay_epochs),
        )
        return {
            "optimizer": optimizer,
            "lr_scheduler": {"scheduler": scheduler, "interval": "epoch"},
        }
