"""Tests for ClassifierHead and HeadClassificationModule."""

from __future__ import annotations

import math

import pytest
import torch

from transfer_classifier.errors import DivergedTrainingError
from transfer_classifier.models.head import ClassifierHead, HeadClassificationModule
from transfer_classifier.types import BottleneckBatch


@pytest.fixture()
def batch() -> BottleneckBatch:
    return {
        "embeddings": torch.randn(6, 8),
        "labels": torch.tensor([0, 1, 2, 0, 1, 2]),
    }


class TestClassifierHead:
    def test_scores_sum_to_one(self) -> None:
        head = ClassifierHead(embedding_dim=8, num_classes=3)
        scores = head.scores(torch.randn(4, 8))
        assert scores.shape == (4, 3)
        assert torch.allclose(scores.sum(dim=-1), torch.ones(4))
        assert bool((scores >= 0).all())

    def test_freeze(self) -> None:
        head = ClassifierHead(embedding_dim=8, num_classes=3).freeze()
        assert not head.training
        assert all(not p.requires_grad for p in head.parameters())


class TestHeadClassificationModule:
    def test_only_head_parameters(self) -> None:
        module = HeadClassificationModule(embedding_dim=8, num_classes=3)
        assert sum(p.numel() for p in module.parameters()) == 8 * 3 + 3

    def test_hparams_saved(self) -> None:
        module = HeadClassificationModule(
            embedding_dim=8, num_classes=3, optimizer="adamw"
        )
        assert module.hparams["num_classes"] == 3
        assert module.hparams["optimizer"] == "adamw"

    def test_finite_loss(self, batch: BottleneckBatch) -> None:
        module = HeadClassificationModule(embedding_dim=8, num_classes=3)
        logits = module(batch["embeddings"])
        loss = module._checked_loss(logits, batch["labels"], batch_idx=0)
        assert math.isfinite(float(loss))

    def test_non_finite_loss_raises(self, batch: BottleneckBatch) -> None:
        module = HeadClassificationModule(embedding_dim=8, num_classes=3)
        logits = torch.full((6, 3), float("nan"))
        with pytest.raises(DivergedTrainingError) as exc_info:
            module._checked_loss(logits, batch["labels"], batch_idx=4)
        assert exc_info.value.batch == 4
        assert math.isnan(exc_info.value.loss)

    @pytest.mark.parametrize(
        "name, cls", [("sgd", torch.optim.SGD), ("adamw", torch.optim.AdamW)]
    )
    def test_optimizer_and_decay(
        self, name: str, cls: type[torch.optim.Optimizer]
    ) -> None:
        module = HeadClassificationModule(
            embedding_dim=8,
            num_classes=3,
            learning_rate=0.01,
            lr_decay_rate=0.5,
            lr_decay_epochs=2,
            optimizer=name,
        )
        config = module.configure_optimizers()
        optimizer = config["optimizer"]
        scheduler = config["lr_scheduler"]["scheduler"]
        assert isinstance(optimizer, cls)
        lrs = []
        for _ in range(5):
            lrs.append(optimizer.param_groups[0]["lr"])
            optimizer.step()
            scheduler.step()
        assert lrs == pytest.approx([0.01, 0.01, 0.005, 0.005, 0.0025])
