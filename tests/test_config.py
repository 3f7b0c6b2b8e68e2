"""Tests for the frozen pydantic configuration models."""

from __future__ import annotations

import pydantic
import pytest

from transfer_classifier.config import (
    PipelineConfig,
    SplitConfig,
    StoppingPolicy,
    TrainerConfig,
    build_config,
)
from transfer_classifier.errors import ConfigurationError


class TestTrainerConfig:
    def test_defaults(self) -> None:
        cfg = TrainerConfig()
        assert cfg.max_epochs == 100
        assert cfg.batch_size == 10
        assert cfg.learning_rate == pytest.approx(0.01)
        assert cfg.early_stopping is None

    def test_frozen(self) -> None:
        cfg = TrainerConfig()
        with pytest.raises(pydantic.ValidationError):
            cfg.max_epochs = 3  # type: ignore[misc]

    @pytest.mark.parametrize(
        "field, value",
        [
            ("max_epochs", 0),
            ("batch_size", -1),
            ("learning_rate", 0.0),
            ("lr_decay_rate", 1.5),
        ],
    )
    def test_rejects_invalid(self, field: str, value: float) -> None:
        with pytest.raises(pydantic.ValidationError):
            TrainerConfig(**{field: value})

    def test_learning_rate_decay_staircase(self) -> None:
        cfg = TrainerConfig()
        assert cfg.learning_rate_at(0) == pytest.approx(0.01)
        assert cfg.learning_rate_at(1) == pytest.approx(0.01)
        assert cfg.learning_rate_at(2) == pytest.approx(0.0094)
        assert cfg.learning_rate_at(49) == pytest.approx(0.002265, abs=1e-6)


class TestStoppingPolicy:
    def test_accuracy_monitors_max(self) -> None:
        policy = StoppingPolicy()
        assert policy.monitor == "val/accuracy"
        assert policy.mode == "max"

    def test_loss_monitors_min(self) -> None:
        policy = StoppingPolicy(metric="loss")
        assert policy.monitor == "val/loss"
        assert policy.mode == "min"

    def test_patience_must_be_positive(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            StoppingPolicy(patience=0)


class TestSplitConfig:
    @pytest.mark.parametrize("fraction", [0.0, 1.0, -0.1, 1.2])
    def test_fraction_bounds(self, fraction: float) -> None:
        with pytest.raises(pydantic.ValidationError):
            SplitConfig(test_fraction=fraction)


class TestBuildConfig:
    def test_nested_dict(self) -> None:
        cfg = build_config(
            PipelineConfig,
            {
                "train_dir": "assets/images",
                "trainer": {"max_epochs": 50, "early_stopping": {"patience": 5}},
            },
        )
        assert cfg.trainer.max_epochs == 50
        assert cfg.trainer.early_stopping == StoppingPolicy(patience=5)
        assert cfg.split == SplitConfig()

    def test_invalid_raises_configuration_error(self) -> None:
        with pytest.raises(ConfigurationError, match="PipelineConfig"):
            build_config(PipelineConfig, {"train_dir": "x", "predict_count": -1})

    def test_blank_train_dir(self) -> None:
        with pytest.raises(ConfigurationError):
            build_config(PipelineConfig, {"train_dir": "  "})

    def test_configuration_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            build_config(TrainerConfig, {"optimizer": "rmsprop"})
