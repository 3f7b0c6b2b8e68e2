"""Pydantic frozen configuration models for transfer_classifier."""

from __future__ import annotations

from typing import Any, Literal, TypeVar

from pydantic import BaseModel, Field, ValidationError, model_validator

from transfer_classifier.errors import ConfigurationError

ConfigT = TypeVar("ConfigT", bound=BaseModel)


class StoppingPolicy(BaseModel, frozen=True):
    """Early-stopping criterion on the per-epoch validation metric.

    Training stops once ``metric`` fails to improve by more than ``min_delta``
    over ``patience`` consecutive epochs.
    """

    metric: Literal["accuracy", "loss"] = "accuracy"
    min_delta: float = Field(default=0.01, ge=0.0)
    patience: int = Field(default=20, ge=1)

    @property
    def monitor(self) -> str:
        """Name of the logged Lightning metric this policy watches."""
        return f"val/{self.metric}"

    @property
    def mode(self) -> Literal["max", "min"]:
        return "max" if self.metric == "accuracy" else "min"


class TrainerConfig(BaseModel, frozen=True):
    """Hyperparameters for the classifier-head fitting loop.

    ``early_stopping=None`` disables early stopping: training then always runs
    exactly ``max_epochs`` epochs.
    """

    max_epochs: int = Field(default=100, gt=0)
    batch_size: int = Field(default=10, gt=0)
    learning_rate: float = Field(default=0.01, gt=0.0)
    lr_decay_rate: float = Field(default=0.94, gt=0.0, le=1.0)
    lr_decay_epochs: int = Field(default=2, gt=0)
    optimizer: Literal["sgd", "adamw"] = "sgd"
    momentum: float = Field(default=0.0, ge=0.0)
    weight_decay: float = Field(default=0.0, ge=0.0)
    seed: int = 1
    early_stopping: StoppingPolicy | None = None
    num_threads: int | None = Field(default=None, gt=0)
    accelerator: str = "auto"
    show_statistics: bool = True

    def learning_rate_at(self, epoch: int) -> float:
        """Staircase exponential decay, deterministic in ``epoch``."""
        steps = epoch // self.lr_decay_epochs
        return self.learning_rate * self.lr_decay_rate**steps


class SplitConfig(BaseModel, frozen=True):
    """Seeded train/test partitioning options."""

    test_fraction: float = Field(default=0.2, gt=0.0, lt=1.0)
    seed: int = 1


class PipelineConfig(BaseModel, frozen=True):
    """Full train → save → evaluate → predict run.

    All fields are validated at construction time and never mutated afterwards.
    """

    train_dir: str
    predict_dir: str | None = None
    artifact_path: str = "model.zip"
    use_folder_name_as_label: bool = True
    predict_count: int = Field(default=10, ge=0)
    split: SplitConfig = SplitConfig()
    trainer: TrainerConfig = TrainerConfig()

    @model_validator(mode="after")
    def _train_dir_not_blank(self) -> PipelineConfig:
        if not self.train_dir.strip():
            raise ValueError("train_dir must not be empty")
        return self


def build_config(model_cls: type[ConfigT], data: dict[str, Any]) -> ConfigT:
    """Validate ``data`` into ``model_cls``, raising :class:`ConfigurationError`.

    Used at the invocation surface so that invalid hyperparameters surface as a
    categorized configuration failure rather than a raw pydantic error.
    """
    try:
        return model_cls.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid {model_cls.__name__}: {exc.error_count()} error(s)\n{exc}"
        ) from exc
