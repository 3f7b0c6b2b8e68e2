"""Training entrypoint for transfer_classifier.

Usage:
    transfer-classifier-train train_dir=assets/images                # defaults
    transfer-classifier-train train_dir=... backbone=resnet18         # swap backbone
    transfer-classifier-train train_dir=... trainer.max_epochs=50     # override epochs
    transfer-classifier-train train_dir=... split.test_fraction=0.3
"""

import sys
from pathlib import Path

import hydra
from hydra.core.hydra_config import HydraConfig
from loguru import logger
from omegaconf import DictConfig, OmegaConf

# CRITICAL: import models to trigger @register decorators BEFORE Hydra parses config
import transfer_classifier.models  # noqa: F401
from transfer_classifier.config import PipelineConfig, build_config
from transfer_classifier.errors import ClassifierError, ConfigurationError
from transfer_classifier.models.backbone import FeatureExtractor
from transfer_classifier.pipeline import run_pipeline


def _resolve_artifact_path(artifact_path: str) -> Path:
    path = Path(artifact_path)
    if path.is_absolute():
        return path
    return Path(HydraConfig.get().runtime.output_dir) / path


@hydra.main(version_base=None, config_path="conf", config_name="train")
def main(cfg: DictConfig) -> None:
    """Run the full pipeline with the given Hydra config."""
    logger.remove()
    logger.add(sys.stderr, level=cfg.get("log_level", "INFO"))

    logger.info(f"Configuration:\n{OmegaConf.to_yaml(cfg)}")

    try:
        raw = OmegaConf.to_container(cfg, resolve=True)
        if not isinstance(raw, dict):
            raise ConfigurationError(
                f"Expected a mapping config, got {type(raw).__name__}"
            )
        raw.pop("backbone", None)
        raw.pop("log_level", None)
        config = build_config(PipelineConfig, raw)

        extractor: FeatureExtractor = hydra.utils.instantiate(cfg.backbone)
        result = run_pipeline(
            config,
            extractor,
            artifact_path=_resolve_artifact_path(config.artifact_path),
        )
    except ClassifierError as exc:
        logger.error(f"{exc.category} error: {exc}")
        sys.exit(1)

    logger.info(
        f"Done: {result.training.epochs_run} epochs, "
        f"micro-accuracy {result.evaluation.micro_accuracy:.4f}, "
        f"model saved to {result.artifact_path}"
    )


if __name__ == "__main__":
    main()
