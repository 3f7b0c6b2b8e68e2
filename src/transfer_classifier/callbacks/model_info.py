"""Model info callback: reports frozen backbone vs trainable head parameters."""

from __future__ import annotations

import lightning as L
from loguru import logger
from rich import box
from rich.console import Console
from rich.table import Table


class ModelInfoCallback(L.Callback):
    """Display the frozen/trainable boundary at training start.

    Args:
        backbone_id: Identifier of the frozen feature extractor.
        backbone_params: Parameter count of the backbone, if known.
        embedding_dim: Length of the bottleneck embeddings.
    """

    def __init__(
        self,
        backbone_id: str,
        embedding_dim: int,
        backbone_params: int | None = None,
    ) -> None:
        super().__init__()
        self.backbone_id = backbone_id
        self.embedding_dim = embedding_dim
        self.backbone_params = backbone_params

    def on_fit_start(
        self, trainer: L.Trainer, pl_module: L.LightningModule
    ) -> None:
        head_params = sum(p.numel() for p in pl_module.parameters())
        trainable_params = sum(
            p.numel() for p in pl_module.parameters() if p.requires_grad
        )

        table = Table(
            title="Model Information",
            header_style="bold magenta",
            box=box.SQUARE,
            show_lines=True,
        )
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="green")
        table.add_row("Backbone (frozen)", self.backbone_id)
        if self.backbone_params is not None:
            table.add_row("Backbone Parameters", f"{self.backbone_params / 1e6:.2f} M")
        table.add_row("Embedding Dim", str(self.embedding_dim))
        table.add_row("Head Parameters", f"{head_params:,}")
        table.add_row("Trainable Parameters", f"{trainable_params:,}")
        Console().print(table)

        logger.info(
            f"Backbone: {self.backbone_id} (frozen) | "
            f"Head params: {head_params:,} ({trainable_params:,} trainable)"
        )
