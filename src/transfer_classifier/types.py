"""Type aliases and TypedDicts for transfer_classifier inter-module contracts."""

from typing import TypedDict

import torch


class BottleneckBatch(TypedDict):
    """A single mini-batch of cached bottleneck embeddings.

    embeddings: Float tensor of shape (B, D), D = backbone embedding_dim.
    labels: Long tensor of shape (B,), vocabulary indices.
    """

    embeddings: torch.Tensor
    labels: torch.Tensor
