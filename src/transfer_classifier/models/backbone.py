"""Frozen torchvision backbones used as bottleneck feature extractors."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import torch
import torchvision.models as tv_models
from loguru import logger

from transfer_classifier.errors import ConfigurationError
from transfer_classifier.schemas.artifact import InputSchema
from transfer_classifier.schemas.records import ImageSource
from transfer_classifier.transforms.preprocessing import build_preprocess, decode_image
from transfer_classifier.utils.hydra import register


@runtime_checkable
class FeatureExtractor(Protocol):
    """Capability: map raw image bytes to a fixed-length embedding.

    Implementations must be pure with respect to their parameters (nothing is
    updated by ``extract``) and safe to call from several threads at once.
    """

    @property
    def backbone_id(self) -> str:
        """Identifier persisted in the model archive."""
        ...

    @property
    def embedding_dim(self) -> int:
        """Length of every vector returned by :meth:`extract`."""
        ...

    @property
    def input_schema(self) -> InputSchema:
        """Normalization applied before the backbone."""
        ...

    def extract(self, source: ImageSource) -> torch.Tensor:
        """Return a 1-D float32 embedding of shape ``(embedding_dim,)``.

        Raises:
            CorruptImageError: If the bytes are not an image.
            UnsupportedFormatError: If the image cannot be fed to the backbone.
        """
        ...


def _strip_classifier(model: torch.nn.Module) -> int:
    """Replace the final classification layer with Identity; return its in_features.

    Handles the three torchvision head layouts: ``fc`` (ResNet family),
    ``classifier`` (MobileNet / EfficientNet / ConvNeXt, last Linear of a
    Sequential) and ``heads.head`` (ViT).
    """
    fc = getattr(model, "fc", None)
    if isinstance(fc, torch.nn.Linear):
        model.fc = torch.nn.Identity()
        return fc.in_features

    classifier = getattr(model, "classifier", None)
    if isinstance(classifier, torch.nn.Sequential) and isinstance(
        classifier[-1], torch.nn.Linear
    ):
        in_features = classifier[-1].in_features
        classifier[-1] = torch.nn.Identity()
        return in_features

    heads = getattr(model, "heads", None)
    if heads is not None and isinstance(getattr(heads, "head", None), torch.nn.Linear):
        in_features = heads.head.in_features
        heads.head = torch.nn.Identity()
        return in_features

    raise ConfigurationError(
        f"Cannot locate a final Linear layer on {type(model).__name__}"
    )


@register(
    group="backbone", name="efficientnet_b0", arch="efficientnet_b0", pretrained=True
)
@register(
    group="backbone", name="mobilenet_v2", arch="mobilenet_v2", pretrained=True
)
@register(
    group="backbone", name="resnet101", arch="resnet101", pretrained=True
)
@register(
    group="backbone", name="resnet50", arch="resnet50", pretrained=True
)
@register(
    group="backbone", name="resnet18", arch="resnet18", pretrained=True
)
class TorchvisionFeatureExtractor:
    """ImageNet-pretrained torchvision classifier with its final layer removed.

    The network is put in eval mode and every parameter has
    ``requires_grad=False``; :meth:`extract` runs under ``torch.no_grad``.
    Pass ``pretrained=False`` in tests to skip the weight download.

    Args:
        arch: Any name accepted by ``torchvision.models.get_model``.
        pretrained: Load the architecture's default ImageNet weights.
        image_size: Square crop fed to the network.
        resize_size: Shorter-side resize applied before the crop.
        device: Torch device for the forward pass.
    """

    def __init__(
        self,
        arch: str = "resnet50",
        pretrained: bool = True,
        image_size: int = 224,
        resize_size: int = 256,
        device: str = "cpu",
    ) -> None:
        if arch not in tv_models.list_models(module=tv_models):
            raise ConfigurationError(f"Unknown torchvision architecture: {arch!r}")
        weights = "DEFAULT" if pretrained else None
        model = tv_models.get_model(arch, weights=weights)
        embedding_dim = _strip_classifier(model)
        model.eval()
        model.requires_grad_(False)

        self._arch = arch
        self._device = torch.device(device)
        self._model = model.to(self._device)
        self._schema = InputSchema(
            image_size=image_size,
            resize_size=resize_size,
            embedding_dim=embedding_dim,
            pretrained=pretrained,
        )
        self._preprocess = build_preprocess(self._schema)
        logger.info(
            f"Loaded frozen backbone {arch} (pretrained={pretrained}, "
            f"embedding_dim={embedding_dim}, device={self._device})"
        )

    @property
    def backbone_id(self) -> str:
        return self._arch

    @property
    def embedding_dim(self) -> int:
        return self._schema.embedding_dim

    @property
    def input_schema(self) -> InputSchema:
        return self._schema

    @property
    def num_parameters(self) -> int:
        return sum(p.numel() for p in self._model.parameters())

    def extract(self, source: ImageSource) -> torch.Tensor:
        image = decode_image(source)
        tensor = self._preprocess(image).unsqueeze(0).to(self._device)
        with torch.no_grad():
            features = self._model(tensor)
        return features.reshape(-1).to("cpu", torch.float32)


def build_feature_extractor(
    backbone_id: str, schema: InputSchema, device: str = "cpu"
) -> TorchvisionFeatureExtractor:
    """Recreate the extractor a model archive was trained against."""
    extractor = TorchvisionFeatureExtractor(
        arch=backbone_id,
        pretrained=schema.pretrained,
        image_size=schema.image_size,
        resize_size=schema.resize_size,
        device=device,
    )
    if extractor.embedding_dim != schema.embedding_dim:
        raise ConfigurationError(
            f"Backbone {backbone_id} produces {extractor.embedding_dim}-d embeddings, "
            f"archive expects {schema.embedding_dim}"
        )
    return extractor
