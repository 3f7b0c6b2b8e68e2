"""Image decoding and torchvision v2 preprocessing for backbone inputs."""

from transfer_classifier.transforms.preprocessing import (
    build_preprocess,
    decode_image,
)

__all__ = [
    "build_preprocess",
    "decode_image",
]
