"""Image decoding and backbone input normalization.

Decoding maps every failure onto the two image error kinds:
:class:`CorruptImageError` for bytes that are not an image and
:class:`UnsupportedFormatError` for images whose mode or size cannot be fed to
a 3-channel backbone.  Normalization is the deterministic val/test pipeline
(Resize → CenterCrop → float32 → ImageNet Normalize); no augmentation is ever
applied because embeddings are computed once and cached.
"""

from __future__ import annotations

import io
from pathlib import Path

import torch
from PIL import Image, UnidentifiedImageError
from torchvision.transforms import v2

from transfer_classifier.errors import CorruptImageError, UnsupportedFormatError
from transfer_classifier.schemas.artifact import InputSchema

# PIL modes that convert losslessly (or by dropping alpha) to RGB.
SUPPORTED_MODES: frozenset[str] = frozenset(
    {"1", "L", "LA", "P", "PA", "RGB", "RGBA", "RGBX", "CMYK", "YCbCr"}
)
MIN_IMAGE_SIDE = 8


def decode_image(source: Path | bytes) -> Image.Image:
    """Decode a path or raw encoded bytes into an RGB PIL image."""
    name = str(source) if isinstance(source, Path) else f"<{len(source)} bytes>"
    try:
        img = Image.open(source if isinstance(source, Path) else io.BytesIO(source))
        img.load()
    except Image.DecompressionBombError as exc:
        raise UnsupportedFormatError(f"Image too large {name}: {exc}") from exc
    except UnidentifiedImageError as exc:
        raise CorruptImageError(f"Cannot identify image {name}") from exc
    except (OSError, SyntaxError, ValueError) as exc:
        raise CorruptImageError(f"Cannot decode image {name}: {exc}") from exc

    if img.mode not in SUPPORTED_MODES:
        raise UnsupportedFormatError(
            f"Unsupported image mode {img.mode!r} for {name}; expected 8-bit channels"
        )
    if min(img.size) < MIN_IMAGE_SIDE:
        raise UnsupportedFormatError(
            f"Image {name} is {img.size[0]}x{img.size[1]}; "
            f"minimum side is {MIN_IMAGE_SIDE}px"
        )
    return img.convert("RGB")


def build_preprocess(schema: InputSchema) -> v2.Compose:
    """Deterministic resize + crop + normalize to the backbone's input resolution.

    Two passes over the same image produce identical tensors.
    """
    return v2.Compose([
        v2.Resize(schema.resize_size),
        v2.CenterCrop(schema.image_size),
        v2.ToImage(),
        v2.ToDtype(torch.float32, scale=True),
        v2.Normalize(mean=list(schema.mean), std=list(schema.std)),
    ])
