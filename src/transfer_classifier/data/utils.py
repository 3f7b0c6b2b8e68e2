"""Utility functions for the data pipeline."""

from pathlib import Path

IMAGE_EXTENSIONS: tuple[str, ...] = (".jpg", ".jpeg", ".png", ".bmp")


def get_files(root: Path, extensions: tuple[str, ...]) -> list[Path]:
    """Recursively find files whose lowercase suffix is in ``extensions``.

    Returns a sorted list so traversal order is reproducible across platforms.
    """
    return sorted(
        p for p in root.rglob("*") if p.is_file() and p.suffix.lower() in extensions
    )
