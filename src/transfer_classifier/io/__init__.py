"""Model archive persistence."""

from transfer_classifier.io.archive import FORMAT_VERSION, load, save

__all__ = [
    "FORMAT_VERSION",
    "load",
    "save",
]
