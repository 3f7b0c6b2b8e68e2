"""Data pipeline for transfer_classifier."""

from transfer_classifier.data.loader import (
    label_from_filename,
    load_images_from_directory,
)
from transfer_classifier.data.splitting import shuffle, split
from transfer_classifier.data.vocabulary import LabelVocabulary

__all__ = [
    "LabelVocabulary",
    "label_from_filename",
    "load_images_from_directory",
    "shuffle",
    "split",
]
