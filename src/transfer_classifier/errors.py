"""Exception hierarchy for transfer_classifier.

Every error derives from :class:`ClassifierError` and belongs to exactly one
category (``data``, ``image``, ``training``, ``artifact``, ``configuration``).
The Hydra entrypoint uses ``category`` to print a categorized fatal message.
"""

from __future__ import annotations


class ClassifierError(Exception):
    """Root of all transfer_classifier errors."""

    category = "internal"


# ---------------------------------------------------------------------------
# Data
# ---------------------------------------------------------------------------


class DataError(ClassifierError):
    """Empty or malformed dataset, unknown label."""

    category = "data"


class EmptyDatasetError(DataError):
    """No records were supplied where at least one is required."""


class UnknownLabelError(DataError):
    """A label is not present in the vocabulary."""

    def __init__(self, label: str) -> None:
        super().__init__(f"Unknown label: {label!r}")
        self.label = label


class IndexOutOfRangeError(DataError, IndexError):
    """A label index is outside ``[0, len(vocabulary))``."""

    def __init__(self, index: int, size: int) -> None:
        super().__init__(
            f"Label index {index} out of range for vocabulary of size {size}"
        )
        self.index = index
        self.size = size


class NoTrainingDataError(DataError):
    """The training split is empty (or every training image failed to decode)."""


class EmptyTestSetError(DataError):
    """Evaluation was requested on an empty test set."""


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------


class ImageDecodeError(ClassifierError):
    """Image bytes could not be turned into a backbone input."""

    category = "image"


class CorruptImageError(ImageDecodeError):
    """Bytes cannot be decoded as an image."""


class UnsupportedFormatError(ImageDecodeError):
    """Image decodes but its mode or size cannot be fed to the backbone."""


# ---------------------------------------------------------------------------
# Training
# ---------------------------------------------------------------------------


class TrainingDivergenceError(ClassifierError):
    """Optimization produced non-finite values."""

    category = "training"


class DivergedTrainingError(TrainingDivergenceError):
    """Loss became NaN or infinite during fitting."""

    def __init__(self, epoch: int, batch: int, loss: float) -> None:
        super().__init__(
            f"Training diverged at epoch {epoch}, batch {batch}: loss={loss}"
        )
        self.epoch = epoch
        self.batch = batch
        self.loss = loss


class TrainingCancelledError(ClassifierError):
    """The caller requested cancellation of a long-running stage."""

    category = "training"


# ---------------------------------------------------------------------------
# Artifacts
# ---------------------------------------------------------------------------


class ArtifactIOError(ClassifierError):
    """Model archive could not be written or read."""

    category = "artifact"


class CorruptArtifactError(ArtifactIOError):
    """Archive is structurally invalid."""


class VersionMismatchError(ArtifactIOError):
    """Archive format version is not supported by this release."""

    def __init__(self, found: object, supported: tuple[int, ...]) -> None:
        super().__init__(
            f"Unsupported model archive version {found!r} "
            f"(supported: {', '.join(str(v) for v in supported)})"
        )
        self.found = found
        self.supported = supported


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigurationError(ClassifierError, ValueError):
    """Invalid hyperparameter or pipeline option."""

    category = "configuration"


class InvalidFractionError(ConfigurationError):
    """Split fraction outside ``(0, 1)`` or too few records to split."""
