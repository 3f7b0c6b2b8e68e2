"""Directory-based dataset loader.

Convention: ``root/<label>/<image>``.  When folder labels are not available,
the label is the filename prefix up to the first non-letter character
(``daisy_001.jpg`` → ``daisy``).  The prefix heuristic cannot represent labels
containing digits or punctuation and is only a fallback.
"""

from __future__ import annotations

from pathlib import Path

from loguru import logger

from transfer_classifier.data.utils import IMAGE_EXTENSIONS, get_files
from transfer_classifier.errors import DataError
from transfer_classifier.schemas.records import ImageRecord


def label_from_filename(filename: str) -> str:
    """Return the leading run of letters in ``filename``."""
    for index, char in enumerate(filename):
        if not char.isalpha():
            return filename[:index]
    return filename


def load_images_from_directory(
    folder: str | Path,
    use_folder_name_as_label: bool = True,
    in_memory: bool = False,
    extensions: tuple[str, ...] = IMAGE_EXTENSIONS,
) -> list[ImageRecord]:
    """Yield one :class:`ImageRecord` per image file under ``folder``.

    Args:
        folder: Dataset root, searched recursively.
        use_folder_name_as_label: Label from the parent directory name; when
            ``False``, label from the filename prefix.
        in_memory: Read raw bytes into ``source`` instead of keeping the path.
        extensions: Lowercase file suffixes to accept.

    Raises:
        DataError: If ``folder`` is not a directory.
    """
    root = Path(folder)
    if not root.is_dir():
        raise DataError(f"Image directory not found: {root}")

    records: list[ImageRecord] = []
    unlabeled = 0
    for path in get_files(root, extensions):
        if use_folder_name_as_label:
            label = path.parent.name
        else:
            label = label_from_filename(path.name)
        if not label:
            unlabeled += 1
        source: Path | bytes = path.read_bytes() if in_memory else path
        records.append(
            ImageRecord(
                identifier=path.relative_to(root).as_posix(),
                source=source,
                label=label,
            )
        )
    if unlabeled:
        logger.warning(
            f"{unlabeled} image(s) under {root} have an empty label "
            "(filename starts with a non-letter)"
        )
    logger.info(f"Loaded {len(records)} image records from {root}")
    return records
