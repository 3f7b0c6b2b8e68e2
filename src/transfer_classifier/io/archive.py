"""Versioned model archive (``model.zip``) read/write.

Layout::

    manifest.json   orjson: format_version, backbone_id, labels, schemas
    head.pt         torch state_dict of the ClassifierHead

Saving to a path writes a temporary sibling file and renames it into place
only after the archive is complete, so a failed save never leaves a partial
artifact behind.
"""

from __future__ import annotations

import io
import os
import pickle
import tempfile
import zipfile
import zlib
from pathlib import Path
from typing import IO

import orjson
import torch
from loguru import logger
from pydantic import ValidationError

from transfer_classifier.artifact import ModelArtifact
from transfer_classifier.data.vocabulary import LabelVocabulary
from transfer_classifier.errors import (
    ArtifactIOError,
    CorruptArtifactError,
    DataError,
    VersionMismatchError,
)
from transfer_classifier.models.head import ClassifierHead
from transfer_classifier.schemas.artifact import ArtifactManifest

FORMAT_VERSION = 1
SUPPORTED_VERSIONS: tuple[int, ...] = (1,)

MANIFEST_NAME = "manifest.json"
HEAD_NAME = "head.pt"


def _write_archive(artifact: ModelArtifact, fileobj: IO[bytes]) -> None:
    manifest = ArtifactManifest(
        format_version=FORMAT_VERSION,
        backbone_id=artifact.backbone_id,
        labels=list(artifact.vocabulary.labels),
        input_schema=artifact.input_schema,
        output_schema=artifact.output_schema,
    )
    head_buf = io.BytesIO()
    torch.save(artifact.head.state_dict(), head_buf)

    with zipfile.ZipFile(fileobj, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(
            MANIFEST_NAME,
            orjson.dumps(manifest.model_dump(mode="json"), option=orjson.OPT_INDENT_2),
        )
        zf.writestr(HEAD_NAME, head_buf.getvalue())


def save(artifact: ModelArtifact, destination: str | Path | IO[bytes]) -> None:
    """Write ``artifact`` as a single versioned zip archive.

    Args:
        artifact: Trained model to persist.
        destination: Filesystem path or writable binary file object.

    Raises:
        ArtifactIOError: On any write failure; no partial file is left at
            ``destination``.
    """
    if not isinstance(destination, str | Path):
        try:
            _write_archive(artifact, destination)
        except (OSError, RuntimeError, zipfile.BadZipFile) as exc:
            raise ArtifactIOError(f"Failed to write model archive: {exc}") from exc
        return

    path = Path(destination)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
        )
    except OSError as exc:
        raise ArtifactIOError(f"Cannot create model archive {path}: {exc}") from exc

    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            _write_archive(artifact, f)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except (OSError, RuntimeError) as exc:
        raise ArtifactIOError(f"Failed to write model archive {path}: {exc}") from exc
    finally:
        tmp_path.unlink(missing_ok=True)
    logger.info(
        f"Saved model archive to {path} "
        f"({artifact.backbone_id}, {len(artifact.vocabulary)} labels)"
    )


def _read_manifest(zf: zipfile.ZipFile) -> ArtifactManifest:
    try:
        raw = orjson.loads(zf.read(MANIFEST_NAME))
    except KeyError:
        raise CorruptArtifactError(f"Archive has no {MANIFEST_NAME}") from None
    except orjson.JSONDecodeError as exc:
        raise CorruptArtifactError(f"Malformed {MANIFEST_NAME}: {exc}") from exc
    if not isinstance(raw, dict):
        raise CorruptArtifactError(f"{MANIFEST_NAME} is not a JSON object")

    version = raw.get("format_version")
    if version not in SUPPORTED_VERSIONS:
        raise VersionMismatchError(version, SUPPORTED_VERSIONS)
    try:
        return ArtifactManifest.model_validate(raw)
    except ValidationError as exc:
        raise CorruptArtifactError(f"Invalid {MANIFEST_NAME}: {exc}") from exc


def _read_head(zf: zipfile.ZipFile, manifest: ArtifactManifest) -> ClassifierHead:
    try:
        state = torch.load(
            io.BytesIO(zf.read(HEAD_NAME)), map_location="cpu", weights_only=True
        )
    except KeyError:
        raise CorruptArtifactError(f"Archive has no {HEAD_NAME}") from None
    except (RuntimeError, EOFError, ValueError, pickle.UnpicklingError) as exc:
        raise CorruptArtifactError(f"Unreadable {HEAD_NAME}: {exc}") from exc

    head = ClassifierHead(
        manifest.input_schema.embedding_dim, manifest.output_schema.num_classes
    )
    try:
        head.load_state_dict(state)
    except (RuntimeError, TypeError, AttributeError) as exc:
        raise CorruptArtifactError(
            f"{HEAD_NAME} does not match the manifest shapes: {exc}"
        ) from exc
    return head


def load(source: str | Path | IO[bytes]) -> ModelArtifact:
    """Read a model archive written by :func:`save`.

    Raises:
        CorruptArtifactError: Structural mismatch (not a zip, missing members,
            invalid manifest, head shapes disagree with the manifest).
        VersionMismatchError: Unsupported ``format_version``.
        ArtifactIOError: The source cannot be opened or read.
    """
    try:
        with zipfile.ZipFile(source, "r") as zf:
            manifest = _read_manifest(zf)
            head = _read_head(zf, manifest)
    except (zipfile.BadZipFile, zlib.error) as exc:
        raise CorruptArtifactError(f"Not a model archive: {exc}") from exc
    except OSError as exc:
        raise ArtifactIOError(f"Cannot read model archive: {exc}") from exc

    try:
        artifact = ModelArtifact(
            backbone_id=manifest.backbone_id,
            head=head,
            vocabulary=LabelVocabulary(manifest.labels),
            input_schema=manifest.input_schema,
            output_schema=manifest.output_schema,
        )
    except DataError as exc:
        raise CorruptArtifactError(f"Invalid vocabulary in archive: {exc}") from exc
    logger.info(
        f"Loaded model archive ({artifact.backbone_id}, "
        f"{len(artifact.vocabulary)} labels, format v{manifest.format_version})"
    )
    return artifact
