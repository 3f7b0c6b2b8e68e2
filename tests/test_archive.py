"""Tests for model archive save/load."""

from __future__ import annotations

import io
import zipfile
from pathlib import Path
from unittest import mock

import orjson
import pytest
import torch

from transfer_classifier.artifact import ModelArtifact
from transfer_classifier.errors import (
    ArtifactIOError,
    CorruptArtifactError,
    VersionMismatchError,
)
from transfer_classifier.io.archive import (
    FORMAT_VERSION,
    HEAD_NAME,
    MANIFEST_NAME,
    load,
    save,
)
from transfer_classifier.models.head import ClassifierHead


def _rewrite(path: Path, **members: bytes | None) -> None:
    """Copy the archive at ``path`` replacing (or dropping, with None) members."""
    with zipfile.ZipFile(path) as zf:
        contents = {name: zf.read(name) for name in zf.namelist()}
    contents.update(members)
    with zipfile.ZipFile(path, "w") as zf:
        for name, data in contents.items():
            if data is not None:
                zf.writestr(name, data)


def _manifest(path: Path) -> dict:  # type: ignore[type-arg]
    with zipfile.ZipFile(path) as zf:
        return orjson.loads(zf.read(MANIFEST_NAME))  # type: ignore[no-any-return]


class TestRoundTrip:
    def test_path(self, tmp_path: Path, artifact: ModelArtifact) -> None:
        path = tmp_path / "model.zip"
        save(artifact, path)
        loaded = load(path)
        assert loaded == artifact
        assert loaded.vocabulary.labels == artifact.vocabulary.labels

    def test_file_object(self, artifact: ModelArtifact) -> None:
        buf = io.BytesIO()
        save(artifact, buf)
        buf.seek(0)
        assert load(buf) == artifact

    def test_loaded_scores_match(self, tmp_path: Path, artifact: ModelArtifact) -> None:
        save(artifact, tmp_path / "model.zip")
        loaded = load(tmp_path / "model.zip")
        x = torch.rand(4, 3)
        assert torch.allclose(loaded.scores(x), artifact.scores(x), atol=1e-6)

    def test_manifest(self, tmp_path: Path, artifact: ModelArtifact) -> None:
        save(artifact, tmp_path / "model.zip")
        manifest = _manifest(tmp_path / "model.zip")
        assert manifest["format_version"] == FORMAT_VERSION
        assert manifest["backbone_id"] == "mean-color"
        assert manifest["labels"] == list(artifact.vocabulary.labels)
        assert manifest["output_schema"]["score_normalization"] == "softmax"

    def test_creates_parent_dirs(self, tmp_path: Path, artifact: ModelArtifact) -> None:
        path = tmp_path / "nested" / "dir" / "model.zip"
        save(artifact, path)
        assert path.is_file()

    def test_overwrites(self, tmp_path: Path, artifact: ModelArtifact) -> None:
        path = tmp_path / "model.zip"
        path.write_bytes(b"old")
        save(artifact, path)
        assert load(path) == artifact
        assert [p.name for p in tmp_path.iterdir()] == ["model.zip"]


class TestEquality:
    def test_different_weights_not_equal(self, artifact: ModelArtifact) -> None:
        head = ClassifierHead(3, len(artifact.vocabulary))
        other = ModelArtifact(
            backbone_id=artifact.backbone_id,
            head=head,
            vocabulary=artifact.vocabulary,
            input_schema=artifact.input_schema,
            output_schema=artifact.output_schema,
        )
        assert other != artifact

    def test_shape_mismatch_rejected(self, artifact: ModelArtifact) -> None:
        with pytest.raises(CorruptArtifactError):
            ModelArtifact(
                backbone_id=artifact.backbone_id,
                head=ClassifierHead(3, 2),
                vocabulary=artifact.vocabulary,
                input_schema=artifact.input_schema,
                output_schema=artifact.output_schema,
            )


class TestOwnership:
    def test_caller_head_left_trainable(
        self, prototype_head: ClassifierHead, artifact: ModelArtifact
    ) -> None:
        assert prototype_head.training
        assert all(p.requires_grad for p in prototype_head.parameters())
        assert artifact.head is not prototype_head
        assert not artifact.head.training
        assert all(not p.requires_grad for p in artifact.head.parameters())
        assert torch.equal(artifact.head.linear.weight, prototype_head.linear.weight)

    def test_later_updates_do_not_leak(
        self, prototype_head: ClassifierHead, artifact: ModelArtifact
    ) -> None:
        before = artifact.head.linear.weight.clone()
        with torch.no_grad():
            prototype_head.linear.weight.zero_()
        assert torch.equal(artifact.head.linear.weight, before)


class TestLoadFailures:
    @pytest.fixture()
    def saved(self, tmp_path: Path, artifact: ModelArtifact) -> Path:
        path = tmp_path / "model.zip"
        save(artifact, path)
        return path

    def test_not_a_zip(self, tmp_path: Path) -> None:
        path = tmp_path / "model.zip"
        path.write_bytes(b"this is not a zip file")
        with pytest.raises(CorruptArtifactError):
            load(path)

    def test_truncated(self, saved: Path) -> None:
        data = saved.read_bytes()
        saved.write_bytes(data[: len(data) // 2])
        with pytest.raises(CorruptArtifactError):
            load(saved)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ArtifactIOError):
            load(tmp_path / "absent.zip")

    def test_missing_manifest(self, saved: Path) -> None:
        _rewrite(saved, **{MANIFEST_NAME: None})
        with pytest.raises(CorruptArtifactError, match=MANIFEST_NAME):
            load(saved)

    def test_missing_head(self, saved: Path) -> None:
        _rewrite(saved, **{HEAD_NAME: None})
        with pytest.raises(CorruptArtifactError, match=HEAD_NAME):
            load(saved)

    def test_malformed_manifest(self, saved: Path) -> None:
        _rewrite(saved, **{MANIFEST_NAME: b"{not json"})
        with pytest.raises(CorruptArtifactError, match="Malformed"):
            load(saved)

    def test_invalid_manifest_fields(self, saved: Path) -> None:
        manifest = _manifest(saved)
        del manifest["backbone_id"]
        _rewrite(saved, **{MANIFEST_NAME: orjson.dumps(manifest)})
        with pytest.raises(CorruptArtifactError, match="Invalid"):
            load(saved)

    def test_version_mismatch(self, saved: Path) -> None:
        manifest = _manifest(saved)
        manifest["format_version"] = 99
        _rewrite(saved, **{MANIFEST_NAME: orjson.dumps(manifest)})
        with pytest.raises(VersionMismatchError) as exc_info:
            load(saved)
        assert exc_info.value.found == 99

    def test_head_shape_disagrees(self, saved: Path) -> None:
        manifest = _manifest(saved)
        manifest["labels"] = ["a", "b"]
        manifest["output_schema"]["num_classes"] = 2
        _rewrite(saved, **{MANIFEST_NAME: orjson.dumps(manifest)})
        with pytest.raises(CorruptArtifactError, match="shapes"):
            load(saved)

    def test_garbage_head(self, saved: Path) -> None:
        _rewrite(saved, **{HEAD_NAME: b"\x00\x01\x02"})
        with pytest.raises(CorruptArtifactError):
            load(saved)

    def test_duplicate_labels(self, saved: Path) -> None:
        manifest = _manifest(saved)
        manifest["labels"] = ["daisy"] * 5
        _rewrite(saved, **{MANIFEST_NAME: orjson.dumps(manifest)})
        with pytest.raises(CorruptArtifactError, match="vocabulary"):
            load(saved)


class TestAtomicSave:
    def test_failed_write_leaves_no_file(
        self, tmp_path: Path, artifact: ModelArtifact
    ) -> None:
        path = tmp_path / "model.zip"
        with mock.patch(
            "transfer_classifier.io.archive.torch.save",
            side_effect=OSError("disk full"),
        ):
            with pytest.raises(ArtifactIOError, match="disk full"):
                save(artifact, path)
        assert list(tmp_path.iterdir()) == []

    def test_failed_write_keeps_previous_archive(
        self, tmp_path: Path, artifact: ModelArtifact
    ) -> None:
        path = tmp_path / "model.zip"
        save(artifact, path)
        before = path.read_bytes()
        with mock.patch(
            "transfer_classifier.io.archive.os.replace",
            side_effect=OSError("rename failed"),
        ):
            with pytest.raises(ArtifactIOError):
                save(artifact, path)
        assert path.read_bytes() == before
        assert [p.name for p in tmp_path.iterdir()] == ["model.zip"]
