"""Tests for the manifest model and its load-time validation."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from ethylene.errors import MalformedManifest, PatchIOError
from ethylene.hashing import fingerprint
from ethylene.manifest import Action, FileEntry, Manifest, is_safe_relpath

H1 = fingerprint(b"hello")
H2 = fingerprint(b"hello world")


def _doc(*files: dict[str, Any]) -> dict[str, Any]:
    return {"fromVersion": "1.0", "toVersion": "1.1", "files": list(files)}


def _sample() -> Manifest:
    m = Manifest("1.0", "1.1")
    m.add_file(FileEntry("gone.txt", Action.DELETE.value, old_hash=H1))
    m.add_file(FileEntry("lib/app.bin", Action.PATCH.value, old_hash=H1, new_hash=H2,
                         patch_file="lib/app.bin.patch", algorithm="hdiff"))
    m.add_file(FileEntry("docs/new.md", Action.ADD.value, new_hash=H2, patch_file="new/docs/new.md"))
    return m


class TestSerialization:
    def test_save_then_load(self, tmp_path: Path) -> None:
        p = tmp_path / "manifest.json"
        _sample().save(p)
        assert Manifest.load(p) == _sample()

    def test_on_disk_keys(self, tmp_path: Path) -> None:
        p = tmp_path / "manifest.json"
        _sample().save(p)
        data = json.loads(p.read_text(encoding="utf-8"))
        assert list(data) == ["fromVersion", "toVersion", "files"]
        assert data["files"][0] == {"path": "gone.txt", "action": "delete", "oldHash": H1}
        assert list(data["files"][1]) == ["path", "action", "oldHash", "newHash", "patchFile", "algorithm"]
        assert "oldHash" not in data["files"][2]

    def test_save_leaves_no_temp_files(self, tmp_path: Path) -> None:
        _sample().save(tmp_path / "manifest.json")
        assert [p.name for p in tmp_path.iterdir()] == ["manifest.json"]

    def test_unencodable_path_fails_cleanly(self, tmp_path: Path) -> None:
        # os.walk hands back undecodable name bytes as lone surrogates
        m = Manifest("1.0", "1.1", [FileEntry("bad\udcff.txt", Action.DELETE.value, old_hash=H1)])
        with pytest.raises(PatchIOError):
            m.save(tmp_path / "manifest.json")
        assert list(tmp_path.iterdir()) == []

    def test_counts(self) -> None:
        c = _sample().counts()
        assert (c["patch"], c["add"], c["delete"]) == (1, 1, 1)

    def test_enum_action_serializes_as_string(self) -> None:
        e = FileEntry("a", Action.DELETE)
        assert e.to_dict() == {"path": "a", "action": "delete"}

    def test_load_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(PatchIOError):
            Manifest.load(tmp_path / "manifest.json")

    def test_load_invalid_json(self, tmp_path: Path) -> None:
        p = tmp_path / "manifest.json"
        p.write_text("{not json", encoding="utf-8")
        with pytest.raises(MalformedManifest):
            Manifest.load(p)


class TestValidation:
    def test_valid_document(self) -> None:
        m = Manifest.from_dict(_doc(
            {"path": "a.txt", "action": "patch", "oldHash": H1, "newHash": H2,
             "patchFile": "a.txt.patch", "algorithm": "bsdiff"},
            {"path": "b.txt", "action": "delete"},
        ))
        assert [e.path for e in m.files] == ["a.txt", "b.txt"]

    def test_patch_without_algorithm_defaults_to_bsdiff(self) -> None:
        m = Manifest.from_dict(_doc(
            {"path": "a.txt", "action": "patch", "oldHash": H1, "newHash": H2, "patchFile": "a.txt.patch"},
        ))
        assert m.files[0].algorithm == "bsdiff"

    def test_unknown_action_is_kept(self) -> None:
        m = Manifest.from_dict(_doc({"path": "run.sh", "action": "chmod", "mode": "0755"}))
        assert m.files[0].action == "chmod"

    @pytest.mark.parametrize("entry", [
        {"path": "a", "action": "patch", "newHash": H2, "patchFile": "a.patch"},
        {"path": "a", "action": "patch", "oldHash": H1, "patchFile": "a.patch"},
        {"path": "a", "action": "patch", "oldHash": H1, "newHash": H2},
        {"path": "a", "action": "add", "patchFile": "new/a"},
        {"path": "a", "action": "add", "newHash": H2},
        {"path": "a", "action": "add", "newHash": H2, "patchFile": "new/a", "oldHash": H1},
        {"path": "a", "action": "add", "newHash": H2, "patchFile": "new/a", "algorithm": "bsdiff"},
        {"path": "a", "action": "delete", "newHash": H2},
        {"path": "a", "action": "delete", "patchFile": "a.patch"},
        {"path": "a", "action": "delete", "oldHash": "ABC"},
        {"path": "a", "action": "add", "newHash": H2, "patchFile": "../../etc/passwd"},
        {"path": "a", "action": "delete", "oldHash": 12},
    ])
    def test_field_presence_violations(self, entry: dict[str, Any]) -> None:
        with pytest.raises(MalformedManifest) as exc:
            Manifest.from_dict(_doc(entry))
        assert exc.value.path == "a"

    @pytest.mark.parametrize("path", ["", "/etc/passwd", "../x", "a/../../x", "a//b", "./a",
                                      "a\\b", "C:evil", None, 7])
    def test_unsafe_paths_rejected(self, path: Any) -> None:
        with pytest.raises(MalformedManifest):
            Manifest.from_dict(_doc({"path": path, "action": "delete"}))

    def test_duplicate_paths_rejected(self) -> None:
        with pytest.raises(MalformedManifest):
            Manifest.from_dict(_doc({"path": "a", "action": "delete"}, {"path": "a", "action": "delete"}))

    def test_missing_action(self) -> None:
        with pytest.raises(MalformedManifest):
            Manifest.from_dict(_doc({"path": "a"}))

    @pytest.mark.parametrize("doc", [
        [],
        {"toVersion": "1", "files": []},
        {"fromVersion": "1", "toVersion": 2, "files": []},
        {"fromVersion": "1", "toVersion": "2"},
        {"fromVersion": "1", "toVersion": "2", "files": ["a"]},
    ])
    def test_bad_top_level(self, doc: Any) -> None:
        with pytest.raises(MalformedManifest):
            Manifest.from_dict(doc)


class TestSafeRelpath:
    def test_nested(self) -> None:
        assert is_safe_relpath("posts/cooking/recipe.md")

    def test_dots_inside_names_are_fine(self) -> None:
        assert is_safe_relpath("a..b/.hidden/file.tar.gz")

    def test_traversal_in_middle(self) -> None:
        assert not is_safe_relpath("posts/../../../etc/passwd")
