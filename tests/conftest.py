"""Shared test fixtures for ethylene."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from ethylene.hashing import fingerprint

TreeSpec = dict[str, bytes]


def _write_tree(root: Path, files: TreeSpec) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    for rel, data in files.items():
        p = root.joinpath(*rel.split("/"))
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(data)
    return root


def _read_tree(root: Path) -> dict[str, str]:
    """Relative path -> fingerprint for every file under root."""
    return {
        p.relative_to(root).as_posix(): fingerprint(p.read_bytes())
        for p in sorted(root.rglob("*"))
        if p.is_file()
    }


@pytest.fixture(autouse=True)
def _no_progress_bars(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ETHYLENE_TQDM", "1")


@pytest.fixture
def write_tree() -> Callable[[Path, TreeSpec], Path]:
    return _write_tree


@pytest.fixture
def read_tree() -> Callable[[Path], dict[str, str]]:
    return _read_tree


@pytest.fixture
def xyz_trees(tmp_path: Path) -> tuple[Path, Path]:
    """old/ = {x.txt, y.txt}; new/ = {y.txt (changed), z.txt}."""
    old = _write_tree(tmp_path / "old", {"x.txt": b"gone soon\n", "y.txt": b"version one\n"})
    new = _write_tree(tmp_path / "new", {"y.txt": b"version two, longer\n", "z.txt": b"brand new\n"})
    return old, new
