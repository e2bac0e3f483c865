# ethylene/bundle.py
"""On-disk layout of a patch bundle.

    <bundle>/manifest.json     the manifest
    <bundle>/<rel>.patch       delta for every "patch" entry
    <bundle>/new/<rel>         full copy for every "add" entry
"""
from __future__ import annotations
import shutil
from pathlib import Path

from .errors import PatchError, PatchIOError, short_hash
from .hashing import fingerprint_file
from .manifest import Action, Manifest, is_safe_relpath

MANIFEST_NAME = "manifest.json"
PATCH_SUFFIX = ".patch"
ADDED_DIR = "new"


def delta_name(rel: str) -> str:
    return rel + PATCH_SUFFIX


def added_name(rel: str) -> str:
    return f"{ADDED_DIR}/{rel}"


def _join(root: Path, rel: str, what: str) -> Path:
    if not is_safe_relpath(rel):
        raise PatchIOError(f"unsafe {what} path: {rel!r}", path=rel)
    p = root.joinpath(*rel.split("/"))
    base = root.resolve()
    # resolve() follows symlinks, so a planted link cannot point outside root
    if base not in p.resolve().parents:
        raise PatchIOError(f"{what} path escapes {root}: {rel}", path=rel)
    return p


def bundle_path(bundle_dir: str | Path, name: str) -> Path:
    return _join(Path(bundle_dir), name, "bundle")


def target_path(root: str | Path, rel: str) -> Path:
    return _join(Path(root), rel, "target")


def manifest_path(bundle_dir: str | Path) -> Path:
    return Path(bundle_dir) / MANIFEST_NAME


def load_manifest(bundle_dir: str | Path) -> Manifest:
    return Manifest.load(manifest_path(bundle_dir))


def save_manifest(bundle_dir: str | Path, manifest: Manifest) -> Path:
    p = manifest_path(bundle_dir)
    manifest.save(p)
    return p


def prepare_output(out_dir: str | Path, overwrite: bool = False) -> Path:
    """Create an empty output directory for a new bundle."""
    out = Path(out_dir)
    if out.exists() and not out.is_dir():
        raise PatchIOError(f"output path is not a directory: {out}", path=str(out))
    if out.is_dir() and any(out.iterdir()):
        if not overwrite:
            raise PatchError(f"output directory is not empty: {out} (use --force to replace it)",
                             path=str(out))
        try:
            shutil.rmtree(out)
        except OSError as e:
            raise PatchIOError(f"cannot clear {out}: {e}", path=str(out)) from e
    try:
        out.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise PatchIOError(f"cannot create {out}: {e}", path=str(out)) from e
    return out


def verify_bundle(bundle_dir: str | Path) -> list[str]:
    """Check that a bundle holds everything its manifest references.

    Deltas can only be replayed against the old file, so for "patch" entries
    this checks presence; staged "add" copies are hashed against newHash.
    Returns a list of problems, empty when the bundle is complete.
    """
    bundle_dir = Path(bundle_dir)
    man = load_manifest(bundle_dir)
    problems: list[str] = []
    for e in man.files:
        if e.action not in (Action.PATCH, Action.ADD):
            continue
        try:
            p = bundle_path(bundle_dir, e.patch_file)
        except PatchIOError as err:
            problems.append(f"{e.path}: {err}")
            continue
        if not p.is_file():
            problems.append(f"{e.path}: missing {e.patch_file}")
            continue
        if e.action == Action.ADD:
            actual = fingerprint_file(p)
            if actual != e.new_hash:
                problems.append(f"{e.path}: staged copy hash {short_hash(actual)} "
                                f"!= expected {short_hash(e.new_hash)}")
    return problems
